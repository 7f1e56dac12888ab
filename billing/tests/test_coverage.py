from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth.models import AnonymousUser
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from billing.errors import ConflictError
from billing.models import AuditEvent, BilledDay, Payment, Stay, User
from billing.services.coverage import (
    create_billed_period,
    find_last_billed_date,
    overlaps,
    pending_range,
)
from billing.services.payments import cancel_payment

pytestmark = pytest.mark.django_db


def test_pending_days_after_last_billed_day(stay):
    create_billed_period(stay.pk, date(2024, 1, 1), date(2024, 1, 3), Decimal('1500'))

    pending = pending_range(stay.pk, date(2024, 1, 5))

    assert pending.start == date(2024, 1, 4)
    assert pending.end == date(2024, 1, 5)
    assert pending.day_count == 2
    assert pending.has_pending is True
    assert pending.as_dict() == {
        'startDate': '2024-01-04', 'endDate': '2024-01-05', 'dayCount': 2, 'hasPendingDays': True,
    }


def test_nothing_billed_starts_at_admission(stay):
    pending = pending_range(stay, date(2024, 1, 1))
    assert (pending.start, pending.end, pending.day_count) == (date(2024, 1, 1), date(2024, 1, 1), 1)


def test_reference_before_admission_has_no_pending_days(stay):
    pending = pending_range(stay, date(2023, 12, 30))
    assert pending.day_count == 0
    assert pending.has_pending is False


def test_fully_billed_stay_has_no_pending_days(stay):
    create_billed_period(stay.pk, date(2024, 1, 1), date(2024, 1, 5), Decimal('2500'))
    assert pending_range(stay, date(2024, 1, 5)).has_pending is False


def test_discharged_stay_is_never_pending_after_discharge(stay, local_dt):
    Stay.objects.filter(pk=stay.pk).update(status=Stay.STATUS_DISCHARGED, discharged_at=local_dt(2024, 1, 3, 10))
    stay.refresh_from_db()

    assert pending_range(stay).end == date(2024, 1, 3)
    assert pending_range(stay, date(2024, 2, 1)).day_count == 3


def test_overlapping_period_is_rejected_without_a_record(stay):
    create_billed_period(stay.pk, date(2024, 1, 1), date(2024, 1, 3), Decimal('1500'))
    before = Payment.objects.count()

    with pytest.raises(ConflictError):
        create_billed_period(stay.pk, date(2024, 1, 3), date(2024, 1, 4), Decimal('1000'))

    assert Payment.objects.count() == before
    assert BilledDay.objects.filter(stay=stay).count() == 3


def test_adjacent_periods_do_not_overlap(stay):
    create_billed_period(stay.pk, date(2024, 1, 1), date(2024, 1, 3), Decimal('1500'))
    assert overlaps(date(2024, 1, 4), date(2024, 1, 6), stay.pk) is False
    assert overlaps(date(2023, 12, 31), date(2024, 1, 1), stay.pk) is True

    create_billed_period(stay.pk, date(2024, 1, 4), date(2024, 1, 6), Decimal('1500'))
    assert find_last_billed_date(stay.pk) == date(2024, 1, 6)


def test_cancelled_period_no_longer_counts(stay):
    first = create_billed_period(stay.pk, date(2024, 1, 1), date(2024, 1, 3), Decimal('1500'))
    cancel_payment(first.pk, 'wrong dates')

    assert find_last_billed_date(stay.pk) is None
    assert not BilledDay.objects.filter(payment=first).exists()
    again = create_billed_period(stay.pk, date(2024, 1, 2), date(2024, 1, 3), Decimal('1000'))
    assert again.days_count == 2


def test_day_claims_reject_overlap_at_write_time(stay, patient):
    period = create_billed_period(stay.pk, date(2024, 1, 1), date(2024, 1, 2), Decimal('1000'))
    rogue = Payment.objects.create(
        patient=patient, source_kind='hospitalization', source_id=stay.pk, total=Decimal('500'),
        covered_start=date(2024, 1, 2), covered_end=date(2024, 1, 2), days_count=1,
    )
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            BilledDay.objects.create(stay=stay, payment=rogue, day=date(2024, 1, 2))
    assert BilledDay.objects.get(stay=stay, day=date(2024, 1, 2)).payment == period


def test_period_must_lie_within_the_stay(stay):
    with pytest.raises(ValidationError):
        create_billed_period(stay.pk, date(2023, 12, 31), date(2024, 1, 2), Decimal('1000'))
    with pytest.raises(ValidationError):
        create_billed_period(stay.pk, date(2024, 1, 3), date(2024, 1, 2), Decimal('1000'))
    with pytest.raises(ValidationError):
        create_billed_period(stay.pk, date(2024, 1, 1), date(2024, 1, 2), Decimal('0'))


def test_unknown_stay():
    with pytest.raises(NotFound):
        create_billed_period(999999, date(2024, 1, 1), date(2024, 1, 2), Decimal('100'))
    with pytest.raises(NotFound):
        pending_range(999999)


def test_active_stay_cannot_be_billed_past_today(stay):
    today = timezone.localdate()
    with pytest.raises(ValidationError):
        create_billed_period(stay.pk, date(2024, 1, 1), today + timedelta(days=1), Decimal('1000'))
    with pytest.raises(ValidationError):
        create_billed_period(stay.pk, date(2024, 1, 1), date(2124, 1, 1), Decimal('1000'))
    assert not Payment.objects.exists()
    assert not BilledDay.objects.exists()

    payment = create_billed_period(stay.pk, today, today, Decimal('500'))
    assert payment.days_count == 1


def test_billed_period_is_audited(stay):
    cashier = User.objects.create_user(username='cashier1', password='P@ssw0rd1', role='cashier')
    payment = create_billed_period(stay.pk, date(2024, 1, 1), date(2024, 1, 2), Decimal('1000'), user=cashier)
    create_billed_period(stay.pk, date(2024, 1, 3), date(2024, 1, 3), Decimal('500'), user=AnonymousUser())

    events = list(AuditEvent.objects.filter(action='billed_period_create').order_by('pk'))
    assert [(e.user_id, e.object_type) for e in events] == [(cashier.pk, 'payment'), (None, 'payment')]
    assert events[0].object_id == payment.pk
    assert events[0].detail == {'stayId': stay.pk, 'start': '2024-01-01', 'end': '2024-01-02', 'amount': '1000.00'}
