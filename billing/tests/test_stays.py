from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from billing.errors import ConflictError, NoActiveRangeError
from billing.models import Invoice, Payment, PriceItem, PriceVariant, Stay
from billing.services import stays
from billing.services.coverage import find_last_billed_date

pytestmark = pytest.mark.django_db


def test_admit_with_variant(patient, room_rate, private_room, local_dt):
    stay = stays.admit(patient, room_rate, private_room, admitted_at=local_dt(2024, 3, 1))
    assert stay.status == Stay.STATUS_ACTIVE
    assert stays.daily_rate(stay) == Decimal('750.00')


def test_admit_rejects_a_variant_of_another_item(patient, room_rate):
    icu = PriceItem.objects.create(name='ICU', kind=PriceItem.KIND_DAILY_RATE, base_price=Decimal('2000'))
    icu_variant = PriceVariant.objects.create(item=icu, name='Isolation', price=Decimal('2500'))
    with pytest.raises(ValidationError):
        stays.admit(patient, room_rate, icu_variant)


def test_admit_rejects_inactive_items(patient, room_rate):
    room_rate.is_active = False
    room_rate.save()
    with pytest.raises(ValidationError):
        stays.admit(patient, room_rate)


def test_change_rate_while_active(stay, room_rate, private_room):
    stays.change_rate(stay.pk, room_rate, private_room)
    stay.refresh_from_db()
    assert stays.daily_rate(stay) == Decimal('750.00')


def test_discharge_bills_pending_days_and_freezes_rate(stay, room_rate, local_dt):
    discharged, payment = stays.discharge(stay.pk, discharged_at=local_dt(2024, 1, 3, 10))

    assert discharged.status == Stay.STATUS_DISCHARGED
    assert discharged.frozen_daily_rate == Decimal('500.00')
    assert (payment.covered_start, payment.covered_end) == (date(2024, 1, 1), date(2024, 1, 3))
    assert payment.days_count == 3
    assert payment.total == Decimal('1500.00')
    assert payment.notes == 'Final stay charge: 3 day(s)'

    room_rate.base_price = Decimal('900.00')
    room_rate.save()
    discharged.refresh_from_db()
    assert stays.daily_rate(discharged) == Decimal('500.00')


def test_discharge_after_everything_was_billed(stay, local_dt):
    stays.bill_partial(stay.pk, end_date=date(2024, 1, 3))
    _, payment = stays.discharge(stay.pk, discharged_at=local_dt(2024, 1, 3, 18))
    assert payment is None
    assert find_last_billed_date(stay.pk) == date(2024, 1, 3)


def test_discharged_stay_is_frozen(stay, room_rate, private_room, local_dt):
    stays.discharge(stay.pk, discharged_at=local_dt(2024, 1, 2))
    with pytest.raises(ConflictError):
        stays.discharge(stay.pk, discharged_at=local_dt(2024, 1, 4))
    with pytest.raises(ConflictError):
        stays.change_rate(stay.pk, room_rate, private_room)


def test_discharge_before_admission(stay, local_dt):
    with pytest.raises(ValidationError):
        stays.discharge(stay.pk, discharged_at=local_dt(2023, 12, 31))
    stay.refresh_from_db()
    assert stay.is_active


def test_partial_billing_takes_the_first_pending_days(stay):
    payment, invoice = stays.bill_partial(stay.pk, end_date=date(2024, 1, 5), days=2)

    assert invoice is None
    assert (payment.covered_start, payment.covered_end) == (date(2024, 1, 1), date(2024, 1, 2))
    assert payment.total == Decimal('1000.00')
    assert payment.status == Payment.STATUS_PENDING

    payment, _ = stays.bill_partial(stay.pk, end_date=date(2024, 1, 5))
    assert (payment.covered_start, payment.covered_end, payment.days_count) == (date(2024, 1, 3), date(2024, 1, 5), 3)


@pytest.mark.parametrize('kwargs', [
    {'days': 0},
    {'days': 6},
    {'custom_amount': Decimal('0')},
    {'custom_amount': Decimal('2500.01')},
])
def test_partial_billing_validation(stay, kwargs):
    with pytest.raises(ValidationError):
        stays.bill_partial(stay.pk, end_date=date(2024, 1, 5), **kwargs)
    assert not Payment.objects.exists()


def test_partial_billing_with_custom_amount(stay):
    payment, _ = stays.bill_partial(stay.pk, end_date=date(2024, 1, 2), custom_amount=Decimal('800'))
    assert payment.total == Decimal('800.00')
    assert payment.days_count == 2


def test_nothing_left_to_bill(stay):
    stays.bill_partial(stay.pk, end_date=date(2024, 1, 2))
    with pytest.raises(ValidationError):
        stays.bill_partial(stay.pk, end_date=date(2024, 1, 2))


def test_partial_billing_cannot_reach_past_today(stay):
    with pytest.raises(ValidationError):
        stays.bill_partial(stay.pk, end_date=timezone.localdate() + timedelta(days=1), days=1)
    assert not Payment.objects.exists()


def test_discharge_cannot_be_in_the_future(stay):
    with pytest.raises(ValidationError):
        stays.discharge(stay.pk, discharged_at=timezone.now() + timedelta(days=2))
    stay.refresh_from_db()
    assert stay.is_active
    assert not Payment.objects.exists()


def test_partial_billing_with_invoice(stay, make_range):
    make_range(1, 10)
    payment, invoice = stays.bill_partial(stay.pk, end_date=date(2024, 1, 2), generate_invoice=True,
                                          customer_tax_id='08011990000011')
    assert invoice.payment_id == payment.pk
    assert invoice.document_number == '000-001-01-00000001'
    assert invoice.customer_tax_id == '08011990000011'
    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_PAID


def test_invoice_failure_keeps_the_billed_period(stay):
    with pytest.raises(NoActiveRangeError):
        stays.bill_partial(stay.pk, end_date=date(2024, 1, 2), generate_invoice=True)
    assert find_last_billed_date(stay.pk) == date(2024, 1, 2)
    assert not Invoice.objects.exists()


def test_stay_summary(stay):
    stays.bill_partial(stay.pk, end_date=date(2024, 1, 2), generate_invoice=True,
                       document_type=Invoice.TYPE_SIMPLE)
    stays.bill_partial(stay.pk, end_date=date(2024, 1, 3))

    summary = stays.stay_summary(stay, today=date(2024, 1, 5))

    assert summary['patientName'] == 'Ana Lopez'
    assert summary['dailyRate'] == Decimal('500.00')
    assert summary['pendingDays']['startDate'] == '2024-01-04'
    assert summary['pendingDays']['dayCount'] == 2
    assert summary['pendingDays']['estimatedCost'] == Decimal('1000.00')
    totals = summary['paymentSummary']
    assert totals['totalPaid'] == Decimal('1000.00')
    assert totals['totalPending'] == Decimal('500.00')
    assert (totals['paidCount'], totals['pendingCount'], totals['cancelledCount']) == (1, 1, 0)
    assert totals['lastBilledDate'] == '2024-01-03'
    assert [p['days'] for p in summary['billedPeriods']] == [2, 1]
