"""
Billed-period coverage of hospital stays.

A billed period is a hospitalization payment carrying a covered date
range.  Only active, non-cancelled periods count.  Coverage is kept free
of overlaps by two mechanisms working together:

* ``create_billed_period`` locks the stay row, checks for overlap and
  inserts the payment in one transaction;
* every covered day is claimed in :class:`BilledDay`, whose unique
  ``(stay, day)`` constraint rejects an overlapping insert at write time
  even if a caller skipped the check.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator, Optional, Union

from django.db import IntegrityError, transaction
from django.db.models import Max, QuerySet
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from billing.errors import ConflictError
from billing.models import BilledDay, Payment, Stay
from billing.services.audit import log_action
from billing.services.stay_calculator import quantize_money
from billing.sources import Hospitalization

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class PendingRange:
    start: date
    end: date
    day_count: int

    @property
    def has_pending(self) -> bool:
        return self.day_count > 0

    def as_dict(self) -> dict:
        return {
            'startDate': self.start.isoformat(),
            'endDate': self.end.isoformat(),
            'dayCount': self.day_count,
            'hasPendingDays': self.has_pending,
        }


def iter_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += ONE_DAY


def _resolve_stay(stay: Union[Stay, int]) -> Stay:
    if isinstance(stay, Stay):
        return stay
    obj = Stay.objects.filter(pk=stay).first()
    if obj is None:
        raise NotFound('stay not found')
    return obj


def admission_date(stay: Stay) -> date:
    return timezone.localdate(stay.admitted_at)


def discharge_date(stay: Stay) -> Optional[date]:
    return timezone.localdate(stay.discharged_at) if stay.discharged_at else None


def billed_periods(stay_id: int) -> QuerySet:
    """Active, non-cancelled billed periods of a stay."""
    return (
        Payment.objects.filter(
            source_kind=Hospitalization.kind,
            source_id=stay_id,
            is_active=True,
            covered_start__isnull=False,
        )
        .exclude(status=Payment.STATUS_CANCELLED)
    )


def find_last_billed_date(stay_id: int) -> Optional[date]:
    return billed_periods(stay_id).aggregate(last=Max('covered_end'))['last']


def overlaps(start: date, end: date, stay_id: int) -> bool:
    """True if any counted billed period of the stay shares a day with ``[start, end]``."""
    return billed_periods(stay_id).filter(covered_start__lte=end, covered_end__gte=start).exists()


def pending_range(stay: Union[Stay, int], reference_date: Optional[date] = None) -> PendingRange:
    """Days after the last billed day up to ``reference_date`` (inclusive).

    Without a reference date the discharge date (or today for an active
    stay) is used.  A discharged stay is never billed past its discharge
    date, and a reference date before admission yields no pending days.
    """
    stay = _resolve_stay(stay)
    admitted = admission_date(stay)
    discharged = discharge_date(stay)
    if reference_date is None:
        reference_date = discharged or timezone.localdate()
    elif discharged is not None and reference_date > discharged:
        reference_date = discharged

    last_billed = find_last_billed_date(stay.pk)
    start = admitted if last_billed is None else last_billed + ONE_DAY
    if reference_date < admitted or start > reference_date:
        return PendingRange(start=start, end=reference_date, day_count=0)
    return PendingRange(start=start, end=reference_date, day_count=(reference_date - start).days + 1)


def create_billed_period(
    stay_id: int,
    start: date,
    end: date,
    amount,
    *,
    user=None,
    notes: str = '',
    status: str = Payment.STATUS_PENDING,
) -> Payment:
    """Record a billed period for a stay, rejecting any overlap with ``ConflictError``."""
    if start > end:
        raise ValidationError({'end': 'end date must not be before start date'})
    amount = quantize_money(amount)
    if amount <= Decimal('0'):
        raise ValidationError({'amount': 'amount must be greater than 0'})

    with transaction.atomic():
        stay = Stay.objects.select_for_update().filter(pk=stay_id).first()
        if stay is None:
            raise NotFound('stay not found')
        if start < admission_date(stay):
            raise ValidationError({'start': 'billed period cannot start before admission'})
        discharged = discharge_date(stay)
        if discharged is not None and end > discharged:
            raise ValidationError({'end': 'billed period cannot end after discharge'})
        if discharged is None and end > timezone.localdate():
            raise ValidationError({'end': 'billed period cannot end after today while the stay is active'})
        if overlaps(start, end, stay.pk):
            logger.warning('billed period %s..%s overlaps stay %s coverage', start, end, stay.pk)
            raise ConflictError(f'period already billed: {start}..{end} overlaps days billed for this stay')

        days = list(iter_days(start, end))
        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    patient_id=stay.patient_id,
                    source_kind=Hospitalization.kind,
                    source_id=stay.pk,
                    total=amount,
                    status=status,
                    covered_start=start,
                    covered_end=end,
                    days_count=len(days),
                    notes=notes,
                    created_by=user if getattr(user, 'pk', None) else None,
                )
                BilledDay.objects.bulk_create([BilledDay(stay=stay, payment=payment, day=d) for d in days])
        except IntegrityError as exc:
            logger.warning('billed day claim conflict for stay %s (%s..%s): %s', stay.pk, start, end, exc)
            raise ConflictError(f'period already billed: {start}..{end} overlaps days billed for this stay') from exc

        log_action(user=user, action='billed_period_create', object_type='payment', object_id=payment.pk,
                   detail={'stayId': stay.pk, 'start': start.isoformat(), 'end': end.isoformat(),
                           'amount': str(amount)})
    logger.info('billed stay %s for %s..%s (%s days, %s)', stay.pk, start, end, len(days), amount)
    return payment


def release_days(payment: Payment) -> int:
    """Drop the day claims of a payment so its days become billable again."""
    deleted, _ = BilledDay.objects.filter(payment=payment).delete()
    return deleted
