from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, Tuple

import bleach
from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from billing.errors import ConflictError
from billing.models import Invoice, Patient, Payment, PriceItem, PriceVariant, Stay
from billing.services import invoices
from billing.services.audit import log_action
from billing.services.coverage import create_billed_period, find_last_billed_date, pending_range
from billing.services.stay_calculator import effective_daily_rate, quantize_money, stay_cost
from billing.sources import Hospitalization

logger = logging.getLogger(__name__)


def _clean(text: Optional[str]) -> str:
    return bleach.clean((text or '').strip(), strip=True)


def _check_rate(item: Optional[PriceItem], variant: Optional[PriceVariant]):
    if item is None:
        raise ValidationError({'rateItemId': 'a daily rate item is required'})
    if not item.is_active:
        raise ValidationError({'rateItemId': 'daily rate item is not active'})
    if variant is not None:
        if variant.item_id != item.pk:
            raise ValidationError({'rateVariantId': 'variant does not belong to the selected item'})
        if not variant.is_active:
            raise ValidationError({'rateVariantId': 'variant is not active'})


def _locked_stay(stay_id: int) -> Stay:
    stay = Stay.objects.select_for_update().filter(pk=stay_id).first()
    if stay is None:
        raise NotFound('stay not found')
    return stay


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def daily_rate(stay: Stay) -> Optional[Decimal]:
    """Frozen rate of a discharged stay, else the rate of the current selection."""
    if stay.frozen_daily_rate is not None:
        return stay.frozen_daily_rate
    if stay.rate_item_id is None:
        return None
    return effective_daily_rate(stay.rate_item, stay.rate_variant)


@transaction.atomic
def admit(patient: Patient, rate_item: PriceItem, rate_variant: Optional[PriceVariant] = None, *,
          admitted_at: Optional[datetime] = None, notes: str = '', user=None) -> Stay:
    _check_rate(rate_item, rate_variant)
    stay = Stay.objects.create(
        patient=patient,
        admitted_at=admitted_at or timezone.now(),
        rate_item=rate_item,
        rate_variant=rate_variant,
        notes=_clean(notes),
    )
    log_action(user=user, action='stay_admit', object_type='stay', object_id=stay.pk,
               detail={'patientId': patient.pk, 'rateItemId': rate_item.pk,
                       'rateVariantId': rate_variant.pk if rate_variant else None})
    logger.info('admitted patient %s as stay %s', patient.pk, stay.pk)
    return stay


@transaction.atomic
def change_rate(stay_id: int, rate_item: PriceItem, rate_variant: Optional[PriceVariant] = None, *, user=None) -> Stay:
    stay = _locked_stay(stay_id)
    if not stay.is_active:
        raise ConflictError('the daily rate of a discharged stay is frozen')
    _check_rate(rate_item, rate_variant)
    stay.rate_item = rate_item
    stay.rate_variant = rate_variant
    stay.save(update_fields=['rate_item', 'rate_variant', 'updated_at'])
    log_action(user=user, action='stay_change_rate', object_type='stay', object_id=stay.pk,
               detail={'rateItemId': rate_item.pk, 'rateVariantId': rate_variant.pk if rate_variant else None})
    return stay


@transaction.atomic
def discharge(stay_id: int, *, discharged_at: Optional[datetime] = None, notes: str = '',
              user=None) -> Tuple[Stay, Optional[Payment]]:
    """Discharge a stay, freezing its rate and billing any days still pending.

    Returns the stay and the final billed period (``None`` when every day
    was already billed).
    """
    stay = _locked_stay(stay_id)
    if not stay.is_active:
        raise ConflictError('stay is already discharged')
    discharged_at = discharged_at or timezone.now()
    if discharged_at < stay.admitted_at:
        raise ValidationError({'dischargedAt': 'discharge cannot be before admission'})
    if discharged_at > timezone.now():
        raise ValidationError({'dischargedAt': 'discharge cannot be in the future'})
    if stay.rate_item_id is None:
        raise ValidationError({'rateItemId': 'stay has no daily rate configured'})

    rate = effective_daily_rate(stay.rate_item, stay.rate_variant)
    pending = pending_range(stay, timezone.localdate(discharged_at))
    amount = quantize_money(rate * pending.day_count)
    if pending.has_pending and amount <= 0:
        raise ValidationError({'amount': 'the total for the pending days is zero, check the daily rate'})

    stay.status = Stay.STATUS_DISCHARGED
    stay.discharged_at = discharged_at
    stay.frozen_daily_rate = rate
    if notes:
        stay.notes = '\n'.join(filter(None, [stay.notes, _clean(notes)]))
    stay.save(update_fields=['status', 'discharged_at', 'frozen_daily_rate', 'notes', 'updated_at'])

    payment = None
    if pending.has_pending:
        payment = create_billed_period(stay.pk, pending.start, pending.end, amount, user=user,
                                       notes=f'Final stay charge: {pending.day_count} day(s)')
    log_action(user=user, action='stay_discharge', object_type='stay', object_id=stay.pk,
               detail={'dailyRate': str(rate), 'finalPaymentId': payment.pk if payment else None})
    logger.info('discharged stay %s (rate %s, final charge %s)', stay.pk, rate, payment.total if payment else None)
    return stay, payment


def bill_partial(
    stay_id: int,
    *,
    end_date: Optional[date] = None,
    days: Optional[int] = None,
    custom_amount=None,
    generate_invoice: bool = False,
    document_type: str = Invoice.TYPE_LEGAL,
    customer_name: str = '',
    customer_tax_id: str = '',
    notes: str = '',
    user=None,
) -> Tuple[Payment, Optional[Invoice]]:
    """Bill the first ``days`` pending days of a stay (all pending days by default).

    The invoice, when requested, is issued after the billed period is
    committed so a range error never rolls the billed period back.
    """
    with transaction.atomic():
        stay = _locked_stay(stay_id)
        if stay.rate_item_id is None and stay.frozen_daily_rate is None:
            raise ValidationError({'rateItemId': 'stay has no daily rate configured'})
        if end_date is not None and stay.is_active and end_date > timezone.localdate():
            raise ValidationError({'endDate': 'end date cannot be after today while the stay is active'})
        pending = pending_range(stay, end_date)
        if not pending.has_pending:
            raise ValidationError({'days': 'no pending days to bill for this stay'})
        count = pending.day_count if days is None else days
        if count < 1 or count > pending.day_count:
            raise ValidationError({'days': f'choose between 1 and {pending.day_count} day(s)'})

        computed = quantize_money(daily_rate(stay) * count)
        amount = computed
        if custom_amount is not None:
            amount = quantize_money(custom_amount)
            if amount <= 0:
                raise ValidationError({'customAmount': 'custom amount must be greater than 0'})
            if amount > computed:
                raise ValidationError({'customAmount': f'custom amount cannot exceed {computed}'})

        end = pending.start + timedelta(days=count - 1)
        payment = create_billed_period(stay.pk, pending.start, end, amount, user=user,
                                       notes=_clean(notes) or f'Partial stay charge: {count} day(s)')

    invoice = None
    if generate_invoice:
        invoice = invoices.issue(payment.pk, document_type, customer_name=customer_name,
                                 customer_tax_id=customer_tax_id, user=user)
    return payment, invoice


def stay_summary(stay: Stay, today: Optional[date] = None) -> dict:
    rate = daily_rate(stay)
    pending = pending_range(stay, today)
    payments = Payment.objects.filter(source_kind=Hospitalization.kind, source_id=stay.pk)
    counted = payments.filter(is_active=True).exclude(status=Payment.STATUS_CANCELLED)
    totals = counted.values('status').annotate(total=Sum('total'), n=Count('id'))
    by_status = {row['status']: row for row in totals}

    return {
        'id': stay.pk,
        'patientId': stay.patient_id,
        'patientName': stay.patient.full_name,
        'status': stay.status,
        'admittedAt': stay.admitted_at.isoformat(),
        'dischargedAt': stay.discharged_at.isoformat() if stay.discharged_at else None,
        'rateItemId': stay.rate_item_id,
        'rateVariantId': stay.rate_variant_id,
        'dailyRate': rate,
        'costCalculation': stay_cost(stay.admitted_at, rate, stay.discharged_at) if rate is not None else None,
        'pendingDays': dict(
            pending.as_dict(),
            estimatedCost=quantize_money(rate * pending.day_count) if rate is not None else None,
        ),
        'paymentSummary': {
            'totalPaid': quantize_money(by_status.get(Payment.STATUS_PAID, {}).get('total') or 0),
            'totalPending': quantize_money(by_status.get(Payment.STATUS_PENDING, {}).get('total') or 0),
            'paidCount': by_status.get(Payment.STATUS_PAID, {}).get('n', 0),
            'pendingCount': by_status.get(Payment.STATUS_PENDING, {}).get('n', 0),
            'cancelledCount': payments.filter(status=Payment.STATUS_CANCELLED).count(),
            'lastBilledDate': _iso(find_last_billed_date(stay.pk)),
        },
        'billedPeriods': [
            {
                'paymentId': p.pk,
                'start': p.covered_start.isoformat(),
                'end': p.covered_end.isoformat(),
                'days': p.days_count,
                'total': p.total,
                'status': p.status,
            }
            for p in counted.filter(covered_start__isnull=False).order_by('covered_start')
        ],
    }
