import logging
from decimal import Decimal
from typing import Optional

import bleach
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from billing.errors import ConflictError
from billing.models import Patient, Payment, Refund
from billing.services.audit import log_action
from billing.services.coverage import release_days
from billing.services.stay_calculator import quantize_money
from billing.sources import PaymentSource

logger = logging.getLogger(__name__)


@transaction.atomic
def record_payment(patient: Patient, source: PaymentSource, total, *, user=None, notes: str = '') -> Payment:
    """Open a pending payment for a checkout; ``total`` comes from the priced line items."""
    total = quantize_money(total)
    if total <= 0:
        raise ValidationError({'total': 'total must be greater than 0'})
    payment = Payment.objects.create(
        patient=patient,
        source_kind=source.kind,
        source_id=source.id,
        total=total,
        notes=bleach.clean((notes or '').strip(), strip=True),
        created_by=user if getattr(user, 'pk', None) else None,
    )
    log_action(user=user, action='payment_create', object_type='payment', object_id=payment.pk,
               detail={'source': source.as_dict(), 'total': str(total)})
    logger.info('recorded payment %s for %s:%s (%s)', payment.pk, source.kind, source.id, total)
    return payment


@transaction.atomic
def cancel_payment(payment_id: int, reason: str, *, user=None) -> Payment:
    payment = Payment.objects.select_for_update().filter(pk=payment_id).first()
    if payment is None:
        raise NotFound('payment not found')
    if payment.status == Payment.STATUS_CANCELLED or not payment.is_active:
        raise ConflictError('payment is already cancelled')
    reason = bleach.clean((reason or '').strip(), strip=True)
    if not reason:
        raise ValidationError({'reason': 'a cancellation reason is required'})

    payment.status = Payment.STATUS_CANCELLED
    payment.is_active = False
    payment.cancel_reason = reason[:255]
    payment.cancelled_at = timezone.now()
    payment.save(update_fields=['status', 'is_active', 'cancel_reason', 'cancelled_at', 'updated_at'])
    released = release_days(payment)
    log_action(user=user, action='payment_cancel', object_type='payment', object_id=payment.pk,
               detail={'reason': payment.cancel_reason, 'releasedDays': released})
    logger.info('cancelled payment %s (%s billed days released)', payment.pk, released)
    return payment


def refunded_total(payment: Payment) -> Decimal:
    return payment.refunds.aggregate(total=Sum('amount'))['total'] or Decimal('0.00')


@transaction.atomic
def refund_payment(payment_id: int, amount, reason: str, *, user=None) -> Refund:
    """Return part or all of a paid payment.

    Several refunds may be taken from one payment as long as together they
    stay within its total.  The payment itself and its billed days are left
    as they are.
    """
    payment = Payment.objects.select_for_update().filter(pk=payment_id).first()
    if payment is None:
        raise NotFound('payment not found')
    if payment.status != Payment.STATUS_PAID or not payment.is_active:
        raise ConflictError('only paid payments can be refunded')
    amount = quantize_money(amount)
    if amount <= 0:
        raise ValidationError({'amount': 'refund amount must be greater than 0'})
    reason = bleach.clean((reason or '').strip(), strip=True)
    if not reason:
        raise ValidationError({'reason': 'a refund reason is required'})

    already = refunded_total(payment)
    available = payment.total - already
    if amount > available:
        raise ValidationError({
            'amount': f'refund exceeds the available balance: total {payment.total}, '
                      f'already refunded {already}, available {available}',
        })

    refund = Refund.objects.create(
        payment=payment,
        amount=amount,
        reason=reason[:255],
        created_by=user if getattr(user, 'pk', None) else None,
    )
    log_action(user=user, action='payment_refund', object_type='payment', object_id=payment.pk,
               detail={'refundId': refund.pk, 'amount': str(amount), 'reason': refund.reason})
    logger.info('refunded %s of payment %s (%s left)', amount, payment.pk, available - amount)
    return refund


def refunds_for(payment_id: int):
    if not Payment.objects.filter(pk=payment_id).exists():
        raise NotFound('payment not found')
    return Refund.objects.filter(payment_id=payment_id).order_by('-created_at', '-pk')


def payments_for(source: Optional[PaymentSource] = None, patient_id: Optional[int] = None):
    qs = Payment.objects.select_related('patient').order_by('-created_at')
    if source is not None:
        qs = qs.filter(source_kind=source.kind, source_id=source.id)
    if patient_id is not None:
        qs = qs.filter(patient_id=patient_id)
    return qs
