"""
Invoice issuance.

Issuing runs in two transactions.  The first binds a document number to
the payment (``NumberReservation``) and commits; the second writes the
invoice.  A number handed out by the first step therefore stays bound to
its payment even if the second step fails, and a retry reuses it.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Tuple

import bleach
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from rest_framework.exceptions import NotFound, ValidationError

from billing.errors import ConflictError
from billing.models import DocumentSequence, Invoice, NumberReservation, Payment
from billing.services import ranges
from billing.services.audit import log_action

logger = logging.getLogger(__name__)

RECEIPT_SEQUENCE = 'receipt'
DOCUMENT_TYPES = (Invoice.TYPE_LEGAL, Invoice.TYPE_SIMPLE)


def next_receipt_number() -> Tuple[int, str]:
    """Next simple receipt number, e.g. ``(7, 'REC-000007')``. Must run inside a transaction."""
    DocumentSequence.objects.get_or_create(name=RECEIPT_SEQUENCE)
    seq = DocumentSequence.objects.select_for_update().get(name=RECEIPT_SEQUENCE)
    DocumentSequence.objects.filter(pk=seq.pk).update(last_value=F('last_value') + 1)
    seq.refresh_from_db()
    prefix = getattr(settings, 'BILLING_RECEIPT_PREFIX', 'REC')
    return seq.last_value, f"{prefix}-{seq.last_value:06d}"


def _reserve(payment_id: int, document_type: str, today: Optional[date]) -> NumberReservation:
    with transaction.atomic():
        payment = Payment.objects.select_for_update().filter(pk=payment_id).first()
        if payment is None:
            raise NotFound('payment not found')
        if payment.status == Payment.STATUS_CANCELLED or not payment.is_active:
            raise ConflictError('cancelled payments cannot be invoiced')

        reservation = NumberReservation.objects.select_related('invoice_range').filter(payment=payment).first()
        if reservation is not None:
            if reservation.document_type != document_type:
                logger.info('payment %s already holds %s %s, ignoring requested type %s',
                            payment.pk, reservation.document_type, reservation.document_number, document_type)
            return reservation

        if document_type == Invoice.TYPE_LEGAL:
            number, rng = ranges.allocate(today)
            document_number = rng.format_number(number)
        else:
            number, document_number = next_receipt_number()
            rng = None
        reservation = NumberReservation.objects.create(
            payment=payment,
            document_type=document_type,
            number=number,
            document_number=document_number,
            invoice_range=rng,
        )
        log_action(user=None, action='invoice_number_reserve', object_type='payment', object_id=payment.pk,
                   detail={'documentNumber': document_number, 'documentType': document_type})
    logger.info('reserved %s %s for payment %s', document_type, document_number, payment_id)
    return reservation


def issue(
    payment_id: int,
    document_type: str,
    *,
    customer_name: str = '',
    customer_tax_id: str = '',
    notes: str = '',
    user=None,
    today: Optional[date] = None,
) -> Invoice:
    """Issue (or return the already issued) invoice of a payment."""
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError({'documentType': f'must be one of {", ".join(DOCUMENT_TYPES)}'})

    existing = Invoice.objects.filter(payment_id=payment_id).first()
    if existing is not None:
        return existing

    reservation = _reserve(payment_id, document_type, today)
    rng = reservation.invoice_range

    try:
        with transaction.atomic():
            payment = Payment.objects.select_for_update().select_related('patient').get(pk=payment_id)
            existing = Invoice.objects.filter(payment=payment).first()
            if existing is not None:
                return existing
            invoice = Invoice.objects.create(
                payment=payment,
                document_type=reservation.document_type,
                number=reservation.number,
                document_number=reservation.document_number,
                invoice_range=rng,
                authorization_code=rng.authorization_code if rng else '',
                issuer_name=rng.legal_name if rng else '',
                issuer_rtn=rng.taxpayer_rtn if rng else '',
                customer_name=bleach.clean(customer_name or payment.patient.full_name, strip=True),
                customer_tax_id=bleach.clean(customer_tax_id or '', strip=True),
                total=payment.total,
                notes=bleach.clean(notes or '', strip=True),
                issued_by=user if getattr(user, 'pk', None) else None,
            )
            if payment.status != Payment.STATUS_PAID:
                payment.status = Payment.STATUS_PAID
                payment.save(update_fields=['status', 'updated_at'])
            log_action(user=user, action='invoice_issue', object_type='invoice', object_id=invoice.pk,
                       detail={'paymentId': payment.pk, 'documentNumber': invoice.document_number})
    except IntegrityError:
        existing = Invoice.objects.filter(payment_id=payment_id).first()
        if existing is None:
            logger.exception('failed to write invoice for payment %s (%s stays reserved)',
                             payment_id, reservation.document_number)
            raise
        return existing

    logger.info('issued %s %s for payment %s', invoice.document_type, invoice.document_number, payment_id)
    return invoice
