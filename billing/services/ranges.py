"""
Legal invoice number allocation.

At most one range is ``active``.  ``allocate`` hands out its numbers in
order, each exactly once, under a row lock plus a conditional update on
the pointer, and flips the range to ``exhausted`` in the same statement
that hands out the last number.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Tuple

from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Case, F, Value, When
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from billing.errors import (
    ConflictError,
    DuplicateAuthorizationError,
    NoActiveRangeError,
    RangeExhaustedError,
    RangeExpiredError,
)
from billing.models import InvoiceRange
from billing.services.audit import log_action
from billing.services.authorization_parser import ParsedAuthorization, split_document_number

logger = logging.getLogger(__name__)

RANGE_STATUS_CACHE_KEY = 'billing:range-status'


def invalidate_status_cache():
    transaction.on_commit(lambda: cache.delete(RANGE_STATUS_CACHE_KEY))


def _missing_range_error():
    # the most recently touched range explains why nothing is active
    last = InvoiceRange.objects.exclude(state=InvoiceRange.STATE_ACTIVE).order_by('-updated_at', '-pk').first()
    if last is not None and last.state == InvoiceRange.STATE_EXHAUSTED:
        return RangeExhaustedError()
    if last is not None and last.state == InvoiceRange.STATE_EXPIRED:
        return RangeExpiredError()
    return NoActiveRangeError()


def _retire_stale(rng: InvoiceRange, new_state: str):
    InvoiceRange.objects.filter(pk=rng.pk, state=InvoiceRange.STATE_ACTIVE).update(
        state=new_state, updated_at=timezone.now()
    )
    rng.state = new_state
    invalidate_status_cache()
    logger.warning('invoice range %s moved to %s', rng.authorization_code, new_state)


def allocate(today: Optional[date] = None) -> Tuple[int, InvoiceRange]:
    """Hand out the next number of the active range.

    Returns ``(number, range)``.  Raises ``RangeExpiredError`` once the
    deadline has passed, ``RangeExhaustedError`` when no number is left
    and ``NoActiveRangeError`` when there is nothing to allocate from.
    """
    today = today or timezone.localdate()
    error = None
    number = None
    with transaction.atomic():
        rng = InvoiceRange.objects.select_for_update().filter(state=InvoiceRange.STATE_ACTIVE).first()
        if rng is None:
            raise _missing_range_error()

        if rng.is_expired(today):
            _retire_stale(rng, InvoiceRange.STATE_EXPIRED)
            error = RangeExpiredError()
        elif rng.is_exhausted:
            _retire_stale(rng, InvoiceRange.STATE_EXHAUSTED)
            error = RangeExhaustedError()
        else:
            # state is listed before next_number: MySQL evaluates SET left to right
            updated = InvoiceRange.objects.filter(
                pk=rng.pk, state=InvoiceRange.STATE_ACTIVE, next_number__lte=F('range_end'),
            ).update(
                state=Case(
                    When(next_number=F('range_end'), then=Value(InvoiceRange.STATE_EXHAUSTED)),
                    default=Value(InvoiceRange.STATE_ACTIVE),
                ),
                next_number=F('next_number') + 1,
                updated_at=timezone.now(),
            )
            rng.refresh_from_db()
            if updated != 1:
                error = RangeExhaustedError()
            else:
                number = rng.next_number - 1
                invalidate_status_cache()

    if error is not None:
        logger.warning('allocation refused from range %s: %s', rng.authorization_code, error.default_code)
        raise error
    logger.info('allocated number %s from range %s (%s left)', number, rng.authorization_code, rng.remaining_numbers)
    if rng.state == InvoiceRange.STATE_EXHAUSTED:
        logger.warning('invoice range %s is now exhausted', rng.authorization_code)
    return number, rng


def import_range(parsed: ParsedAuthorization, *, user=None, today: Optional[date] = None) -> InvoiceRange:
    today = today or timezone.localdate()
    try:
        start_prefix, start = split_document_number(parsed.range_start)
        end_prefix, end = split_document_number(parsed.range_end)
    except ValueError as exc:
        raise ValidationError({'range': str(exc)})
    if start_prefix != end_prefix:
        raise ValidationError({'range': 'range start and end must share the same prefix'})
    if start < 1 or start > end:
        raise ValidationError({'range': 'range start must be between 1 and range end'})
    quantity = parsed.authorized_quantity or (end - start + 1)

    if InvoiceRange.objects.filter(authorization_code=parsed.authorization_code).exists():
        raise DuplicateAuthorizationError(
            f'an invoice range with authorization code {parsed.authorization_code} already exists'
        )

    if parsed.deadline < today:
        state = InvoiceRange.STATE_EXPIRED
    elif InvoiceRange.objects.filter(state=InvoiceRange.STATE_ACTIVE).exists():
        state = InvoiceRange.STATE_INACTIVE
    else:
        state = InvoiceRange.STATE_ACTIVE

    try:
        with transaction.atomic():
            rng = InvoiceRange.objects.create(
                authorization_code=parsed.authorization_code,
                taxpayer_rtn=parsed.taxpayer_rtn,
                legal_name=parsed.legal_name,
                trade_name=parsed.trade_name or parsed.legal_name,
                emission_point=parsed.emission_point,
                number_prefix=start_prefix,
                range_start=start,
                range_end=end,
                authorized_quantity=quantity,
                next_number=start,
                deadline=parsed.deadline,
                state=state,
            )
            log_action(user=user, action='invoice_range_import', object_type='invoice_range', object_id=rng.pk,
                       detail={'authorizationCode': rng.authorization_code, 'state': state})
            invalidate_status_cache()
    except IntegrityError as exc:
        if InvoiceRange.objects.filter(authorization_code=parsed.authorization_code).exists():
            raise DuplicateAuthorizationError(
                f'an invoice range with authorization code {parsed.authorization_code} already exists'
            ) from exc
        raise ConflictError('another invoice range became active at the same time, retry the import') from exc
    logger.info('imported invoice range %s [%s-%s] as %s', rng.authorization_code, start, end, state)
    return rng


@transaction.atomic
def activate_range(range_id: int, *, user=None, today: Optional[date] = None) -> InvoiceRange:
    today = today or timezone.localdate()
    rng = InvoiceRange.objects.select_for_update().filter(pk=range_id).first()
    if rng is None:
        raise NotFound('invoice range not found')
    if rng.state == InvoiceRange.STATE_ACTIVE:
        return rng
    if rng.is_exhausted or rng.state == InvoiceRange.STATE_EXHAUSTED:
        raise ConflictError('invoice range is exhausted and cannot be activated')
    if rng.is_expired(today):
        raise ConflictError('invoice range deadline has passed and it cannot be activated')

    current = InvoiceRange.objects.select_for_update().filter(state=InvoiceRange.STATE_ACTIVE).first()
    if current is not None:
        if current.is_expired(today):
            _retire_stale(current, InvoiceRange.STATE_EXPIRED)
        elif current.is_exhausted:
            _retire_stale(current, InvoiceRange.STATE_EXHAUSTED)
        else:
            raise ConflictError(
                f'invoice range {current.authorization_code} is still active, retire it first'
            )

    rng.state = InvoiceRange.STATE_ACTIVE
    rng.save(update_fields=['state', 'updated_at'])
    log_action(user=user, action='invoice_range_activate', object_type='invoice_range', object_id=rng.pk,
               detail={'authorizationCode': rng.authorization_code})
    invalidate_status_cache()
    logger.info('activated invoice range %s', rng.authorization_code)
    return rng


@transaction.atomic
def retire_range(range_id: int, *, user=None) -> InvoiceRange:
    rng = InvoiceRange.objects.select_for_update().filter(pk=range_id).first()
    if rng is None:
        raise NotFound('invoice range not found')
    if rng.state != InvoiceRange.STATE_ACTIVE:
        raise ConflictError('only the active invoice range can be retired')
    rng.state = InvoiceRange.STATE_INACTIVE
    rng.save(update_fields=['state', 'updated_at'])
    log_action(user=user, action='invoice_range_retire', object_type='invoice_range', object_id=rng.pk,
               detail={'authorizationCode': rng.authorization_code})
    invalidate_status_cache()
    logger.info('retired invoice range %s', rng.authorization_code)
    return rng
