"""
Length-of-stay and daily rate arithmetic.

Partial days are billed as full days and a stay always costs at least one
day, so ``days_of_stay`` rounds the elapsed time up with a floor of 1.
"""
from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.utils import timezone

SECONDS_PER_DAY = 24 * 60 * 60
CENT = Decimal('0.01')


def quantize_money(value) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def days_of_stay(admitted_at: datetime, discharged_at: Optional[datetime] = None) -> int:
    """Elapsed days between admission and discharge (or now), rounded up, minimum 1."""
    end = discharged_at or timezone.now()
    elapsed = abs((end - admitted_at).total_seconds())
    return max(1, math.ceil(elapsed / SECONDS_PER_DAY))


def effective_daily_rate(item, variant=None) -> Decimal:
    """Return the variant price when a variant is selected, else the item base price.

    ``item`` and ``variant`` only need ``base_price`` and ``price``
    attributes respectively.
    """
    if item is None:
        raise ValueError('a daily rate item is required')
    rate = variant.price if variant is not None else item.base_price
    rate = quantize_money(rate)
    if rate < 0:
        raise ValueError(f'daily rate cannot be negative: {rate}')
    return rate


def stay_cost(admitted_at: datetime, daily_rate: Decimal, discharged_at: Optional[datetime] = None) -> dict:
    days = days_of_stay(admitted_at, discharged_at)
    return {
        'daysOfStay': days,
        'dailyRate': quantize_money(daily_rate),
        'totalCost': quantize_money(quantize_money(daily_rate) * days),
        'admissionDate': admitted_at.isoformat(),
        'dischargeDate': discharged_at.isoformat() if discharged_at else None,
    }
