from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from billing.models import InvoiceRange


@dataclass
class RangeStatus:
    has_active_range: bool
    warnings: List[dict] = field(default_factory=list)
    remaining_numbers: Optional[int] = None
    days_to_expiry: Optional[int] = None
    range_info: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            'hasActiveRange': self.has_active_range,
            'warnings': self.warnings,
            'remainingNumbers': self.remaining_numbers,
            'daysToExpiry': self.days_to_expiry,
            'rangeInfo': self.range_info,
        }


def _range_info(rng: InvoiceRange) -> dict:
    return {
        'id': rng.id,
        'authorizationCode': rng.authorization_code,
        'legalName': rng.legal_name,
        'tradeName': rng.trade_name,
        'emissionPoint': rng.emission_point,
        'rangeStart': rng.range_start,
        'rangeEnd': rng.range_end,
        'nextNumber': rng.next_number,
        'nextDocumentNumber': rng.format_number(rng.next_number) if not rng.is_exhausted else None,
        'deadline': rng.deadline.isoformat(),
        'state': rng.state,
    }


class RangeHealthMonitor:
    """Read-only report on the active invoice range."""

    def __init__(self, min_remaining: Optional[int] = None, expiry_warning_days: Optional[int] = None):
        self.min_remaining = (
            min_remaining if min_remaining is not None else getattr(settings, 'BILLING_RANGE_MIN_REMAINING', 50)
        )
        self.expiry_warning_days = (
            expiry_warning_days if expiry_warning_days is not None
            else getattr(settings, 'BILLING_RANGE_EXPIRY_WARNING_DAYS', 15)
        )

    def status(self, today: Optional[date] = None) -> RangeStatus:
        today = today or timezone.localdate()
        rng = InvoiceRange.objects.filter(state=InvoiceRange.STATE_ACTIVE).first()
        if rng is None:
            return RangeStatus(
                has_active_range=False,
                warnings=[{
                    'code': 'no_active_range',
                    'message': 'There is no active invoice range. Import a new authorization range to issue legal invoices.',
                }],
            )

        remaining = rng.remaining_numbers
        days_to_expiry = (rng.deadline - today).days
        warnings = []
        if remaining < self.min_remaining:
            warnings.append({
                'code': 'low_remaining',
                'message': f'Only {remaining} invoice numbers remain in the active range.',
            })
        if days_to_expiry < 0:
            warnings.append({
                'code': 'expired',
                'message': f'The active invoice range expired on {rng.deadline.isoformat()}.',
            })
        elif days_to_expiry < self.expiry_warning_days:
            warnings.append({
                'code': 'expiring',
                'message': f'The active invoice range expires in {days_to_expiry} days ({rng.deadline.isoformat()}).',
            })
        return RangeStatus(
            has_active_range=True,
            warnings=warnings,
            remaining_numbers=remaining,
            days_to_expiry=days_to_expiry,
            range_info=_range_info(rng),
        )
