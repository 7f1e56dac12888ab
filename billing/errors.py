"""
Billing error taxonomy.

Every error here ends at a human decision point: none of them is retried
automatically.  They subclass DRF's ``APIException`` so that views can
let them propagate and the unified exception handler renders them.
"""
from rest_framework import status
from rest_framework.exceptions import APIException


class BillingError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'billing operation rejected'
    default_code = 'billing_error'


class ConflictError(BillingError):
    """The requested change collides with existing state (e.g. a billed period)."""
    default_detail = 'period already billed'
    default_code = 'conflict'


class RangeExhaustedError(BillingError):
    default_detail = ('cannot issue legal invoice: the authorization range is exhausted, '
                      'import a new authorization range')
    default_code = 'range_exhausted'


class RangeExpiredError(BillingError):
    default_detail = ('cannot issue legal invoice: the authorization range has expired, '
                      'import a new authorization range')
    default_code = 'range_expired'


class NoActiveRangeError(BillingError):
    default_detail = ('cannot issue legal invoice: no active authorization range, '
                      'import a new authorization range')
    default_code = 'no_active_range'


class DuplicateAuthorizationError(BillingError):
    default_detail = 'an invoice range with this authorization code already exists'
    default_code = 'duplicate_authorization'
