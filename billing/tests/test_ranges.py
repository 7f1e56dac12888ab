from datetime import date, timedelta

import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from billing.errors import (
    ConflictError,
    DuplicateAuthorizationError,
    NoActiveRangeError,
    RangeExhaustedError,
    RangeExpiredError,
)
from billing.models import InvoiceRange
from billing.services import ranges
from billing.services.authorization_parser import (
    AuthorizationParseError,
    ParsedAuthorization,
    parse_authorization_text,
    split_document_number,
)

pytestmark = pytest.mark.django_db

AUTHORIZATION_TEXT = """
SERVICIO DE ADMINISTRACION DE RENTAS
RTN: 08019000000001
Razón o Denominación Social: HOSPITAL SAN LUCAS S. DE R.L.
Nombre comercial: HOSPITAL SAN LUCAS
CAI: 3F2A1B-C4D5E6-A7B8C9-D0E1F2-A3B4C5-D6
Fecha límite de emisión: 31/12/2030
Fecha de solicitud: 02/01/2030
001 - Auto impresor
Rango autorizado: 000-001-01-00000101 al 000-001-01-00000600
"""


def parsed(code='3F2A1B-C4D5E6-A7B8C9-D0E1F2-A3B4C5-D6', start='000-001-01-00000001',
           end='000-001-01-00000003', deadline=None):
    return ParsedAuthorization(
        authorization_code=code,
        taxpayer_rtn='08019000000001',
        legal_name='Hospital San Lucas S. de R.L.',
        deadline=deadline or timezone.localdate() + timedelta(days=90),
        range_start=start,
        range_end=end,
        emission_point='001',
    )


def test_numbers_are_issued_in_order_until_exhausted(make_range):
    rng = make_range(1, 3)

    assert [ranges.allocate()[0] for _ in range(3)] == [1, 2, 3]
    with pytest.raises(RangeExhaustedError):
        ranges.allocate()

    rng.refresh_from_db()
    assert rng.next_number == 4
    assert rng.state == InvoiceRange.STATE_EXHAUSTED


def test_allocate_returns_the_range(make_range):
    rng = make_range(41, 50)
    number, used = ranges.allocate()
    assert number == 41
    assert used.pk == rng.pk
    assert used.format_number(number) == '000-001-01-00000041'
    assert used.remaining_numbers == 9


def test_expired_range_refuses_allocation(make_range):
    rng = make_range(1, 10, days_left=5)
    with pytest.raises(RangeExpiredError):
        ranges.allocate(today=rng.deadline + timedelta(days=1))
    rng.refresh_from_db()
    assert rng.next_number == 1
    assert rng.state == InvoiceRange.STATE_EXPIRED


def test_deadline_day_is_still_valid(make_range):
    rng = make_range(1, 10, days_left=0)
    assert ranges.allocate(today=rng.deadline)[0] == 1


def test_no_range_at_all():
    with pytest.raises(NoActiveRangeError):
        ranges.allocate()


def test_inactive_range_is_not_used(make_range):
    make_range(1, 10, state=InvoiceRange.STATE_INACTIVE)
    with pytest.raises(NoActiveRangeError):
        ranges.allocate()


def test_retired_range_reports_no_active_range(make_range):
    make_range(1, 3, next_number=4, state=InvoiceRange.STATE_EXHAUSTED)
    live = make_range(4, 10)
    ranges.retire_range(live.pk)

    with pytest.raises(NoActiveRangeError):
        ranges.allocate()


def test_last_exhausted_range_is_reported(make_range):
    make_range(1, 10, state=InvoiceRange.STATE_INACTIVE)
    make_range(11, 13, next_number=14, state=InvoiceRange.STATE_EXHAUSTED)

    with pytest.raises(RangeExhaustedError):
        ranges.allocate()


def test_import_activates_first_range_only():
    first = ranges.import_range(parsed())
    second = ranges.import_range(parsed(code='AAAAAA-BBBBBB-CCCCCC-DDDDDD-EEEEEE-FF',
                                        start='000-001-01-00000004', end='000-001-01-00000010'))

    assert first.state == InvoiceRange.STATE_ACTIVE
    assert (first.number_prefix, first.range_start, first.range_end, first.next_number) == ('000-001-01', 1, 3, 1)
    assert first.authorized_quantity == 3
    assert second.state == InvoiceRange.STATE_INACTIVE


def test_import_with_past_deadline_is_expired():
    rng = ranges.import_range(parsed(deadline=date(2020, 1, 1)))
    assert rng.state == InvoiceRange.STATE_EXPIRED


def test_duplicate_authorization_leaves_existing_range_untouched():
    existing = ranges.import_range(parsed())
    with pytest.raises(DuplicateAuthorizationError):
        ranges.import_range(parsed(start='000-001-01-00000100', end='000-001-01-00000200'))
    existing.refresh_from_db()
    assert (existing.range_start, existing.range_end) == (1, 3)
    assert InvoiceRange.objects.count() == 1


def test_import_rejects_bad_bounds():
    with pytest.raises(ValidationError):
        ranges.import_range(parsed(start='000-001-01-00000010', end='000-001-01-00000001'))
    with pytest.raises(ValidationError):
        ranges.import_range(parsed(start='000-001-01-00000001', end='000-002-01-00000010'))


def test_activation_requires_retiring_the_live_range(make_range):
    live = make_range(1, 10)
    waiting = make_range(11, 20, state=InvoiceRange.STATE_INACTIVE)

    with pytest.raises(ConflictError):
        ranges.activate_range(waiting.pk)

    ranges.retire_range(live.pk)
    activated = ranges.activate_range(waiting.pk)
    assert activated.state == InvoiceRange.STATE_ACTIVE
    live.refresh_from_db()
    assert live.state == InvoiceRange.STATE_INACTIVE
    assert ranges.allocate()[0] == 11


def test_activation_replaces_a_used_up_active_range(make_range):
    stale = make_range(1, 3, next_number=4)
    waiting = make_range(4, 10, state=InvoiceRange.STATE_INACTIVE)

    ranges.activate_range(waiting.pk)

    stale.refresh_from_db()
    assert stale.state == InvoiceRange.STATE_EXHAUSTED


def test_expired_or_exhausted_range_cannot_be_activated(make_range):
    expired = make_range(1, 10, days_left=-1, state=InvoiceRange.STATE_INACTIVE)
    with pytest.raises(ConflictError):
        ranges.activate_range(expired.pk)


def test_only_the_active_range_can_be_retired(make_range):
    rng = make_range(1, 10, state=InvoiceRange.STATE_INACTIVE)
    with pytest.raises(ConflictError):
        ranges.retire_range(rng.pk)


def test_parse_authorization_text():
    p = parse_authorization_text(AUTHORIZATION_TEXT)
    assert p.taxpayer_rtn == '08019000000001'
    assert p.legal_name == 'HOSPITAL SAN LUCAS S. DE R.L.'
    assert p.trade_name == 'HOSPITAL SAN LUCAS'
    assert p.authorization_code == '3F2A1B-C4D5E6-A7B8C9-D0E1F2-A3B4C5-D6'
    assert p.deadline == date(2030, 12, 31)
    assert p.emission_point == '001'
    assert (p.range_start, p.range_end) == ('000-001-01-00000101', '000-001-01-00000600')
    assert p.authorized_quantity == 500


def test_parse_reports_missing_fields():
    with pytest.raises(AuthorizationParseError) as exc:
        parse_authorization_text('RTN: 08019000000001')
    assert 'authorizationCode' in exc.value.missing
    assert 'taxpayerRtn' not in exc.value.missing


def test_split_document_number():
    assert split_document_number('000-001-01-00000042') == ('000-001-01', 42)
    assert split_document_number('17') == ('', 17)
    with pytest.raises(ValueError):
        split_document_number('000-001-01-ABC')
