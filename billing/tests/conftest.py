from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from django.core.cache import cache
from django.utils import timezone

from billing.models import InvoiceRange, Patient, PriceItem, PriceVariant, Stay


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def local_dt():
    """Aware datetime in the project time zone."""
    def make(year, month, day, hour=8, minute=0):
        return timezone.make_aware(datetime(year, month, day, hour, minute))
    return make


@pytest.fixture
def patient(db):
    return Patient.objects.create(first_name='Ana', last_name='Lopez', identity_number='0801-1990-00001')


@pytest.fixture
def room_rate(db):
    return PriceItem.objects.create(name='Shared room', kind=PriceItem.KIND_DAILY_RATE, base_price=Decimal('500.00'))


@pytest.fixture
def private_room(room_rate):
    return PriceVariant.objects.create(item=room_rate, name='Private', price=Decimal('750.00'))


@pytest.fixture
def stay(patient, room_rate, local_dt):
    return Stay.objects.create(patient=patient, admitted_at=local_dt(2024, 1, 1), rate_item=room_rate)


@pytest.fixture
def make_range(db):
    counter = {'n': 0}

    def make(start=1, end=100, *, days_left=180, state=InvoiceRange.STATE_ACTIVE, next_number=None,
             prefix='000-001-01', code=None):
        counter['n'] += 1
        return InvoiceRange.objects.create(
            authorization_code=code or f'A1B2C3-D4E5F6-07A8B9-C0D1E2-F3A4B5-{counter["n"]:02d}',
            taxpayer_rtn='08019000000001',
            legal_name='Hospital San Lucas S. de R.L.',
            trade_name='Hospital San Lucas',
            emission_point='001',
            number_prefix=prefix,
            range_start=start,
            range_end=end,
            authorized_quantity=end - start + 1,
            next_number=start if next_number is None else next_number,
            deadline=timezone.localdate() + timedelta(days=days_left),
            state=state,
        )
    return make
