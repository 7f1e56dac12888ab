from decimal import Decimal

import pytest
from django.db import IntegrityError
from rest_framework.exceptions import ValidationError

from billing.errors import ConflictError, NoActiveRangeError, RangeExhaustedError
from billing.models import DocumentSequence, Invoice, InvoiceRange, NumberReservation, Payment
from billing.services import invoices
from billing.services.payments import cancel_payment, record_payment
from billing.sources import Consultation, Sale

pytestmark = pytest.mark.django_db


@pytest.fixture
def payment(patient):
    return record_payment(patient, Consultation(7), Decimal('350.00'))


def test_legal_invoice_takes_the_next_range_number(payment, make_range):
    rng = make_range(41, 50)

    inv = invoices.issue(payment.pk, Invoice.TYPE_LEGAL)

    assert inv.document_type == Invoice.TYPE_LEGAL
    assert inv.number == 41
    assert inv.document_number == '000-001-01-00000041'
    assert inv.invoice_range_id == rng.pk
    assert inv.authorization_code == rng.authorization_code
    assert inv.total == Decimal('350.00')
    assert inv.customer_name == 'Ana Lopez'
    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_PAID


def test_issuing_twice_returns_the_same_invoice(payment, make_range):
    rng = make_range(1, 10)

    first = invoices.issue(payment.pk, Invoice.TYPE_LEGAL)
    second = invoices.issue(payment.pk, Invoice.TYPE_LEGAL)
    third = invoices.issue(payment.pk, Invoice.TYPE_SIMPLE)

    assert first.pk == second.pk == third.pk
    assert Invoice.objects.filter(payment=payment).count() == 1
    rng.refresh_from_db()
    assert rng.next_number == 2


def test_distinct_payments_get_distinct_numbers(patient, make_range):
    make_range(1, 10)
    numbers = [
        invoices.issue(record_payment(patient, Sale(i), Decimal('10')).pk, Invoice.TYPE_LEGAL).number
        for i in range(1, 5)
    ]
    assert numbers == [1, 2, 3, 4]


def test_simple_receipts_use_their_own_counter(patient, make_range):
    rng = make_range(1, 10)
    a = invoices.issue(record_payment(patient, Sale(1), Decimal('10')).pk, Invoice.TYPE_SIMPLE)
    b = invoices.issue(record_payment(patient, Sale(2), Decimal('10')).pk, Invoice.TYPE_SIMPLE)

    assert (a.document_number, b.document_number) == ('REC-000001', 'REC-000002')
    assert a.invoice_range is None
    assert DocumentSequence.objects.get(name=invoices.RECEIPT_SEQUENCE).last_value == 2
    rng.refresh_from_db()
    assert rng.next_number == 1


def test_simple_receipt_needs_no_range(payment):
    inv = invoices.issue(payment.pk, Invoice.TYPE_SIMPLE)
    assert inv.number == 1


def test_range_errors_propagate_and_reserve_nothing(payment, make_range):
    with pytest.raises(NoActiveRangeError):
        invoices.issue(payment.pk, Invoice.TYPE_LEGAL)

    make_range(1, 1, next_number=2, state=InvoiceRange.STATE_EXHAUSTED)
    with pytest.raises(RangeExhaustedError):
        invoices.issue(payment.pk, Invoice.TYPE_LEGAL)

    assert not NumberReservation.objects.filter(payment=payment).exists()
    assert not Invoice.objects.filter(payment=payment).exists()


def test_reserved_number_is_reused_after_a_failed_write(payment, make_range, monkeypatch):
    rng = make_range(1, 10)

    def failing_create(**kwargs):
        raise IntegrityError('disk full')

    with monkeypatch.context() as m:
        m.setattr(Invoice.objects, 'create', failing_create)
        with pytest.raises(IntegrityError):
            invoices.issue(payment.pk, Invoice.TYPE_LEGAL)

    reservation = NumberReservation.objects.get(payment=payment)
    assert reservation.number == 1

    inv = invoices.issue(payment.pk, Invoice.TYPE_LEGAL)
    assert inv.number == 1
    rng.refresh_from_db()
    assert rng.next_number == 2


def test_cancelled_payment_cannot_be_invoiced(payment, make_range):
    make_range(1, 10)
    cancel_payment(payment.pk, 'duplicate charge')
    with pytest.raises(ConflictError):
        invoices.issue(payment.pk, Invoice.TYPE_LEGAL)


def test_invoices_are_immutable(payment):
    inv = invoices.issue(payment.pk, Invoice.TYPE_SIMPLE)
    inv.total = Decimal('1.00')
    with pytest.raises(ValueError):
        inv.save()


def test_cancelling_twice_is_a_conflict(payment):
    cancel_payment(payment.pk, 'typo')
    with pytest.raises(ConflictError):
        cancel_payment(payment.pk, 'typo again')


def test_unknown_document_type(payment):
    with pytest.raises(ValidationError):
        invoices.issue(payment.pk, 'proforma')
