"""
Database models for the hospital billing backend.

These models capture the billing side of the hospital: staff users,
patients, the price list used for daily hospitalization rates, stays,
payments (including the billed periods of a stay), legally authorised
invoice ranges and the invoices issued against payments.  Invariants
that the database can express are declared as constraints so that they
hold for every code path, not only for the service layer.
"""
from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

from .sources import PaymentSource, SOURCE_CHOICES, Hospitalization


class User(AbstractUser):
    """Staff user with a billing role.

    Roles mirror the hospital front desk: administrators manage invoice
    ranges, cashiers take payments and issue invoices, reception and
    doctors admit and discharge patients.
    """
    ROLE_CHOICES = [
        ('admin', 'Administrator'),
        ('cashier', 'Cashier'),
        ('reception', 'Reception'),
        ('doctor', 'Doctor'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default='reception')

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Patient(models.Model):
    first_name = models.CharField(max_length=120)
    last_name = models.CharField(max_length=120)
    identity_number = models.CharField(max_length=32, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return f"{self.full_name} ({self.identity_number})"


class PriceItem(models.Model):
    """A priced service; daily-rate items are used to bill hospital stays."""
    KIND_SERVICE = 'service'
    KIND_DAILY_RATE = 'daily_rate'
    KIND_PRODUCT = 'product'
    KIND_CHOICES = (
        (KIND_SERVICE, 'Service'),
        (KIND_DAILY_RATE, 'Daily rate'),
        (KIND_PRODUCT, 'Product'),
    )
    name = models.CharField(max_length=255)
    kind = models.CharField(max_length=16, choices=KIND_CHOICES, default=KIND_SERVICE, db_index=True)
    base_price = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))]
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(base_price__gte=0), name='price_item_base_price_non_negative'),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.base_price})"


class PriceVariant(models.Model):
    """Alternative price of an item (e.g. private vs. shared room)."""
    item = models.ForeignKey(PriceItem, on_delete=models.CASCADE, related_name='variants')
    name = models.CharField(max_length=255)
    price = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))]
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(price__gte=0), name='price_variant_price_non_negative'),
        ]

    def __str__(self) -> str:
        return f"{self.item.name} - {self.name} ({self.price})"


class Stay(models.Model):
    """One hospitalization episode, from admission to discharge.

    The daily rate is chosen through ``rate_item``/``rate_variant`` while
    the stay is active and copied into ``frozen_daily_rate`` at discharge
    so that later price list edits never alter what was billed.
    """
    STATUS_ACTIVE = 'active'
    STATUS_DISCHARGED = 'discharged'
    STATUS_CHOICES = ((STATUS_ACTIVE, 'Active'), (STATUS_DISCHARGED, 'Discharged'))

    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='stays')
    admitted_at = models.DateTimeField()
    discharged_at = models.DateTimeField(null=True, blank=True)
    rate_item = models.ForeignKey(
        PriceItem, null=True, blank=True, on_delete=models.PROTECT, related_name='stays'
    )
    rate_variant = models.ForeignKey(
        PriceVariant, null=True, blank=True, on_delete=models.PROTECT, related_name='stays'
    )
    frozen_daily_rate = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(discharged_at__isnull=True) | Q(discharged_at__gte=F('admitted_at')),
                name='stay_discharge_after_admission',
            ),
            models.CheckConstraint(
                condition=(
                    Q(status='active', discharged_at__isnull=True)
                    | Q(status='discharged', discharged_at__isnull=False)
                ),
                name='stay_status_matches_discharge',
            ),
        ]

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

    @property
    def source(self) -> Hospitalization:
        return Hospitalization(self.pk)

    def __str__(self) -> str:
        return f"Stay #{self.pk} {self.patient_id} ({self.status})"


class Payment(models.Model):
    """A charge raised against one :class:`PaymentSource`.

    Hospitalization payments that carry ``covered_start``/``covered_end``
    are the billed periods of a stay.  Payments are never deleted or
    merged: cancellation flips ``status``/``is_active`` and refunds are
    separate :class:`Refund` rows.
    """
    STATUS_PENDING = 'pending'
    STATUS_PAID = 'paid'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_PAID, 'Paid'),
        (STATUS_CANCELLED, 'Cancelled'),
    )

    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='payments')
    source_kind = models.CharField(max_length=20, choices=SOURCE_CHOICES)
    source_id = models.PositiveBigIntegerField()
    total = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    is_active = models.BooleanField(default=True)
    covered_start = models.DateField(null=True, blank=True)
    covered_end = models.DateField(null=True, blank=True)
    days_count = models.PositiveIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True)
    cancel_reason = models.CharField(max_length=255, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='payments_created'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['source_kind', 'source_id'], name='billing_pay_source__6d1c2a_idx'),
            models.Index(fields=['patient', 'created_at'], name='billing_pay_patient_3f0b7e_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(source_kind__in=[kind for kind, _ in SOURCE_CHOICES]),
                name='payment_known_source_kind',
            ),
            models.CheckConstraint(condition=Q(total__gte=0), name='payment_total_non_negative'),
            models.CheckConstraint(
                condition=(
                    Q(covered_start__isnull=True, covered_end__isnull=True)
                    | Q(
                        source_kind='hospitalization',
                        covered_start__isnull=False,
                        covered_end__isnull=False,
                        covered_start__lte=F('covered_end'),
                    )
                ),
                name='payment_coverage_well_formed',
            ),
        ]

    @property
    def source(self) -> PaymentSource:
        return PaymentSource.from_parts(self.source_kind, self.source_id)

    @property
    def is_billed_period(self) -> bool:
        return self.covered_start is not None

    @property
    def counts_as_billed(self) -> bool:
        return self.is_active and self.status != self.STATUS_CANCELLED

    def __str__(self) -> str:
        return f"Payment #{self.pk} {self.source_kind}:{self.source_id} {self.total} ({self.status})"


class BilledDay(models.Model):
    """Claim of one calendar day of a stay by a billed period.

    The unique constraint on ``(stay, day)`` is what makes two active
    billed periods of the same stay impossible to overlap.  Claims are
    removed when their payment is cancelled.
    """
    stay = models.ForeignKey(Stay, on_delete=models.PROTECT, related_name='billed_days')
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name='billed_days')
    day = models.DateField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['stay', 'day'], name='billed_day_unique_per_stay'),
        ]

    def __str__(self) -> str:
        return f"{self.stay_id}@{self.day:%F} by {self.payment_id}"


class Refund(models.Model):
    """Money returned against a paid payment, possibly in several parts.

    The refunds of a payment never add up to more than its total.
    """
    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name='refunds')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='refunds_created'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name='refund_amount_positive'),
        ]

    def __str__(self) -> str:
        return f"{self.amount} of payment {self.payment_id}"


class InvoiceRange(models.Model):
    """A block of sequential legal document numbers authorised by a CAI.

    ``next_number`` is the next correlative to hand out; it equals
    ``range_end + 1`` once the range is used up and never moves back.
    """
    STATE_ACTIVE = 'active'
    STATE_EXHAUSTED = 'exhausted'
    STATE_EXPIRED = 'expired'
    STATE_INACTIVE = 'inactive'
    STATE_CHOICES = (
        (STATE_ACTIVE, 'Active'),
        (STATE_EXHAUSTED, 'Exhausted'),
        (STATE_EXPIRED, 'Expired'),
        (STATE_INACTIVE, 'Inactive'),
    )

    authorization_code = models.CharField(max_length=64, unique=True)
    taxpayer_rtn = models.CharField(max_length=20, blank=True)
    legal_name = models.CharField(max_length=255, blank=True)
    trade_name = models.CharField(max_length=255, blank=True)
    emission_point = models.CharField(max_length=3, blank=True)
    number_prefix = models.CharField(max_length=16, blank=True, help_text="e.g. '000-001-01'")
    range_start = models.PositiveBigIntegerField(validators=[MinValueValidator(1)])
    range_end = models.PositiveBigIntegerField(validators=[MinValueValidator(1)])
    authorized_quantity = models.PositiveBigIntegerField()
    next_number = models.PositiveBigIntegerField()
    deadline = models.DateField(help_text="Last day on which documents may be issued")
    state = models.CharField(max_length=16, choices=STATE_CHOICES, default=STATE_INACTIVE, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(range_start__lte=F('range_end')), name='invoice_range_bounds_ordered'
            ),
            models.CheckConstraint(
                condition=Q(next_number__gte=F('range_start')) & Q(next_number__lte=F('range_end') + 1),
                name='invoice_range_pointer_within_bounds',
            ),
            models.UniqueConstraint(
                fields=['state'], condition=Q(state='active'), name='invoice_range_single_active'
            ),
        ]

    @property
    def remaining_numbers(self) -> int:
        return max(0, self.range_end - self.next_number + 1)

    @property
    def is_exhausted(self) -> bool:
        return self.next_number > self.range_end

    def is_expired(self, today) -> bool:
        return today > self.deadline

    def format_number(self, number: int) -> str:
        if self.number_prefix:
            return f"{self.number_prefix}-{number:08d}"
        return f"{number:08d}"

    def __str__(self) -> str:
        return f"CAI {self.authorization_code} [{self.range_start}-{self.range_end}] ({self.state})"


class DocumentSequence(models.Model):
    """Plain counter for documents without legal numbering constraints."""
    name = models.CharField(max_length=32, unique=True)
    last_value = models.PositiveBigIntegerField(default=0)

    def __str__(self) -> str:
        return f"{self.name}={self.last_value}"


class Invoice(models.Model):
    """A legal invoice or a simple receipt issued for exactly one payment.

    Invoices are immutable once written; corrections go through the
    cancellation of the underlying payment.
    """
    TYPE_LEGAL = 'legal'
    TYPE_SIMPLE = 'simple'
    TYPE_CHOICES = ((TYPE_LEGAL, 'Legal invoice'), (TYPE_SIMPLE, 'Simple receipt'))

    payment = models.OneToOneField(Payment, on_delete=models.PROTECT, related_name='invoice')
    document_type = models.CharField(max_length=8, choices=TYPE_CHOICES)
    number = models.PositiveBigIntegerField()
    document_number = models.CharField(max_length=32, unique=True)
    invoice_range = models.ForeignKey(
        InvoiceRange, null=True, blank=True, on_delete=models.PROTECT, related_name='invoices'
    )
    authorization_code = models.CharField(max_length=64, blank=True)
    issuer_name = models.CharField(max_length=255, blank=True)
    issuer_rtn = models.CharField(max_length=20, blank=True)
    customer_name = models.CharField(max_length=255, blank=True)
    customer_tax_id = models.CharField(max_length=20, blank=True)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    notes = models.TextField(blank=True)
    issued_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='invoices_issued'
    )
    issued_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(document_type='legal', invoice_range__isnull=False)
                    | Q(document_type='simple', invoice_range__isnull=True)
                ),
                name='invoice_range_only_for_legal',
            ),
            models.UniqueConstraint(
                fields=['invoice_range', 'number'],
                condition=Q(document_type='legal'),
                name='invoice_legal_number_unique_per_range',
            ),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('invoices are immutable once issued')
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.document_type} {self.document_number} (payment {self.payment_id})"


class NumberReservation(models.Model):
    """Document number bound to a payment before its invoice is written.

    A number stays consumed even if writing the invoice fails afterwards;
    a later issuance for the same payment picks the reservation up again
    instead of allocating another number.
    """
    payment = models.OneToOneField(Payment, on_delete=models.PROTECT, related_name='number_reservation')
    document_type = models.CharField(max_length=8, choices=Invoice.TYPE_CHOICES)
    number = models.PositiveBigIntegerField()
    document_number = models.CharField(max_length=32, unique=True)
    invoice_range = models.ForeignKey(
        InvoiceRange, null=True, blank=True, on_delete=models.PROTECT, related_name='reservations'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.document_number} -> payment {self.payment_id}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.BigIntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='billing_aud_action_2b9e41_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='billing_aud_object__8c5d0f_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.object_type}#{self.object_id}"
