"""
Django admin registrations for the billing models.

Invoices, refunds, number reservations and audit events are shown read-only:
they are written by the billing services only.
"""

from django.contrib import admin

from .models import (
    User,
    Patient,
    PriceItem,
    PriceVariant,
    Stay,
    Payment,
    BilledDay,
    Refund,
    InvoiceRange,
    DocumentSequence,
    Invoice,
    NumberReservation,
    AuditEvent,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'is_staff', 'is_superuser')
    list_filter = ('role',)
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'first_name', 'last_name', 'identity_number', 'created_at')
    search_fields = ('first_name', 'last_name', 'identity_number')


class PriceVariantInline(admin.TabularInline):
    model = PriceVariant
    extra = 0


@admin.register(PriceItem)
class PriceItemAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'kind', 'base_price', 'is_active')
    list_filter = ('kind', 'is_active')
    search_fields = ('name',)
    inlines = [PriceVariantInline]


@admin.register(Stay)
class StayAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'status', 'admitted_at', 'discharged_at', 'frozen_daily_rate')
    list_filter = ('status',)
    raw_id_fields = ('patient', 'rate_item', 'rate_variant')


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'source_kind', 'source_id', 'total', 'status', 'is_active',
                    'covered_start', 'covered_end')
    list_filter = ('status', 'source_kind', 'is_active')
    raw_id_fields = ('patient', 'created_by')
    readonly_fields = ('covered_start', 'covered_end', 'days_count')


@admin.register(BilledDay)
class BilledDayAdmin(ReadOnlyAdmin):
    list_display = ('stay', 'day', 'payment')
    list_filter = ('day',)


@admin.register(Refund)
class RefundAdmin(ReadOnlyAdmin):
    list_display = ('id', 'payment', 'amount', 'reason', 'created_by', 'created_at')
    search_fields = ('reason',)


@admin.register(InvoiceRange)
class InvoiceRangeAdmin(admin.ModelAdmin):
    list_display = ('authorization_code', 'number_prefix', 'range_start', 'range_end', 'next_number',
                    'deadline', 'state')
    list_filter = ('state',)
    search_fields = ('authorization_code', 'legal_name')
    readonly_fields = ('next_number', 'state')


@admin.register(DocumentSequence)
class DocumentSequenceAdmin(ReadOnlyAdmin):
    list_display = ('name', 'last_value')


@admin.register(Invoice)
class InvoiceAdmin(ReadOnlyAdmin):
    list_display = ('document_number', 'document_type', 'payment', 'total', 'issued_at')
    list_filter = ('document_type',)
    search_fields = ('document_number', 'customer_name')


@admin.register(NumberReservation)
class NumberReservationAdmin(ReadOnlyAdmin):
    list_display = ('document_number', 'document_type', 'payment', 'created_at')


@admin.register(AuditEvent)
class AuditEventAdmin(ReadOnlyAdmin):
    list_display = ('action', 'object_type', 'object_id', 'user', 'created_at')
    list_filter = ('action', 'object_type')
