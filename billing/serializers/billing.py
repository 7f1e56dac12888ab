import bleach
from decimal import Decimal
from rest_framework import serializers

from billing.models import Invoice, InvoiceRange
from billing.services.authorization_parser import (
    AuthorizationParseError,
    ParsedAuthorization,
    parse_authorization_text,
)
from billing.sources import SOURCE_TYPES

MONEY = dict(max_digits=12, decimal_places=2)


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class RangeImportSerializer(serializers.Serializer):
    """Either the extracted ``text`` of the authorization document or its fields."""
    text = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    authorizationCode = serializers.CharField(required=False, max_length=64)
    taxpayerRtn = serializers.CharField(required=False, allow_blank=True, max_length=20)
    legalName = serializers.CharField(required=False, allow_blank=True, max_length=255)
    tradeName = serializers.CharField(required=False, allow_blank=True, max_length=255)
    emissionPoint = serializers.CharField(required=False, allow_blank=True, max_length=3)
    rangeStart = serializers.CharField(required=False, max_length=32)
    rangeEnd = serializers.CharField(required=False, max_length=32)
    authorizedQuantity = serializers.IntegerField(required=False, min_value=1)
    deadline = serializers.DateField(required=False)

    def validate(self, attrs):
        if attrs.get('text'):
            try:
                attrs['parsed'] = parse_authorization_text(attrs['text'])
            except AuthorizationParseError as e:
                raise serializers.ValidationError({'text': str(e)})
            return attrs

        missing = [k for k in ('authorizationCode', 'rangeStart', 'rangeEnd', 'deadline') if not attrs.get(k)]
        if missing:
            raise serializers.ValidationError({k: 'this field is required' for k in missing})
        attrs['parsed'] = ParsedAuthorization(
            authorization_code=attrs['authorizationCode'].strip().upper(),
            taxpayer_rtn=_clean(attrs.get('taxpayerRtn')),
            legal_name=_clean(attrs.get('legalName')),
            trade_name=_clean(attrs.get('tradeName')),
            deadline=attrs['deadline'],
            emission_point=_clean(attrs.get('emissionPoint')),
            range_start=attrs['rangeStart'],
            range_end=attrs['rangeEnd'],
            authorized_quantity=attrs.get('authorizedQuantity'),
        )
        return attrs


class RangeListQuerySerializer(serializers.Serializer):
    state = serializers.ChoiceField(choices=[s for s, _ in InvoiceRange.STATE_CHOICES], required=False)


class InvoiceIssueSerializer(serializers.Serializer):
    paymentId = serializers.IntegerField(min_value=1)
    documentType = serializers.ChoiceField(choices=[t for t, _ in Invoice.TYPE_CHOICES])
    customerName = serializers.CharField(required=False, allow_blank=True, max_length=255)
    customerTaxId = serializers.CharField(required=False, allow_blank=True, max_length=20)
    notes = serializers.CharField(required=False, allow_blank=True)


class InvoiceListQuerySerializer(serializers.Serializer):
    paymentId = serializers.IntegerField(required=False, min_value=1)
    documentType = serializers.ChoiceField(choices=[t for t, _ in Invoice.TYPE_CHOICES], required=False)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200)


class StayAdmitSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    rateItemId = serializers.IntegerField(min_value=1)
    rateVariantId = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    admittedAt = serializers.DateTimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class StayRateSerializer(serializers.Serializer):
    rateItemId = serializers.IntegerField(min_value=1)
    rateVariantId = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class StayDischargeSerializer(serializers.Serializer):
    dischargedAt = serializers.DateTimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class PendingDaysQuerySerializer(serializers.Serializer):
    referenceDate = serializers.DateField(required=False)


class PartialPaymentSerializer(serializers.Serializer):
    endDate = serializers.DateField(required=False)
    daysToBill = serializers.IntegerField(required=False, min_value=1)
    customAmount = serializers.DecimalField(required=False, allow_null=True, **MONEY)
    generateInvoice = serializers.BooleanField(required=False, default=False)
    documentType = serializers.ChoiceField(
        choices=[t for t, _ in Invoice.TYPE_CHOICES], required=False, default=Invoice.TYPE_LEGAL
    )
    customerName = serializers.CharField(required=False, allow_blank=True, max_length=255)
    customerTaxId = serializers.CharField(required=False, allow_blank=True, max_length=20)
    notes = serializers.CharField(required=False, allow_blank=True)


class BilledPeriodSerializer(serializers.Serializer):
    stayId = serializers.IntegerField(min_value=1)
    start = serializers.DateField()
    end = serializers.DateField()
    amount = serializers.DecimalField(min_value=Decimal('0.01'), **MONEY)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['end'] < attrs['start']:
            raise serializers.ValidationError({'end': 'end date must not be before start date'})
        return attrs

    def validate_notes(self, v):
        return _clean(v)


class PaymentCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    sourceType = serializers.ChoiceField(choices=list(SOURCE_TYPES))
    sourceId = serializers.IntegerField(min_value=1)
    total = serializers.DecimalField(min_value=Decimal('0.01'), **MONEY)
    notes = serializers.CharField(required=False, allow_blank=True)


class PaymentCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)

    def validate_reason(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('a cancellation reason is required')
        return v


class PaymentRefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(min_value=Decimal('0.01'), **MONEY)
    reason = serializers.CharField(max_length=255)

    def validate_reason(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('a refund reason is required')
        return v


class PaymentListQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(required=False, min_value=1)
    sourceType = serializers.ChoiceField(choices=list(SOURCE_TYPES), required=False)
    sourceId = serializers.IntegerField(required=False, min_value=1)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200)

    def validate(self, attrs):
        if bool(attrs.get('sourceType')) != bool(attrs.get('sourceId')):
            raise serializers.ValidationError('sourceType and sourceId must be given together')
        return attrs
