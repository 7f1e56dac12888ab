from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from billing.models import Patient, PriceItem, PriceVariant, Stay
from billing.permissions import CanDischarge, IsCashierRole, IsClinicalRole
from billing.serializers.billing import (
    PartialPaymentSerializer,
    PendingDaysQuerySerializer,
    StayAdmitSerializer,
    StayDischargeSerializer,
    StayRateSerializer,
)
from billing.services import coverage, stays
from billing.views.invoices import serialize_invoice
from billing.views.payments import serialize_payment


def _rate_selection(vd):
    """Resolve rate ids; returns ``(item, variant, error_response)``."""
    item = PriceItem.objects.filter(id=vd['rateItemId']).first()
    if item is None:
        return None, None, Response({'ok': False, 'detail': 'daily rate item not found'}, status=404)
    variant = None
    if vd.get('rateVariantId'):
        variant = PriceVariant.objects.filter(id=vd['rateVariantId']).first()
        if variant is None:
            return None, None, Response({'ok': False, 'detail': 'rate variant not found'}, status=404)
    return item, variant, None


def _get_stay(pk):
    return Stay.objects.select_related('patient', 'rate_item', 'rate_variant').filter(pk=pk).first()


@api_view(['POST'])
@permission_classes([IsClinicalRole])
def stay_admit(request):
    s = StayAdmitSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    try:
        patient = Patient.objects.get(id=vd['patientId'])
    except Patient.DoesNotExist:
        return Response({'ok': False, 'detail': 'patient not found'}, status=404)
    item, variant, err = _rate_selection(vd)
    if err is not None:
        return err
    stay = stays.admit(patient, item, variant, admitted_at=vd.get('admittedAt'),
                       notes=vd.get('notes', ''), user=request.user)
    return Response({'ok': True, 'data': stays.stay_summary(_get_stay(stay.pk))}, status=201)


@api_view(['GET'])
@permission_classes([CanDischarge])
def stay_detail(request, pk: int):
    stay = _get_stay(pk)
    if stay is None:
        return Response({'ok': False, 'detail': 'stay not found'}, status=404)
    return Response({'ok': True, 'data': stays.stay_summary(stay)})


@api_view(['POST'])
@permission_classes([IsClinicalRole])
def stay_change_rate(request, pk: int):
    s = StayRateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    item, variant, err = _rate_selection(s.validated_data)
    if err is not None:
        return err
    stays.change_rate(pk, item, variant, user=request.user)
    return Response({'ok': True, 'data': stays.stay_summary(_get_stay(pk))})


@api_view(['POST'])
@permission_classes([CanDischarge])
def stay_discharge(request, pk: int):
    s = StayDischargeSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    stay, payment = stays.discharge(pk, discharged_at=s.validated_data.get('dischargedAt'),
                                    notes=s.validated_data.get('notes', ''), user=request.user)
    return Response({
        'ok': True,
        'data': stays.stay_summary(_get_stay(stay.pk)),
        'finalPayment': serialize_payment(payment) if payment else None,
    })


@api_view(['GET'])
@permission_classes([CanDischarge])
def stay_pending_days(request, pk: int):
    q = PendingDaysQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    pending = coverage.pending_range(pk, q.validated_data.get('referenceDate'))
    return Response({'ok': True, **pending.as_dict()})


@api_view(['POST'])
@permission_classes([IsCashierRole])
def stay_partial_payment(request, pk: int):
    s = PartialPaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    payment, invoice = stays.bill_partial(
        pk,
        end_date=vd.get('endDate'),
        days=vd.get('daysToBill'),
        custom_amount=vd.get('customAmount'),
        generate_invoice=vd.get('generateInvoice', False),
        document_type=vd.get('documentType'),
        customer_name=vd.get('customerName', ''),
        customer_tax_id=vd.get('customerTaxId', ''),
        notes=vd.get('notes', ''),
        user=request.user,
    )
    return Response({
        'ok': True,
        'data': serialize_payment(payment),
        'invoice': serialize_invoice(invoice) if invoice else None,
    }, status=201)
