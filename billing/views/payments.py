from decimal import Decimal

from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from billing.models import Patient, Payment, Refund
from billing.permissions import IsCashierRole
from billing.serializers.billing import (
    BilledPeriodSerializer,
    PaymentCancelSerializer,
    PaymentCreateSerializer,
    PaymentListQuerySerializer,
    PaymentRefundSerializer,
)
from billing.services import coverage, payments
from billing.sources import PaymentSource
from billing.views.common import money, paginate


def serialize_payment(p: Payment) -> dict:
    return {
        'id': p.id,
        'patientId': p.patient_id,
        'sourceType': p.source_kind,
        'sourceId': p.source_id,
        'total': money(p.total),
        'status': p.status,
        'isActive': p.is_active,
        'coveredStart': p.covered_start.isoformat() if p.covered_start else None,
        'coveredEnd': p.covered_end.isoformat() if p.covered_end else None,
        'daysCount': p.days_count,
        'notes': p.notes,
        'cancelReason': p.cancel_reason or None,
        'cancelledAt': p.cancelled_at.isoformat() if p.cancelled_at else None,
        'createdAt': p.created_at.isoformat(),
    }


@api_view(['POST'])
@permission_classes([IsCashierRole])
def billed_period_create(request):
    """Bill an explicit date range of a stay; 409 when it overlaps billed days."""
    s = BilledPeriodSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    payment = coverage.create_billed_period(
        vd['stayId'], vd['start'], vd['end'], vd['amount'], user=request.user, notes=vd.get('notes', ''),
    )
    return Response({'ok': True, 'data': serialize_payment(payment)}, status=201)


@api_view(['GET', 'POST'])
@permission_classes([IsCashierRole])
def payment_list_create(request):
    if request.method == 'GET':
        q = PaymentListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        source = PaymentSource.from_parts(vd['sourceType'], vd['sourceId']) if vd.get('sourceType') else None
        qs = payments.payments_for(source=source, patient_id=vd.get('patientId'))
        items, pagination = paginate(qs, vd.get('page'), vd.get('pageSize'))
        return Response({'ok': True, 'data': [serialize_payment(p) for p in items], 'pagination': pagination})

    s = PaymentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    try:
        patient = Patient.objects.get(id=vd['patientId'])
    except Patient.DoesNotExist:
        return Response({'ok': False, 'detail': 'patient not found'}, status=404)
    source = PaymentSource.from_parts(vd['sourceType'], vd['sourceId'])
    payment = payments.record_payment(patient, source, vd['total'], user=request.user, notes=vd.get('notes', ''))
    return Response({'ok': True, 'data': serialize_payment(payment)}, status=201)


@api_view(['POST'])
@permission_classes([IsCashierRole])
def payment_cancel(request, pk: int):
    s = PaymentCancelSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    payment = payments.cancel_payment(pk, s.validated_data['reason'], user=request.user)
    return Response({'ok': True, 'data': serialize_payment(payment)})


def serialize_refund(r: Refund) -> dict:
    return {
        'id': r.id,
        'paymentId': r.payment_id,
        'amount': money(r.amount),
        'reason': r.reason,
        'createdBy': r.created_by_id,
        'createdAt': r.created_at.isoformat(),
    }


@api_view(['GET', 'POST'])
@permission_classes([IsCashierRole])
def payment_refunds(request, pk: int):
    """List the refunds of a payment or refund part of it; 400 past the available balance."""
    if request.method == 'GET':
        items = list(payments.refunds_for(pk))
        return Response({
            'ok': True,
            'data': [serialize_refund(r) for r in items],
            'refundedTotal': money(sum((r.amount for r in items), Decimal('0.00'))),
        })

    s = PaymentRefundSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refund = payments.refund_payment(pk, s.validated_data['amount'], s.validated_data['reason'], user=request.user)
    return Response({'ok': True, 'data': serialize_refund(refund)}, status=201)
