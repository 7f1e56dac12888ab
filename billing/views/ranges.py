from django.conf import settings
from django.core.cache import cache
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from billing.models import InvoiceRange
from billing.permissions import IsAdminRole, IsCashierRole, ReadOnly
from billing.serializers.billing import RangeImportSerializer, RangeListQuerySerializer
from billing.services import ranges
from billing.services.range_health import RangeHealthMonitor


def serialize_range(r: InvoiceRange) -> dict:
    return {
        'id': r.id,
        'authorizationCode': r.authorization_code,
        'taxpayerRtn': r.taxpayer_rtn,
        'legalName': r.legal_name,
        'tradeName': r.trade_name,
        'emissionPoint': r.emission_point,
        'numberPrefix': r.number_prefix,
        'rangeStart': r.range_start,
        'rangeEnd': r.range_end,
        'authorizedQuantity': r.authorized_quantity,
        'nextNumber': r.next_number,
        'remainingNumbers': r.remaining_numbers,
        'deadline': r.deadline.isoformat(),
        'state': r.state,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAdminRole | (IsCashierRole & ReadOnly)])
def invoice_ranges(request):
    """GET: list ranges (optionally by state). POST: import an authorization range."""
    if request.method == 'GET':
        q = RangeListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = InvoiceRange.objects.order_by('-created_at', '-id')
        if q.validated_data.get('state'):
            qs = qs.filter(state=q.validated_data['state'])
        return Response({'ok': True, 'data': [serialize_range(r) for r in qs]})

    s = RangeImportSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    parsed = s.validated_data['parsed']
    rng = ranges.import_range(parsed, user=request.user)
    return Response({'ok': True, 'data': serialize_range(rng), 'extracted': parsed.as_dict()}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def range_status(request):
    """Health of the active invoice range (cached briefly)."""
    cached = cache.get(ranges.RANGE_STATUS_CACHE_KEY)
    if cached:
        return Response(cached)
    payload = {'ok': True, **RangeHealthMonitor().status().to_dict()}
    cache.set(ranges.RANGE_STATUS_CACHE_KEY, payload, settings.BILLING_RANGE_STATUS_CACHE_SECONDS)
    return Response(payload)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def range_activate(request, pk: int):
    rng = ranges.activate_range(pk, user=request.user)
    return Response({'ok': True, 'data': serialize_range(rng)})


@api_view(['POST'])
@permission_classes([IsAdminRole])
def range_retire(request, pk: int):
    rng = ranges.retire_range(pk, user=request.user)
    return Response({'ok': True, 'data': serialize_range(rng)})
