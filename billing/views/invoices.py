from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from billing.models import Invoice
from billing.permissions import IsCashierRole
from billing.serializers.billing import InvoiceIssueSerializer, InvoiceListQuerySerializer
from billing.services import invoices
from billing.views.common import money, paginate


def serialize_invoice(inv: Invoice) -> dict:
    return {
        'id': inv.id,
        'paymentId': inv.payment_id,
        'documentType': inv.document_type,
        'number': inv.number,
        'documentNumber': inv.document_number,
        'invoiceRangeId': inv.invoice_range_id,
        'authorizationCode': inv.authorization_code,
        'issuerName': inv.issuer_name,
        'issuerRtn': inv.issuer_rtn,
        'customerName': inv.customer_name,
        'customerTaxId': inv.customer_tax_id,
        'total': money(inv.total),
        'notes': inv.notes,
        'issuedById': inv.issued_by_id,
        'issuedAt': inv.issued_at.isoformat(),
    }


@api_view(['GET', 'POST'])
@permission_classes([IsCashierRole])
def invoice_list_create(request):
    """GET: list invoices. POST: issue the invoice of a payment (idempotent)."""
    if request.method == 'GET':
        q = InvoiceListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        qs = Invoice.objects.order_by('-issued_at', '-id')
        if vd.get('paymentId'):
            qs = qs.filter(payment_id=vd['paymentId'])
        if vd.get('documentType'):
            qs = qs.filter(document_type=vd['documentType'])
        items, pagination = paginate(qs, vd.get('page'), vd.get('pageSize'))
        return Response({'ok': True, 'data': [serialize_invoice(i) for i in items], 'pagination': pagination})

    s = InvoiceIssueSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    existed = Invoice.objects.filter(payment_id=vd['paymentId']).exists()
    inv = invoices.issue(
        vd['paymentId'],
        vd['documentType'],
        customer_name=vd.get('customerName', ''),
        customer_tax_id=vd.get('customerTaxId', ''),
        notes=vd.get('notes', ''),
        user=request.user,
    )
    return Response({'ok': True, 'data': serialize_invoice(inv)}, status=200 if existed else 201)
