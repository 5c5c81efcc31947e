from django.db.models import Count, F, Q, Sum
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, generics, status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .filters import LedgerEntryFilter, MovementDocumentFilter, ProductFilter
from .models import LedgerEntry, Location, MovementDocument, Product, Warehouse, ZERO
from .serializers import (
    AdjustmentSerializer, DocumentCreateSerializer, DocumentUpdateSerializer,
    LedgerEntrySerializer, LineInputSerializer, LineItemSerializer, LocationSerializer,
    MovementDocumentSerializer, ProductSerializer, TransitionSerializer, WarehouseSerializer
)
from .services import (
    AdjustmentService, AvailabilityService, DocumentService, LedgerExportService,
    PDFReportService, ReconciliationService
)

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _decimal_strings(data):
    return {key: str(value) if hasattr(value, 'quantize') else value for key, value in data.items()}


# ============================================================================
# Warehouse Structure Views
# ============================================================================

class WarehouseListView(generics.ListCreateAPIView):
    """
    List and create warehouses.

    GET: List all warehouses
    POST: Create new warehouse
    """
    queryset = Warehouse.objects.all()
    serializer_class = WarehouseSerializer
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['name', 'code']
    ordering = ['code']


class LocationListView(generics.ListCreateAPIView):
    """
    List and create stock locations.

    Filters:
    - warehouse: Warehouse ID
    - is_active: Boolean (true/false)
    """
    queryset = Location.objects.all().select_related('warehouse')
    serializer_class = LocationSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['warehouse', 'is_active']
    search_fields = ['name', 'code']
    ordering = ['warehouse__code', 'code']


# ============================================================================
# Product Views
# ============================================================================

class ProductListView(generics.ListCreateAPIView):
    """
    List and create products.

    GET: List all products with search and filtering
    POST: Create new product (on_hand starts at zero; stock arrives through receipts)

    Search fields:
    - sku, name, category
    """
    queryset = Product.objects.all()
    serializer_class = ProductSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = ProductFilter
    search_fields = ['sku', 'name', 'category']
    ordering_fields = ['sku', 'name', 'on_hand', 'created_at']
    ordering = ['name']


class ProductDetailView(generics.RetrieveUpdateAPIView):
    """
    Retrieve or update a product.

    on_hand is read-only: stock only changes through documents and adjustments.
    """
    queryset = Product.objects.all()
    serializer_class = ProductSerializer


@api_view(['GET'])
def product_availability(request, pk):
    """
    On-hand, reserved and available stock for one product.

    Query params:
    - location: Location ID (omit for the product total)
    """
    product = get_object_or_404(Product, pk=pk)
    location_id = request.query_params.get('location')

    if location_id:
        location = get_object_or_404(Location, pk=location_id)
        location_id = location.id

    breakdown = AvailabilityService.stock_breakdown(product.id, location_id or None)
    return Response({
        'sku': product.sku,
        **_decimal_strings(breakdown),
    })


@api_view(['GET'])
def product_summary(request):
    """
    Get product inventory summary.

    Returns:
    - total_products: Total number of products
    - active_products: Number of active products
    - out_of_stock: Number of active products at or below zero
    - low_stock: Number of active products at or below reorder level
    - total_on_hand: Sum of on-hand quantities of active products
    - open_documents: Active documents by kind
    """
    products = Product.objects.filter(is_active=True)

    open_documents = (
        MovementDocument.objects
        .filter(status__in=MovementDocument.ACTIVE_STATUSES)
        .order_by()
        .values('kind')
        .annotate(count=Count('id'))
    )

    summary = {
        'total_products': Product.objects.count(),
        'active_products': products.count(),
        'out_of_stock': products.filter(on_hand__lte=0).count(),
        'low_stock': products.filter(Q(on_hand__lte=F('reorder_level')) & Q(on_hand__gt=0)).count(),
        'total_on_hand': str(products.aggregate(total=Sum('on_hand'))['total'] or ZERO),
        'open_documents': {row['kind']: row['count'] for row in open_documents},
    }

    return Response(summary)


# ============================================================================
# Movement Document Views
# ============================================================================

class DocumentListView(generics.ListCreateAPIView):
    """
    List and create receipts, deliveries and transfers.

    GET: List documents with filtering
    POST: Create a draft document with its line items

    Request body (POST):
    {
        "kind": "delivery",
        "source_location": 1,
        "partner": "Azure Interior",
        "scheduled_date": "2025-11-20",
        "lines": [{"product": 3, "quantity": "30"}]
    }
    """
    queryset = MovementDocument.objects.all().select_related(
        'source_location__warehouse', 'destination_location__warehouse'
    ).prefetch_related('line_items__product')
    serializer_class = MovementDocumentSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = MovementDocumentFilter
    search_fields = ['reference', 'partner', 'notes']
    ordering_fields = ['reference', 'scheduled_date', 'created_at', 'status']
    ordering = ['-created_at', '-id']

    def create(self, request, *args, **kwargs):
        serializer = DocumentCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        document = DocumentService.create_document(
            kind=data['kind'],
            lines=data.get('lines', []),
            source_location=data.get('source_location'),
            destination_location=data.get('destination_location'),
            partner=data.get('partner', ''),
            scheduled_date=data.get('scheduled_date'),
            notes=data.get('notes', ''),
            created_by=data.get('created_by', ''),
        )
        return Response(MovementDocumentSerializer(document).data, status=status.HTTP_201_CREATED)


class DocumentDetailView(generics.RetrieveAPIView):
    """
    Retrieve, edit or delete a document.

    GET: Document with line items and allowed actions
    PATCH: Edit header fields (draft only)
    DELETE: Delete the document (draft only)
    """
    queryset = DocumentListView.queryset
    serializer_class = MovementDocumentSerializer

    def patch(self, request, pk):
        serializer = DocumentUpdateSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response({'error': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        document = get_object_or_404(MovementDocument, pk=pk)
        document = DocumentService.update_document(document, **serializer.validated_data)
        return Response(MovementDocumentSerializer(document).data)

    def delete(self, request, pk):
        document = get_object_or_404(MovementDocument, pk=pk)
        reference = DocumentService.delete_document(document)
        return Response(
            {'success': True, 'message': f'{reference} deleted'},
            status=status.HTTP_200_OK
        )


@api_view(['POST'])
def document_add_line(request, pk):
    """
    Add a line item to a draft document.

    Request body:
    {
        "product": 3,
        "quantity": "5"
    }
    """
    document = get_object_or_404(MovementDocument, pk=pk)

    serializer = LineInputSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'error': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

    line_item = DocumentService.add_line_item(
        document,
        serializer.validated_data['product'],
        serializer.validated_data['quantity']
    )
    return Response(LineItemSerializer(line_item).data, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
def document_remove_line(request, pk, line_id):
    """Remove a line item from a draft document."""
    document = get_object_or_404(MovementDocument, pk=pk)
    DocumentService.remove_line_item(document, line_id)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
def document_transition(request, pk, action):
    """
    Apply a lifecycle action to a document.

    Actions: submit, validate, process, start, complete, cancel

    Request body:
    {
        "performed_by": "User"  // Who performed the action (optional)
    }

    Errors are returned with their status code:
    - 400 invalid_status_transition / validation_error
    - 409 insufficient_stock (with per-product shortfalls)
    - 409 document_already_processed
    """
    document = get_object_or_404(MovementDocument, pk=pk)

    serializer = TransitionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'error': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

    result = DocumentService.transition(
        document,
        action,
        performed_by=serializer.validated_data.get('performed_by', '')
    )
    return Response({
        'success': result['success'],
        'message': result['message'],
        'action': result['action'],
        'from_status': result['from_status'],
        'to_status': result['to_status'],
        'document': MovementDocumentSerializer(result['document']).data,
        'ledger_entries': LedgerEntrySerializer(result['ledger_entries'], many=True).data,
    }, status=status.HTTP_200_OK)


@api_view(['GET'])
def document_pdf(request, pk):
    """
    Download a printable slip for a document.

    Example:
    GET /api/v1/documents/12/pdf/

    Returns:
    PDF file download
    """
    document = get_object_or_404(
        MovementDocument.objects.select_related('source_location__warehouse', 'destination_location__warehouse'),
        pk=pk
    )

    pdf_buffer = PDFReportService.generate_document_pdf(document)
    response = HttpResponse(pdf_buffer, content_type='application/pdf')
    filename = document.reference.replace('/', '-')
    response['Content-Disposition'] = f'attachment; filename="{filename}.pdf"'
    return response


# ============================================================================
# Ledger, Adjustment & Reconciliation Views
# ============================================================================

class LedgerEntryListView(generics.ListAPIView):
    """
    List stock ledger entries (move history).

    Filters:
    - product, location, document, entry_type, sku, reference
    - created_after, created_before: Date range
    """
    queryset = LedgerEntry.objects.all().select_related('product', 'location__warehouse')
    serializer_class = LedgerEntrySerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = LedgerEntryFilter
    ordering_fields = ['created_at', 'product', 'entry_type']
    ordering = ['-created_at', '-id']


@api_view(['GET'])
def ledger_export(request, file_format):
    """
    Export move history to CSV or XLSX.

    Accepts the same query params as the ledger list (sku, product, location,
    entry_type, reference, created_after, created_before).

    Examples:
    GET /api/v1/ledger/export/csv/?sku=STL-001
    GET /api/v1/ledger/export/xlsx/?created_after=2025-11-01T00:00:00Z
    """
    if file_format not in ('csv', 'xlsx'):
        return Response(
            {'error': f'Unsupported export format "{file_format}". Use csv or xlsx'},
            status=status.HTTP_400_BAD_REQUEST
        )

    filterset = LedgerEntryFilter(request.query_params, queryset=LedgerEntry.objects.all())
    if not filterset.is_valid():
        return Response({'error': filterset.errors}, status=status.HTTP_400_BAD_REQUEST)

    filename = f'move_history_{timezone.localdate()}.{file_format}'
    if file_format == 'csv':
        buffer = LedgerExportService.export_to_csv(filterset.qs)
        response = HttpResponse(buffer.getvalue(), content_type='text/csv')
    else:
        buffer = LedgerExportService.export_to_xlsx(filterset.qs)
        response = HttpResponse(buffer.getvalue(), content_type=XLSX_CONTENT_TYPE)
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


@api_view(['POST'])
def create_adjustment(request):
    """
    Record a physical stock count.

    Request body:
    {
        "product": 3,
        "counted_quantity": "97",
        "location": 1,            // optional
        "reason": "Cycle count",  // optional
        "performed_by": "User"    // optional
    }
    """
    serializer = AdjustmentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'error': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    result = AdjustmentService.adjust(
        data['product'],
        data['counted_quantity'],
        location=data.get('location'),
        reason=data.get('reason', ''),
        performed_by=data.get('performed_by', ''),
    )

    entry = result['ledger_entry']
    return Response({
        'success': result['success'],
        'message': result['message'],
        'product': ProductSerializer(result['product']).data,
        'previous_quantity': str(result['previous_quantity']),
        'counted_quantity': str(result['counted_quantity']),
        'delta': str(result['delta']),
        'ledger_entry': LedgerEntrySerializer(entry).data if entry else None,
    }, status=status.HTTP_201_CREATED if entry else status.HTTP_200_OK)


@api_view(['GET'])
def reconciliation_report(request):
    """
    Compare cached stock with the ledger.

    Query params:
    - strict: true to answer 500 reconciliation_mismatch when anything differs
    """
    if request.query_params.get('strict', '').lower() in ('1', 'true', 'yes'):
        ReconciliationService.assert_consistent()

    return Response(ReconciliationService.generate_report())


@api_view(['GET'])
def reconciliation_pdf(request):
    """Download the reconciliation report as PDF."""
    pdf_buffer = PDFReportService.generate_reconciliation_pdf()
    response = HttpResponse(pdf_buffer, content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="reconciliation_report_{timezone.localdate()}.pdf"'
    return response
