from django_filters import rest_framework as filters
from django.db.models import Q

from .models import LedgerEntry, MovementDocument, Product


class ProductFilter(filters.FilterSet):
    """
    Product filtering.

    Available filters:
    - Text search: sku, name, category
    - Stock: stock_status, min_on_hand, max_on_hand
    - is_active
    """

    sku = filters.CharFilter(
        field_name="sku",
        lookup_expr='icontains',
        help_text="Search SKU (case-insensitive)"
    )
    name = filters.CharFilter(
        field_name="name",
        lookup_expr='icontains',
        help_text="Search product name (case-insensitive)"
    )
    category = filters.CharFilter(
        field_name="category",
        lookup_expr='iexact',
        help_text="Filter by category"
    )
    min_on_hand = filters.NumberFilter(
        field_name="on_hand",
        lookup_expr='gte',
        help_text="Minimum on-hand quantity"
    )
    max_on_hand = filters.NumberFilter(
        field_name="on_hand",
        lookup_expr='lte',
        help_text="Maximum on-hand quantity"
    )
    stock_status = filters.ChoiceFilter(
        choices=Product.StockStatus.choices,
        method='filter_stock_status',
        help_text="Filter by derived stock status"
    )

    class Meta:
        model = Product
        fields = ['sku', 'name', 'category', 'is_active', 'min_on_hand', 'max_on_hand', 'stock_status']

    def filter_stock_status(self, queryset, name, value):
        """
        Filter products by stock status.

        Mirrors Product.stock_status: out of stock at or below zero, low
        stock at or below the reorder level.
        """
        from django.db.models import F

        if value == Product.StockStatus.OUT_OF_STOCK:
            return queryset.filter(on_hand__lte=0)
        if value == Product.StockStatus.LOW_STOCK:
            return queryset.filter(on_hand__gt=0, on_hand__lte=F('reorder_level'))
        if value == Product.StockStatus.IN_STOCK:
            return queryset.filter(on_hand__gt=0).filter(on_hand__gt=F('reorder_level'))
        return queryset


class MovementDocumentFilter(filters.FilterSet):
    """
    Movement document filtering.

    Available filters:
    - kind, status, is_locked
    - reference, partner (case-insensitive search)
    - Date range: scheduled_after, scheduled_before, created_after, created_before
    - Location: location (source or destination)
    """

    reference = filters.CharFilter(
        field_name="reference",
        lookup_expr='icontains',
        help_text="Search reference (e.g., 'WH/OUT')"
    )
    partner = filters.CharFilter(
        field_name="partner",
        lookup_expr='icontains',
        help_text="Search supplier/customer name"
    )
    scheduled_after = filters.DateFilter(
        field_name="scheduled_date",
        lookup_expr='gte',
        help_text="Scheduled on or after this date"
    )
    scheduled_before = filters.DateFilter(
        field_name="scheduled_date",
        lookup_expr='lte',
        help_text="Scheduled on or before this date"
    )
    created_after = filters.DateTimeFilter(
        field_name="created_at",
        lookup_expr='gte',
        help_text="Created after this date"
    )
    created_before = filters.DateTimeFilter(
        field_name="created_at",
        lookup_expr='lte',
        help_text="Created before this date"
    )
    location = filters.NumberFilter(
        method='filter_location',
        help_text="Documents taking stock from or putting stock into this location"
    )
    is_locked = filters.BooleanFilter(
        method='filter_locked',
        help_text="Filter locked documents (done, completed or canceled)"
    )

    class Meta:
        model = MovementDocument
        fields = [
            'kind', 'status', 'reference', 'partner',
            'scheduled_after', 'scheduled_before', 'created_after', 'created_before',
            'location', 'is_locked'
        ]

    def filter_location(self, queryset, name, value):
        return queryset.filter(Q(source_location_id=value) | Q(destination_location_id=value))

    def filter_locked(self, queryset, name, value):
        if value is True:
            return queryset.filter(status__in=MovementDocument.TERMINAL_STATUSES)
        elif value is False:
            return queryset.exclude(status__in=MovementDocument.TERMINAL_STATUSES)
        return queryset


class LedgerEntryFilter(filters.FilterSet):
    """
    Move history filtering.

    Available filters:
    - product, location, document, entry_type
    - reference (case-insensitive search), sku
    - Date range: created_after, created_before
    """

    sku = filters.CharFilter(
        field_name="product__sku",
        lookup_expr='iexact',
        help_text="Filter by product SKU"
    )
    reference = filters.CharFilter(
        field_name="reference",
        lookup_expr='icontains',
        help_text="Search document reference or adjustment note"
    )
    created_after = filters.DateTimeFilter(
        field_name="created_at",
        lookup_expr='gte',
        help_text="Recorded after this time"
    )
    created_before = filters.DateTimeFilter(
        field_name="created_at",
        lookup_expr='lte',
        help_text="Recorded before this time"
    )

    class Meta:
        model = LedgerEntry
        fields = ['product', 'location', 'document', 'entry_type', 'sku', 'reference', 'created_after', 'created_before']
