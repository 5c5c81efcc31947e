from decimal import Decimal

from rest_framework import serializers

from .models import (
    Warehouse, Location, Product, MovementDocument, LineItem, LedgerEntry,
    QUANTITY_DIGITS, QUANTITY_PLACES
)
from .state_machine import allowed_actions


def quantity_serializer_field(**kwargs):
    return serializers.DecimalField(
        max_digits=QUANTITY_DIGITS,
        decimal_places=QUANTITY_PLACES,
        **kwargs
    )


# ============================================================================
# Warehouse Structure Serializers
# ============================================================================

class WarehouseSerializer(serializers.ModelSerializer):
    location_count = serializers.SerializerMethodField()

    class Meta:
        model = Warehouse
        fields = ['id', 'name', 'code', 'address', 'location_count', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_location_count(self, obj):
        return obj.locations.count()


class LocationSerializer(serializers.ModelSerializer):
    warehouse_code = serializers.CharField(source='warehouse.code', read_only=True)
    full_code = serializers.CharField(read_only=True)

    class Meta:
        model = Location
        fields = ['id', 'warehouse', 'warehouse_code', 'name', 'code', 'full_code', 'is_active', 'created_at']
        read_only_fields = ['id', 'created_at', 'warehouse_code', 'full_code']


# ============================================================================
# Product Serializers
# ============================================================================

class ProductSerializer(serializers.ModelSerializer):
    """Serializer for products with stock details. on_hand is read-only."""
    stock_status = serializers.SerializerMethodField()
    stock_status_color = serializers.CharField(source='get_stock_status_color', read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'sku', 'name', 'category', 'unit_of_measure',
            'on_hand', 'reorder_level', 'stock_status', 'stock_status_color',
            'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'on_hand', 'created_at', 'updated_at']

    def get_stock_status(self, obj):
        return obj.stock_status.value

    def validate_reorder_level(self, value):
        if value < Decimal('0'):
            raise serializers.ValidationError("Reorder level cannot be negative")
        return value


# ============================================================================
# Movement Document Serializers
# ============================================================================

class LineItemSerializer(serializers.ModelSerializer):
    """Serializer for document line items."""
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    unit_of_measure = serializers.CharField(source='product.unit_of_measure', read_only=True)

    class Meta:
        model = LineItem
        fields = [
            'id', 'product', 'product_sku', 'product_name', 'unit_of_measure',
            'quantity', 'reserved_quantity', 'created_at'
        ]
        read_only_fields = fields


class MovementDocumentSerializer(serializers.ModelSerializer):
    line_items = LineItemSerializer(many=True, read_only=True)
    kind_display = serializers.CharField(source='get_kind_display', read_only=True)
    status_display = serializers.ReadOnlyField()
    direction = serializers.CharField(read_only=True)
    source_location_code = serializers.CharField(source='source_location.full_code', read_only=True, allow_null=True)
    destination_location_code = serializers.CharField(source='destination_location.full_code', read_only=True, allow_null=True)
    allowed_actions = serializers.SerializerMethodField()

    class Meta:
        model = MovementDocument
        fields = [
            'id', 'reference', 'kind', 'kind_display', 'direction',
            'status', 'status_display', 'allowed_actions',
            'source_location', 'source_location_code',
            'destination_location', 'destination_location_code',
            'partner', 'scheduled_date', 'notes', 'line_items',
            'created_by', 'created_at', 'updated_at', 'processed_at'
        ]
        read_only_fields = fields

    def get_allowed_actions(self, obj):
        return [str(action) for action in allowed_actions(obj.kind, obj.status)]


class LineInputSerializer(serializers.Serializer):
    """One line on a create-document or add-line request."""
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.filter(is_active=True))
    quantity = quantity_serializer_field()

    def validate_quantity(self, value):
        """Ensure quantity is positive"""
        if value <= Decimal('0'):
            raise serializers.ValidationError("Quantity must be greater than zero")
        return value


class DocumentCreateSerializer(serializers.Serializer):
    """
    Serializer for creating a movement document.

    Location rules per kind (receipts have no source, deliveries no
    destination, transfers need both) are enforced by the document service.
    """
    kind = serializers.ChoiceField(choices=MovementDocument.Kind.choices)
    source_location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.all(), required=False, allow_null=True
    )
    destination_location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.all(), required=False, allow_null=True
    )
    partner = serializers.CharField(max_length=255, required=False, allow_blank=True)
    scheduled_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    created_by = serializers.CharField(max_length=255, required=False, allow_blank=True)
    lines = LineInputSerializer(many=True, required=False)


class DocumentUpdateSerializer(serializers.Serializer):
    """Serializer for editing a draft document's header."""
    source_location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.all(), required=False, allow_null=True
    )
    destination_location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.all(), required=False, allow_null=True
    )
    partner = serializers.CharField(max_length=255, required=False, allow_blank=True)
    scheduled_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class TransitionSerializer(serializers.Serializer):
    """Serializer for document actions (submit, validate, process, ...)."""
    performed_by = serializers.CharField(required=False, allow_blank=True, default='')


# ============================================================================
# Ledger & Adjustment Serializers
# ============================================================================

class LedgerEntrySerializer(serializers.ModelSerializer):
    """Serializer for stock ledger entries (move history)."""
    entry_type_display = serializers.CharField(source='get_entry_type_display', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    location_code = serializers.CharField(source='location.full_code', read_only=True, allow_null=True)

    class Meta:
        model = LedgerEntry
        fields = [
            'id', 'entry_type', 'entry_type_display',
            'product', 'product_sku', 'product_name',
            'location', 'location_code',
            'quantity', 'balance_before', 'balance_after',
            'document', 'reference', 'performed_by', 'created_at'
        ]
        read_only_fields = fields


class AdjustmentSerializer(serializers.Serializer):
    """Serializer for recording a physical stock count."""
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    counted_quantity = quantity_serializer_field(min_value=Decimal('0'))
    location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.all(), required=False, allow_null=True
    )
    reason = serializers.CharField(max_length=200, required=False, allow_blank=True)
    performed_by = serializers.CharField(max_length=255, required=False, allow_blank=True)
