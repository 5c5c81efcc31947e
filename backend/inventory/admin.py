from django.contrib import admin
from django.utils.html import format_html

from .models import (
    Warehouse, Location, Product, StockLevel, MovementDocument, LineItem,
    LedgerEntry, ReferenceSequence
)


class LocationInline(admin.TabularInline):
    model = Location
    extra = 0
    fields = ['name', 'code', 'is_active']


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    """Admin interface for warehouses"""
    list_display = ['code', 'name', 'location_count', 'created_at']
    search_fields = ['code', 'name']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [LocationInline]

    def location_count(self, obj):
        return obj.locations.count()
    location_count.short_description = 'Locations'


@admin.register(Location)
class LocationAdmin(admin.ModelAdmin):
    list_display = ['full_code', 'name', 'warehouse', 'is_active']
    list_filter = ['warehouse', 'is_active']
    search_fields = ['code', 'name']


class StockLevelInline(admin.TabularInline):
    model = StockLevel
    extra = 0
    can_delete = False
    fields = ['location', 'quantity', 'updated_at']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """
    Admin interface for products.

    on_hand is read-only here: stock changes go through documents and
    adjustments so the ledger stays complete.
    """
    list_display = ['sku', 'name', 'category', 'on_hand', 'reorder_level', 'stock_status_badge', 'is_active']
    list_filter = ['is_active', 'category']
    search_fields = ['sku', 'name']
    readonly_fields = ['on_hand', 'created_at', 'updated_at']
    inlines = [StockLevelInline]

    fieldsets = (
        ('Product Information', {
            'fields': ('sku', 'name', 'category', 'unit_of_measure', 'is_active')
        }),
        ('Stock', {
            'fields': ('on_hand', 'reorder_level'),
            'description': 'On-hand quantity is derived from the stock ledger'
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def stock_status_badge(self, obj):
        """Display stock status with color badge"""
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 10px; border-radius: 3px;">{}</span>',
            obj.get_stock_status_color(),
            obj.stock_status.label
        )
    stock_status_badge.short_description = 'Stock Status'


class LineItemInline(admin.TabularInline):
    model = LineItem
    extra = 0
    fields = ['product', 'quantity', 'reserved_quantity']
    readonly_fields = ['reserved_quantity']


@admin.register(MovementDocument)
class MovementDocumentAdmin(admin.ModelAdmin):
    """
    Admin interface for movement documents.

    Status is read-only: transitions must run through the document service
    so reservations and ledger entries are applied.
    """
    list_display = ['reference', 'kind', 'status_badge', 'partner', 'scheduled_date', 'created_at']
    list_filter = ['kind', 'status', 'scheduled_date']
    search_fields = ['reference', 'partner', 'notes']
    readonly_fields = ['reference', 'status', 'created_by', 'created_at', 'updated_at', 'processed_at']
    inlines = [LineItemInline]

    fieldsets = (
        ('Document', {
            'fields': ('reference', 'kind', 'status', 'partner', 'scheduled_date', 'notes')
        }),
        ('Locations', {
            'fields': ('source_location', 'destination_location')
        }),
        ('Audit', {
            'fields': ('created_by', 'created_at', 'updated_at', 'processed_at'),
            'classes': ('collapse',)
        }),
    )

    def status_badge(self, obj):
        """Display status with color badge"""
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 10px; border-radius: 3px;">{}</span>',
            obj.get_status_color(),
            obj.get_status_display()
        )
    status_badge.short_description = 'Status'
    status_badge.admin_order_field = 'status'

    def has_add_permission(self, request):
        # References are allocated by the document service
        return False


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    """Read-only view of the stock ledger"""
    list_display = ['created_at', 'entry_type', 'product', 'location', 'quantity', 'balance_before', 'balance_after', 'reference']
    list_filter = ['entry_type', 'created_at']
    search_fields = ['product__sku', 'reference', 'performed_by']
    date_hierarchy = 'created_at'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ReferenceSequence)
class ReferenceSequenceAdmin(admin.ModelAdmin):
    list_display = ['prefix', 'last_value', 'updated_at']
    readonly_fields = ['prefix', 'last_value', 'updated_at']
