from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from utils.constants import REFERENCE_DIRECTIONS, STATUS_COLORS, STOCK_STATUS_COLORS

QUANTITY_DIGITS = 15
QUANTITY_PLACES = 3
ZERO = Decimal('0')


def quantity_field(**kwargs):
    """Decimal field used for every stock quantity (DECIMAL(15, 3))."""
    return models.DecimalField(
        max_digits=QUANTITY_DIGITS,
        decimal_places=QUANTITY_PLACES,
        **kwargs
    )


def quantity_precision_error(quantity: Decimal):
    """
    Return an error message when a finite quantity does not fit
    DECIMAL(15, 3) exactly, else None.

    Values are never rounded: 0.0004 would be stored as 0.000.
    """
    if quantity.adjusted() >= QUANTITY_DIGITS - QUANTITY_PLACES:
        return f'Ensure there are no more than {QUANTITY_DIGITS - QUANTITY_PLACES} digits before the decimal point'
    if quantity != quantity.quantize(Decimal(1).scaleb(-QUANTITY_PLACES)):
        return f'Ensure there are no more than {QUANTITY_PLACES} decimal places'
    return None


# ============================================================
# WAREHOUSE STRUCTURE
# ============================================================

class Warehouse(models.Model):
    """
    A physical warehouse. Its short code prefixes every document reference
    (e.g. WH/OUT/0001).
    """
    name = models.CharField(max_length=100, unique=True)
    code = models.CharField(
        max_length=10,
        unique=True,
        help_text="Short code used in document references (e.g., 'WH')"
    )
    address = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['code']

    def __str__(self):
        return f"{self.code} - {self.name}"


class Location(models.Model):
    """
    A stock location inside exactly one warehouse (shelf, zone, room).
    """
    warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.CASCADE,
        related_name='locations'
    )
    name = models.CharField(max_length=100)
    code = models.CharField(
        max_length=30,
        help_text="Location code within the warehouse (e.g., 'Stock1')"
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['warehouse__code', 'code']
        constraints = [
            models.UniqueConstraint(
                fields=['warehouse', 'code'],
                name='unique_location_code_per_warehouse'
            ),
        ]

    def __str__(self):
        return self.full_code

    @property
    def full_code(self):
        """Location code including its warehouse (e.g., 'WH/Stock1')."""
        return f"{self.warehouse.code}/{self.code}"


# ============================================================
# PRODUCT CATALOG & STOCK
# ============================================================

class Product(models.Model):
    """
    Product catalog entry with its current stock level.

    ``on_hand`` is a cache of the stock ledger: it is only ever changed by
    the ledger service and must always equal the sum of the product's
    ledger entries.
    """

    class StockStatus(models.TextChoices):
        IN_STOCK = 'in_stock', 'In Stock'
        LOW_STOCK = 'low_stock', 'Low Stock'
        OUT_OF_STOCK = 'out_of_stock', 'Out of Stock'

    sku = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Stock keeping unit"
    )
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=100, blank=True)
    unit_of_measure = models.CharField(
        max_length=20,
        default='Units',
        help_text="Unit of measure (e.g., 'Units', 'kg', 'm')"
    )

    # Inventory tracking
    on_hand = quantity_field(
        default=ZERO,
        editable=False,
        help_text="Current stock level (derived from the stock ledger)"
    )
    reorder_level = quantity_field(
        default=ZERO,
        help_text="Stock level at or below which the product is low on stock"
    )

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        return f"{self.sku} - {self.name}"

    @property
    def stock_status(self):
        """Derived stock status from on-hand vs. reorder level."""
        if self.on_hand <= ZERO:
            return self.StockStatus.OUT_OF_STOCK
        if self.on_hand <= self.reorder_level:
            return self.StockStatus.LOW_STOCK
        return self.StockStatus.IN_STOCK

    @property
    def is_low_stock(self):
        return self.stock_status == self.StockStatus.LOW_STOCK

    @property
    def is_out_of_stock(self):
        return self.stock_status == self.StockStatus.OUT_OF_STOCK

    def get_stock_status_color(self):
        return STOCK_STATUS_COLORS.get(str(self.stock_status), '#6B7280')

    def clean(self):
        """Validate product data"""
        super().clean()

        if self.reorder_level is not None and self.reorder_level < ZERO:
            raise ValidationError({
                'reorder_level': 'Reorder level cannot be negative'
            })


class StockLevel(models.Model):
    """
    On-hand quantity of a product at one location.
    Cache of the ledger entries recorded for that location.
    """
    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name='stock_levels'
    )
    location = models.ForeignKey(
        Location,
        on_delete=models.CASCADE,
        related_name='stock_levels'
    )
    quantity = quantity_field(default=ZERO)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['product', 'location']
        constraints = [
            models.UniqueConstraint(
                fields=['product', 'location'],
                name='unique_stock_level_per_location'
            ),
        ]

    def __str__(self):
        return f"{self.product.sku} @ {self.location}: {self.quantity}"


# ============================================================
# MOVEMENT DOCUMENTS
# ============================================================

class MovementDocument(models.Model):
    """
    A receipt, delivery or internal transfer.

    Documents are created in ``draft`` and move through the statuses allowed
    for their kind (see ``inventory.state_machine``). Only drafts can be
    edited; ``done``/``completed``/``canceled`` documents are locked.
    """

    class Kind(models.TextChoices):
        RECEIPT = 'receipt', 'Receipt'
        DELIVERY = 'delivery', 'Delivery'
        TRANSFER = 'transfer', 'Internal Transfer'

    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        WAITING = 'waiting', 'Waiting'
        READY = 'ready', 'Ready'
        IN_TRANSIT = 'in_transit', 'In Transit'
        DONE = 'done', 'Done'
        COMPLETED = 'completed', 'Completed'
        CANCELED = 'canceled', 'Canceled'

    class Direction(models.TextChoices):
        IN = 'in', 'Incoming'
        OUT = 'out', 'Outgoing'
        INTERNAL = 'internal', 'Internal'

    # Statuses whose reservations count against availability
    ACTIVE_STATUSES = (Status.DRAFT, Status.WAITING, Status.READY, Status.IN_TRANSIT)
    PROCESSED_STATUSES = (Status.DONE, Status.COMPLETED)
    TERMINAL_STATUSES = (Status.DONE, Status.COMPLETED, Status.CANCELED)

    DIRECTIONS = {
        Kind.RECEIPT: Direction.IN,
        Kind.DELIVERY: Direction.OUT,
        Kind.TRANSFER: Direction.INTERNAL,
    }

    kind = models.CharField(max_length=20, choices=Kind.choices, db_index=True)
    reference = models.CharField(
        max_length=50,
        unique=True,
        db_index=True,
        editable=False,
        help_text="Human-readable reference (e.g., WH/OUT/0004)"
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True
    )
    source_location = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='outgoing_documents',
        help_text="Where stock is taken from (empty for receipts)"
    )
    destination_location = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='incoming_documents',
        help_text="Where stock is put (empty for deliveries)"
    )
    partner = models.CharField(
        max_length=255,
        blank=True,
        help_text="Supplier (receipts) or customer (deliveries)"
    )
    scheduled_date = models.DateField(default=timezone.localdate)
    notes = models.TextField(blank=True)

    # Audit
    created_by = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['kind', 'status']),
            models.Index(fields=['scheduled_date']),
        ]

    def __str__(self):
        return f"{self.reference} ({self.get_status_display()})"

    @property
    def direction(self):
        return self.DIRECTIONS[self.Kind(self.kind)]

    @property
    def is_locked(self):
        """Terminal documents cannot be modified."""
        return self.status in self.TERMINAL_STATUSES

    @property
    def is_editable(self):
        return self.status == self.Status.DRAFT

    @property
    def stock_location(self):
        """Location whose stock this document consumes (None for receipts)."""
        if self.kind == self.Kind.RECEIPT:
            return None
        return self.source_location

    def get_status_color(self):
        return STATUS_COLORS.get(str(self.status), '#6B7280')

    @property
    def status_display(self):
        """
        Status information for frontend display.

        Returns:
            dict: {
                'status': 'ready',
                'label': 'Ready',
                'color': '#3B82F6',
                'is_locked': False
            }
        """
        return {
            'status': self.status,
            'label': self.get_status_display(),
            'color': self.get_status_color(),
            'is_locked': self.is_locked,
        }

    @property
    def reference_direction(self):
        return REFERENCE_DIRECTIONS[str(self.kind)]

    def clean(self):
        """Validate locations against the document kind."""
        super().clean()

        if self.kind == self.Kind.RECEIPT and self.source_location_id:
            raise ValidationError({
                'source_location': 'Receipts cannot have a source location'
            })

        if self.kind == self.Kind.DELIVERY and self.destination_location_id:
            raise ValidationError({
                'destination_location': 'Deliveries cannot have a destination location'
            })

        if self.kind == self.Kind.TRANSFER:
            if not self.source_location_id or not self.destination_location_id:
                raise ValidationError({
                    'source_location': 'Transfers need both a source and a destination location'
                })
            if self.source_location_id == self.destination_location_id:
                raise ValidationError({
                    'destination_location': 'Destination must differ from the source location'
                })


class LineItem(models.Model):
    """
    One product line on a movement document.

    ``reserved_quantity`` is the soft hold taken when the document is
    validated (deliveries) or started (transfers); it is cleared again when
    the document is processed or canceled.
    """
    document = models.ForeignKey(
        MovementDocument,
        on_delete=models.CASCADE,
        related_name='line_items'
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='line_items'
    )
    quantity = quantity_field(help_text="Requested quantity")
    reserved_quantity = quantity_field(
        default=ZERO,
        help_text="Quantity currently held for this line"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name='line_item_quantity_positive',
                violation_error_message='Quantity must be greater than zero'
            ),
            models.CheckConstraint(
                condition=models.Q(reserved_quantity__gte=0) & models.Q(reserved_quantity__lte=models.F('quantity')),
                name='line_item_reserved_within_quantity',
                violation_error_message='Reserved quantity must be between zero and the requested quantity'
            ),
        ]

    def __str__(self):
        return f"{self.quantity}x {self.product.name} ({self.document.reference})"

    def clean(self):
        """Validate line item data"""
        super().clean()

        if self.quantity is None or self.quantity <= ZERO:
            raise ValidationError({
                'quantity': 'Quantity must be greater than zero'
            })

        if self.reserved_quantity < ZERO or self.reserved_quantity > self.quantity:
            raise ValidationError({
                'reserved_quantity': 'Reserved quantity must be between zero and the requested quantity'
            })


# ============================================================
# STOCK LEDGER
# ============================================================

class LedgerEntry(models.Model):
    """
    Immutable audit record of one stock-quantity change.

    Balances are product-level: ``balance_after`` is the product's on-hand
    right after this entry and always equals ``balance_before + quantity``.
    """
    class EntryType(models.TextChoices):
        RECEIPT = 'receipt', 'Receipt'
        DELIVERY = 'delivery', 'Delivery'
        TRANSFER_OUT = 'transfer_out', 'Transfer Out'
        TRANSFER_IN = 'transfer_in', 'Transfer In'
        ADJUSTMENT = 'adjustment', 'Adjustment'

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='ledger_entries'
    )
    location = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='ledger_entries'
    )
    entry_type = models.CharField(max_length=20, choices=EntryType.choices, db_index=True)

    quantity = quantity_field(help_text="Signed change in quantity")
    balance_before = quantity_field()
    balance_after = quantity_field()

    document = models.ForeignKey(
        MovementDocument,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='ledger_entries'
    )
    reference = models.CharField(
        max_length=200,
        blank=True,
        help_text="Originating document reference or adjustment note"
    )
    performed_by = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['created_at', 'id']
        verbose_name_plural = 'Ledger entries'
        indexes = [
            models.Index(fields=['product', 'created_at']),
            models.Index(fields=['product', 'location']),
        ]

    def __str__(self):
        sign = '+' if self.quantity > 0 else ''
        return f"{self.get_entry_type_display()}: {sign}{self.quantity} {self.product.sku}"

    def clean(self):
        """Verify the running balance arithmetic."""
        super().clean()

        expected_after = self.balance_before + self.quantity
        if self.balance_after != expected_after:
            raise ValidationError({
                'balance_after': f'Calculation error: {self.balance_before} + {self.quantity} '
                                 f'should equal {expected_after}, not {self.balance_after}'
            })

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError('Ledger entries are immutable and cannot be updated')
        self.full_clean()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Ledger entries are immutable and cannot be deleted')


# ============================================================
# REFERENCE NUMBERING
# ============================================================

class ReferenceSequence(models.Model):
    """
    Counter behind document references, one row per prefix (e.g., 'WH/OUT').
    Incremented under a row lock; numbers are never reused.
    """
    prefix = models.CharField(max_length=30, unique=True)
    last_value = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['prefix']

    def __str__(self):
        return f"{self.prefix} @ {self.last_value}"
