"""
Inventory Ledger Service

The stock ledger is the source of truth for stock balances. Every change to
``Product.on_hand`` or ``StockLevel.quantity`` goes through ``apply_delta``,
which updates the caches and appends exactly one immutable LedgerEntry.

Business Rules:
- Entries are write-once (never updated or deleted)
- balance_after == balance_before + quantity for every entry
- Product.on_hand must always equal the sum of the product's entries
- No delta may take product or location stock below zero
"""

from decimal import Decimal
import logging

from django.db import transaction
from django.db.models import Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from inventory.models import LedgerEntry, Product, StockLevel, ZERO
from inventory.services.availability_service import QUANTITY_OUTPUT, StockShortfall
from utils.exceptions import InsufficientStockError

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for writing and replaying the stock ledger."""

    @staticmethod
    def append(product, quantity, balance_before, entry_type, location=None,
               document=None, reference='', performed_by='') -> LedgerEntry:
        """
        Append one immutable ledger entry.

        Args:
            product: Product the entry belongs to
            quantity: Signed change in quantity
            balance_before: Product on-hand before the change
            entry_type: LedgerEntry.EntryType value
            location: Optional Location the stock moved at
            document: Optional originating MovementDocument
            reference: Reference text (defaults to the document reference)
            performed_by: User who caused the movement

        Returns:
            The created LedgerEntry

        Raises:
            ValidationError: If the entry does not validate
        """
        entry = LedgerEntry(
            product=product,
            location=location,
            entry_type=entry_type,
            quantity=quantity,
            balance_before=balance_before,
            balance_after=balance_before + quantity,
            document=document,
            reference=reference or (document.reference if document else ''),
            performed_by=performed_by or '',
        )
        entry.save()
        return entry

    @staticmethod
    def apply_delta(product, delta: Decimal, entry_type, location=None,
                    document=None, reference='', performed_by='') -> LedgerEntry:
        """
        Change stock for a product (and optionally one location) and record it.

        Must be called inside a transaction with ``product`` locked
        (select_for_update). The StockLevel row is locked here.

        Args:
            product: Locked Product instance
            delta: Signed quantity change
            entry_type: LedgerEntry.EntryType value
            location: Optional Location whose StockLevel also changes
            document: Optional originating MovementDocument
            reference: Optional reference text
            performed_by: User who caused the movement

        Returns:
            The created LedgerEntry

        Raises:
            InsufficientStockError: If the change would make stock negative
        """
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError('LedgerService.apply_delta must run inside transaction.atomic()')

        balance_before = product.on_hand
        balance_after = balance_before + delta

        if balance_after < ZERO:
            logger.warning(
                f"Rejected ledger delta {delta} for {product.sku}: on hand {balance_before}"
            )
            raise InsufficientStockError([
                StockShortfall(product.id, product.sku, -delta, balance_before, None)
            ])

        if location is not None:
            stock_level, _ = StockLevel.objects.select_for_update().get_or_create(
                product=product,
                location=location,
                defaults={'quantity': ZERO}
            )
            location_after = stock_level.quantity + delta
            if location_after < ZERO:
                logger.warning(
                    f"Rejected ledger delta {delta} for {product.sku} at {location}: "
                    f"on hand {stock_level.quantity}"
                )
                raise InsufficientStockError([
                    StockShortfall(product.id, product.sku, -delta, stock_level.quantity, location.id)
                ])
            stock_level.quantity = location_after
            stock_level.save(update_fields=['quantity', 'updated_at'])

        product.on_hand = balance_after
        product.save(update_fields=['on_hand', 'updated_at'])

        entry = LedgerService.append(
            product=product,
            quantity=delta,
            balance_before=balance_before,
            entry_type=entry_type,
            location=location,
            document=document,
            reference=reference,
            performed_by=performed_by,
        )
        logger.info(
            f"Ledger {entry.get_entry_type_display()} {product.sku}: "
            f"{balance_before} -> {balance_after} ({entry.reference or 'no reference'})"
        )
        return entry

    @staticmethod
    def balance_as_of(product, location=None, timestamp=None) -> Decimal:
        """
        Recompute on-hand by folding ledger entries up to a point in time.

        Args:
            product: Product instance or id
            location: Optional Location instance or id (None = all stock)
            timestamp: Include entries created at or before this time
                (defaults to now)

        Returns:
            Decimal balance
        """
        if timestamp is None:
            timestamp = timezone.now()

        entries = LedgerEntry.objects.filter(product=product, created_at__lte=timestamp)
        if location is not None:
            entries = entries.filter(location=location)

        return entries.aggregate(
            total=Coalesce(Sum('quantity'), Value(ZERO), output_field=QUANTITY_OUTPUT)
        )['total']

    @staticmethod
    def entries_for(product, location=None):
        """Ledger entries for a product in chronological order."""
        entries = LedgerEntry.objects.filter(product=product).select_related('location', 'document')
        if location is not None:
            entries = entries.filter(location=location)
        return entries.order_by('created_at', 'id')


def lock_products(product_ids):
    """
    Lock product rows in ascending id order and return them keyed by id.
    A stable lock order keeps concurrent transitions from deadlocking.
    """
    products = Product.objects.select_for_update().filter(id__in=set(product_ids)).order_by('id')
    return {product.id: product for product in products}
