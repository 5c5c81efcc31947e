"""
Stock Availability Service

Single place where available stock is computed:

    available = on_hand(product, location) - reserved(product, location)

where ``reserved`` sums the reserved quantity of line items on documents in
an active (pre-commit) status that take stock from the same location. Without
a location the product-level on-hand and every active reservation are used.
A location figure is capped by the product-level one, since documents
without a source location hold stock that any location may have to supply.

This is a pure read. Callers that need a consistent answer must run it
inside the transaction that holds the product lock.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional
import logging

from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce

from inventory.models import (
    LineItem, MovementDocument, Product, StockLevel,
    QUANTITY_DIGITS, QUANTITY_PLACES, ZERO
)

logger = logging.getLogger(__name__)

QUANTITY_OUTPUT = DecimalField(max_digits=QUANTITY_DIGITS, decimal_places=QUANTITY_PLACES)


@dataclass(frozen=True)
class StockShortfall:
    """One product that cannot be covered by available stock."""
    product_id: int
    sku: str
    requested: Decimal
    available: Decimal
    location_id: Optional[int] = None

    def as_dict(self) -> Dict:
        data = {
            'product': self.product_id,
            'sku': self.sku,
            'requested': str(self.requested),
            'available': str(self.available),
        }
        if self.location_id is not None:
            data['location'] = self.location_id
        return data


class AvailabilityService:
    """Service for computing on-hand, reserved and available quantities."""

    @staticmethod
    def on_hand(product_id, location_id=None) -> Decimal:
        """
        On-hand quantity for a product, at one location or in total.

        Args:
            product_id: Product id
            location_id: Optional Location id (None = product total)

        Returns:
            Decimal on-hand quantity (0 if the product has no stock there)
        """
        if location_id is None:
            return Product.objects.values_list('on_hand', flat=True).get(id=product_id)

        quantity = StockLevel.objects.filter(
            product_id=product_id,
            location_id=location_id
        ).values_list('quantity', flat=True).first()
        return quantity if quantity is not None else ZERO

    @staticmethod
    def reserved(product_id, location_id=None, exclude_document_id=None) -> Decimal:
        """
        Quantity held by active documents for a product.

        Args:
            product_id: Product id
            location_id: Optional source Location id (None = all documents)
            exclude_document_id: Optional document whose own holds are ignored

        Returns:
            Decimal reserved quantity
        """
        items = LineItem.objects.filter(
            product_id=product_id,
            document__status__in=MovementDocument.ACTIVE_STATUSES,
        )
        if location_id is not None:
            items = items.filter(document__source_location_id=location_id)
        if exclude_document_id is not None:
            items = items.exclude(document_id=exclude_document_id)

        return items.aggregate(
            total=Coalesce(Sum('reserved_quantity'), Value(ZERO), output_field=QUANTITY_OUTPUT)
        )['total']

    @staticmethod
    def available_stock(product_id, location_id=None, exclude_document_id=None) -> Decimal:
        """
        Available stock: on-hand minus active reservations.

        With a location the result is also capped by product-level
        availability, so holds by documents without a source location (and
        holds at other locations) can never be reserved a second time.

        A negative result means stock was over-reserved, which is an
        integrity problem; it is logged and returned as-is so callers can
        flag it. Use ``usable_stock`` when a quantity to commit against is
        needed.

        Args:
            product_id: Product id
            location_id: Optional Location id (None = aggregate across locations)
            exclude_document_id: Optional document whose own holds are ignored

        Returns:
            Decimal available quantity
        """
        available = AvailabilityService._net_available(product_id, None, exclude_document_id)
        if location_id is not None:
            available = min(
                available,
                AvailabilityService._net_available(product_id, location_id, exclude_document_id)
            )
        return available

    @staticmethod
    def usable_stock(product_id, location_id=None, exclude_document_id=None) -> Decimal:
        """Available stock clamped at zero."""
        return max(
            AvailabilityService.available_stock(product_id, location_id, exclude_document_id),
            ZERO
        )

    @staticmethod
    def stock_breakdown(product_id, location_id=None) -> Dict:
        """
        On-hand, reserved and available quantities for reporting.

        ``available`` follows ``available_stock``, so at a location it is
        never more than the product-level figure.

        Returns:
            Dict with product, location, on_hand, reserved, available
            and needs_reconciliation (True when availability is negative)
        """
        on_hand = AvailabilityService.on_hand(product_id, location_id)
        reserved = AvailabilityService.reserved(product_id, location_id)
        available = AvailabilityService.available_stock(product_id, location_id)
        return {
            'product': product_id,
            'location': location_id,
            'on_hand': on_hand,
            'reserved': reserved,
            'available': max(available, ZERO),
            'needs_reconciliation': available < ZERO,
        }

    @staticmethod
    def _net_available(product_id, location_id, exclude_document_id) -> Decimal:
        on_hand = AvailabilityService.on_hand(product_id, location_id)
        reserved = AvailabilityService.reserved(product_id, location_id, exclude_document_id)
        available = on_hand - reserved

        if available < ZERO:
            logger.warning(
                f"Negative availability for product {product_id} "
                f"(location {location_id}): on hand {on_hand}, reserved {reserved}. "
                f"Flagged for reconciliation."
            )
        return available
