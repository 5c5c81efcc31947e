"""
Reservation Service

Creates and releases soft holds on stock for movement documents.

Business Rules:
- A reservation covers the whole document or nothing: one short product
  aborts it and no line item changes
- Availability is re-checked inside the caller's transaction, after the
  product rows are locked, never trusted from an earlier read
- The document's own holds never count against it
- First committer wins; the loser gets InsufficientStockError and is not
  queued or retried
"""

from collections import OrderedDict
from typing import List
import logging

from django.db import transaction

from inventory.models import LineItem, ZERO
from inventory.services.availability_service import AvailabilityService, StockShortfall
from inventory.services.ledger_service import lock_products
from utils.exceptions import InsufficientStockError

logger = logging.getLogger(__name__)


class ReservationService:
    """Service for reserving and releasing stock held by documents."""

    @staticmethod
    def reserve(document, line_items=None) -> List[LineItem]:
        """
        Reserve the requested quantity of every line item.

        Args:
            document: MovementDocument taking stock from its source location
            line_items: Optional subset of the document's line items
                (defaults to all of them)

        Returns:
            List of reserved LineItem instances

        Raises:
            InsufficientStockError: With one shortfall per product that
                cannot be covered; nothing is reserved
        """
        with transaction.atomic():
            if line_items is None:
                line_items = list(document.line_items.select_related('product'))
            else:
                line_items = list(line_items)

            requested = OrderedDict()
            for item in line_items:
                requested[item.product_id] = requested.get(item.product_id, ZERO) + item.quantity

            products = lock_products(requested.keys())
            location_id = document.stock_location.id if document.stock_location else None

            shortfalls = []
            for product_id, quantity in requested.items():
                available = AvailabilityService.available_stock(
                    product_id,
                    location_id,
                    exclude_document_id=document.id
                )
                if quantity > available:
                    shortfalls.append(StockShortfall(
                        product_id=product_id,
                        sku=products[product_id].sku,
                        requested=quantity,
                        available=max(available, ZERO),
                        location_id=location_id,
                    ))

            if shortfalls:
                logger.warning(
                    f"Reservation rejected for {document.reference}: "
                    + ', '.join(f"{s.sku} requested {s.requested} available {s.available}" for s in shortfalls)
                )
                raise InsufficientStockError(
                    shortfalls,
                    message=f'Not enough stock to reserve {document.reference}'
                )

            for item in line_items:
                item.reserved_quantity = item.quantity
            LineItem.objects.bulk_update(line_items, ['reserved_quantity'])

            logger.info(f"Reserved {len(line_items)} line item(s) for {document.reference}")
            return line_items

    @staticmethod
    def release(document) -> int:
        """
        Zero every reservation held by the document.

        Safe to call repeatedly: a second call finds nothing to release.

        Returns:
            Number of line items that were released
        """
        released = LineItem.objects.filter(
            document=document,
            reserved_quantity__gt=ZERO
        ).update(reserved_quantity=ZERO)

        if released:
            logger.info(f"Released reservations on {released} line item(s) for {document.reference}")
        return released
