"""
Stock Adjustment Service

Records physical stock counts. The difference between the counted quantity
and the current on-hand is written to the ledger as one ``adjustment``
entry, so adjustments stay visible in the move history like any other
stock change.
"""

from decimal import Decimal, InvalidOperation
import logging

from django.db import transaction

from inventory.models import LedgerEntry, Product, ZERO, quantity_precision_error
from inventory.services.availability_service import AvailabilityService
from inventory.services.ledger_service import LedgerService, lock_products
from utils.exceptions import InventoryValidationError

logger = logging.getLogger(__name__)


class AdjustmentService:
    """Service for correcting stock after a physical count."""

    @staticmethod
    def adjust(product, counted_quantity, location=None, reason='', performed_by='') -> dict:
        """
        Set a product's stock to a counted quantity.

        Business Rules:
        - counted_quantity must be zero or more
        - the delta (counted - current) is recorded as one ledger entry
        - a count equal to the current stock writes nothing

        Args:
            product: Product instance or id
            counted_quantity: Quantity physically counted
            location: Optional Location that was counted (None = product total)
            reason: Why the stock was adjusted (stored as the entry reference)
            performed_by: User recording the count

        Returns:
            dict: {
                'success': True,
                'product': Product,
                'previous_quantity': Decimal,
                'counted_quantity': Decimal,
                'delta': Decimal,
                'ledger_entry': LedgerEntry or None,
                'message': str
            }

        Raises:
            InventoryValidationError: If the count is negative, not a number or
                finer than the stored precision
        """
        try:
            counted = Decimal(str(counted_quantity))
        except (InvalidOperation, ValueError):
            raise InventoryValidationError({'counted_quantity': 'A valid number is required'})
        if not counted.is_finite() or counted < ZERO:
            raise InventoryValidationError({'counted_quantity': 'Counted quantity cannot be negative'})
        precision_error = quantity_precision_error(counted)
        if precision_error:
            raise InventoryValidationError({'counted_quantity': precision_error})

        product_id = product.pk if isinstance(product, Product) else product

        with transaction.atomic():
            locked = lock_products([product_id])
            if product_id not in locked:
                raise InventoryValidationError({'product': f'Product {product_id} does not exist'})
            product = locked[product_id]

            location_id = location.id if location is not None else None
            previous = AvailabilityService.on_hand(product.id, location_id)
            delta = counted - previous

            entry = None
            if delta != ZERO:
                entry = LedgerService.apply_delta(
                    product,
                    delta,
                    LedgerEntry.EntryType.ADJUSTMENT,
                    location=location,
                    reference=reason or 'Stock adjustment',
                    performed_by=performed_by,
                )

        if entry is None:
            message = f'{product.sku} already at {counted}, nothing recorded'
            logger.info(f"Adjustment for {product.sku}: count matches stock ({counted})")
        else:
            message = f'{product.sku} adjusted by {delta} to {counted}'
            logger.info(
                f"Adjustment for {product.sku} at {location or 'product level'}: "
                f"{previous} -> {counted} ({reason or 'no reason given'})"
            )

        return {
            'success': True,
            'product': product,
            'previous_quantity': previous,
            'counted_quantity': counted,
            'delta': delta,
            'ledger_entry': entry,
            'message': message,
        }
