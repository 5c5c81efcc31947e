"""
Stock Reconciliation Service

Replays the stock ledger and compares it with the cached quantities:
- Product.on_hand against the sum of all of the product's entries
- every StockLevel.quantity against the sum of entries at that location

It also lists products whose reservations exceed their stock. Mismatches
are reported and logged, never corrected automatically.
"""

from decimal import Decimal
from typing import Dict, List
import logging

from django.db.models import Sum
from django.utils import timezone

from inventory.models import LedgerEntry, Location, Product, StockLevel, ZERO
from inventory.services.availability_service import AvailabilityService
from inventory.services.ledger_service import LedgerService
from utils.exceptions import ReconciliationMismatchError

logger = logging.getLogger(__name__)


class ReconciliationService:
    """
    Service for checking cached stock against the ledger.

    Provides methods to:
    - Check a single product
    - Find every mismatch
    - Fail loudly when the ledger and caches disagree
    - Generate a summary report
    """

    @staticmethod
    def check_product(product) -> Dict:
        """
        Compare one product's cached stock with its ledger.

        Args:
            product: Product instance

        Returns:
            Dictionary with on_hand, ledger_balance, difference, a
            per-location breakdown and an overall 'consistent' flag
        """
        ledger_balance = LedgerService.balance_as_of(product)
        locations = []
        for stock_level in product.stock_levels.select_related('location__warehouse'):
            location_balance = LedgerService.balance_as_of(product, stock_level.location)
            locations.append({
                'location': stock_level.location.full_code,
                'quantity': stock_level.quantity,
                'ledger_balance': location_balance,
                'difference': stock_level.quantity - location_balance,
                'consistent': stock_level.quantity == location_balance,
            })

        product_consistent = product.on_hand == ledger_balance
        return {
            'product': product.id,
            'sku': product.sku,
            'on_hand': product.on_hand,
            'ledger_balance': ledger_balance,
            'difference': product.on_hand - ledger_balance,
            'locations': locations,
            'consistent': product_consistent and all(l['consistent'] for l in locations),
        }

    @staticmethod
    def find_mismatches() -> List[Dict]:
        """
        Every cached quantity that differs from its ledger replay.

        Returns:
            List of dicts with product, sku, location (None for the
            product total), cached, ledger and difference as strings
        """
        product_totals = {
            row['product']: row['total']
            for row in LedgerEntry.objects.order_by().values('product').annotate(total=Sum('quantity'))
        }
        location_totals = {
            (row['product'], row['location']): row['total']
            for row in LedgerEntry.objects.filter(location__isnull=False).order_by()
            .values('product', 'location').annotate(total=Sum('quantity'))
        }

        mismatches = []
        for product in Product.objects.order_by('id'):
            ledger = product_totals.get(product.id) or ZERO
            if product.on_hand != ledger:
                mismatches.append(_mismatch(product.id, product.sku, None, product.on_hand, ledger))

        stock_levels = StockLevel.objects.select_related('product', 'location__warehouse').order_by('product_id', 'location_id')
        seen = set()
        for stock_level in stock_levels:
            key = (stock_level.product_id, stock_level.location_id)
            seen.add(key)
            ledger = location_totals.get(key) or ZERO
            if stock_level.quantity != ledger:
                mismatches.append(_mismatch(
                    stock_level.product_id, stock_level.product.sku,
                    stock_level.location.full_code, stock_level.quantity, ledger
                ))

        # Ledger activity at a location that has no StockLevel row
        for (product_id, location_id), ledger in location_totals.items():
            if (product_id, location_id) not in seen and ledger != ZERO:
                product = Product.objects.get(id=product_id)
                location = Location.objects.select_related('warehouse').get(id=location_id)
                mismatches.append(_mismatch(product_id, product.sku, location.full_code, ZERO, ledger))

        for mismatch in mismatches:
            logger.error(
                f"Reconciliation mismatch for {mismatch['sku']}"
                f" at {mismatch['location'] or 'product level'}: "
                f"cached {mismatch['cached']}, ledger {mismatch['ledger']}"
            )
        return mismatches

    @staticmethod
    def assert_consistent() -> None:
        """
        Raise if any cached quantity disagrees with the ledger.

        Raises:
            ReconciliationMismatchError: With the full mismatch list
        """
        mismatches = ReconciliationService.find_mismatches()
        if mismatches:
            raise ReconciliationMismatchError(mismatches)

    @staticmethod
    def over_reserved() -> List[Dict]:
        """Products whose active reservations exceed their on-hand stock."""
        flagged = []
        for product in Product.objects.filter(line_items__reserved_quantity__gt=0).distinct().order_by('id'):
            breakdown = AvailabilityService.stock_breakdown(product.id)
            if breakdown['needs_reconciliation']:
                flagged.append({
                    'product': product.id,
                    'sku': product.sku,
                    'on_hand': str(breakdown['on_hand']),
                    'reserved': str(breakdown['reserved']),
                })
        return flagged

    @staticmethod
    def generate_report() -> Dict:
        """
        Generate a reconciliation report.

        Returns:
            Dictionary containing:
            - generated_at timestamp
            - counts of products, stock levels and ledger entries checked
            - mismatches (see find_mismatches)
            - over_reserved products
            - consistent flag
        """
        logger.info("Generating stock reconciliation report")

        mismatches = ReconciliationService.find_mismatches()
        over_reserved = ReconciliationService.over_reserved()

        return {
            'generated_at': timezone.now().isoformat(),
            'products_checked': Product.objects.count(),
            'stock_levels_checked': StockLevel.objects.count(),
            'ledger_entries': LedgerEntry.objects.count(),
            'mismatches': mismatches,
            'over_reserved': over_reserved,
            'consistent': not mismatches,
        }


def _mismatch(product_id, sku, location, cached: Decimal, ledger: Decimal) -> Dict:
    return {
        'product': product_id,
        'sku': sku,
        'location': location,
        'cached': str(cached),
        'ledger': str(ledger),
        'difference': str(cached - ledger),
    }
