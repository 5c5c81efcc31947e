"""
Unit tests for LedgerService.

Tests the single stock write path:
- apply_delta updates Product.on_hand, StockLevel and appends one entry
- negative stock is rejected
- balance_as_of replays entries up to a point in time
"""

from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.test import TestCase, TransactionTestCase
from django.utils import timezone

from inventory.models import LedgerEntry, Location, Product, StockLevel, Warehouse
from inventory.services import LedgerService
from utils.exceptions import InsufficientStockError


class LedgerServiceTest(TestCase):
    """Test cases for LedgerService."""

    def setUp(self):
        """Set up test data."""
        warehouse = Warehouse.objects.create(name='Main Warehouse', code='WH')
        self.stock1 = Location.objects.create(warehouse=warehouse, name='Main Storage', code='Stock1')
        self.product = Product.objects.create(sku='STL-001', name='Steel Rods')

    def _apply(self, delta, location=None, entry_type=LedgerEntry.EntryType.ADJUSTMENT):
        with transaction.atomic():
            return LedgerService.apply_delta(
                self.product,
                Decimal(delta),
                entry_type,
                location=location,
                reference='Test',
                performed_by='tester'
            )

    def test_apply_delta_updates_product_and_location(self):
        """Test that one delta updates both caches and writes one entry."""
        entry = self._apply('100', location=self.stock1, entry_type=LedgerEntry.EntryType.RECEIPT)

        self.product.refresh_from_db()
        self.assertEqual(self.product.on_hand, Decimal('100'))
        self.assertEqual(
            StockLevel.objects.get(product=self.product, location=self.stock1).quantity,
            Decimal('100')
        )
        self.assertEqual(entry.balance_before, Decimal('0'))
        self.assertEqual(entry.balance_after, Decimal('100'))
        self.assertEqual(entry.location, self.stock1)
        self.assertEqual(entry.performed_by, 'tester')
        self.assertEqual(LedgerEntry.objects.count(), 1)

    def test_running_balances_chain(self):
        first = self._apply('50')
        second = self._apply('-20')

        self.assertEqual(second.balance_before, first.balance_after)
        self.assertEqual(second.balance_after, Decimal('30'))

    def test_negative_product_stock_rejected(self):
        """Test that a delta below zero raises and writes nothing."""
        self._apply('10')

        with self.assertRaises(InsufficientStockError) as context:
            self._apply('-11')

        shortfall = context.exception.shortfalls[0]
        self.assertEqual(shortfall.requested, Decimal('11'))
        self.assertEqual(shortfall.available, Decimal('10'))

        self.product.refresh_from_db()
        self.assertEqual(self.product.on_hand, Decimal('10'))
        self.assertEqual(LedgerEntry.objects.count(), 1)

    def test_negative_location_stock_rejected(self):
        """Product-level stock elsewhere does not cover a location shortfall."""
        self._apply('10')

        with self.assertRaises(InsufficientStockError) as context:
            self._apply('-5', location=self.stock1)

        self.assertEqual(context.exception.shortfalls[0].location_id, self.stock1.id)

    def test_balance_as_of(self):
        """Test replaying the ledger up to a timestamp."""
        self._apply('100', location=self.stock1)
        self._apply('-30', location=self.stock1)
        LedgerEntry.objects.filter(quantity=Decimal('-30')).update(
            created_at=timezone.now() + timedelta(hours=1)
        )

        self.assertEqual(LedgerService.balance_as_of(self.product), Decimal('70'))
        self.assertEqual(LedgerService.balance_as_of(self.product, timestamp=timezone.now()), Decimal('100'))
        self.assertEqual(LedgerService.balance_as_of(self.product, self.stock1), Decimal('70'))

    def test_balance_as_of_without_entries(self):
        self.assertEqual(LedgerService.balance_as_of(self.product), Decimal('0'))

    def test_entries_for_in_order(self):
        self._apply('5')
        self._apply('7')
        quantities = [entry.quantity for entry in LedgerService.entries_for(self.product)]
        self.assertEqual(quantities, [Decimal('5'), Decimal('7')])


class LedgerServiceAutocommitTest(TransactionTestCase):
    """apply_delta outside a transaction."""

    def test_apply_delta_requires_transaction(self):
        """Test that the write path refuses to run in autocommit mode."""
        product = Product.objects.create(sku='STL-001', name='Steel Rods')

        with self.assertRaises(RuntimeError):
            LedgerService.apply_delta(product, Decimal('1'), LedgerEntry.EntryType.ADJUSTMENT)

        self.assertEqual(LedgerEntry.objects.count(), 0)
