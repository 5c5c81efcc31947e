"""
Tests for the seed_inventory management command.
"""

from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from inventory.models import LedgerEntry, MovementDocument, Product
from inventory.services import ReconciliationService

Status = MovementDocument.Status


class SeedInventoryCommandTest(TestCase):
    """Test cases for seed_inventory."""

    def _seed(self, *args):
        call_command('seed_inventory', *args, stdout=StringIO())

    def test_seed_builds_stock_through_the_ledger(self):
        self._seed()

        self.assertEqual(Product.objects.count(), 10)
        self.assertEqual(Product.objects.get(sku='STL-001').on_hand, Decimal('1250'))
        self.assertEqual(Product.objects.get(sku='HRD-001').on_hand, Decimal('0'))
        self.assertEqual(LedgerEntry.objects.filter(entry_type=LedgerEntry.EntryType.RECEIPT).count(), 9)
        self.assertEqual(ReconciliationService.find_mismatches(), [])

    def test_seed_creates_open_documents(self):
        self._seed()

        statuses = sorted(
            MovementDocument.objects.exclude(kind=MovementDocument.Kind.RECEIPT)
            .values_list('status', flat=True)
        )
        self.assertEqual(statuses, ['draft', 'in_transit', 'ready', 'waiting'])
        self.assertEqual(ReconciliationService.over_reserved(), [])

    def test_seed_is_idempotent(self):
        self._seed()
        self._seed()

        self.assertEqual(Product.objects.count(), 10)
        self.assertEqual(Product.objects.get(sku='STL-001').on_hand, Decimal('1250'))
        self.assertEqual(MovementDocument.objects.count(), 5)

    def test_clear_reseeds(self):
        self._seed()
        self._seed('--clear')

        self.assertEqual(MovementDocument.objects.count(), 5)
        self.assertEqual(MovementDocument.objects.get(kind='receipt').reference, 'WH/IN/0001')
        self.assertEqual(LedgerEntry.objects.count(), 9)
