"""
Unit tests for DocumentService.

Tests the document lifecycle end to end:
- create / edit / delete drafts
- submit -> validate (reserve) -> process (commit) for deliveries
- validate -> process for receipts, start -> complete for transfers
- cancel releases reservations
- processed documents are locked and cannot be processed twice
"""

from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase

from inventory.models import LedgerEntry, LineItem, MovementDocument, Product, StockLevel
from inventory.services import (
    AdjustmentService, AvailabilityService, DocumentService, ReconciliationService
)
from inventory.tests.base import InventoryFixtures
from utils.exceptions import (
    DocumentAlreadyProcessedError,
    InsufficientStockError,
    InvalidStatusTransitionError,
    InventoryValidationError,
)

Status = MovementDocument.Status
EntryType = LedgerEntry.EntryType


class DocumentCreationTest(InventoryFixtures, TestCase):
    """Test cases for draft creation and editing."""

    def test_create_delivery(self):
        document = DocumentService.create_document(
            kind='delivery',
            source_location=self.stock1,
            partner='Azure Interior',
            lines=[{'product': self.steel.id, 'quantity': '30'}],
            created_by='alice'
        )

        self.assertEqual(document.status, Status.DRAFT)
        self.assertEqual(document.reference, 'WH/OUT/0001')
        self.assertEqual(document.created_by, 'alice')
        item = document.line_items.get()
        self.assertEqual(item.product, self.steel)
        self.assertEqual(item.quantity, Decimal('30'))
        self.assertEqual(item.reserved_quantity, Decimal('0'))

    def test_unknown_kind_rejected(self):
        with self.assertRaises(InventoryValidationError) as context:
            DocumentService.create_document(kind='return', source_location=self.stock1)
        self.assertIn('kind', context.exception.errors)

    def test_invalid_locations_rejected(self):
        """Test that a delivery with a destination is refused before anything is saved."""
        with self.assertRaises(InventoryValidationError) as context:
            DocumentService.create_document(
                kind='delivery',
                source_location=self.stock1,
                destination_location=self.rack1
            )

        self.assertIn('destination_location', context.exception.errors)
        self.assertEqual(MovementDocument.objects.count(), 0)

    def test_invalid_lines_rejected(self):
        """All bad lines are reported together."""
        self.chairs.is_active = False
        self.chairs.save()

        with self.assertRaises(InventoryValidationError) as context:
            DocumentService.create_document(
                kind='delivery',
                source_location=self.stock1,
                lines=[
                    {'product': self.steel.id, 'quantity': '0'},
                    {'product': 99999, 'quantity': '1'},
                    {'product': self.chairs.id, 'quantity': '1'},
                    {'product': self.steel.id, 'quantity': 'many'},
                ]
            )

        errors = context.exception.errors
        self.assertEqual(
            sorted(errors),
            ['lines[0].quantity', 'lines[1].product', 'lines[2].product', 'lines[3].quantity']
        )
        self.assertEqual(MovementDocument.objects.count(), 0)

    def test_quantity_finer_than_stored_precision_rejected(self):
        """Quantities must fit three decimal places and twelve integer digits."""
        with self.assertRaises(InventoryValidationError) as context:
            DocumentService.create_document(
                kind='delivery',
                source_location=self.stock1,
                lines=[
                    {'product': self.steel.id, 'quantity': '0.0004'},
                    {'product': self.steel.id, 'quantity': '1.2345'},
                    {'product': self.steel.id, 'quantity': '1.500000'},
                    {'product': self.steel.id, 'quantity': '1000000000000'},
                ]
            )

        errors = context.exception.errors
        self.assertEqual(sorted(errors), ['lines[0].quantity', 'lines[1].quantity', 'lines[3].quantity'])
        self.assertEqual(MovementDocument.objects.count(), 0)

    def test_add_line_rejects_sub_precision_quantity(self):
        document = self.delivery([(self.steel, '1')])

        with self.assertRaises(InventoryValidationError):
            DocumentService.add_line_item(document, self.steel, Decimal('0.0004'))

        self.assertEqual(document.line_items.count(), 1)

    def test_edit_draft(self):
        document = self.delivery([(self.steel, '5')])

        DocumentService.update_document(document, partner='Gemini Furniture', notes='Rush')
        line = DocumentService.add_line_item(document, self.chairs, '2')
        DocumentService.remove_line_item(document, line.id)

        document.refresh_from_db()
        self.assertEqual(document.partner, 'Gemini Furniture')
        self.assertEqual(document.notes, 'Rush')
        self.assertEqual(document.line_items.count(), 1)

    def test_reference_and_kind_cannot_be_edited(self):
        document = self.delivery([(self.steel, '5')])

        with self.assertRaises(InventoryValidationError) as context:
            DocumentService.update_document(document, reference='WH/OUT/9999', kind='receipt')
        self.assertEqual(sorted(context.exception.errors), ['kind', 'reference'])

    def test_remove_line_from_other_document_rejected(self):
        first = self.delivery([(self.steel, '5')])
        second = self.delivery([(self.steel, '5')])
        other_line = second.line_items.get()

        with self.assertRaises(InventoryValidationError):
            DocumentService.remove_line_item(first, other_line.id)
        self.assertTrue(LineItem.objects.filter(id=other_line.id).exists())

    def test_delete_draft(self):
        document = self.delivery([(self.steel, '5')])

        reference = DocumentService.delete_document(document.id)

        self.assertEqual(reference, 'WH/OUT/0001')
        self.assertFalse(MovementDocument.objects.filter(id=document.id).exists())
        self.assertEqual(LineItem.objects.count(), 0)

    def test_submitted_document_cannot_be_edited(self):
        """Line items and header fields are frozen once the document leaves draft."""
        document = self.delivery([(self.steel, '5')], submit=True)

        with self.assertRaises(InvalidStatusTransitionError):
            DocumentService.add_line_item(document, self.chairs, '1')
        with self.assertRaises(InvalidStatusTransitionError):
            DocumentService.update_document(document, partner='Someone else')
        with self.assertRaises(InvalidStatusTransitionError):
            DocumentService.delete_document(document)

    def test_missing_document(self):
        with self.assertRaises(InventoryValidationError):
            DocumentService.submit(99999)


class DeliveryLifecycleTest(InventoryFixtures, TestCase):
    """Test cases for the delivery flow."""

    def setUp(self):
        super().setUp()
        self.receive(self.steel, '100', self.stock1)

    def test_full_delivery_flow(self):
        """Steel Rods: 100 on hand, deliver 30, 70 remain and status stays in stock."""
        document = self.delivery([(self.steel, '30')])

        submitted = DocumentService.submit(document)
        self.assertEqual(submitted['from_status'], Status.DRAFT)
        self.assertEqual(submitted['to_status'], Status.WAITING)

        validated = DocumentService.validate(document)
        self.assertEqual(validated['to_status'], Status.READY)
        self.assertEqual(document.line_items.get().reserved_quantity, Decimal('30'))

        result = DocumentService.process(document, performed_by='bob')

        self.assertTrue(result['success'])
        self.assertEqual(result['to_status'], Status.DONE)
        self.assertIsNotNone(result['document'].processed_at)

        [entry] = result['ledger_entries']
        self.assertEqual(entry.entry_type, EntryType.DELIVERY)
        self.assertEqual(entry.quantity, Decimal('-30'))
        self.assertEqual(entry.balance_before, Decimal('100'))
        self.assertEqual(entry.balance_after, Decimal('70'))
        self.assertEqual(entry.location, self.stock1)
        self.assertEqual(entry.performed_by, 'bob')

        self.steel.refresh_from_db()
        self.assertEqual(self.steel.on_hand, Decimal('70'))
        self.assertEqual(self.steel.stock_status, Product.StockStatus.IN_STOCK)
        self.assertEqual(document.line_items.get().reserved_quantity, Decimal('0'))

    def test_processing_writes_exactly_one_entry_per_line(self):
        """A delivery of 5 writes one -5 entry and lowers on-hand by 5."""
        before = LedgerEntry.objects.count()
        document = self.delivery([(self.steel, '5')], submit=True)
        DocumentService.validate(document)
        DocumentService.process(document)

        entries = LedgerEntry.objects.filter(document=document)
        self.assertEqual(entries.count(), 1)
        self.assertEqual(entries.get().quantity, Decimal('-5'))
        self.assertEqual(LedgerEntry.objects.count(), before + 1)
        self.assertEqual(AvailabilityService.on_hand(self.steel.id), Decimal('95'))

    def test_validate_with_insufficient_stock(self):
        """Requesting 30 when 25 are available fails and leaves the document waiting."""
        other = self.delivery([(self.steel, '75')], submit=True)
        DocumentService.validate(other)
        document = self.delivery([(self.steel, '30')], submit=True)

        with self.assertRaises(InsufficientStockError) as context:
            DocumentService.validate(document)

        [shortfall] = context.exception.shortfalls
        self.assertEqual(shortfall.product_id, self.steel.id)
        self.assertEqual(shortfall.requested, Decimal('30'))
        self.assertEqual(shortfall.available, Decimal('25'))

        document.refresh_from_db()
        self.assertEqual(document.status, Status.WAITING)
        self.assertEqual(document.line_items.get().reserved_quantity, Decimal('0'))

    def test_process_twice_rejected(self):
        """Test that a processed document cannot be processed again."""
        document = self.delivery([(self.steel, '30')], submit=True)
        DocumentService.validate(document)
        DocumentService.process(document)

        with self.assertRaises(DocumentAlreadyProcessedError):
            DocumentService.process(document)

        self.steel.refresh_from_db()
        self.assertEqual(self.steel.on_hand, Decimal('70'))
        self.assertEqual(LedgerEntry.objects.filter(document=document).count(), 1)

    def test_done_document_is_locked(self):
        document = self.delivery([(self.steel, '30')], submit=True)
        DocumentService.validate(document)
        DocumentService.process(document)

        with self.assertRaises(InvalidStatusTransitionError):
            DocumentService.update_document(document, notes='Too late')
        with self.assertRaises(InvalidStatusTransitionError):
            DocumentService.add_line_item(document, self.steel, '1')
        with self.assertRaises(InvalidStatusTransitionError):
            DocumentService.delete_document(document)
        with self.assertRaises(InvalidStatusTransitionError):
            DocumentService.cancel(document)

    def test_out_of_order_action_rejected(self):
        document = self.delivery([(self.steel, '30')])

        with self.assertRaises(InvalidStatusTransitionError):
            DocumentService.process(document)

        document.refresh_from_db()
        self.assertEqual(document.status, Status.DRAFT)

    def test_unknown_action_rejected(self):
        document = self.delivery([(self.steel, '30')])
        with self.assertRaises(InvalidStatusTransitionError):
            DocumentService.transition(document, 'ship')

    def test_empty_document_cannot_be_submitted(self):
        document = DocumentService.create_document(kind='delivery', source_location=self.stock1)

        with self.assertRaises(InventoryValidationError):
            DocumentService.submit(document)

        result = DocumentService.cancel(document)
        self.assertEqual(result['to_status'], Status.CANCELED)

    def test_cancel_releases_reservation(self):
        document = self.delivery([(self.steel, '60')], submit=True)
        DocumentService.validate(document)
        self.assertEqual(AvailabilityService.available_stock(self.steel.id, self.stock1.id), Decimal('40'))

        result = DocumentService.cancel(document)

        self.assertEqual(result['to_status'], Status.CANCELED)
        self.assertEqual(result['ledger_entries'], [])
        self.assertEqual(document.line_items.get().reserved_quantity, Decimal('0'))
        self.assertEqual(AvailabilityService.available_stock(self.steel.id, self.stock1.id), Decimal('100'))

    def test_commit_rechecks_on_hand(self):
        """Stock lost after reservation makes processing fail with nothing written."""
        document = self.delivery([(self.steel, '30')], submit=True)
        DocumentService.validate(document)
        # Stock disappears between reservation and processing
        Product.objects.filter(id=self.steel.id).update(on_hand=Decimal('20'))
        StockLevel.objects.filter(product=self.steel, location=self.stock1).update(quantity=Decimal('20'))
        entries_before = LedgerEntry.objects.count()

        with self.assertRaises(InsufficientStockError) as context:
            DocumentService.process(document)

        self.assertEqual(context.exception.shortfalls[0].available, Decimal('20'))
        document.refresh_from_db()
        self.assertEqual(document.status, Status.READY)
        self.assertEqual(LedgerEntry.objects.count(), entries_before)
        self.assertEqual(document.line_items.get().reserved_quantity, Decimal('30'))

    def test_ledger_reconciles_after_lifecycle(self):
        for quantity in ('10', '20', '5'):
            document = self.delivery([(self.steel, quantity)], submit=True)
            DocumentService.validate(document)
            DocumentService.process(document)
        canceled = self.delivery([(self.steel, '50')], submit=True)
        DocumentService.validate(canceled)
        DocumentService.cancel(canceled)

        self.assertEqual(ReconciliationService.find_mismatches(), [])
        self.assertEqual(ReconciliationService.over_reserved(), [])
        self.steel.refresh_from_db()
        self.assertEqual(self.steel.on_hand, Decimal('65'))


class SharedStockTest(InventoryFixtures, TestCase):
    """Holds placed by other open documents are left for them."""

    def test_unscoped_hold_blocks_location_validate(self):
        """A delivery without a source location holds stock every location supplies."""
        self.receive(self.steel, '10', self.stock1)
        self.receive(self.steel, '10', self.rack1)
        unscoped = DocumentService.create_document(
            kind='delivery',
            lines=[{'product': self.steel, 'quantity': '20'}],
        )
        DocumentService.submit(unscoped)
        DocumentService.validate(unscoped)
        document = self.delivery([(self.steel, '10')], submit=True)

        with self.assertRaises(InsufficientStockError) as context:
            DocumentService.validate(document)

        self.assertEqual(context.exception.shortfalls[0].available, Decimal('0'))
        document.refresh_from_db()
        self.assertEqual(document.status, Status.WAITING)

        result = DocumentService.process(unscoped)
        self.assertEqual(result['to_status'], Status.DONE)
        self.assertEqual(AvailabilityService.on_hand(self.steel.id), Decimal('0'))

    def test_commit_leaves_stock_held_by_other_documents(self):
        """After a count lowers stock, processing may not consume another document's hold."""
        self.receive(self.steel, '30', self.stock1)
        first = self.delivery([(self.steel, '20')], submit=True)
        second = self.delivery([(self.steel, '10')], submit=True)
        DocumentService.validate(first)
        DocumentService.validate(second)
        AdjustmentService.adjust(self.steel, '20', location=self.stock1, reason='Cycle count')

        with self.assertRaises(InsufficientStockError) as context:
            DocumentService.process(first)

        [shortfall] = context.exception.shortfalls
        self.assertEqual(shortfall.requested, Decimal('20'))
        self.assertEqual(shortfall.available, Decimal('10'))
        first.refresh_from_db()
        self.assertEqual(first.status, Status.READY)

        DocumentService.cancel(first)
        result = DocumentService.process(second)

        self.assertEqual(result['to_status'], Status.DONE)
        self.assertEqual(AvailabilityService.on_hand(self.steel.id, self.stock1.id), Decimal('10'))
        self.assertEqual(ReconciliationService.find_mismatches(), [])


class ReceiptAndTransferTest(InventoryFixtures, TestCase):
    """Test cases for receipts and internal transfers."""

    def test_receipt_increments_stock(self):
        receipt = DocumentService.create_document(
            kind='receipt',
            destination_location=self.stock1,
            partner='Steel Corp Ltd',
            lines=[
                {'product': self.steel, 'quantity': '100'},
                {'product': self.chairs, 'quantity': '12'},
            ]
        )
        self.assertEqual(receipt.reference, 'WH/IN/0001')

        DocumentService.validate(receipt)
        result = DocumentService.process(receipt)

        self.assertEqual(result['to_status'], Status.DONE)
        self.assertEqual(
            sorted((e.entry_type, e.quantity) for e in result['ledger_entries']),
            [(EntryType.RECEIPT, Decimal('12')), (EntryType.RECEIPT, Decimal('100'))]
        )
        self.assertEqual(AvailabilityService.on_hand(self.steel.id, self.stock1.id), Decimal('100'))
        self.assertEqual(AvailabilityService.on_hand(self.chairs.id), Decimal('12'))

    def test_transfer_moves_stock_between_locations(self):
        """Transfers write an out and an in entry and keep the product total."""
        self.receive(self.steel, '100', self.stock1)
        transfer = self.transfer([(self.steel, '40')])

        started = DocumentService.start(transfer)
        self.assertEqual(started['to_status'], Status.IN_TRANSIT)
        self.assertEqual(AvailabilityService.available_stock(self.steel.id, self.stock1.id), Decimal('60'))

        result = DocumentService.complete(transfer)

        self.assertEqual(result['to_status'], Status.COMPLETED)
        self.assertEqual(
            [(e.entry_type, e.quantity, e.location) for e in result['ledger_entries']],
            [
                (EntryType.TRANSFER_OUT, Decimal('-40'), self.stock1),
                (EntryType.TRANSFER_IN, Decimal('40'), self.rack1),
            ]
        )
        self.assertEqual(AvailabilityService.on_hand(self.steel.id, self.stock1.id), Decimal('60'))
        self.assertEqual(AvailabilityService.on_hand(self.steel.id, self.rack1.id), Decimal('40'))
        self.assertEqual(AvailabilityService.on_hand(self.steel.id), Decimal('100'))

        with self.assertRaises(DocumentAlreadyProcessedError):
            DocumentService.complete(transfer)

    def test_transfer_start_needs_stock_at_source(self):
        self.receive(self.steel, '100', self.rack1)
        transfer = self.transfer([(self.steel, '10')])

        with self.assertRaises(InsufficientStockError):
            DocumentService.start(transfer)

        transfer.refresh_from_db()
        self.assertEqual(transfer.status, Status.DRAFT)


class DocumentBroadcastTest(InventoryFixtures, TestCase):
    """Status changes are pushed to WebSocket clients after commit."""

    def test_transition_broadcasts_after_commit(self):
        document = self.delivery([(self.steel, '5')])

        with patch.object(DocumentService, '_broadcast_document_updated') as mock_broadcast:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                DocumentService.submit(document)

        self.assertEqual(len(callbacks), 1)
        mock_broadcast.assert_called_once()
        self.assertEqual(mock_broadcast.call_args[0][0].status, Status.WAITING)

    def test_failed_transition_does_not_broadcast(self):
        document = self.delivery([(self.steel, '5')], submit=True)

        with patch.object(DocumentService, '_broadcast_document_updated') as mock_broadcast:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                with self.assertRaises(InsufficientStockError):
                    DocumentService.validate(document)

        self.assertEqual(callbacks, [])
        mock_broadcast.assert_not_called()

    @patch('inventory.services.document_service.get_channel_layer')
    def test_broadcast_sends_serialized_document(self, mock_get_layer):
        document = self.delivery([(self.steel, '5')])
        layer = mock_get_layer.return_value

        with patch('inventory.services.document_service.async_to_sync') as mock_async_to_sync:
            DocumentService._broadcast_document_updated(document)

        mock_async_to_sync.assert_called_once_with(layer.group_send)
        group, message = mock_async_to_sync.return_value.call_args[0]
        self.assertEqual(group, 'inventory')
        self.assertEqual(message['type'], 'document.updated')
        self.assertEqual(message['document']['reference'], document.reference)
        self.assertEqual(message['document']['line_items'][0]['quantity'], '5.000')

    @patch('inventory.services.document_service.get_channel_layer')
    def test_broadcast_failure_is_logged(self, mock_get_layer):
        mock_get_layer.side_effect = RuntimeError('layer down')
        document = self.delivery([(self.steel, '5')])

        with self.assertLogs('inventory.services.document_service', level='ERROR'):
            DocumentService._broadcast_document_updated(document)
