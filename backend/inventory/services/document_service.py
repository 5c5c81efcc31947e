"""
Movement Document Service

Creates, edits and moves receipts, deliveries and transfers through their
lifecycle. Every transition runs in one database transaction:

    1. Lock the document row (select_for_update)
    2. Look the transition up in the state machine table
    3. Lock the products on the document in ascending id order
    4. Apply the transition's side effect (reserve, commit or release),
       re-checking stock against current values
    5. Save the new status

Any exception rolls the whole transition back, leaving the document in its
previous status with no partial line item changes.

Usage:
    from inventory.services import DocumentService

    document = DocumentService.create_document(
        kind='delivery',
        source_location=stock1,
        lines=[{'product': steel_rods, 'quantity': 30}],
    )
    DocumentService.submit(document)
    DocumentService.validate(document)
    result = DocumentService.process(document)
"""

from decimal import Decimal, InvalidOperation
import json
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from inventory.consumers import INVENTORY_GROUP
from inventory.models import (
    LedgerEntry, LineItem, MovementDocument, Product, ZERO, quantity_precision_error
)
from inventory.serializers import MovementDocumentSerializer
from inventory.services.availability_service import AvailabilityService, StockShortfall
from inventory.services.ledger_service import LedgerService, lock_products
from inventory.services.reference_service import ReferenceService
from inventory.services.reservation_service import ReservationService
from inventory.state_machine import Action, Effect, ensure_editable, resolve_transition
from utils.exceptions import (
    DocumentAlreadyProcessedError,
    InsufficientStockError,
    InvalidStatusTransitionError,
    InventoryValidationError,
)

logger = logging.getLogger(__name__)

Kind = MovementDocument.Kind
Status = MovementDocument.Status
EntryType = LedgerEntry.EntryType

EDITABLE_FIELDS = ('partner', 'scheduled_date', 'notes', 'source_location', 'destination_location')


class DocumentService:
    """
    Service class for the movement document lifecycle.

    Methods accept either a MovementDocument or its primary key. Transitions
    return a dict holding the refreshed document; instances passed in are
    not updated in place.
    """

    # ============================================================
    # CREATION & EDITING (draft only)
    # ============================================================

    @staticmethod
    def create_document(kind, lines=None, source_location=None, destination_location=None,
                        partner='', scheduled_date=None, notes='', created_by='') -> MovementDocument:
        """
        Create a draft document with its line items and a fresh reference.

        Args:
            kind: 'receipt', 'delivery' or 'transfer'
            lines: Iterable of {'product': Product or id, 'quantity': number}
            source_location: Location stock is taken from (not for receipts)
            destination_location: Location stock is put (not for deliveries)
            partner: Supplier or customer name
            scheduled_date: Planned date (defaults to today)
            notes: Free text
            created_by: User creating the document

        Returns:
            The created MovementDocument

        Raises:
            InventoryValidationError: If the kind, locations or lines are invalid
        """
        try:
            kind = Kind(kind)
        except ValueError:
            raise InventoryValidationError({'kind': f'Unknown document kind "{kind}"'})

        document = MovementDocument(
            kind=kind,
            source_location=source_location,
            destination_location=destination_location,
            partner=partner or '',
            notes=notes or '',
            created_by=created_by or '',
        )
        if scheduled_date is not None:
            document.scheduled_date = scheduled_date
        _full_clean(document, exclude=['reference'])

        parsed_lines = _parse_lines(lines or [])

        with transaction.atomic():
            document.reference = ReferenceService.next_reference(
                kind,
                ReferenceService.warehouse_code_for(kind, source_location, destination_location)
            )
            document.save()

            for product, quantity in parsed_lines:
                LineItem.objects.create(document=document, product=product, quantity=quantity)

        logger.info(
            f"Created {document.get_kind_display().lower()} {document.reference} "
            f"with {len(parsed_lines)} line item(s)"
        )
        return document

    @staticmethod
    def update_document(document, **changes) -> MovementDocument:
        """
        Change header fields of a draft document.

        Only partner, scheduled_date, notes and the locations can change;
        the reference and kind are fixed at creation.

        Raises:
            InvalidStatusTransitionError: If the document is not a draft
            InventoryValidationError: If a field is unknown or invalid
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise InventoryValidationError({
                field: 'This field cannot be changed' for field in sorted(unknown)
            })

        with transaction.atomic():
            document = _lock_document(document)
            ensure_editable(document)

            for field, value in changes.items():
                setattr(document, field, value)
            _full_clean(document)
            document.save()

        logger.info(f"Updated {document.reference}: {', '.join(sorted(changes)) or 'no changes'}")
        return document

    @staticmethod
    def add_line_item(document, product, quantity) -> LineItem:
        """
        Add a product line to a draft document.

        Raises:
            InvalidStatusTransitionError: If the document is not a draft
            InventoryValidationError: If the product or quantity is invalid
        """
        [(product, quantity)] = _parse_lines([{'product': product, 'quantity': quantity}])

        with transaction.atomic():
            document = _lock_document(document)
            ensure_editable(document)
            line_item = LineItem.objects.create(document=document, product=product, quantity=quantity)

        logger.info(f"Added {quantity} x {product.sku} to {document.reference}")
        return line_item

    @staticmethod
    def remove_line_item(document, line_item_id) -> None:
        """
        Remove a line from a draft document.

        Raises:
            InvalidStatusTransitionError: If the document is not a draft
            InventoryValidationError: If the line does not belong to the document
        """
        with transaction.atomic():
            document = _lock_document(document)
            ensure_editable(document)

            deleted, _ = LineItem.objects.filter(document=document, id=line_item_id).delete()
            if not deleted:
                raise InventoryValidationError({
                    'line_item': f'Line item {line_item_id} is not on {document.reference}'
                })

        logger.info(f"Removed line item {line_item_id} from {document.reference}")

    @staticmethod
    def delete_document(document) -> str:
        """
        Delete a draft document and its line items.

        Any reservation is released first. The reference number is not reused.

        Returns:
            The deleted document's reference

        Raises:
            InvalidStatusTransitionError: If the document is not a draft
        """
        with transaction.atomic():
            document = _lock_document(document)
            ensure_editable(document, operation='delete')

            reference = document.reference
            ReservationService.release(document)
            document.delete()

        logger.info(f"Deleted draft {reference}")
        return reference

    # ============================================================
    # TRANSITIONS
    # ============================================================

    @staticmethod
    def transition(document, action, performed_by='') -> dict:
        """
        Apply a lifecycle action to a document.

        Args:
            document: MovementDocument or its id
            action: One of submit, validate, process, start, complete, cancel
            performed_by: User performing the action (recorded on ledger entries)

        Returns:
            dict: {
                'success': True,
                'document': refreshed MovementDocument,
                'action': 'validate',
                'from_status': 'waiting',
                'to_status': 'ready',
                'ledger_entries': [LedgerEntry, ...],
                'message': str
            }

        Raises:
            InvalidStatusTransitionError: Action not allowed from the current status
            DocumentAlreadyProcessedError: Commit action replayed on a processed document
            InsufficientStockError: Not enough stock to reserve or commit
            InventoryValidationError: Document has no line items
        """
        with transaction.atomic():
            document = _lock_document(document)
            from_status = document.status

            try:
                next_step = resolve_transition(document, action)
            except (InvalidStatusTransitionError, DocumentAlreadyProcessedError) as e:
                logger.warning(f"Rejected {action} on {document.reference}: {e}")
                raise
            action = Action(action)

            line_items = list(document.line_items.all())
            if not line_items and action != Action.CANCEL:
                raise InventoryValidationError({
                    'line_items': f'{document.reference} has no line items'
                })

            products = lock_products(item.product_id for item in line_items)
            for item in line_items:
                item.product = products[item.product_id]

            ledger_entries = []
            if next_step.effect == Effect.RESERVE:
                ReservationService.reserve(document, line_items)
            elif next_step.effect == Effect.COMMIT:
                ledger_entries = DocumentService._commit(document, line_items, performed_by)
                ReservationService.release(document)
                document.processed_at = timezone.now()
            elif next_step.effect == Effect.RELEASE:
                ReservationService.release(document)

            document.status = next_step.target
            document.save(update_fields=['status', 'processed_at', 'updated_at'])

            transaction.on_commit(lambda: DocumentService._broadcast_document_updated(document))

        logger.info(
            f"{document.reference}: {action.label} ({from_status} -> {document.status}), "
            f"{len(ledger_entries)} ledger entries written"
        )

        return {
            'success': True,
            'document': document,
            'action': action.value,
            'from_status': from_status,
            'to_status': document.status,
            'ledger_entries': ledger_entries,
            'message': f'{document.reference} is now {document.get_status_display().lower()}',
        }

    @staticmethod
    def submit(document, performed_by=''):
        return DocumentService.transition(document, Action.SUBMIT, performed_by)

    @staticmethod
    def validate(document, performed_by=''):
        return DocumentService.transition(document, Action.VALIDATE, performed_by)

    @staticmethod
    def process(document, performed_by=''):
        return DocumentService.transition(document, Action.PROCESS, performed_by)

    @staticmethod
    def start(document, performed_by=''):
        return DocumentService.transition(document, Action.START, performed_by)

    @staticmethod
    def complete(document, performed_by=''):
        return DocumentService.transition(document, Action.COMPLETE, performed_by)

    @staticmethod
    def cancel(document, performed_by=''):
        return DocumentService.transition(document, Action.CANCEL, performed_by)

    # ============================================================
    # COMMIT
    # ============================================================

    @staticmethod
    def _commit(document, line_items, performed_by):
        """
        Write the ledger entries for a processed document.

        Outgoing quantities are checked against current availability first, with
        the document's own hold ignored, so every shortfall is reported together and
        stock reserved by other open documents is left for them. The ledger
        service still rejects any delta that would make on-hand negative.
        """
        kind = Kind(document.kind)
        source = document.source_location
        destination = document.destination_location

        if kind != Kind.RECEIPT:
            DocumentService._check_available(document, line_items, source)

        entries = []
        for item in line_items:
            common = {'document': document, 'performed_by': performed_by}
            if kind == Kind.RECEIPT:
                entries.append(LedgerService.apply_delta(
                    item.product, item.quantity, EntryType.RECEIPT, location=destination, **common
                ))
            elif kind == Kind.DELIVERY:
                entries.append(LedgerService.apply_delta(
                    item.product, -item.quantity, EntryType.DELIVERY, location=source, **common
                ))
            else:
                entries.append(LedgerService.apply_delta(
                    item.product, -item.quantity, EntryType.TRANSFER_OUT, location=source, **common
                ))
                entries.append(LedgerService.apply_delta(
                    item.product, item.quantity, EntryType.TRANSFER_IN, location=destination, **common
                ))
        return entries

    @staticmethod
    def _check_available(document, line_items, location):
        requested = {}
        for item in line_items:
            requested[item.product_id] = requested.get(item.product_id, ZERO) + item.quantity

        location_id = location.id if location else None
        shortfalls = []
        for item in line_items:
            quantity = requested.pop(item.product_id, None)
            if quantity is None:
                continue
            available = AvailabilityService.available_stock(
                item.product_id, location_id, exclude_document_id=document.id
            )
            if quantity > available:
                shortfalls.append(StockShortfall(
                    item.product_id, item.product.sku, quantity, max(available, ZERO), location_id
                ))

        if shortfalls:
            logger.warning(f"Commit rejected for {document.reference}: {len(shortfalls)} product(s) short")
            raise InsufficientStockError(
                shortfalls,
                message=f'Not enough stock available to process {document.reference}'
            )

    # ============================================================
    # BROADCAST
    # ============================================================

    @staticmethod
    def _broadcast_document_updated(document: MovementDocument):
        """
        Broadcast document update to WebSocket clients.

        Args:
            document: MovementDocument instance
        """
        try:
            channel_layer = get_channel_layer()
            if channel_layer:
                serializer = MovementDocumentSerializer(document)
                # Round trip through JSON so Decimals and dates are sent as strings
                document_data = json.loads(json.dumps(serializer.data, default=str))

                async_to_sync(channel_layer.group_send)(
                    INVENTORY_GROUP,
                    {
                        'type': 'document.updated',
                        'document': document_data
                    }
                )
                logger.info(f"Broadcasted update for {document.reference} to WebSocket clients")
        except Exception as e:
            logger.error(f"Failed to broadcast document update {document.reference}: {e}")


def _lock_document(document):
    """Fetch the document row with a row lock held until the transaction ends."""
    document_id = document.pk if isinstance(document, MovementDocument) else document
    try:
        return MovementDocument.objects.select_for_update().get(pk=document_id)
    except MovementDocument.DoesNotExist:
        raise InventoryValidationError({'document': f'Document {document_id} does not exist'})


def _full_clean(instance, exclude=None):
    try:
        instance.full_clean(exclude=exclude)
    except ValidationError as e:
        raise InventoryValidationError(e.message_dict)


def _parse_lines(lines):
    """
    Resolve products and quantities for new line items.

    Returns:
        List of (Product, Decimal) tuples in input order
    """
    parsed = []
    errors = {}
    for index, line in enumerate(lines):
        product = line.get('product')
        try:
            product_id = product.pk if isinstance(product, Product) else int(product)
        except (TypeError, ValueError):
            errors[f'lines[{index}].product'] = 'A valid product is required'
            continue

        try:
            quantity = Decimal(str(line.get('quantity')))
        except (InvalidOperation, ValueError):
            errors[f'lines[{index}].quantity'] = 'A valid number is required'
            continue
        if not quantity.is_finite() or quantity <= ZERO:
            errors[f'lines[{index}].quantity'] = 'Quantity must be greater than zero'
            continue
        precision_error = quantity_precision_error(quantity)
        if precision_error:
            errors[f'lines[{index}].quantity'] = precision_error
            continue

        parsed.append((index, product_id, quantity))

    products = Product.objects.in_bulk({product_id for _, product_id, _ in parsed})

    result = []
    for index, product_id, quantity in parsed:
        product = products.get(product_id)
        if product is None:
            errors[f'lines[{index}].product'] = f'Product {product_id} does not exist'
        elif not product.is_active:
            errors[f'lines[{index}].product'] = f'Product {product.sku} is inactive'
        else:
            result.append((product, quantity))

    if errors:
        raise InventoryValidationError(errors)
    return result
