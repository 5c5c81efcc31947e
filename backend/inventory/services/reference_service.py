"""
Document Reference Service

Generates human-readable document references such as ``WH/OUT/0004``.

Numbers come from a ReferenceSequence row per prefix that is locked and
incremented inside the caller's transaction. Existing documents are never
counted, and numbers freed by deleted documents are not handed out again.
"""

import logging

from django.conf import settings
from django.db import transaction

from inventory.models import MovementDocument, ReferenceSequence
from utils.constants import REFERENCE_DIRECTIONS

logger = logging.getLogger(__name__)


class ReferenceService:
    """Service for allocating document references."""

    @staticmethod
    def prefix_for(kind, warehouse_code=None) -> str:
        """Reference prefix for a document kind, e.g. 'WH/IN'."""
        code = warehouse_code or settings.INVENTORY_DEFAULT_WAREHOUSE_CODE
        return f"{code}/{REFERENCE_DIRECTIONS[str(kind)]}"

    @staticmethod
    def next_reference(kind, warehouse_code=None) -> str:
        """
        Allocate the next reference for a document kind.

        Args:
            kind: MovementDocument.Kind value
            warehouse_code: Warehouse code to prefix with (defaults to
                INVENTORY_DEFAULT_WAREHOUSE_CODE)

        Returns:
            Reference string, e.g. 'WH/OUT/0004'
        """
        kind = MovementDocument.Kind(kind)
        prefix = ReferenceService.prefix_for(kind, warehouse_code)

        with transaction.atomic():
            sequence, _ = ReferenceSequence.objects.select_for_update().get_or_create(prefix=prefix)
            sequence.last_value += 1
            sequence.save(update_fields=['last_value', 'updated_at'])

        padding = settings.INVENTORY_REFERENCE_PADDING
        reference = f"{prefix}/{sequence.last_value:0{padding}d}"
        logger.debug(f"Allocated reference {reference}")
        return reference

    @staticmethod
    def warehouse_code_for(kind, source_location=None, destination_location=None):
        """
        Warehouse code of the location a document is anchored to.

        Receipts use their destination; deliveries and transfers their source.
        Returns None when the document has no location.
        """
        if MovementDocument.Kind(kind) == MovementDocument.Kind.RECEIPT:
            location = destination_location
        else:
            location = source_location or destination_location
        return location.warehouse.code if location is not None else None
