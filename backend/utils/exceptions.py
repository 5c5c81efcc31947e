"""
Custom exceptions for the inventory movement engine.

Every error raised by the core is an ``APIException`` so the REST layer can
render it without translation. Each exception also keeps its structured data
as attributes for callers that use the services directly.
"""

from rest_framework.exceptions import APIException
from rest_framework import status


class InventoryValidationError(APIException):
    """
    Exception raised when input is missing or invalid.
    Raised before any state change; the caller can correct the input and retry.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid inventory request.'
    default_code = 'validation_error'

    def __init__(self, detail=None, code=None):
        super().__init__(detail, code)
        self.errors = detail


class InsufficientStockError(APIException):
    """
    Exception raised when a reservation or commit needs more stock than is available.

    Carries one shortfall per offending product so the caller can show
    exactly which lines need adjusting. The document is left unchanged.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Insufficient stock available for this operation.'
    default_code = 'insufficient_stock'

    def __init__(self, shortfalls, message=None):
        self.shortfalls = list(shortfalls)
        detail = {
            'error': self.default_code,
            'message': message or self.default_detail,
            'shortfalls': [shortfall.as_dict() for shortfall in self.shortfalls],
        }
        super().__init__(detail)

    def __str__(self):
        parts = [
            f"{s.sku or s.product_id}: requested {s.requested}, available {s.available}"
            for s in self.shortfalls
        ]
        return f"Insufficient stock ({'; '.join(parts)})"


class InvalidStatusTransitionError(APIException):
    """
    Exception raised when attempting an invalid status transition.
    The document is left unchanged.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid status transition.'
    default_code = 'invalid_status_transition'

    def __init__(self, from_status, to_status, message=None):
        self.from_status = from_status
        self.to_status = to_status
        detail = {
            'error': self.default_code,
            'message': message or f'Cannot go from {from_status} to {to_status}',
            'from_status': from_status,
            'to_status': to_status,
        }
        super().__init__(detail)

    def __str__(self):
        return f"Invalid status transition: {self.from_status} -> {self.to_status}"


class DocumentAlreadyProcessedError(APIException):
    """
    Exception raised when a committing transition is replayed on a document
    that was already processed. Nothing is re-applied.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This document has already been processed.'
    default_code = 'document_already_processed'

    def __init__(self, reference, status_value):
        self.reference = reference
        self.status = status_value
        detail = {
            'error': self.default_code,
            'message': f'Document {reference} is already {status_value}',
            'reference': reference,
            'status': status_value,
        }
        super().__init__(detail)

    def __str__(self):
        return f"Document {self.reference} is already {self.status}"


class ReconciliationMismatchError(APIException):
    """
    Exception raised when replaying the ledger does not match cached on-hand
    quantities. Reported, never corrected automatically.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Stock ledger does not match on-hand quantities.'
    default_code = 'reconciliation_mismatch'

    def __init__(self, mismatches):
        self.mismatches = list(mismatches)
        detail = {
            'error': self.default_code,
            'message': self.default_detail,
            'mismatches': self.mismatches,
        }
        super().__init__(detail)

    def __str__(self):
        return f"Reconciliation mismatch for {len(self.mismatches)} stock record(s)"
