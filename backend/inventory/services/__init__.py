"""
Services package for the inventory movement engine.
"""
from .availability_service import AvailabilityService, StockShortfall
from .ledger_service import LedgerService
from .reservation_service import ReservationService
from .reference_service import ReferenceService
from .document_service import DocumentService
from .adjustment_service import AdjustmentService
from .reconciliation_service import ReconciliationService
from .export_service import LedgerExportService
from .pdf_report_service import PDFReportService

__all__ = [
    'AvailabilityService', 'StockShortfall', 'LedgerService', 'ReservationService',
    'ReferenceService', 'DocumentService', 'AdjustmentService', 'ReconciliationService',
    'LedgerExportService', 'PDFReportService',
]
