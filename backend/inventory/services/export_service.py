"""
Move History Export Service

Generates CSV and XLSX exports of stock ledger entries (move history).
Takes an already filtered queryset, so the same filters as the ledger
list endpoint apply.
"""

import csv
from io import BytesIO, StringIO
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from django.db.models import QuerySet
import logging

from inventory.models import LedgerEntry, ZERO

logger = logging.getLogger(__name__)

QUANTITY_FORMAT = '#,##0.000'


class LedgerExportService:
    """
    Service for exporting ledger entries to CSV and XLSX formats.

    Provides methods to:
    - Generate CSV exports
    - Generate XLSX exports with formatting and a net movement total
    """

    # Column headers for export
    HEADERS = [
        'Date',
        'Reference',
        'Type',
        'SKU',
        'Product',
        'Location',
        'Partner',
        'Quantity',
        'Unit',
        'Balance Before',
        'Balance After',
        'Performed By',
    ]

    @staticmethod
    def export_to_csv(entries: QuerySet) -> StringIO:
        """
        Export ledger entries to CSV format.

        Args:
            entries: QuerySet of LedgerEntry objects

        Returns:
            StringIO object containing CSV data
        """
        entries = LedgerExportService._prepare(entries)
        logger.info(f"Generating CSV move history export with {entries.count()} entries")

        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(LedgerExportService.HEADERS)
        for entry in entries:
            writer.writerow(LedgerExportService._row(entry))

        output.seek(0)
        return output

    @staticmethod
    def export_to_xlsx(entries: QuerySet) -> BytesIO:
        """
        Export ledger entries to XLSX format.

        Quantities are written as numbers; incoming rows are tinted green and
        outgoing rows red. A final row holds the net movement.

        Args:
            entries: QuerySet of LedgerEntry objects

        Returns:
            BytesIO object containing XLSX data
        """
        entries = LedgerExportService._prepare(entries)
        logger.info(f"Generating XLSX move history export with {entries.count()} entries")

        wb = Workbook()
        ws = wb.active
        ws.title = "Move History"

        header_font = Font(name='Calibri', size=11, bold=True, color='FFFFFF')
        header_fill = PatternFill(start_color='4A5568', end_color='4A5568', fill_type='solid')
        incoming_fill = PatternFill(start_color='D4EDDA', end_color='D4EDDA', fill_type='solid')
        outgoing_fill = PatternFill(start_color='F8D7DA', end_color='F8D7DA', fill_type='solid')
        summary_fill = PatternFill(start_color='E2E8F0', end_color='E2E8F0', fill_type='solid')
        border = Border(
            left=Side(style='thin', color='CBD5E0'),
            right=Side(style='thin', color='CBD5E0'),
            top=Side(style='thin', color='CBD5E0'),
            bottom=Side(style='thin', color='CBD5E0')
        )
        number_columns = {8, 10, 11}

        for col_num, header in enumerate(LedgerExportService.HEADERS, 1):
            cell = ws.cell(row=1, column=col_num, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)
            cell.border = border

        column_widths = {
            'A': 20,  # Date
            'B': 16,  # Reference
            'C': 14,  # Type
            'D': 12,  # SKU
            'E': 25,  # Product
            'F': 16,  # Location
            'G': 22,  # Partner
            'H': 12,  # Quantity
            'I': 8,   # Unit
            'J': 15,  # Balance Before
            'K': 15,  # Balance After
            'L': 18,  # Performed By
        }
        for col, width in column_widths.items():
            ws.column_dimensions[col].width = width

        row_num = 2
        net_movement = ZERO
        for entry in entries:
            for col_num, value in enumerate(LedgerExportService._row(entry, numeric=True), 1):
                cell = ws.cell(row=row_num, column=col_num, value=value)
                cell.border = border
                if col_num in number_columns:
                    cell.number_format = QUANTITY_FORMAT
                    cell.alignment = Alignment(horizontal='right', vertical='center')

            ws.cell(row=row_num, column=8).fill = incoming_fill if entry.quantity > 0 else outgoing_fill
            net_movement += entry.quantity
            row_num += 1

        ws.freeze_panes = 'A2'

        row_num += 1
        label = ws.cell(row=row_num, column=7, value='NET MOVEMENT')
        total = ws.cell(row=row_num, column=8, value=float(net_movement))
        total.number_format = QUANTITY_FORMAT
        for cell in (label, total):
            cell.font = Font(name='Calibri', size=11, bold=True)
            cell.fill = summary_fill
            cell.border = border

        output = BytesIO()
        wb.save(output)
        output.seek(0)
        return output

    @staticmethod
    def _prepare(entries: QuerySet) -> QuerySet:
        return entries.select_related(
            'product', 'location__warehouse', 'document'
        ).order_by('created_at', 'id')

    @staticmethod
    def _row(entry: LedgerEntry, numeric=False):
        def quantity(value: Decimal):
            return float(value) if numeric else str(value)

        return [
            entry.created_at.strftime('%Y-%m-%d %H:%M:%S'),
            entry.reference,
            entry.get_entry_type_display(),
            entry.product.sku,
            entry.product.name,
            entry.location.full_code if entry.location else '',
            entry.document.partner if entry.document else '',
            quantity(entry.quantity),
            entry.product.unit_of_measure,
            quantity(entry.balance_before),
            quantity(entry.balance_after),
            entry.performed_by,
        ]
