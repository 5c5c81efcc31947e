"""
PDF Report Generation Service

Generates printable PDFs with ReportLab:
- a slip for a receipt, delivery or transfer (lines, partner, signatures)
- the stock reconciliation report
"""

from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.enums import TA_CENTER
from django.utils import timezone
import logging

from inventory.models import MovementDocument, ZERO
from inventory.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

SLIP_TITLES = {
    MovementDocument.Kind.RECEIPT: ('RECEIPT', 'Receive From'),
    MovementDocument.Kind.DELIVERY: ('DELIVERY ORDER', 'Deliver To'),
    MovementDocument.Kind.TRANSFER: ('INTERNAL TRANSFER', 'Notes'),
}

HEADER_ROW_STYLE = [
    ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#4a5568')),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('FONTSIZE', (0, 0), (-1, -1), 10),
    ('BOTTOMPADDING', (0, 0), (-1, -1), 8),
    ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#cbd5e0')),
]


class PDFReportService:
    """
    Service for generating PDF documents.

    Provides methods to:
    - Generate a printable slip for a movement document
    - Generate the reconciliation report
    """

    @staticmethod
    def generate_document_pdf(document: MovementDocument) -> BytesIO:
        """
        Generate a printable slip for a movement document.

        Args:
            document: MovementDocument instance

        Returns:
            BytesIO object containing the PDF
        """
        logger.info(f"Generating PDF slip for {document.reference}")

        buffer = BytesIO()
        doc = PDFReportService._template(buffer)
        styles = PDFReportService._styles()
        title, partner_label = SLIP_TITLES[MovementDocument.Kind(document.kind)]

        elements = [
            Paragraph(f"{title}<br/>{document.reference}", styles['title']),
            Spacer(1, 12),
        ]

        partner = document.partner if document.kind != MovementDocument.Kind.TRANSFER else document.notes
        details = [
            [f'{partner_label}:', partner or '-'],
            ['Scheduled Date:', document.scheduled_date.strftime('%Y-%m-%d')],
            ['Status:', document.get_status_display()],
            ['Responsible:', document.created_by or '-'],
        ]
        if document.source_location:
            details.append(['From:', document.source_location.full_code])
        if document.destination_location:
            details.append(['To:', document.destination_location.full_code])

        details_table = Table(details, colWidths=[2*inch, 4*inch])
        details_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (0, -1), colors.HexColor('#f7fafc')),
            ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#2d3748')),
            ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#e2e8f0')),
        ]))
        elements.append(details_table)
        elements.append(Spacer(1, 20))

        # Line items
        line_data = [['SKU', 'Product', 'Quantity']]
        total = ZERO
        for item in document.line_items.select_related('product'):
            line_data.append([
                item.product.sku,
                item.product.name,
                f"{PDFReportService._format_quantity(item.quantity)} {item.product.unit_of_measure}",
            ])
            total += item.quantity
        line_data.append(['', 'Total', PDFReportService._format_quantity(total)])

        line_table = Table(line_data, colWidths=[1.5*inch, 3*inch, 1.5*inch])
        line_table.setStyle(TableStyle(HEADER_ROW_STYLE + [
            ('ALIGN', (2, 0), (2, -1), 'RIGHT'),
            ('BACKGROUND', (0, -1), (-1, -1), colors.HexColor('#e2e8f0')),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ]))
        elements.append(line_table)

        # Signatures
        elements.append(Spacer(1, 60))
        signature_table = Table(
            [['_' * 30, '_' * 30], ['Prepared by (Signature)', 'Received by (Signature)']],
            colWidths=[3*inch, 3*inch]
        )
        signature_table.setStyle(TableStyle([
            ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
        ]))
        elements.append(signature_table)
        elements.append(PDFReportService._footer(styles))

        doc.build(elements)
        buffer.seek(0)
        return buffer

    @staticmethod
    def generate_reconciliation_pdf() -> BytesIO:
        """
        Generate the stock reconciliation report as PDF.

        Returns:
            BytesIO object containing the PDF
        """
        logger.info("Generating PDF reconciliation report")
        report = ReconciliationService.generate_report()

        buffer = BytesIO()
        doc = PDFReportService._template(buffer)
        styles = PDFReportService._styles()

        elements = [
            Paragraph("Stock Reconciliation Report", styles['title']),
            Spacer(1, 12),
        ]

        summary_data = [
            ['Metric', 'Value'],
            ['Products checked', str(report['products_checked'])],
            ['Stock levels checked', str(report['stock_levels_checked'])],
            ['Ledger entries', str(report['ledger_entries'])],
            ['Mismatches', str(len(report['mismatches']))],
            ['Over-reserved products', str(len(report['over_reserved']))],
            ['Result', 'Consistent' if report['consistent'] else 'MISMATCH'],
        ]
        summary_table = Table(summary_data, colWidths=[3*inch, 3*inch])
        summary_table.setStyle(TableStyle(HEADER_ROW_STYLE + [
            ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
            ('BACKGROUND', (0, 1), (-1, -1), colors.beige),
        ]))
        elements.append(summary_table)
        elements.append(Spacer(1, 20))

        if report['mismatches']:
            elements.append(Paragraph("Mismatches", styles['heading']))
            mismatch_data = [['SKU', 'Location', 'Cached', 'Ledger', 'Difference']]
            for mismatch in report['mismatches']:
                mismatch_data.append([
                    mismatch['sku'],
                    mismatch['location'] or 'Product total',
                    mismatch['cached'],
                    mismatch['ledger'],
                    mismatch['difference'],
                ])
            mismatch_table = Table(mismatch_data, colWidths=[1.2*inch, 1.6*inch, 1.1*inch, 1.1*inch, 1.1*inch])
            mismatch_table.setStyle(TableStyle(HEADER_ROW_STYLE + [
                ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
                ('TEXTCOLOR', (4, 1), (4, -1), colors.HexColor('#c53030')),
            ]))
            elements.append(mismatch_table)
            elements.append(Spacer(1, 20))

        if report['over_reserved']:
            elements.append(Paragraph("Over-reserved Products", styles['heading']))
            reserved_data = [['SKU', 'On Hand', 'Reserved']]
            for flagged in report['over_reserved']:
                reserved_data.append([flagged['sku'], flagged['on_hand'], flagged['reserved']])
            reserved_table = Table(reserved_data, colWidths=[2*inch, 2*inch, 2*inch])
            reserved_table.setStyle(TableStyle(HEADER_ROW_STYLE))
            elements.append(reserved_table)

        elements.append(PDFReportService._footer(styles))

        doc.build(elements)
        buffer.seek(0)
        return buffer

    @staticmethod
    def _template(buffer):
        return SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=72,
            leftMargin=72,
            topMargin=72,
            bottomMargin=18,
        )

    @staticmethod
    def _styles():
        styles = getSampleStyleSheet()
        return {
            'title': ParagraphStyle(
                'CustomTitle',
                parent=styles['Heading1'],
                fontSize=20,
                textColor=colors.HexColor('#1a202c'),
                spaceAfter=30,
                alignment=TA_CENTER
            ),
            'heading': ParagraphStyle(
                'CustomHeading',
                parent=styles['Heading2'],
                fontSize=14,
                textColor=colors.HexColor('#2d3748'),
                spaceAfter=12,
                spaceBefore=12
            ),
            'footer': ParagraphStyle(
                'Footer',
                parent=styles['Normal'],
                fontSize=8,
                textColor=colors.HexColor('#a0aec0'),
                alignment=TA_CENTER
            ),
        }

    @staticmethod
    def _footer(styles):
        return Paragraph(
            f"<i>Generated by the warehouse inventory system on {timezone.now().strftime('%Y-%m-%d %H:%M:%S')}</i>",
            styles['footer']
        )

    @staticmethod
    def _format_quantity(quantity) -> str:
        """Format a quantity without trailing zeros (e.g. 12.500 -> 12.5)."""
        text = f"{quantity:,.3f}".rstrip('0').rstrip('.')
        return text or '0'
