"""
Django management command to seed a demo warehouse.

Creates the main warehouse with its locations and a product catalog. Opening
stock is brought in through a processed receipt, so every quantity is backed
by ledger entries. A few open deliveries and a transfer are added to show the
other statuses.

Usage:
    python manage.py seed_inventory
    python manage.py seed_inventory --clear  # Delete all inventory data first
"""

from decimal import Decimal

from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import transaction

from inventory.models import (
    LedgerEntry, LineItem, Location, MovementDocument, Product,
    ReferenceSequence, StockLevel, Warehouse
)
from inventory.services import DocumentService

PERFORMED_BY = 'seed_inventory'


class Command(BaseCommand):
    help = 'Seed a demo warehouse, products and documents (stock arrives through receipts)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Delete all inventory data (including the ledger) before seeding',
        )

    def handle(self, *args, **options):
        # Columns: sku, name, category, unit of measure, opening stock, reorder level
        products_data = [
            ('STL-001', 'Steel Rods', 'Raw Materials', 'kg', '1250', '200'),
            ('FUR-001', 'Office Chairs', 'Furniture', 'pcs', '45', '20'),
            ('ELC-001', 'Laptop Computers', 'Electronics', 'pcs', '12', '15'),
            ('RAW-001', 'Wooden Planks', 'Raw Materials', 'meters', '320', '100'),
            ('CHM-001', 'Paint (Blue)', 'Chemicals', 'liters', '8', '20'),
            ('HRD-001', 'Screws (M6)', 'Hardware', 'pcs', '0', '500'),
            ('ELC-002', 'LED Bulbs', 'Electronics', 'pcs', '150', '50'),
            ('FUR-002', 'Desk Tables', 'Furniture', 'pcs', '25', '10'),
            ('CHM-002', 'Motor Oil', 'Chemicals', 'liters', '5', '30'),
            ('HRD-002', 'Nails (3 inch)', 'Hardware', 'pcs', '850', '200'),
        ]

        if options['clear']:
            self._clear()

        with transaction.atomic():
            warehouse, created = Warehouse.objects.get_or_create(
                code=settings.INVENTORY_DEFAULT_WAREHOUSE_CODE,
                defaults={'name': 'Main Warehouse'}
            )
            if created:
                self.stdout.write(self.style.SUCCESS(f'Created warehouse: {warehouse}'))

            locations = {}
            for code, name in [('Stock1', 'Main Storage'), ('Rack1', 'Production Rack'), ('Ship1', 'Shipping Area')]:
                locations[code], _ = Location.objects.get_or_create(
                    warehouse=warehouse,
                    code=code,
                    defaults={'name': name}
                )
            self.stdout.write(self.style.SUCCESS(f'Locations: {", ".join(sorted(locations))}'))

            created_count = 0
            opening_lines = []
            for sku, name, category, uom, stock, reorder_level in products_data:
                product, created = Product.objects.get_or_create(
                    sku=sku,
                    defaults={
                        'name': name,
                        'category': category,
                        'unit_of_measure': uom,
                        'reorder_level': Decimal(reorder_level),
                    }
                )
                if created:
                    created_count += 1
                    if Decimal(stock) > 0:
                        opening_lines.append({'product': product, 'quantity': Decimal(stock)})
                    self.stdout.write(self.style.SUCCESS(f'✓ Created: {sku} - {name}'))
                else:
                    self.stdout.write(self.style.WARNING(f'↻ Exists: {sku} - {name} (stock left unchanged)'))

            if opening_lines:
                receipt = DocumentService.create_document(
                    kind=MovementDocument.Kind.RECEIPT,
                    destination_location=locations['Stock1'],
                    partner='Opening Stock',
                    notes='Opening balances',
                    created_by=PERFORMED_BY,
                    lines=opening_lines,
                )
                DocumentService.validate(receipt, PERFORMED_BY)
                DocumentService.process(receipt, PERFORMED_BY)
                self.stdout.write(self.style.SUCCESS(f'Processed opening receipt {receipt.reference}'))

            if created_count:
                self._create_open_documents(locations)

        self.stdout.write(self.style.SUCCESS('\n' + '=' * 70))
        self.stdout.write(self.style.SUCCESS('SEED SUMMARY'))
        self.stdout.write(self.style.SUCCESS('=' * 70))
        self.stdout.write(self.style.SUCCESS(f'Products created: {created_count}'))
        self.stdout.write(self.style.SUCCESS(f'Documents: {MovementDocument.objects.count()}'))
        self.stdout.write(self.style.SUCCESS(f'Ledger entries: {LedgerEntry.objects.count()}'))
        self.stdout.write(self.style.SUCCESS('=' * 70))

    def _create_open_documents(self, locations):
        """A delivery in each pre-commit status and a transfer in transit."""
        steel = Product.objects.get(sku='STL-001')
        chairs = Product.objects.get(sku='FUR-001')
        bulbs = Product.objects.get(sku='ELC-002')

        draft = DocumentService.create_document(
            kind=MovementDocument.Kind.DELIVERY,
            source_location=locations['Stock1'],
            partner='ABC Manufacturing',
            created_by=PERFORMED_BY,
            lines=[{'product': steel, 'quantity': Decimal('30')}],
        )

        waiting = DocumentService.create_document(
            kind=MovementDocument.Kind.DELIVERY,
            source_location=locations['Stock1'],
            partner='Furniture Outlet',
            created_by=PERFORMED_BY,
            lines=[{'product': chairs, 'quantity': Decimal('10')}],
        )
        DocumentService.submit(waiting, PERFORMED_BY)

        ready = DocumentService.create_document(
            kind=MovementDocument.Kind.DELIVERY,
            source_location=locations['Stock1'],
            partner='Lighting Store',
            created_by=PERFORMED_BY,
            lines=[{'product': bulbs, 'quantity': Decimal('40')}],
        )
        DocumentService.submit(ready, PERFORMED_BY)
        DocumentService.validate(ready, PERFORMED_BY)

        transfer = DocumentService.create_document(
            kind=MovementDocument.Kind.TRANSFER,
            source_location=locations['Stock1'],
            destination_location=locations['Rack1'],
            notes='Restock production rack',
            created_by=PERFORMED_BY,
            lines=[{'product': steel, 'quantity': Decimal('100')}],
        )
        DocumentService.start(transfer, PERFORMED_BY)

        for document in (draft, waiting, ready, transfer):
            self.stdout.write(self.style.SUCCESS(f'Created {document.reference}'))

    def _clear(self):
        """Delete inventory data in dependency order."""
        ledger_count = LedgerEntry.objects.count()
        with transaction.atomic():
            # Queryset delete skips LedgerEntry.delete(), which refuses single deletions
            LedgerEntry.objects.all().delete()
            LineItem.objects.all().delete()
            MovementDocument.objects.all().delete()
            StockLevel.objects.all().delete()
            Product.objects.all().delete()
            ReferenceSequence.objects.all().delete()
            Location.objects.all().delete()
            Warehouse.objects.all().delete()
        self.stdout.write(
            self.style.WARNING(f'Deleted all inventory data ({ledger_count} ledger entries)')
        )
