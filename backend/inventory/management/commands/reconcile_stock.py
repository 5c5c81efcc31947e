"""
Django management command to check cached stock against the ledger.

Usage:
    python manage.py reconcile_stock
    python manage.py reconcile_stock --sku STL-001   # One product, with per-location detail

Exits with an error when any cached quantity differs from its ledger replay.
Nothing is corrected.
"""

from django.core.management.base import BaseCommand, CommandError

from inventory.models import Product
from inventory.services import ReconciliationService


class Command(BaseCommand):
    help = 'Compare Product.on_hand and StockLevel quantities with the stock ledger'

    def add_arguments(self, parser):
        parser.add_argument(
            '--sku',
            help='Check a single product by SKU',
        )

    def handle(self, *args, **options):
        if options['sku']:
            self._check_one(options['sku'])
            return

        report = ReconciliationService.generate_report()

        self.stdout.write('=' * 70)
        self.stdout.write('STOCK RECONCILIATION')
        self.stdout.write('=' * 70)
        self.stdout.write(f"Products checked:     {report['products_checked']}")
        self.stdout.write(f"Stock levels checked: {report['stock_levels_checked']}")
        self.stdout.write(f"Ledger entries:       {report['ledger_entries']}")

        for flagged in report['over_reserved']:
            self.stdout.write(self.style.WARNING(
                f"Over-reserved: {flagged['sku']} on hand {flagged['on_hand']}, reserved {flagged['reserved']}"
            ))

        if report['consistent']:
            self.stdout.write(self.style.SUCCESS('✓ Ledger and cached stock agree'))
            return

        for mismatch in report['mismatches']:
            self.stdout.write(self.style.ERROR(
                f"✗ {mismatch['sku']} at {mismatch['location'] or 'product level'}: "
                f"cached {mismatch['cached']}, ledger {mismatch['ledger']} "
                f"(difference {mismatch['difference']})"
            ))
        raise CommandError(f"{len(report['mismatches'])} reconciliation mismatch(es) found")

    def _check_one(self, sku):
        try:
            product = Product.objects.get(sku=sku)
        except Product.DoesNotExist:
            raise CommandError(f'Product {sku} does not exist')

        result = ReconciliationService.check_product(product)
        self.stdout.write(f"{product.sku}: on hand {result['on_hand']}, ledger {result['ledger_balance']}")
        for location in result['locations']:
            style = self.style.SUCCESS if location['consistent'] else self.style.ERROR
            self.stdout.write(style(
                f"  {location['location']}: {location['quantity']} (ledger {location['ledger_balance']})"
            ))

        if not result['consistent']:
            raise CommandError(f'{product.sku} does not match its ledger')
        self.stdout.write(self.style.SUCCESS('✓ Consistent'))
