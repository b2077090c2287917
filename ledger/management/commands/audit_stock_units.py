from django.core.management.base import BaseCommand, CommandError

from common.utils import parse_uuid
from ledger.activity import find_quantity_drift


class Command(BaseCommand):
    help = (
        "Audit stock unit quantities by comparing initial minus remaining quantity "
        "with the sum of committed goods outward lines."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--warehouse",
            default=None,
            help="Only audit stock units in this warehouse (UUID).",
        )

    def handle(self, *args, **options):
        warehouse_id = None
        if options["warehouse"]:
            warehouse_id = parse_uuid(options["warehouse"])
            if warehouse_id is None:
                raise CommandError(f"Invalid warehouse id: {options['warehouse']!r}")

        scope = f"warehouse {warehouse_id}" if warehouse_id else "all warehouses"
        self.stdout.write(self.style.MIGRATE_HEADING(f"Stock unit quantity audit for {scope}"))

        drift = find_quantity_drift(warehouse_id)
        if not drift:
            self.stdout.write(self.style.SUCCESS("No quantity drift detected."))
            return

        for row in drift:
            self.stdout.write(
                self.style.WARNING(
                    f"  - unit {row['stock_unit_id']} (product {row['product_id']} #{row['sequence_number']}): "
                    f"consumed {row['consumed']} but dispatched {row['dispatched']}"
                )
            )
        raise CommandError(f"Detected quantity drift on {len(drift)} stock unit(s).")
