# orders/management/commands/expire_pending_orders.py

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from orders.services.expiry import expire_stale_pending_orders


class Command(BaseCommand):
    help = "Cancel pending orders whose checkout was never completed (releases stock)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--minutes",
            type=int,
            default=None,
            help="Age threshold in minutes (default: ORDERS['PENDING_TTL_MINUTES']).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the orders that would be cancelled without changing anything.",
        )

    def handle(self, *args, **options):
        minutes = options.get("minutes")
        dry_run = bool(options.get("dry_run"))

        if minutes is not None and minutes < 0:
            raise CommandError("--minutes must be >= 0")

        report = expire_stale_pending_orders(minutes=minutes, dry_run=dry_run)

        heading = "Pending orders to expire (dry run)" if dry_run else "Expired pending orders"
        self.stdout.write(self.style.MIGRATE_HEADING(heading))
        self.stdout.write(f"Created before: {report.cutoff.isoformat()}")

        for number in report.expired:
            self.stdout.write(f"  {number}")

        if report.skipped:
            self.stdout.write(
                self.style.WARNING(f"Skipped (status changed meanwhile): {len(report.skipped)}")
            )

        self.stdout.write(self.style.SUCCESS(f"Total: {len(report.expired)}"))
