# payments/management/commands/replay_payment_events.py

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from payments.models import PaymentEvent
from payments.services.events import parse_event
from payments.services.exceptions import MalformedEvent
from payments.services.reconciler import process_event

REPLAYABLE = (
    PaymentEvent.STATUS_RECEIVED,
    PaymentEvent.STATUS_UNMATCHED,
    PaymentEvent.STATUS_NEEDS_REVIEW,
)


class Command(BaseCommand):
    help = "Re-apply stored webhook events that were not settled (unmatched / needs review)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--status",
            choices=REPLAYABLE,
            default=None,
            help="Only replay events in this inbox status (default: all unsettled).",
        )
        parser.add_argument(
            "--event-id",
            default=None,
            help="Replay a single provider event id.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the events that would be replayed without applying them.",
        )

    def handle(self, *args, **options):
        qs = PaymentEvent.objects.filter(status__in=REPLAYABLE).order_by("received_at")

        if options.get("status"):
            qs = qs.filter(status=options["status"])

        event_id = options.get("event_id")
        if event_id:
            qs = PaymentEvent.objects.filter(external_id=event_id)
            if not qs.exists():
                raise CommandError(f"No stored event with id {event_id!r}")

        dry_run = bool(options.get("dry_run"))
        heading = "Payment events to replay (dry run)" if dry_run else "Replayed payment events"
        self.stdout.write(self.style.MIGRATE_HEADING(heading))

        replayed = 0
        for inbox in qs.iterator():
            if dry_run:
                self.stdout.write(f"  {inbox.external_id}  {inbox.event_type}  {inbox.status}")
                continue

            try:
                event = parse_event(inbox.payload or {})
            except MalformedEvent as exc:
                self.stdout.write(self.style.WARNING(f"  {inbox.external_id}: {exc}"))
                continue

            result = process_event(event, payload=inbox.payload)
            replayed += 1
            self.stdout.write(f"  {inbox.external_id}  {result.outcome}  {result.detail}")

        self.stdout.write(self.style.SUCCESS(f"Total: {replayed}"))
