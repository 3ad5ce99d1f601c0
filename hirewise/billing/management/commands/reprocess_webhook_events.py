"""
Management command to reprocess Stripe webhook events.

Picks up receipts whose reconciliation never completed:
- FAILED events (a permanent error was logged and alerted on)
- RECEIVED events older than --stale-minutes (the task was never enqueued,
  e.g. the broker was down when the webhook arrived)

Each event is reprocessed inline through the process_webhook_event task.

Usage:
    python manage.py reprocess_webhook_events
    python manage.py reprocess_webhook_events --dry-run
    python manage.py reprocess_webhook_events --event-id evt_123
    python manage.py reprocess_webhook_events --stale-minutes 60
"""

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError
from django.db.models import Q
from django.utils import timezone

from hirewise.billing.constants import WebhookEventStatus
from hirewise.billing.models import WebhookEvent
from hirewise.billing.tasks import process_webhook_event

DEFAULT_STALE_MINUTES = 15


class Command(BaseCommand):
    help = "Reprocess failed or stuck Stripe webhook events."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be reprocessed without reprocessing",
        )
        parser.add_argument(
            "--event-id",
            help="Reprocess a single event by its Stripe event id (evt_xxx)",
        )
        parser.add_argument(
            "--stale-minutes",
            type=int,
            default=DEFAULT_STALE_MINUTES,
            help="Age after which a RECEIVED event counts as stuck (default: 15)",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        event_id = options["event_id"]

        if event_id:
            events = WebhookEvent.objects.filter(stripe_event_id=event_id)
            if not events.exists():
                msg = f"No webhook event with id {event_id}"
                raise CommandError(msg)
            events = events.exclude(
                status__in=[WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED],
            )
        else:
            cutoff = timezone.now() - timedelta(minutes=options["stale_minutes"])
            events = WebhookEvent.objects.filter(
                Q(status=WebhookEventStatus.FAILED)
                | Q(status=WebhookEventStatus.RECEIVED, created__lt=cutoff),
            )

        events = events.order_by("created")
        count = events.count()

        if count == 0:
            self.stdout.write(self.style.SUCCESS("No webhook events to reprocess."))
            return

        if dry_run:
            for event in events:
                self.stdout.write(
                    f"  {event.stripe_event_id} {event.event_type} ({event.status})",
                )
            self.stdout.write(
                self.style.WARNING(
                    f"[DRY RUN] Would reprocess {count} webhook event(s)."
                )
            )
            return

        succeeded = 0
        for event in events:
            result = process_webhook_event.apply(args=[event.pk], throw=False)
            if result.successful():
                succeeded += 1
                self.stdout.write(f"  {event.stripe_event_id}: {result.result}")
            else:
                self.stderr.write(
                    f"  {event.stripe_event_id}: failed ({result.result!r})",
                )

        failed = count - succeeded
        style = self.style.SUCCESS if failed == 0 else self.style.WARNING
        self.stdout.write(
            style(f"Reprocessed {succeeded} webhook event(s), {failed} failed.")
        )
