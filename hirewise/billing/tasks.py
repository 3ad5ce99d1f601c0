"""
Celery tasks for billing.

process_webhook_event runs the reconciliation engine for a Stripe event
whose receipt the webhook view has already recorded and acknowledged.
send_subscription_email delivers lifecycle notifications after the
reconciliation transaction commits.
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.db import OperationalError
from django.db.models import F
from django.utils import timezone

from hirewise.billing.constants import WebhookEventStatus
from hirewise.billing.exceptions import UpstreamError

logger = logging.getLogger(__name__)

# Exceptions that indicate transient failures worth retrying.
# Other exceptions (missing employer, bad payloads) should not retry.
RETRYABLE_EXCEPTIONS = (
    OperationalError,  # Database connection issues
    ConnectionError,  # Network issues
    TimeoutError,  # Timeouts
    UpstreamError,  # Stripe API unavailable or timed out
)


@shared_task(
    bind=True,
    name="hirewise.process_webhook_event",
    max_retries=5,
    default_retry_delay=30,
    retry_backoff=True,
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_webhook_event(self, webhook_event_id: int) -> str | None:
    """
    Apply a recorded Stripe event to local billing state.

    Args:
        self: Celery task instance (bound task).
        webhook_event_id: Primary key of the WebhookEvent receipt.

    Returns:
        The reconciliation outcome label, or None if there was nothing to do.
    """
    from hirewise.billing.models import WebhookEvent
    from hirewise.billing.reconciliation import ReconciliationEngine
    from hirewise.billing.reconciliation import ReconciliationOutcome
    from hirewise.billing.stripe_client import get_stripe_client

    event = WebhookEvent.objects.filter(pk=webhook_event_id).first()
    if event is None:
        logger.warning(
            "WebhookEvent %s not found; nothing to process",
            webhook_event_id,
        )
        return None
    if event.status in (WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED):
        logger.info(
            "Stripe event %s already %s; skipping",
            event.stripe_event_id,
            event.status,
        )
        return None

    WebhookEvent.objects.filter(pk=event.pk).update(attempts=F("attempts") + 1)

    logger.info(
        "Celery task: processing stripe_event_id=%s type=%s task_id=%s",
        event.stripe_event_id,
        event.event_type,
        self.request.id,
    )

    try:
        engine = ReconciliationEngine(client=get_stripe_client())
        outcome = engine.handle(event.event_type, event.data_object)
    except RETRYABLE_EXCEPTIONS as exc:
        if self.request.retries >= self.max_retries:
            _mark_event_failed(event, exc)
            logger.exception(
                "Celery task: retries exhausted stripe_event_id=%s task_id=%s",
                event.stripe_event_id,
                self.request.id,
            )
            raise
        # Transient errors - retry with exponential backoff
        logger.warning(
            "Celery task: transient error (will retry) stripe_event_id=%s "
            "task_id=%s retry=%s/%s error_type=%s",
            event.stripe_event_id,
            self.request.id,
            self.request.retries,
            self.max_retries,
            type(exc).__name__,
        )
        raise self.retry(exc=exc) from exc
    except Exception as exc:
        # Permanent errors - mark the receipt FAILED so the event shows up
        # for reprocess_webhook_events, and don't retry.
        _mark_event_failed(event, exc)
        logger.exception(
            "Celery task: permanent failure (no retry) stripe_event_id=%s "
            "type=%s task_id=%s error_type=%s",
            event.stripe_event_id,
            event.event_type,
            self.request.id,
            type(exc).__name__,
        )
        # Re-raise so Celery marks the task as failed
        raise

    status = (
        WebhookEventStatus.IGNORED
        if outcome == ReconciliationOutcome.IGNORED
        else WebhookEventStatus.PROCESSED
    )
    WebhookEvent.objects.filter(pk=event.pk).update(
        status=status,
        outcome=outcome.value,
        error_message="",
        processed_at=timezone.now(),
        modified=timezone.now(),
    )
    logger.info(
        "Celery task: stripe_event_id=%s outcome=%s",
        event.stripe_event_id,
        outcome.value,
    )
    return outcome.value


def _mark_event_failed(event, exception: Exception) -> None:
    from hirewise.billing.models import WebhookEvent

    WebhookEvent.objects.filter(pk=event.pk).update(
        status=WebhookEventStatus.FAILED,
        error_message=f"{type(exception).__name__}: {exception}"[:2000],
        modified=timezone.now(),
    )


@shared_task(
    bind=True,
    name="hirewise.send_subscription_email",
    max_retries=3,
    default_retry_delay=60,
)
def send_subscription_email(self, subscription_id: int, kind: str) -> bool:
    """
    Send a subscription lifecycle email.

    Failures are logged here and never touch billing state; the
    subscription and payment have already been committed.
    """
    from hirewise.billing.emails import send_subscription_email as send_email
    from hirewise.billing.models import Subscription

    subscription = (
        Subscription.objects.select_related("employer", "last_payment")
        .filter(pk=subscription_id)
        .first()
    )
    if subscription is None:
        logger.warning(
            "Cannot send subscription email: subscription %s not found",
            subscription_id,
        )
        return False

    try:
        return send_email(subscription, kind)
    except OSError as exc:
        # SMTP errors are OSErrors
        logger.warning(
            "Subscription email for %s failed (retry=%s/%s)",
            subscription_id,
            self.request.retries,
            self.max_retries,
        )
        if self.request.retries >= self.max_retries:
            logger.exception(
                "Giving up on subscription email for subscription %s",
                subscription_id,
            )
            return False
        raise self.retry(exc=exc) from exc
