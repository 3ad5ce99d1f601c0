"""
Stripe webhook endpoint.

The endpoint verifies the Stripe-Signature header, records a WebhookEvent
receipt and acknowledges immediately. Reconciliation happens in the
process_webhook_event Celery task, so Stripe never waits on it and a slow
or failing reconciliation never causes a redelivery storm.

Key events handled (see reconciliation.py):
- invoice.payment_succeeded: Activate or renew a subscription
- invoice.payment_failed: Record a failed charge attempt
- customer.subscription.deleted: Mark the subscription cancelled

Every other event type is acknowledged and ignored.

To test locally:
    stripe listen --forward-to localhost:8000/billing/webhooks/stripe/
"""

import json
import logging

import stripe
from django.conf import settings
from kombu.exceptions import OperationalError as BrokerOperationalError
from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from hirewise.billing.constants import WebhookEventStatus
from hirewise.billing.events import StripeEventEnvelope
from hirewise.billing.models import WebhookEvent
from hirewise.billing.tasks import process_webhook_event

logger = logging.getLogger(__name__)

# Signature failures go to a dedicated logger so they can be routed and
# alerted on separately from ordinary billing logs.
security_logger = logging.getLogger("hirewise.billing.security")

SIGNATURE_HEADER = "HTTP_STRIPE_SIGNATURE"


class StripeWebhookView(APIView):
    """
    Receive Stripe webhook events.

    URL: /billing/webhooks/stripe/
    Method: POST
    Authentication: Stripe signature (STRIPE_WEBHOOK_SECRET)

    Responses:
    - 200: Event recorded (or already handled)
    - 400: Missing or invalid signature, or malformed payload
    """

    # Stripe authenticates with a signature, not a session or token.
    authentication_classes = []
    permission_classes = []

    def post(self, request):
        signature = request.META.get(SIGNATURE_HEADER)
        if not signature:
            security_logger.warning(
                "Stripe webhook rejected: missing Stripe-Signature header (ip=%s)",
                request.META.get("REMOTE_ADDR"),
            )
            return Response(
                {"detail": "Missing signature"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
            return Response(
                {"detail": "Webhook endpoint not configured"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        try:
            payload = request.body.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                payload,
                signature,
                secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except (UnicodeDecodeError, stripe.SignatureVerificationError) as e:
            security_logger.warning(
                "Stripe webhook rejected: signature verification failed (ip=%s): %s",
                request.META.get("REMOTE_ADDR"),
                e,
            )
            return Response(
                {"detail": "Invalid signature"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            data = json.loads(payload)
            envelope = StripeEventEnvelope.model_validate(data)
        except (ValueError, ValidationError) as e:
            security_logger.warning("Stripe webhook rejected: malformed payload: %s", e)
            return Response(
                {"detail": "Malformed payload"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        event, created = WebhookEvent.objects.get_or_create(
            stripe_event_id=envelope.id,
            defaults={
                "event_type": envelope.type,
                "payload": data,
            },
        )

        if not created and event.status in (
            WebhookEventStatus.PROCESSED,
            WebhookEventStatus.IGNORED,
        ):
            logger.info(
                "Stripe event %s (%s) redelivered; already %s",
                envelope.id,
                envelope.type,
                event.status,
            )
            return Response({"received": True}, status=status.HTTP_200_OK)

        logger.info(
            "Received Stripe event %s (%s), new=%s",
            envelope.id,
            envelope.type,
            created,
        )

        try:
            process_webhook_event.delay(event.pk)
        except BrokerOperationalError:
            # The receipt stays RECEIVED; reprocess_webhook_events picks it up.
            logger.exception(
                "Could not enqueue Stripe event %s; left for reprocessing",
                envelope.id,
            )

        return Response({"received": True}, status=status.HTTP_200_OK)
