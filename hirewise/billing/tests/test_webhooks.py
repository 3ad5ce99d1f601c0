"""
Tests for the Stripe webhook endpoint.

Requests are signed the same way Stripe signs them, with the test
STRIPE_WEBHOOK_SECRET, so the real signature check runs.
"""

import hashlib
import hmac
import json
import time
from unittest.mock import MagicMock
from unittest.mock import patch

from django.test import TestCase
from django.test import override_settings
from django.urls import reverse
from kombu.exceptions import OperationalError as BrokerOperationalError

from hirewise.billing.constants import SubscriptionStatus
from hirewise.billing.constants import WebhookEventStatus
from hirewise.billing.models import Payment
from hirewise.billing.models import Subscription
from hirewise.billing.models import WebhookEvent
from hirewise.billing.tasks import process_webhook_event
from hirewise.billing.tests.factories import WebhookEventFactory
from hirewise.billing.tests.factories import make_event
from hirewise.billing.tests.factories import make_invoice
from hirewise.billing.tests.factories import make_stripe_subscription
from hirewise.employers.tests.factories import EmployerFactory

WEBHOOK_SECRET = "whsec_dummy_test_secret"  # noqa: S105


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a Stripe-Signature header for payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class StripeWebhookViewTests(TestCase):
    """Tests for StripeWebhookView."""

    def setUp(self):
        self.url = reverse("billing:stripe-webhook")

    def post_event(self, event: dict, signature=None):
        payload = json.dumps(event)
        headers = {}
        if signature is not False:
            headers["HTTP_STRIPE_SIGNATURE"] = signature or sign(payload)
        return self.client.post(
            self.url,
            data=payload,
            content_type="application/json",
            **headers,
        )

    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_valid_event_is_recorded_and_enqueued(self, mock_task):
        """A verified event gets a receipt and is handed to the task."""
        event = make_event("invoice.payment_succeeded", make_invoice())

        response = self.post_event(event)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"received": True})
        receipt = WebhookEvent.objects.get(stripe_event_id="evt_test_1")
        self.assertEqual(receipt.event_type, "invoice.payment_succeeded")
        self.assertEqual(receipt.status, WebhookEventStatus.RECEIVED)
        self.assertEqual(receipt.data_object["id"], "in_test_1")
        mock_task.delay.assert_called_once_with(receipt.pk)

    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_missing_signature_is_rejected(self, mock_task):
        """Requests without a Stripe-Signature header are rejected."""
        event = make_event("invoice.payment_succeeded", make_invoice())

        response = self.post_event(event, signature=False)

        self.assertEqual(response.status_code, 400)
        self.assertFalse(WebhookEvent.objects.exists())
        mock_task.delay.assert_not_called()

    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_wrong_secret_is_rejected(self, mock_task):
        """A signature made with another secret fails verification."""
        event = make_event("invoice.payment_succeeded", make_invoice())
        payload = json.dumps(event)

        response = self.post_event(
            event,
            signature=sign(payload, secret="whsec_attacker"),  # noqa: S106
        )

        self.assertEqual(response.status_code, 400)
        self.assertFalse(WebhookEvent.objects.exists())
        mock_task.delay.assert_not_called()

    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_tampered_payload_is_rejected(self, mock_task):
        """The signature covers the body; changing it breaks verification."""
        original = make_event("invoice.payment_succeeded", make_invoice())
        signature = sign(json.dumps(original))
        tampered = make_event(
            "invoice.payment_succeeded",
            make_invoice(amount_paid=1),
        )

        response = self.post_event(tampered, signature=signature)

        self.assertEqual(response.status_code, 400)
        self.assertFalse(WebhookEvent.objects.exists())

    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_old_timestamp_is_rejected(self, mock_task):
        """Replayed requests outside the tolerance window are rejected."""
        event = make_event("invoice.payment_succeeded", make_invoice())
        payload = json.dumps(event)

        response = self.post_event(
            event,
            signature=sign(payload, timestamp=int(time.time()) - 3600),
        )

        self.assertEqual(response.status_code, 400)
        self.assertFalse(WebhookEvent.objects.exists())

    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_malformed_payload_is_rejected(self, mock_task):
        """A signed body that is not a Stripe event is rejected."""
        response = self.post_event({"hello": "world"})

        self.assertEqual(response.status_code, 400)
        self.assertFalse(WebhookEvent.objects.exists())
        mock_task.delay.assert_not_called()

    @override_settings(STRIPE_WEBHOOK_SECRET="")
    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_unconfigured_secret_rejects_everything(self, mock_task):
        """Without a webhook secret nothing can be verified."""
        event = make_event("invoice.payment_succeeded", make_invoice())

        response = self.post_event(event)

        self.assertEqual(response.status_code, 500)
        self.assertFalse(WebhookEvent.objects.exists())

    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_redelivered_processed_event_is_not_enqueued(self, mock_task):
        """Stripe redeliveries of handled events are acknowledged only."""
        WebhookEventFactory(
            stripe_event_id="evt_test_1",
            status=WebhookEventStatus.PROCESSED,
        )
        event = make_event("invoice.payment_succeeded", make_invoice())

        response = self.post_event(event)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(WebhookEvent.objects.count(), 1)
        mock_task.delay.assert_not_called()

    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_redelivered_failed_event_is_enqueued_again(self, mock_task):
        """A redelivery is another chance to process a failed event."""
        receipt = WebhookEventFactory(
            stripe_event_id="evt_test_1",
            status=WebhookEventStatus.FAILED,
        )
        event = make_event("invoice.payment_succeeded", make_invoice())

        response = self.post_event(event)

        self.assertEqual(response.status_code, 200)
        mock_task.delay.assert_called_once_with(receipt.pk)

    @patch("hirewise.billing.webhooks.process_webhook_event")
    def test_broker_outage_still_acknowledges(self, mock_task):
        """If the task can't be enqueued the receipt waits for reprocessing."""
        mock_task.delay.side_effect = BrokerOperationalError("broker down")
        event = make_event("invoice.payment_succeeded", make_invoice())

        response = self.post_event(event)

        self.assertEqual(response.status_code, 200)
        receipt = WebhookEvent.objects.get(stripe_event_id="evt_test_1")
        self.assertEqual(receipt.status, WebhookEventStatus.RECEIVED)

    def test_get_is_not_allowed(self):
        """Only POST is accepted."""
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 405)


class StripeWebhookEndToEndTests(TestCase):
    """
    Webhook through to reconciliation, with Celery running eagerly.

    Only the Stripe API client is mocked.
    """

    def setUp(self):
        self.url = reverse("billing:stripe-webhook")
        self.employer = EmployerFactory(stripe_customer_id="cus_test_1")
        self.stripe_client = MagicMock()
        self.stripe_client.subscriptions.retrieve.return_value = (
            make_stripe_subscription()
        )
        patcher = patch(
            "hirewise.billing.stripe_client.get_stripe_client",
            return_value=self.stripe_client,
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def post_event(self, event: dict):
        payload = json.dumps(event)
        return self.client.post(
            self.url,
            data=payload,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=sign(payload),
        )

    def test_first_payment_activates_subscription(self):
        """invoice.payment_succeeded creates the subscription and payment."""
        event = make_event("invoice.payment_succeeded", make_invoice())

        response = self.post_event(event)

        self.assertEqual(response.status_code, 200)
        subscription = Subscription.objects.get(employer=self.employer)
        self.assertEqual(subscription.status, SubscriptionStatus.ACTIVE)
        self.assertEqual(Payment.objects.count(), 1)
        receipt = WebhookEvent.objects.get(stripe_event_id="evt_test_1")
        self.assertEqual(receipt.status, WebhookEventStatus.PROCESSED)
        self.assertEqual(receipt.outcome, "applied")

    def test_redelivery_changes_nothing(self):
        """The same event delivered twice produces one payment."""
        event = make_event("invoice.payment_succeeded", make_invoice())

        self.post_event(event)
        response = self.post_event(event)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Payment.objects.count(), 1)
        self.assertEqual(Subscription.objects.count(), 1)

    def test_same_invoice_in_new_event_is_duplicate(self):
        """A second event for an already-recorded invoice is a no-op."""
        self.post_event(make_event("invoice.payment_succeeded", make_invoice()))

        self.post_event(
            make_event(
                "invoice.payment_succeeded",
                make_invoice(),
                event_id="evt_test_2",
            ),
        )

        self.assertEqual(Payment.objects.count(), 1)
        receipt = WebhookEvent.objects.get(stripe_event_id="evt_test_2")
        self.assertEqual(receipt.outcome, "duplicate")

    def test_unhandled_event_type_is_ignored(self):
        """Events outside the consumed set are acknowledged and ignored."""
        response = self.post_event(make_event("invoice.paid", make_invoice()))

        self.assertEqual(response.status_code, 200)
        receipt = WebhookEvent.objects.get(stripe_event_id="evt_test_1")
        self.assertEqual(receipt.status, WebhookEventStatus.IGNORED)
        self.assertFalse(Payment.objects.exists())

    def test_reconciliation_failure_after_acknowledgement(self):
        """Stripe still gets 200 when the task fails; the receipt is FAILED."""
        # Let the eager task fail the way a worker would, without raising
        # into the request
        conf = process_webhook_event.app.conf
        self.addCleanup(
            setattr,
            conf,
            "task_eager_propagates",
            conf.task_eager_propagates,
        )
        conf.task_eager_propagates = False
        self.stripe_client.subscriptions.retrieve.return_value = (
            make_stripe_subscription(customer="cus_unknown")
        )
        event = make_event(
            "invoice.payment_succeeded",
            make_invoice(customer="cus_unknown"),
        )

        with self.assertLogs("hirewise.billing.tasks", level="ERROR"):
            response = self.post_event(event)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"received": True})
        receipt = WebhookEvent.objects.get(stripe_event_id="evt_test_1")
        self.assertEqual(receipt.status, WebhookEventStatus.FAILED)
        self.assertTrue(receipt.error_message.startswith("NotFoundError:"))
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(Subscription.objects.exists())
