"""
Billing models for employer subscriptions.

Key design decisions:
- Subscription rows are never deleted, only status-transitioned
- At most one ACTIVE Subscription per employer, enforced by a conditional
  unique constraint rather than by application code alone
- Payment is an append-mostly ledger keyed by the Stripe charge reference
- WebhookEvent records every verified Stripe event before it is processed,
  so failures after acknowledgement can be found and replayed

Relationship: Employer ──1:N── Subscription ──1:N── Payment
"""

from django.db import models
from django.db.models import Q
from model_utils.models import TimeStampedModel

from hirewise.billing.constants import PaymentStatus
from hirewise.billing.constants import PlanTier
from hirewise.billing.constants import SubscriptionStatus
from hirewise.billing.constants import WebhookEventStatus


class Subscription(TimeStampedModel):
    """
    An employer's recurring subscription, mirrored from Stripe.

    Created on the first successful invoice for a Stripe subscription (an
    abandoned checkout never produces a row). Renewals, failures and
    cancellations mutate the same row, keyed by stripe_subscription_id.

    Usage:
        subscription = Subscription.objects.get(
            stripe_subscription_id=stripe_sub_id,
        )
        if subscription.is_within_grace_period(timezone.now()):
            ...
    """

    employer = models.ForeignKey(
        "employers.Employer",
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )
    plan_tier = models.CharField(
        max_length=20,
        choices=PlanTier.choices,
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE,
    )
    auto_renewal = models.BooleanField(
        default=True,
        help_text="Whether Stripe will bill again at the end of the period.",
    )

    # Stripe integration
    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx).",
    )

    # Billing period tracking
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the paid period. Only ever moves forward.",
    )

    # Policy anchors, set once on first activation
    year_anchor_date = models.DateTimeField(
        help_text="First purchase + 1 year. Auto-renewal cannot be resumed after.",
    )
    cancel_grace_deadline = models.DateTimeField(
        help_text="Cancelling before this is immediate and unbilled.",
    )

    renewal_count = models.PositiveIntegerField(default=0)
    last_payment_amount_cents = models.IntegerField(default=0)
    last_payment = models.ForeignKey(
        "billing.Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    last_payment_attempt_failed = models.BooleanField(default=False)
    applied_promotion_code = models.CharField(max_length=255, blank=True)
    hosted_invoice_url = models.URLField(max_length=1000, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["employer"],
                condition=Q(status=SubscriptionStatus.ACTIVE),
                name="uq_billing_one_active_subscription_per_employer",
            ),
        ]
        indexes = [
            models.Index(
                fields=["employer", "status"],
                name="billing_sub_employe_2f1c3a_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.employer} - {self.plan_tier} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def is_within_grace_period(self, now) -> bool:
        return now <= self.cancel_grace_deadline

    def is_past_year_anchor(self, now) -> bool:
        return now > self.year_anchor_date


class Payment(TimeStampedModel):
    """
    Ledger entry for one Stripe charge attempt.

    stripe_charge_ref is the idempotency key for webhook processing: a
    second notification for the same charge finds the existing row and
    stops. Amounts are stored in cents.
    """

    employer = models.ForeignKey(
        "employers.Employer",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
    )
    stripe_charge_ref = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Invoice ID (in_xxx) for successful charges.",
    )
    gross_amount_cents = models.IntegerField(default=0)
    discount_amount_cents = models.IntegerField(default=0)
    net_amount_cents = models.IntegerField(default=0)
    currency = models.CharField(max_length=3, blank=True)
    period_start = models.DateTimeField(null=True, blank=True)
    period_end = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    is_renewal = models.BooleanField(default=False)
    promotion_code = models.CharField(max_length=255, blank=True)
    receipt_url = models.URLField(max_length=1000, blank=True)

    class Meta:
        ordering = ["-created"]

    def __str__(self) -> str:
        return f"{self.stripe_charge_ref} ({self.status})"


class WebhookEvent(TimeStampedModel):
    """
    Receipt for a verified Stripe webhook event.

    The webhook endpoint stores a receipt and acknowledges Stripe before any
    reconciliation runs. Stripe only redelivers when the acknowledgement is
    missing, so a reconciliation failure after that point is recorded here
    (status FAILED) and replayed by the reprocess_webhook_events command.
    """

    stripe_event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100, db_index=True)
    payload = models.JSONField(default=dict)
    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.RECEIVED,
    )
    outcome = models.CharField(max_length=20, blank=True)
    error_message = models.TextField(blank=True)
    attempts = models.PositiveIntegerField(default=0)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created"]
        indexes = [
            models.Index(
                fields=["status", "created"],
                name="billing_web_status_8d0e4b_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} {self.stripe_event_id} ({self.status})"

    @property
    def data_object(self) -> dict:
        return (self.payload.get("data") or {}).get("object") or {}
