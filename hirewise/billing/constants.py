"""
Billing constants for employer subscriptions.

These enums define the plan tiers and the subscription/payment lifecycle
states used throughout the billing module, plus the Stripe event types the
reconciliation engine consumes.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class PlanTier(models.TextChoices):
    """
    Plan tiers an employer can subscribe to.

    Each tier maps to a Stripe Price via the STRIPE_PRICE_IDS setting.
    """

    TIER1 = "Tier1", _("Tier 1")
    TIER2 = "Tier2", _("Tier 2")
    TIER3 = "Tier3", _("Tier 3")


class SubscriptionStatus(models.TextChoices):
    """
    Subscription lifecycle states.

    Flow:
        (none) → ACTIVE (first successful invoice)
        ACTIVE → ACTIVE (renewal invoice)
        ACTIVE → EXPIRED (Stripe gave up collecting payment)
        ACTIVE → CANCELLED (grace-period cancellation or upstream deletion)

    EXPIRED and CANCELLED are terminal for a given Stripe subscription, but
    the employer may start a new checkout afterwards.
    """

    ACTIVE = "active", _("Active")
    EXPIRED = "expired", _("Expired")
    CANCELLED = "cancelled", _("Cancelled")


class PaymentStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    SUCCESS = "success", _("Success")
    FAILED = "failed", _("Failed")
    CANCELLED = "cancelled", _("Cancelled")


class WebhookEventStatus(models.TextChoices):
    """Processing state of a received Stripe webhook event."""

    RECEIVED = "received", _("Received")
    PROCESSED = "processed", _("Processed")
    IGNORED = "ignored", _("Ignored")
    FAILED = "failed", _("Failed")


class StripeEventType:
    """
    Stripe event types consumed by the reconciliation engine.

    invoice.payment_succeeded is the single source of truth for activation
    and renewal. invoice.paid fires for the same invoices and is not
    consumed.
    """

    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


# Stripe subscription statuses after which Stripe stops retrying payment.
TERMINAL_STRIPE_STATUSES = frozenset({"unpaid", "incomplete_expired", "canceled"})

# Stripe billing_reason for invoices generated by a renewal cycle
RENEWAL_BILLING_REASON = "subscription_cycle"

# Days after the first purchase during which cancellation is immediate
DEFAULT_CANCEL_GRACE_DAYS = 3
