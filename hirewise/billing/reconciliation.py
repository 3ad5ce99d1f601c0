"""
Reconciliation of Stripe webhook events into local billing state.

Stripe delivers events at least once and in no guaranteed order. Each
handler here maps one event type to an idempotent state transition on the
Subscription and Payment ledger:

- invoice.payment_succeeded: record the Payment, then activate a new
  Subscription (first payment) or renew the existing one
- invoice.payment_failed: record the failed attempt and expire the
  Subscription if Stripe has given up collecting
- customer.subscription.deleted: mark the Subscription cancelled

Key design decisions:
- The Stripe charge reference is the idempotency key; a Payment that
  already exists for it means the event was seen before
- Only Stripe-issued references are trusted (customer, subscription and
  invoice ids), never client-supplied identifiers
- Payment creation, Subscription upsert and the employer back-reference
  are one atomic commit; a failure part way leaves none of them visible
- Side effects (emails) are enqueued with transaction.on_commit and can
  never roll back the ledger
"""

from __future__ import annotations

import logging
from datetime import timedelta
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING

import stripe
from django.conf import settings
from django.db import IntegrityError
from django.db import transaction
from django.utils import timezone

from hirewise.billing.constants import DEFAULT_CANCEL_GRACE_DAYS
from hirewise.billing.constants import PaymentStatus
from hirewise.billing.constants import StripeEventType
from hirewise.billing.constants import SubscriptionStatus
from hirewise.billing.constants import TERMINAL_STRIPE_STATUSES
from hirewise.billing.emails import ACTIVATED
from hirewise.billing.emails import RENEWED
from hirewise.billing.events import InvoiceDetails
from hirewise.billing.events import parse_invoice
from hirewise.billing.events import resolve_plan_tier
from hirewise.billing.exceptions import BillingValidationError
from hirewise.billing.exceptions import NotFoundError
from hirewise.billing.exceptions import UpstreamError
from hirewise.billing.models import Payment
from hirewise.billing.models import Subscription
from hirewise.billing.tasks import send_subscription_email
from hirewise.employers.models import Employer

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from stripe import StripeClient

    from hirewise.billing.constants import PlanTier

logger = logging.getLogger(__name__)


class ReconciliationOutcome(str, Enum):
    """What handling an event did to local state."""

    APPLIED = "applied"  # State changed
    DUPLICATE = "duplicate"  # Already seen; nothing written
    SKIPPED = "skipped"  # Event could not be tied to local state
    IGNORED = "ignored"  # Event type not consumed


def one_year_after(moment: datetime) -> datetime:
    """Same calendar date next year (29 Feb falls back to 28 Feb)."""
    try:
        return moment.replace(year=moment.year + 1)
    except ValueError:
        return moment.replace(year=moment.year + 1, day=28)


class ReconciliationEngine:
    """
    Applies Stripe events to Subscription and Payment records.

    Usage:
        engine = ReconciliationEngine(client=get_stripe_client())
        outcome = engine.handle(event_type, event["data"]["object"])
    """

    def __init__(self, client: StripeClient, *, grace_days: int | None = None):
        self.client = client
        if grace_days is None:
            grace_days = getattr(
                settings,
                "BILLING_CANCEL_GRACE_DAYS",
                DEFAULT_CANCEL_GRACE_DAYS,
            )
        self.grace_period = timedelta(days=grace_days)

    @property
    def handlers(self) -> dict[str, Callable[[dict], ReconciliationOutcome]]:
        return {
            StripeEventType.INVOICE_PAYMENT_SUCCEEDED: self.handle_payment_succeeded,
            StripeEventType.INVOICE_PAYMENT_FAILED: self.handle_payment_failed,
            StripeEventType.SUBSCRIPTION_DELETED: self.handle_subscription_deleted,
        }

    def handle(self, event_type: str, data_object: dict) -> ReconciliationOutcome:
        """Dispatch an event to its handler; unknown types are a no-op."""
        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info("Ignoring unhandled Stripe event type %s", event_type)
            return ReconciliationOutcome.IGNORED
        return handler(data_object)

    # ------------------------------------------------------------------
    # invoice.payment_succeeded
    # ------------------------------------------------------------------

    def handle_payment_succeeded(self, invoice: dict) -> ReconciliationOutcome:
        """
        Record a successful charge and activate or renew the subscription.

        Raises:
            NotFoundError: If no employer owns the Stripe customer
            BillingValidationError: If a new subscription's plan tier is unknown
            UpstreamError: If the Stripe subscription cannot be retrieved
        """
        invoice_id = invoice.get("id")
        if not invoice_id:
            logger.warning("invoice.payment_succeeded without an invoice id")
            return ReconciliationOutcome.SKIPPED

        if Payment.objects.filter(stripe_charge_ref=invoice_id).exists():
            logger.info(
                "Duplicate invoice.payment_succeeded for %s ignored",
                invoice_id,
            )
            return ReconciliationOutcome.DUPLICATE

        details = parse_invoice(invoice)
        if not details.subscription_id:
            logger.warning(
                "invoice.payment_succeeded %s has no subscription reference",
                invoice_id,
            )
            return ReconciliationOutcome.SKIPPED

        stripe_sub = self.retrieve_subscription(details.subscription_id)
        customer_id = _customer_id(stripe_sub) or details.customer_id

        employer = Employer.objects.filter(stripe_customer_id=customer_id).first()
        if employer is None:
            msg = (
                f"No employer for Stripe customer {customer_id} "
                f"(invoice {invoice_id})"
            )
            raise NotFoundError(msg)

        plan_tier = resolve_plan_tier(stripe_sub, settings.STRIPE_PRICE_IDS)

        try:
            with transaction.atomic():
                self._apply_successful_payment(employer, details, plan_tier)
        except IntegrityError:
            # A concurrent delivery of the same invoice won the insert
            if Payment.objects.filter(stripe_charge_ref=invoice_id).exists():
                logger.info(
                    "Concurrent invoice.payment_succeeded for %s ignored",
                    invoice_id,
                )
                return ReconciliationOutcome.DUPLICATE
            raise

        return ReconciliationOutcome.APPLIED

    def _apply_successful_payment(
        self,
        employer: Employer,
        details: InvoiceDetails,
        plan_tier: PlanTier | None,
    ) -> Subscription:
        # Serializes all subscription writes for this employer
        employer = Employer.objects.select_for_update().get(pk=employer.pk)

        payment = Payment.objects.create(
            employer=employer,
            stripe_charge_ref=details.invoice_id,
            gross_amount_cents=details.gross_amount_cents,
            discount_amount_cents=details.discount_amount_cents,
            net_amount_cents=details.net_amount_cents,
            currency=details.currency,
            period_start=details.period_start,
            period_end=details.period_end,
            status=PaymentStatus.SUCCESS,
            is_renewal=details.is_renewal,
            promotion_code=details.promotion_code,
            receipt_url=details.hosted_invoice_url,
        )

        subscription = (
            Subscription.objects.select_for_update()
            .filter(stripe_subscription_id=details.subscription_id)
            .first()
        )
        if subscription is not None:
            self._renew(subscription, payment, details, plan_tier)
            kind = RENEWED
        else:
            subscription = self._activate(employer, payment, details, plan_tier)
            kind = ACTIVATED

        # Runs only if the ledger commits; a failure to enqueue is logged
        transaction.on_commit(
            partial(send_subscription_email.delay, subscription.pk, kind),
            robust=True,
        )

        # A late payment on an older, inactive subscription must not take the
        # back-reference away from the employer's active one
        if (
            subscription.status == SubscriptionStatus.ACTIVE
            and employer.current_subscription_id != subscription.pk
        ):
            employer.current_subscription = subscription
            employer.save(update_fields=["current_subscription"])

        payment.subscription = subscription
        payment.save(update_fields=["subscription"])
        return subscription

    def _activate(
        self,
        employer: Employer,
        payment: Payment,
        details: InvoiceDetails,
        plan_tier: PlanTier | None,
    ) -> Subscription:
        if plan_tier is None:
            msg = (
                f"Cannot determine plan tier for Stripe subscription "
                f"{details.subscription_id}"
            )
            raise BillingValidationError(msg)

        now = timezone.now()
        subscription = Subscription.objects.create(
            employer=employer,
            plan_tier=plan_tier,
            status=SubscriptionStatus.ACTIVE,
            auto_renewal=True,
            stripe_subscription_id=details.subscription_id,
            current_period_start=details.period_start,
            current_period_end=details.period_end,
            year_anchor_date=one_year_after(now),
            cancel_grace_deadline=now + self.grace_period,
            renewal_count=0,
            last_payment_amount_cents=payment.net_amount_cents,
            last_payment=payment,
            applied_promotion_code=details.promotion_code,
            hosted_invoice_url=details.hosted_invoice_url,
        )
        logger.info(
            "Activated subscription %s for employer %s (tier=%s)",
            details.subscription_id,
            employer.pk,
            plan_tier,
        )
        return subscription

    def _renew(
        self,
        subscription: Subscription,
        payment: Payment,
        details: InvoiceDetails,
        plan_tier: PlanTier | None,
    ) -> None:
        subscription.renewal_count += 1

        # The period only moves forward, whatever order invoices arrive in
        if details.period_end and (
            subscription.current_period_end is None
            or details.period_end > subscription.current_period_end
        ):
            subscription.current_period_start = details.period_start
            subscription.current_period_end = details.period_end

        if subscription.status == SubscriptionStatus.CANCELLED:
            # Deletion is authoritative; a late invoice does not revive it
            logger.warning(
                "Payment %s arrived for cancelled subscription %s",
                payment.stripe_charge_ref,
                subscription.stripe_subscription_id,
            )
        elif (
            subscription.status == SubscriptionStatus.EXPIRED
            and Subscription.objects.filter(
                employer_id=subscription.employer_id,
                status=SubscriptionStatus.ACTIVE,
            )
            .exclude(pk=subscription.pk)
            .exists()
        ):
            # The employer has moved on to a new subscription; record the
            # payment but keep only one subscription active
            logger.warning(
                "Payment %s arrived for expired subscription %s while employer "
                "%s has another active subscription; not reactivating",
                payment.stripe_charge_ref,
                subscription.stripe_subscription_id,
                subscription.employer_id,
            )
        else:
            subscription.status = SubscriptionStatus.ACTIVE

        if plan_tier is not None:
            subscription.plan_tier = plan_tier
        subscription.last_payment = payment
        subscription.last_payment_amount_cents = payment.net_amount_cents
        subscription.last_payment_attempt_failed = False
        if details.hosted_invoice_url:
            subscription.hosted_invoice_url = details.hosted_invoice_url
        subscription.save()

        logger.info(
            "Renewed subscription %s (renewal_count=%d, period_end=%s)",
            subscription.stripe_subscription_id,
            subscription.renewal_count,
            subscription.current_period_end,
        )

    # ------------------------------------------------------------------
    # invoice.payment_failed
    # ------------------------------------------------------------------

    def handle_payment_failed(self, invoice: dict) -> ReconciliationOutcome:
        """
        Record a failed charge attempt and flag the subscription.

        If Stripe reports that it has stopped retrying (unpaid,
        incomplete_expired or canceled), the subscription expires.
        """
        invoice_id = invoice.get("id")
        if not invoice_id:
            logger.warning("invoice.payment_failed without an invoice id")
            return ReconciliationOutcome.SKIPPED

        details = parse_invoice(invoice)
        if not details.subscription_id:
            logger.warning(
                "invoice.payment_failed %s has no subscription reference",
                invoice_id,
            )
            return ReconciliationOutcome.SKIPPED

        # Each retry of the same invoice is a separate failed attempt
        charge_ref = f"{invoice_id}:failed:{details.attempt_count}"
        if Payment.objects.filter(stripe_charge_ref=charge_ref).exists():
            logger.info("Duplicate invoice.payment_failed for %s ignored", charge_ref)
            return ReconciliationOutcome.DUPLICATE

        stripe_sub = self.retrieve_subscription(details.subscription_id)
        stripe_status = stripe_sub.get("status")

        with transaction.atomic():
            subscription = (
                Subscription.objects.select_for_update()
                .filter(stripe_subscription_id=details.subscription_id)
                .first()
            )
            if subscription is None:
                logger.warning(
                    "invoice.payment_failed for unknown subscription %s",
                    details.subscription_id,
                )
                return ReconciliationOutcome.SKIPPED

            Payment.objects.create(
                employer_id=subscription.employer_id,
                subscription=subscription,
                stripe_charge_ref=charge_ref,
                gross_amount_cents=details.amount_due_cents
                + details.discount_amount_cents,
                discount_amount_cents=details.discount_amount_cents,
                net_amount_cents=details.amount_due_cents,
                currency=details.currency,
                period_start=details.period_start,
                period_end=details.period_end,
                status=PaymentStatus.FAILED,
                is_renewal=details.is_renewal,
                promotion_code=details.promotion_code,
                receipt_url=details.hosted_invoice_url,
            )

            subscription.last_payment_attempt_failed = True
            if (
                stripe_status in TERMINAL_STRIPE_STATUSES
                and subscription.status == SubscriptionStatus.ACTIVE
            ):
                subscription.status = SubscriptionStatus.EXPIRED
            subscription.save(
                update_fields=["last_payment_attempt_failed", "status", "modified"],
            )

        logger.warning(
            "Payment failed for subscription %s (stripe_status=%s, local_status=%s)",
            details.subscription_id,
            stripe_status,
            subscription.status,
        )
        return ReconciliationOutcome.APPLIED

    # ------------------------------------------------------------------
    # customer.subscription.deleted
    # ------------------------------------------------------------------

    def handle_subscription_deleted(self, stripe_sub: dict) -> ReconciliationOutcome:
        """
        Mark a subscription cancelled after Stripe ended it.

        This overrides any local auto-renewal intent.
        """
        subscription_id = stripe_sub.get("id")
        if not subscription_id:
            logger.warning("customer.subscription.deleted without a subscription id")
            return ReconciliationOutcome.SKIPPED

        with transaction.atomic():
            subscription = (
                Subscription.objects.select_for_update()
                .filter(stripe_subscription_id=subscription_id)
                .first()
            )
            if subscription is None:
                logger.warning(
                    "customer.subscription.deleted for unknown subscription %s",
                    subscription_id,
                )
                return ReconciliationOutcome.SKIPPED

            if (
                subscription.status == SubscriptionStatus.CANCELLED
                and not subscription.auto_renewal
            ):
                return ReconciliationOutcome.DUPLICATE

            subscription.status = SubscriptionStatus.CANCELLED
            subscription.auto_renewal = False
            subscription.save(update_fields=["status", "auto_renewal", "modified"])

        logger.info("Cancelled subscription %s (deleted upstream)", subscription_id)
        return ReconciliationOutcome.APPLIED

    def retrieve_subscription(self, subscription_id: str) -> dict:
        """Fetch the Stripe subscription as a plain dict."""
        try:
            stripe_sub = self.client.subscriptions.retrieve(subscription_id)
        except stripe.StripeError as e:
            msg = f"Failed to retrieve Stripe subscription {subscription_id}: {e}"
            raise UpstreamError(msg) from e
        if isinstance(stripe_sub, dict):
            return stripe_sub
        return stripe_sub.to_dict()


def _customer_id(stripe_sub) -> str | None:
    customer = stripe_sub.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    return customer or None
