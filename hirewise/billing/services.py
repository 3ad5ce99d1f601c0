"""
Checkout service for Stripe subscription signup.

This service provides a clean interface for:
- Getting or creating the Stripe customer for an employer
- Creating Stripe Checkout sessions (subscription mode)

We use Stripe Checkout (not custom payment forms) for PCI compliance. The
local Subscription is not created here: it appears only when Stripe
confirms the first payment through the invoice.payment_succeeded webhook.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import stripe
from django.conf import settings

from hirewise.billing.constants import PlanTier
from hirewise.billing.constants import SubscriptionStatus
from hirewise.billing.exceptions import BillingValidationError
from hirewise.billing.exceptions import ConflictError
from hirewise.billing.exceptions import NotFoundError
from hirewise.billing.exceptions import UpstreamError
from hirewise.billing.models import Subscription
from hirewise.employers.models import Employer

if TYPE_CHECKING:
    from stripe import StripeClient

logger = logging.getLogger(__name__)


def get_price_id(plan_tier: str) -> str:
    """
    Resolve a plan tier to its Stripe Price ID.

    Raises:
        BillingValidationError: If the tier is unknown or has no price configured
    """
    if plan_tier not in PlanTier.values:
        msg = f"Unknown plan tier: {plan_tier!r}"
        raise BillingValidationError(msg)

    price_id = settings.STRIPE_PRICE_IDS.get(plan_tier)
    if not price_id:
        msg = f"Plan tier {plan_tier} has no Stripe price configured"
        raise BillingValidationError(msg)
    return price_id


class CheckoutService:
    """
    Service for starting Stripe Checkout for an employer.

    Usage:
        service = CheckoutService(client=get_stripe_client())
        checkout_url = service.start_checkout(
            employer_id=employer.pk,
            plan_tier=PlanTier.TIER2,
            promotion_code="promo_123",
        )
    """

    def __init__(self, client: StripeClient):
        self.client = client

    def start_checkout(
        self,
        employer_id: int,
        plan_tier: str,
        promotion_code: str | None = None,
        *,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> str:
        """
        Create a subscription-mode Checkout session and return its URL.

        All local checks run before Stripe is contacted, so a rejected
        request never creates anything upstream.

        Raises:
            NotFoundError: If the employer does not exist
            ConflictError: If the employer already has an active subscription
            BillingValidationError: If the plan tier is unknown
            UpstreamError: If Stripe fails or returns no checkout URL
        """
        employer = Employer.objects.filter(pk=employer_id).first()
        if employer is None:
            msg = f"Employer {employer_id} not found"
            raise NotFoundError(msg)

        has_active = Subscription.objects.filter(
            employer=employer,
            status=SubscriptionStatus.ACTIVE,
        ).exists()
        if has_active:
            msg = "Employer already has an active subscription"
            raise ConflictError(msg)

        price_id = get_price_id(plan_tier)
        customer_id = self.get_or_create_stripe_customer(employer)

        # employer_id/plan_tier round-trip through every later webhook via
        # subscription metadata; the session id itself is ephemeral.
        metadata = {
            "employer_id": str(employer.pk),
            "plan_tier": plan_tier,
        }
        params = {
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [
                {
                    "price": price_id,
                    "quantity": 1,
                },
            ],
            "success_url": success_url or settings.BILLING_CHECKOUT_SUCCESS_URL,
            "cancel_url": cancel_url or settings.BILLING_CHECKOUT_CANCEL_URL,
            "client_reference_id": str(employer.pk),
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        if promotion_code:
            params["discounts"] = [{"promotion_code": promotion_code}]

        try:
            session = self.client.checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            logger.exception(
                "Failed to create checkout session for employer %s",
                employer.pk,
            )
            msg = f"Failed to create checkout session: {e}"
            raise UpstreamError(msg) from e

        checkout_url = getattr(session, "url", None)
        if not checkout_url:
            msg = "Stripe did not return a checkout URL"
            raise UpstreamError(msg)

        logger.info(
            "Created checkout session %s for employer %s, tier %s",
            getattr(session, "id", ""),
            employer.pk,
            plan_tier,
        )
        return checkout_url

    def get_or_create_stripe_customer(self, employer: Employer) -> str:
        """
        Get the employer's Stripe customer or create one.

        Returns the Stripe customer ID (cus_xxx). The id is persisted before
        checkout continues so a later failure cannot orphan the customer.
        """
        if employer.stripe_customer_id:
            return employer.stripe_customer_id

        try:
            customer = self.client.customers.create(
                params={
                    "email": employer.billing_email or None,
                    "name": employer.name,
                    "metadata": {"employer_id": str(employer.pk)},
                },
                # Collapses concurrent first checkouts onto one customer
                options={"idempotency_key": f"customer-create-{employer.pk}"},
            )
        except stripe.StripeError as e:
            logger.exception("Failed to create Stripe customer for %s", employer.pk)
            msg = f"Failed to create Stripe customer: {e}"
            raise UpstreamError(msg) from e

        # Compare-and-swap: only fill the field if nobody else did meanwhile
        updated = Employer.objects.filter(
            pk=employer.pk,
            stripe_customer_id="",
        ).update(stripe_customer_id=customer.id)
        if not updated:
            employer.refresh_from_db(fields=["stripe_customer_id"])
            return employer.stripe_customer_id

        employer.stripe_customer_id = customer.id
        logger.info(
            "Created Stripe customer %s for employer %s",
            customer.id,
            employer.pk,
        )
        return customer.id
