"""
Cancellation of employer subscriptions.

Two policy windows apply, both measured from the first purchase:

- Within the grace period (BILLING_CANCEL_GRACE_DAYS, default 3 days) the
  Stripe subscription is cancelled immediately and the local record is
  marked cancelled. Only the first billing period was charged.
- After the grace period, cancellation only turns auto-renewal off
  (Stripe cancel_at_period_end). The subscription stays active until
  Stripe sends customer.subscription.deleted at period end.

Nothing can be cancelled or resumed once the year anchor (first purchase
plus one year) has passed.

Stripe is always called first. The local record changes only after Stripe
confirms, so a Stripe failure leaves it untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import stripe
from django.db import transaction
from django.utils import timezone

from hirewise.billing.constants import SubscriptionStatus
from hirewise.billing.exceptions import NotFoundError
from hirewise.billing.exceptions import PolicyError
from hirewise.billing.exceptions import UpstreamError
from hirewise.billing.models import Subscription

if TYPE_CHECKING:
    from datetime import datetime

    from stripe import StripeClient

logger = logging.getLogger(__name__)

GRACE_PERIOD_MESSAGE = (
    "Cancelled within the grace period. Only the first billing period was charged."
)
DEFERRED_MESSAGE = (
    "Auto-renewal has been turned off. The subscription stays active until "
    "the end of the current billing period."
)
RESUMED_MESSAGE = "Auto-renewal has been turned back on."


@dataclass
class CancellationResult:
    """Result of a cancellation request."""

    message: str
    status: SubscriptionStatus
    auto_renewal: bool
    immediate: bool


@dataclass
class ResumeResult:
    """Result of turning auto-renewal back on."""

    message: str
    auto_renewal: bool


class CancellationService:
    """
    Service for user-initiated cancellation of a subscription.

    Usage:
        service = CancellationService(client=get_stripe_client())
        result = service.cancel(subscription.pk)

        if result.immediate:
            # Access ends now
            ...
    """

    def __init__(self, client: StripeClient):
        self.client = client

    def cancel(
        self,
        subscription_id: int,
        *,
        now: datetime | None = None,
    ) -> CancellationResult:
        """
        Cancel a subscription according to the policy windows.

        Raises:
            NotFoundError: If the subscription does not exist
            PolicyError: If it is not active or the year anchor has passed
            UpstreamError: If Stripe rejects or fails the change
        """
        now = now or timezone.now()

        with transaction.atomic():
            subscription = self._lock(subscription_id)

            if subscription.status != SubscriptionStatus.ACTIVE:
                msg = (
                    "Only active subscriptions can be cancelled "
                    f"(status={subscription.status})"
                )
                raise PolicyError(msg)
            if subscription.is_past_year_anchor(now):
                msg = "The cancellation window for this subscription has closed"
                raise PolicyError(msg)

            if subscription.is_within_grace_period(now):
                return self._cancel_immediately(subscription)
            return self._cancel_at_period_end(subscription)

    def resume_auto_renewal(
        self,
        subscription_id: int,
        *,
        now: datetime | None = None,
    ) -> ResumeResult:
        """
        Undo a deferred cancellation.

        Raises:
            NotFoundError: If the subscription does not exist
            PolicyError: If it is not active, already renewing, or past the
                year anchor
            UpstreamError: If Stripe rejects or fails the change
        """
        now = now or timezone.now()

        with transaction.atomic():
            subscription = self._lock(subscription_id)

            if subscription.status != SubscriptionStatus.ACTIVE:
                msg = (
                    "Only active subscriptions can be resumed "
                    f"(status={subscription.status})"
                )
                raise PolicyError(msg)
            if subscription.auto_renewal:
                msg = "Auto-renewal is already on"
                raise PolicyError(msg)
            if now >= subscription.year_anchor_date:
                msg = "Auto-renewal cannot be resumed after the year anchor date"
                raise PolicyError(msg)

            self._set_cancel_at_period_end(subscription, cancel_at_period_end=False)

            subscription.auto_renewal = True
            subscription.save(update_fields=["auto_renewal", "modified"])

        logger.info(
            "Resumed auto-renewal for subscription %s",
            subscription.stripe_subscription_id,
        )
        return ResumeResult(message=RESUMED_MESSAGE, auto_renewal=True)

    def _lock(self, subscription_id: int) -> Subscription:
        subscription = (
            Subscription.objects.select_for_update()
            .filter(pk=subscription_id)
            .first()
        )
        if subscription is None:
            msg = f"Subscription {subscription_id} not found"
            raise NotFoundError(msg)
        return subscription

    def _cancel_immediately(self, subscription: Subscription) -> CancellationResult:
        try:
            self.client.subscriptions.cancel(subscription.stripe_subscription_id)
        except stripe.StripeError as e:
            logger.exception(
                "Failed to cancel Stripe subscription %s",
                subscription.stripe_subscription_id,
            )
            msg = f"Failed to cancel subscription: {e}"
            raise UpstreamError(msg) from e

        subscription.status = SubscriptionStatus.CANCELLED
        subscription.auto_renewal = False
        subscription.save(update_fields=["status", "auto_renewal", "modified"])

        logger.info(
            "Cancelled subscription %s within grace period",
            subscription.stripe_subscription_id,
        )
        return CancellationResult(
            message=GRACE_PERIOD_MESSAGE,
            status=SubscriptionStatus.CANCELLED,
            auto_renewal=False,
            immediate=True,
        )

    def _cancel_at_period_end(self, subscription: Subscription) -> CancellationResult:
        if subscription.auto_renewal:
            self._set_cancel_at_period_end(subscription, cancel_at_period_end=True)
            subscription.auto_renewal = False
            subscription.save(update_fields=["auto_renewal", "modified"])
            logger.info(
                "Scheduled cancellation of subscription %s at period end",
                subscription.stripe_subscription_id,
            )

        return CancellationResult(
            message=DEFERRED_MESSAGE,
            status=SubscriptionStatus(subscription.status),
            auto_renewal=False,
            immediate=False,
        )

    def _set_cancel_at_period_end(
        self,
        subscription: Subscription,
        *,
        cancel_at_period_end: bool,
    ) -> None:
        try:
            self.client.subscriptions.update(
                subscription.stripe_subscription_id,
                params={"cancel_at_period_end": cancel_at_period_end},
            )
        except stripe.StripeError as e:
            logger.exception(
                "Failed to update Stripe subscription %s",
                subscription.stripe_subscription_id,
            )
            msg = f"Failed to update subscription: {e}"
            raise UpstreamError(msg) from e
