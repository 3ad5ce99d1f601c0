"""
Construction of the Stripe API client.

Billing never assigns the process-wide ``stripe.api_key``. A single
``stripe.StripeClient`` is built when the billing app loads and handed to
each service through its constructor, so tests can pass a mock instead.

Usage:
    from hirewise.billing.stripe_client import get_stripe_client

    service = CheckoutService(client=get_stripe_client())
"""

from __future__ import annotations

import logging

import stripe
from django.apps import apps
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)


def build_stripe_client(
    api_key: str | None = None,
    *,
    timeout: float | None = None,
    max_network_retries: int | None = None,
) -> stripe.StripeClient:
    """
    Build a Stripe client with request timeouts from settings.

    Every outbound call (customer creation, subscription retrieval and
    mutation, checkout) goes through this client, so a timeout fails the
    calling operation instead of hanging it.
    """
    api_key = api_key or settings.STRIPE_SECRET_KEY
    if not api_key:
        msg = "STRIPE_SECRET_KEY is not configured"
        raise ImproperlyConfigured(msg)

    timeout = timeout if timeout is not None else settings.STRIPE_TIMEOUT_SECONDS
    if max_network_retries is None:
        max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES

    return stripe.StripeClient(
        api_key,
        http_client=stripe.RequestsClient(timeout=timeout),
        max_network_retries=max_network_retries,
    )


def get_stripe_client() -> stripe.StripeClient:
    """Return the client built by BillingConfig.ready()."""
    client = apps.get_app_config("billing").stripe_client
    if client is None:
        msg = "Stripe client unavailable: STRIPE_SECRET_KEY is not configured"
        raise ImproperlyConfigured(msg)
    return client
