import logging

from django.apps import AppConfig
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)


class BillingConfig(AppConfig):
    """
    Django app configuration for the billing app.

    Handles Stripe checkout, webhook reconciliation and cancellation of
    employer subscriptions.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "hirewise.billing"

    stripe_client = None

    def ready(self):
        """
        Build the Stripe client once for the whole process.

        Services receive it explicitly (see stripe_client.get_stripe_client)
        rather than reading a module-level global.
        """
        from hirewise.billing.stripe_client import build_stripe_client

        try:
            self.stripe_client = build_stripe_client()
        except ImproperlyConfigured:
            logger.warning(
                "STRIPE_SECRET_KEY not set; billing endpoints will be unavailable",
            )
