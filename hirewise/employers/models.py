from django.db import models
from django.utils.translation import gettext_lazy as _
from model_utils.models import TimeStampedModel


class Employer(TimeStampedModel):
    """
    Employer account that owns a billing subscription.

    Profile management lives elsewhere on the platform. Billing only reads
    and writes two fields here: the cached Stripe customer id and the
    back-reference to the employer's current subscription.
    """

    name = models.CharField(
        max_length=255,
        help_text=_("Company name shown on invoices, e.g. 'Acme Ltd'"),
    )
    billing_email = models.EmailField(
        blank=True,
        help_text=_("Address Stripe sends receipts and invoices to."),
    )

    # Stripe integration
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text=_("Stripe Customer ID (cus_xxx). Created on first checkout."),
    )
    current_subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text=_("Most recently activated subscription for this employer."),
    )

    def __str__(self):
        return self.name

    @property
    def active_subscription(self):
        """The employer's active subscription, or None."""
        from hirewise.billing.constants import SubscriptionStatus

        return self.subscriptions.filter(status=SubscriptionStatus.ACTIVE).first()
