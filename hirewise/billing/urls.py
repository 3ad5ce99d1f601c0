"""
URL configuration for the billing app.

Routes:
- /billing/checkout/                        - Start Stripe Checkout (POST)
- /billing/subscriptions/<id>/cancel/       - Cancel a subscription (POST)
- /billing/subscriptions/<id>/resume/       - Resume auto-renewal (POST)
- /billing/employers/<id>/subscription/     - Employer's subscription (GET)
- /billing/webhooks/stripe/                 - Stripe webhook endpoint (POST)
"""

from django.urls import path

from hirewise.billing.views import CancelSubscriptionView
from hirewise.billing.views import CheckoutStartView
from hirewise.billing.views import EmployerSubscriptionView
from hirewise.billing.views import ResumeAutoRenewalView
from hirewise.billing.webhooks import StripeWebhookView

app_name = "billing"

urlpatterns = [
    path(
        "checkout/",
        CheckoutStartView.as_view(),
        name="checkout",
    ),
    path(
        "subscriptions/<int:pk>/cancel/",
        CancelSubscriptionView.as_view(),
        name="subscription-cancel",
    ),
    path(
        "subscriptions/<int:pk>/resume/",
        ResumeAutoRenewalView.as_view(),
        name="subscription-resume",
    ),
    path(
        "employers/<int:pk>/subscription/",
        EmployerSubscriptionView.as_view(),
        name="employer-subscription",
    ),
    path(
        "webhooks/stripe/",
        StripeWebhookView.as_view(),
        name="stripe-webhook",
    ),
]
