"""
With these settings, tests run faster.
"""

import os

# Set test-safe Stripe keys before base settings reads them
# These look like real test keys but are dummy values for testing
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy_test_key_for_testing")
os.environ.setdefault("STRIPE_PUBLIC_KEY", "pk_test_dummy_test_key_for_testing")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_dummy_test_secret")

from .base import *  # noqa: E402, F403
from .base import DATABASES  # noqa: E402
from .base import env  # noqa: E402

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="Xe7wq2LpZ9kN4vBn1mRt6yUi3oPa8sDf5gHj0kLzQxWc7vEb2nMr4tYu9iOp6aSd",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#test-runner
TEST_RUNNER = "django.test.runner.DiscoverRunner"
DATABASES["default"]["CONN_MAX_AGE"] = 0
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# PASSWORDS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#password-hashers
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# EMAIL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#email-backend
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# Celery
# ------------------------------------------------------------------------------
# Tasks run inline; the broker is never contacted.
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"

# Stripe
# ------------------------------------------------------------------------------
STRIPE_PRICE_IDS = {
    "Tier1": "price_test_tier1",
    "Tier2": "price_test_tier2",
    "Tier3": "price_test_tier3",
}
STRIPE_TIMEOUT_SECONDS = 1.0
STRIPE_MAX_NETWORK_RETRIES = 0

# Billing
# ------------------------------------------------------------------------------
BILLING_CANCEL_GRACE_DAYS = 3
BILLING_CHECKOUT_SUCCESS_URL = "https://testserver/billing/success/"
BILLING_CHECKOUT_CANCEL_URL = "https://testserver/billing/cancel/"
