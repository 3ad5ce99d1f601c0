from unittest.mock import MagicMock

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from hirewise.employers.models import Employer
from hirewise.employers.tests.factories import EmployerFactory


@pytest.fixture
def stripe_client() -> MagicMock:
    """A stand-in for the injected stripe.StripeClient."""
    return MagicMock(name="StripeClient")


@pytest.fixture
def employer(db) -> Employer:
    return EmployerFactory(stripe_customer_id="cus_test_1")


@pytest.fixture
def api_client(db) -> APIClient:
    user = get_user_model().objects.create_user(
        username="billing-operator",
        password="testpass123",  # noqa: S106
    )
    client = APIClient()
    client.force_authenticate(user=user)
    return client
