import pytest

from hirewise.employers.tests.factories import EmployerFactory


@pytest.mark.django_db
def test_str():
    employer = EmployerFactory(name="Acme Ltd")

    assert str(employer) == "Acme Ltd"


@pytest.mark.django_db
def test_new_employer_has_no_billing_state():
    employer = EmployerFactory()

    assert employer.stripe_customer_id == ""
    assert employer.current_subscription is None
    assert employer.active_subscription is None
