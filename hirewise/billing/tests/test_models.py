"""
Tests for billing models.
"""

from datetime import timedelta

import pytest
from django.db import IntegrityError
from django.db import transaction

from hirewise.billing.constants import SubscriptionStatus
from hirewise.billing.tests.factories import PaymentFactory
from hirewise.billing.tests.factories import SubscriptionFactory
from hirewise.billing.tests.factories import WebhookEventFactory


@pytest.mark.django_db
class TestSubscription:
    def test_one_active_subscription_per_employer(self):
        subscription = SubscriptionFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            SubscriptionFactory(employer=subscription.employer)

    def test_inactive_subscriptions_do_not_conflict(self):
        first = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)
        SubscriptionFactory(
            employer=first.employer,
            status=SubscriptionStatus.EXPIRED,
        )
        SubscriptionFactory(employer=first.employer)

        assert first.employer.subscriptions.count() == 3

    def test_grace_period_boundary(self):
        subscription = SubscriptionFactory()
        deadline = subscription.cancel_grace_deadline

        assert subscription.is_within_grace_period(deadline)
        assert not subscription.is_within_grace_period(
            deadline + timedelta(microseconds=1),
        )

    def test_year_anchor_boundary(self):
        subscription = SubscriptionFactory()
        anchor = subscription.year_anchor_date

        assert not subscription.is_past_year_anchor(anchor)
        assert subscription.is_past_year_anchor(anchor + timedelta(seconds=1))

    def test_active_subscription_property(self):
        cancelled = SubscriptionFactory(status=SubscriptionStatus.CANCELLED)
        employer = cancelled.employer

        assert employer.active_subscription is None

        active = SubscriptionFactory(employer=employer)
        assert employer.active_subscription == active


@pytest.mark.django_db
class TestPayment:
    def test_charge_reference_is_unique(self):
        PaymentFactory(stripe_charge_ref="in_dup")

        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentFactory(stripe_charge_ref="in_dup")

    def test_str(self):
        payment = PaymentFactory(stripe_charge_ref="in_str")

        assert str(payment) == "in_str (success)"


@pytest.mark.django_db
class TestWebhookEvent:
    def test_event_id_is_unique(self):
        WebhookEventFactory(stripe_event_id="evt_dup")

        with pytest.raises(IntegrityError), transaction.atomic():
            WebhookEventFactory(stripe_event_id="evt_dup")

    def test_data_object_tolerates_missing_data(self):
        event = WebhookEventFactory(payload={"id": "evt_x"})

        assert event.data_object == {}
