"""
Tests for Stripe payload parsing helpers.

These are pure functions over dicts, so no database is needed.
"""

import pytest
from pydantic import ValidationError

from hirewise.billing.constants import PlanTier
from hirewise.billing.events import StripeEventEnvelope
from hirewise.billing.events import parse_invoice
from hirewise.billing.events import resolve_plan_tier
from hirewise.billing.events import resolve_subscription_id
from hirewise.billing.tests.factories import PERIOD_END
from hirewise.billing.tests.factories import PERIOD_START
from hirewise.billing.tests.factories import make_event
from hirewise.billing.tests.factories import make_invoice
from hirewise.billing.tests.factories import make_stripe_subscription
from hirewise.billing.tests.factories import ts

PRICE_IDS = {
    "Tier1": "price_test_tier1",
    "Tier2": "price_test_tier2",
    "Tier3": "price_test_tier3",
}


class TestResolveSubscriptionId:
    @pytest.mark.parametrize(
        "location",
        ["invoice", "parent", "line_parent", "line"],
    )
    def test_finds_reference_in_each_payload_shape(self, location):
        invoice = make_invoice(subscription="sub_abc", subscription_location=location)

        assert resolve_subscription_id(invoice) == "sub_abc"

    def test_expanded_subscription_reduces_to_id(self):
        invoice = make_invoice(subscription_location="invoice")
        invoice["subscription"] = {"id": "sub_expanded", "object": "subscription"}

        assert resolve_subscription_id(invoice) == "sub_expanded"

    def test_top_level_reference_wins_over_line(self):
        invoice = make_invoice(subscription="sub_line", subscription_location="line")
        invoice["subscription"] = "sub_top"

        assert resolve_subscription_id(invoice) == "sub_top"

    def test_empty_values_fall_through_to_next_strategy(self):
        invoice = make_invoice(subscription="sub_parent")
        invoice["subscription"] = ""

        assert resolve_subscription_id(invoice) == "sub_parent"

    def test_returns_none_for_one_off_invoice(self):
        invoice = make_invoice(subscription_location="none")

        assert resolve_subscription_id(invoice) is None

    def test_handles_missing_lines(self):
        assert resolve_subscription_id({"id": "in_1"}) is None


class TestParseInvoice:
    def test_amounts_without_discount(self):
        details = parse_invoice(make_invoice(amount_paid=10000))

        assert details.net_amount_cents == 10000
        assert details.discount_amount_cents == 0
        assert details.gross_amount_cents == 10000

    def test_gross_is_net_plus_discounts(self):
        details = parse_invoice(make_invoice(amount_paid=8000, discount=2000))

        assert details.net_amount_cents == 8000
        assert details.discount_amount_cents == 2000
        assert details.gross_amount_cents == 10000

    def test_period_comes_from_first_line(self):
        details = parse_invoice(make_invoice())

        assert details.period_start == ts(PERIOD_START)
        assert details.period_end == ts(PERIOD_END)

    def test_period_falls_back_to_invoice(self):
        invoice = make_invoice()
        invoice["lines"]["data"][0].pop("period")
        invoice["period_end"] = PERIOD_END

        details = parse_invoice(invoice)

        assert details.period_start == ts(PERIOD_START)
        assert details.period_end == ts(PERIOD_END)

    def test_renewal_flag(self):
        cycle = make_invoice(billing_reason="subscription_cycle")
        assert parse_invoice(cycle).is_renewal
        assert not parse_invoice(
            make_invoice(billing_reason="subscription_create"),
        ).is_renewal

    def test_promotion_code_prefers_human_readable_code(self):
        details = parse_invoice(make_invoice(promotion_code="LAUNCH20"))

        assert details.promotion_code == "LAUNCH20"

    def test_promotion_code_from_legacy_discount(self):
        invoice = make_invoice()
        invoice["discount"] = {"id": "di_1", "promotion_code": "promo_legacy"}

        assert parse_invoice(invoice).promotion_code == "promo_legacy"

    def test_no_promotion_code(self):
        assert parse_invoice(make_invoice()).promotion_code == ""

    def test_references(self):
        details = parse_invoice(
            make_invoice(invoice_id="in_9", customer="cus_9", subscription="sub_9"),
        )

        assert details.invoice_id == "in_9"
        assert details.customer_id == "cus_9"
        assert details.subscription_id == "sub_9"
        assert details.hosted_invoice_url == "https://invoice.stripe.com/i/in_9"

    def test_attempt_count_defaults_to_one(self):
        invoice = make_invoice()
        invoice.pop("attempt_count")

        assert parse_invoice(invoice).attempt_count == 1


class TestResolvePlanTier:
    def test_from_metadata(self):
        stripe_sub = make_stripe_subscription(plan_tier="Tier3")

        assert resolve_plan_tier(stripe_sub, PRICE_IDS) == PlanTier.TIER3

    def test_falls_back_to_price_lookup(self):
        stripe_sub = make_stripe_subscription(
            plan_tier=None,
            price_id="price_test_tier1",
        )

        assert resolve_plan_tier(stripe_sub, PRICE_IDS) == PlanTier.TIER1

    def test_unknown_metadata_falls_back_to_price_lookup(self):
        stripe_sub = make_stripe_subscription(
            plan_tier="Platinum",
            price_id="price_test_tier2",
        )

        assert resolve_plan_tier(stripe_sub, PRICE_IDS) == PlanTier.TIER2

    def test_unknown_price(self):
        stripe_sub = make_stripe_subscription(plan_tier=None, price_id="price_other")

        assert resolve_plan_tier(stripe_sub, PRICE_IDS) is None


class TestStripeEventEnvelope:
    def test_valid_envelope(self):
        event = make_event("invoice.payment_succeeded", {"id": "in_1"})

        envelope = StripeEventEnvelope.model_validate(event)

        assert envelope.id == "evt_test_1"
        assert envelope.type == "invoice.payment_succeeded"
        assert envelope.data.object == {"id": "in_1"}

    def test_missing_data_object_is_rejected(self):
        with pytest.raises(ValidationError):
            StripeEventEnvelope.model_validate({"id": "evt_1", "type": "x"})
