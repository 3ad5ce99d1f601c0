"""
Parsing helpers for Stripe event payloads.

Stripe has moved fields around between API versions (the invoice's
subscription reference lives in at least four places depending on the
version that produced the event). Everything here is a pure function over
plain dicts so the reconciliation engine never digs through raw payloads.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from pydantic import ConfigDict

from hirewise.billing.constants import RENEWAL_BILLING_REASON
from hirewise.billing.constants import PlanTier


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: dict[str, Any]


class StripeEventEnvelope(BaseModel):
    """The part of a Stripe event envelope the webhook endpoint relies on."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    data: StripeEventData


def _ref_id(value: Any) -> str | None:
    """Reduce an id-or-expanded-object reference to its id."""
    if isinstance(value, dict):
        value = value.get("id")
    return value or None


def _first_line(invoice: dict) -> dict:
    lines = (invoice.get("lines") or {}).get("data") or []
    return lines[0] if lines else {}


def _subscription_from_invoice(invoice: dict) -> str | None:
    return _ref_id(invoice.get("subscription"))


def _subscription_from_parent_details(invoice: dict) -> str | None:
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return _ref_id(details.get("subscription"))


def _subscription_from_line_parent(invoice: dict) -> str | None:
    parent = _first_line(invoice).get("parent") or {}
    details = parent.get("subscription_item_details") or {}
    return _ref_id(details.get("subscription"))


def _subscription_from_line(invoice: dict) -> str | None:
    return _ref_id(_first_line(invoice).get("subscription"))


# Tried in order; the first strategy that yields an id wins.
SUBSCRIPTION_ID_STRATEGIES: tuple[Callable[[dict], str | None], ...] = (
    _subscription_from_invoice,
    _subscription_from_parent_details,
    _subscription_from_line_parent,
    _subscription_from_line,
)


def resolve_subscription_id(invoice: dict) -> str | None:
    """Find the Stripe subscription id an invoice belongs to, if any."""
    for strategy in SUBSCRIPTION_ID_STRATEGIES:
        subscription_id = strategy(invoice)
        if subscription_id:
            return subscription_id
    return None


def _from_timestamp(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


def _promotion_code(invoice: dict) -> str:
    """
    Return the promotion code applied to an invoice, or "".

    Prefers the human-readable code when the promotion code object was
    expanded, otherwise its id (promo_xxx).
    """
    candidates = []
    legacy_discount = invoice.get("discount")
    if isinstance(legacy_discount, dict):
        candidates.append(legacy_discount)
    candidates.extend(d for d in invoice.get("discounts") or [] if isinstance(d, dict))

    for discount in candidates:
        promotion_code = discount.get("promotion_code")
        if isinstance(promotion_code, dict):
            return promotion_code.get("code") or promotion_code.get("id") or ""
        if promotion_code:
            return promotion_code
    return ""


@dataclass(frozen=True)
class InvoiceDetails:
    """Billing facts extracted from a Stripe invoice payload."""

    invoice_id: str
    customer_id: str | None
    subscription_id: str | None
    gross_amount_cents: int
    discount_amount_cents: int
    net_amount_cents: int
    amount_due_cents: int
    currency: str
    period_start: datetime | None
    period_end: datetime | None
    is_renewal: bool
    promotion_code: str
    hosted_invoice_url: str
    attempt_count: int


def parse_invoice(invoice: dict) -> InvoiceDetails:
    """
    Extract amounts, period bounds and references from an invoice.

    Period bounds come from the first invoice line (the subscription item),
    falling back to the invoice's own period. Gross is reconstructed as
    amount paid plus total discounts.
    """
    line_period = _first_line(invoice).get("period") or {}
    period_start = line_period.get("start", invoice.get("period_start"))
    period_end = line_period.get("end", invoice.get("period_end"))

    discount = sum(
        entry.get("amount") or 0
        for entry in invoice.get("total_discount_amounts") or []
    )
    net = invoice.get("amount_paid") or 0

    return InvoiceDetails(
        invoice_id=invoice["id"],
        customer_id=_ref_id(invoice.get("customer")),
        subscription_id=resolve_subscription_id(invoice),
        gross_amount_cents=net + discount,
        discount_amount_cents=discount,
        net_amount_cents=net,
        amount_due_cents=invoice.get("amount_due") or 0,
        currency=invoice.get("currency") or "",
        period_start=_from_timestamp(period_start),
        period_end=_from_timestamp(period_end),
        is_renewal=invoice.get("billing_reason") == RENEWAL_BILLING_REASON,
        promotion_code=_promotion_code(invoice),
        hosted_invoice_url=invoice.get("hosted_invoice_url") or "",
        attempt_count=invoice.get("attempt_count") or 1,
    )


def resolve_plan_tier(
    stripe_subscription: dict,
    price_ids: dict[str, str],
) -> PlanTier | None:
    """
    Work out which plan tier a Stripe subscription is for.

    Checkout stores the tier in subscription metadata. Subscriptions created
    outside checkout (e.g. from the Stripe dashboard) fall back to a reverse
    lookup of the first item's price id.
    """
    metadata = stripe_subscription.get("metadata") or {}
    tier = metadata.get("plan_tier")
    if tier in PlanTier.values:
        return PlanTier(tier)

    items = (stripe_subscription.get("items") or {}).get("data") or []
    if items:
        price_id = _ref_id((items[0] or {}).get("price"))
        for candidate, configured_price in price_ids.items():
            if configured_price and configured_price == price_id:
                return PlanTier(candidate)
    return None
