"""
Email notifications for subscription lifecycle events.

Sent when:
- A subscription is activated by its first payment
- A subscription is renewed
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.mail import send_mail
from django.utils.translation import gettext as _

if TYPE_CHECKING:
    from hirewise.billing.models import Subscription

logger = logging.getLogger(__name__)

ACTIVATED = "activated"
RENEWED = "renewed"


def _format_amount(cents: int | None, currency: str) -> str:
    if cents is None:
        return ""
    return f"{cents / 100:.2f} {currency.upper()}".strip()


def send_subscription_email(subscription: Subscription, kind: str) -> bool:
    """
    Tell the employer's billing contact that their subscription changed.

    Returns:
        True if the email was sent, False otherwise.
    """
    employer = subscription.employer
    recipient_email = employer.billing_email
    if not recipient_email:
        logger.warning(
            "Cannot send subscription email: no billing_email on employer %s",
            employer.pk,
        )
        return False

    currency = subscription.last_payment.currency if subscription.last_payment else ""
    context = {
        "employer_name": employer.name,
        "plan_tier": subscription.get_plan_tier_display(),
        "amount": _format_amount(subscription.last_payment_amount_cents, currency),
        "period_end": (
            subscription.current_period_end.date().isoformat()
            if subscription.current_period_end
            else ""
        ),
        "invoice_url": subscription.hosted_invoice_url,
    }

    if kind == RENEWED:
        subject = _("Your %(plan_tier)s subscription has been renewed") % context
        plain_message = _(
            """Hi %(employer_name)s,

Your %(plan_tier)s subscription has been renewed. We charged %(amount)s.
Your next renewal is on %(period_end)s.

Invoice: %(invoice_url)s

Thanks,
The Hirewise Team
"""
        ) % context
    else:
        subject = _("Your %(plan_tier)s subscription is active") % context
        plain_message = _(
            """Hi %(employer_name)s,

Thanks for subscribing to %(plan_tier)s. We charged %(amount)s and your
subscription is now active until %(period_end)s.

If you change your mind, you can cancel within the next few days and
only the first billing period will be charged.

Invoice: %(invoice_url)s

Thanks,
The Hirewise Team
"""
        ) % context

    from_email = getattr(settings, "DEFAULT_FROM_EMAIL", None)

    sent = send_mail(
        subject,
        plain_message,
        from_email,
        [recipient_email],
    )
    if sent == 0:
        logger.error(
            "Email backend did not accept subscription email for %s",
            recipient_email,
        )
        return False

    logger.info(
        "Sent subscription %s email to %s for subscription %s",
        kind,
        recipient_email,
        subscription.pk,
    )
    return True
