"""Hirewise: employer subscriptions billed through Stripe."""
