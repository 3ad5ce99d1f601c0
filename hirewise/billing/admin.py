"""
Django admin configuration for billing models.

Provides admin interfaces for:
- Subscription: View employer subscriptions mirrored from Stripe
- Payment: View the payment ledger
- WebhookEvent: Inspect received Stripe events and reprocess failures
"""

from django.contrib import admin
from django.core.management import call_command

from hirewise.billing.constants import WebhookEventStatus
from hirewise.billing.models import Payment
from hirewise.billing.models import Subscription
from hirewise.billing.models import WebhookEvent


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin for employer subscriptions."""

    list_display = [
        "employer",
        "plan_tier",
        "status",
        "auto_renewal",
        "renewal_count",
        "current_period_end",
        "stripe_subscription_id",
    ]
    list_filter = ["status", "plan_tier", "auto_renewal"]
    search_fields = ["employer__name", "stripe_subscription_id"]
    raw_id_fields = ["employer", "last_payment"]
    readonly_fields = ["created", "modified"]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Admin for the payment ledger (read-only)."""

    list_display = [
        "stripe_charge_ref",
        "employer",
        "status",
        "net_amount_cents",
        "currency",
        "is_renewal",
        "created",
    ]
    list_filter = ["status", "is_renewal"]
    search_fields = ["stripe_charge_ref", "employer__name"]
    raw_id_fields = ["employer", "subscription"]
    readonly_fields = ["created", "modified"]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """Admin for received Stripe events."""

    list_display = [
        "stripe_event_id",
        "event_type",
        "status",
        "outcome",
        "attempts",
        "created",
        "processed_at",
    ]
    list_filter = ["status", "event_type"]
    search_fields = ["stripe_event_id"]
    readonly_fields = ["created", "modified", "processed_at", "payload"]
    actions = ["reprocess_events"]

    @admin.action(description="Reprocess selected events")
    def reprocess_events(self, request, queryset):
        count = 0
        pending = queryset.exclude(
            status__in=[WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED],
        )
        for event in pending:
            call_command("reprocess_webhook_events", event_id=event.stripe_event_id)
            count += 1
        self.message_user(request, f"Reprocessed {count} event(s).")
