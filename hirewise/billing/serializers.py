from rest_framework import serializers

from hirewise.billing.models import Subscription


class CheckoutRequestSerializer(serializers.Serializer):
    """
    Input for starting a Stripe Checkout session.

    plan_tier is a plain string so an unknown tier reaches the checkout
    service and is reported as a billing validation error.
    """

    employer_id = serializers.IntegerField(min_value=1)
    plan_tier = serializers.CharField(max_length=16)
    promotion_code = serializers.CharField(
        max_length=255,
        required=False,
        allow_blank=True,
    )
    success_url = serializers.URLField(required=False)
    cancel_url = serializers.URLField(required=False)


class CancellationResultSerializer(serializers.Serializer):
    message = serializers.CharField()
    status = serializers.CharField()
    auto_renewal = serializers.BooleanField()
    immediate = serializers.BooleanField()


class ResumeResultSerializer(serializers.Serializer):
    message = serializers.CharField()
    auto_renewal = serializers.BooleanField()


class SubscriptionSerializer(serializers.ModelSerializer[Subscription]):
    """Read model for an employer's subscription."""

    employer_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "employer_id",
            "plan_tier",
            "status",
            "auto_renewal",
            "stripe_subscription_id",
            "current_period_start",
            "current_period_end",
            "year_anchor_date",
            "cancel_grace_deadline",
            "renewal_count",
            "last_payment_amount_cents",
            "last_payment_attempt_failed",
            "applied_promotion_code",
            "hosted_invoice_url",
        ]
        read_only_fields = fields
