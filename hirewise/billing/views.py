"""
Internal JSON API for billing.

Endpoints:
- POST /billing/checkout/                        - Start Stripe Checkout
- POST /billing/subscriptions/<id>/cancel/       - Cancel a subscription
- POST /billing/subscriptions/<id>/resume/       - Turn auto-renewal back on
- GET  /billing/employers/<id>/subscription/     - Current subscription

Billing errors map to HTTP responses with a {"detail", "code"} body.
"""

import logging

from rest_framework import serializers
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from hirewise.billing.cancellation import CancellationService
from hirewise.billing.exceptions import BillingError
from hirewise.billing.exceptions import BillingValidationError
from hirewise.billing.exceptions import NotFoundError
from hirewise.billing.serializers import CancellationResultSerializer
from hirewise.billing.serializers import CheckoutRequestSerializer
from hirewise.billing.serializers import ResumeResultSerializer
from hirewise.billing.serializers import SubscriptionSerializer
from hirewise.billing.services import CheckoutService
from hirewise.billing.stripe_client import get_stripe_client
from hirewise.employers.models import Employer

logger = logging.getLogger(__name__)


class BillingAPIView(APIView):
    """Base view that renders billing errors as {"detail", "code"}."""

    def handle_exception(self, exc):
        if isinstance(exc, BillingError):
            logger.info(
                "Billing request rejected: %s (%s)",
                exc,
                exc.code,
            )
            return Response(
                {"detail": str(exc), "code": exc.code},
                status=int(exc.status_code),
            )
        if isinstance(exc, serializers.ValidationError):
            return Response(
                {"detail": exc.detail, "code": BillingValidationError.code},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return super().handle_exception(exc)


class CheckoutStartView(BillingAPIView):
    """
    Start a Stripe Checkout session for an employer.

    Returns the hosted checkout URL; the subscription itself is created
    later, when Stripe confirms the first payment.
    """

    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        service = CheckoutService(client=get_stripe_client())
        checkout_url = service.start_checkout(
            employer_id=data["employer_id"],
            plan_tier=data["plan_tier"],
            promotion_code=data.get("promotion_code") or None,
            success_url=data.get("success_url"),
            cancel_url=data.get("cancel_url"),
        )
        return Response({"url": checkout_url}, status=status.HTTP_201_CREATED)


class CancelSubscriptionView(BillingAPIView):
    """Cancel immediately within the grace period, else at period end."""

    def post(self, request, pk):
        service = CancellationService(client=get_stripe_client())
        result = service.cancel(pk)
        return Response(
            CancellationResultSerializer(result).data,
            status=status.HTTP_200_OK,
        )


class ResumeAutoRenewalView(BillingAPIView):
    """Undo a deferred cancellation before the subscription ends."""

    def post(self, request, pk):
        service = CancellationService(client=get_stripe_client())
        result = service.resume_auto_renewal(pk)
        return Response(
            ResumeResultSerializer(result).data,
            status=status.HTTP_200_OK,
        )


class EmployerSubscriptionView(BillingAPIView):
    """Return the employer's current subscription."""

    def get(self, request, pk):
        employer = (
            Employer.objects.select_related("current_subscription")
            .filter(pk=pk)
            .first()
        )
        if employer is None:
            msg = f"Employer {pk} not found"
            raise NotFoundError(msg)
        if employer.current_subscription is None:
            msg = f"Employer {pk} has no subscription"
            raise NotFoundError(msg)

        return Response(
            SubscriptionSerializer(employer.current_subscription).data,
            status=status.HTTP_200_OK,
        )
