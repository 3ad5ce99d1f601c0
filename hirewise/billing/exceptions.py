"""
Billing error taxonomy.

Every error carries a machine-readable ``code`` and the HTTP status the
internal API maps it to. Duplicate webhook deliveries are not errors; they
are reported as a reconciliation outcome instead.
"""

from http import HTTPStatus


class BillingError(Exception):
    """Base exception for billing errors."""

    code = "billing_error"
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class BillingValidationError(BillingError):
    """Raised for bad input such as an unknown plan tier."""

    code = "invalid_request"
    status_code = HTTPStatus.BAD_REQUEST


class ConflictError(BillingError):
    """Raised when the employer already has an active subscription."""

    code = "subscription_conflict"
    status_code = HTTPStatus.CONFLICT


class NotFoundError(BillingError):
    """Raised when an employer or subscription cannot be found."""

    code = "not_found"
    status_code = HTTPStatus.NOT_FOUND


class PolicyError(BillingError):
    """Raised when a cancellation or resume request falls outside policy."""

    code = "policy_violation"
    status_code = HTTPStatus.UNPROCESSABLE_ENTITY


class UpstreamError(BillingError):
    """Raised when a Stripe call fails, times out, or returns unusable data."""

    code = "upstream_error"
    status_code = HTTPStatus.BAD_GATEWAY
