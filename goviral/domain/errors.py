"""
Billing errors.

Every error a caller can act on maps to one subclass. The HTTP layer renders
them as ``{"error": message, "code": code}`` with ``status_code``.
"""

from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base exception for all billing errors surfaced to callers."""

    code = "BILLING_ERROR"
    status_code = 400
    default_message = "Billing request could not be completed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidPlan(BillingError):
    code = "INVALID_PLAN"
    default_message = "Invalid plan"


class AlreadySubscribed(BillingError):
    code = "ALREADY_SUBSCRIBED"
    default_message = "You already have an active subscription"


class NoActiveSubscription(BillingError):
    code = "NO_ACTIVE_SUBSCRIPTION"
    default_message = "No active subscription found. Please start a trial first."


class DowngradeNotAllowed(BillingError):
    code = "DOWNGRADE_NOT_ALLOWED"
    default_message = "You can only upgrade to a higher plan. For downgrades, please contact support."


class InvalidSubscriptionState(BillingError):
    code = "INVALID_SUBSCRIPTION_STATE"
    default_message = "Subscription is not in a state that allows this operation"


class PaymentFailed(BillingError):
    code = "PAYMENT_FAILED"
    status_code = 402
    default_message = "Payment failed. Please update your payment method."


class PaymentUnavailable(BillingError):
    code = "PAYMENT_UNAVAILABLE"
    status_code = 503
    default_message = "Payment processing is not available at this time. Please contact support."


class AuthenticationFailed(BillingError):
    code = "AUTHENTICATION_FAILED"
    default_message = "Invalid signature"


class NotFound(BillingError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"
