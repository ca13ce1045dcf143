"""Domain models for the GoViral billing core."""

from .activity import AuditLog, Notification, Tenant
from .intent import (
    FullChargeIntent,
    PaymentIntent,
    TrialIntent,
    UpgradeIntent,
    intent_from_metadata,
    intent_to_metadata,
)
from .payment import Payment, PaymentProvider, PaymentStatus
from .plan import Plan
from .subscription import Subscription, SubscriptionStatus
from .transitions import (
    CardDetails,
    ChargeSucceeded,
    CheckoutCompleted,
    InvoicePaid,
    InvoicePaymentFailed,
    PaymentAttemptFailed,
    ProviderEvent,
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionUpdated,
    SubscriptionWillNotRenew,
    Transition,
)

__all__ = [
    "AuditLog",
    "CardDetails",
    "ChargeSucceeded",
    "CheckoutCompleted",
    "FullChargeIntent",
    "InvoicePaid",
    "InvoicePaymentFailed",
    "Notification",
    "Payment",
    "PaymentAttemptFailed",
    "PaymentIntent",
    "PaymentProvider",
    "PaymentStatus",
    "ProviderEvent",
    "Plan",
    "Subscription",
    "SubscriptionActivated",
    "SubscriptionCancelled",
    "SubscriptionStatus",
    "SubscriptionUpdated",
    "SubscriptionWillNotRenew",
    "Tenant",
    "Transition",
    "TrialIntent",
    "UpgradeIntent",
    "intent_from_metadata",
    "intent_to_metadata",
]
