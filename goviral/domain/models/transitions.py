"""
Canonical subscription transitions.

Webhook adapters and the verification endpoints translate provider payloads
into these objects; the reconciler is the only place that turns them into
store writes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union

from .intent import PaymentIntent


@dataclass(frozen=True, slots=True)
class CardDetails:
    authorization_code: Optional[str] = None
    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[str] = None
    exp_year: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ChargeSucceeded:
    reference: str
    provider: str
    customer_id: Optional[str] = None
    card: Optional[CardDetails] = None
    intent: Optional[PaymentIntent] = None


@dataclass(frozen=True, slots=True)
class SubscriptionActivated:
    customer_id: str
    provider_subscription_id: str


@dataclass(frozen=True, slots=True)
class SubscriptionCancelled:
    provider_subscription_id: str


@dataclass(frozen=True, slots=True)
class SubscriptionWillNotRenew:
    provider_subscription_id: str


@dataclass(frozen=True, slots=True)
class InvoicePaid:
    provider_subscription_id: str


@dataclass(frozen=True, slots=True)
class InvoicePaymentFailed:
    provider_subscription_id: str


@dataclass(frozen=True, slots=True)
class CheckoutCompleted:
    tenant_id: str
    provider: str
    reference: Optional[str] = None
    customer_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    plan_name: Optional[str] = None
    intent: Optional[PaymentIntent] = None


@dataclass(frozen=True, slots=True)
class SubscriptionUpdated:
    provider_subscription_id: str
    provider_status: str
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False


@dataclass(frozen=True, slots=True)
class PaymentAttemptFailed:
    reference: str


Transition = Union[
    ChargeSucceeded,
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionWillNotRenew,
    InvoicePaid,
    InvoicePaymentFailed,
    CheckoutCompleted,
    SubscriptionUpdated,
    PaymentAttemptFailed,
]


@dataclass(frozen=True, slots=True)
class ProviderEvent:
    """A verified webhook delivery and the transitions it maps to."""

    provider: str
    event_key: str
    event_type: str
    transitions: Tuple[Transition, ...] = ()
