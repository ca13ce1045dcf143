"""Translate Stripe webhook events into canonical transitions."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..domain.models import (
    CheckoutCompleted,
    InvoicePaid,
    InvoicePaymentFailed,
    PaymentAttemptFailed,
    PaymentProvider,
    ProviderEvent,
    SubscriptionCancelled,
    SubscriptionUpdated,
    Transition,
    intent_from_metadata,
)
from ..domain.ports.payments import StripeGateway

logger = logging.getLogger(__name__)


class StripeWebhookAdapter:
    def __init__(self, stripe_service: StripeGateway) -> None:
        self._stripe = stripe_service

    def parse(self, body: bytes, signature: Optional[str]) -> ProviderEvent:
        """Verify and decode a Stripe event; AuthenticationFailed on a bad signature."""
        event = self._stripe.construct_event(body, signature)
        event_type = str(event.get("type") or "")
        obj = (event.get("data") or {}).get("object") or {}
        return ProviderEvent(
            provider=PaymentProvider.STRIPE,
            event_key=str(event.get("id") or hashlib.sha256(body).hexdigest()),
            event_type=event_type,
            transitions=tuple(self._map(event_type, obj)),
        )

    def _map(self, event_type: str, obj: Dict[str, Any]) -> List[Transition]:
        if event_type == "checkout.session.completed":
            completed = checkout_completed_from_session(obj)
            return [completed] if completed else []

        if event_type == "payment_intent.payment_failed":
            reference = (obj.get("metadata") or {}).get("reference")
            return [PaymentAttemptFailed(reference)] if reference else []

        if event_type == "customer.subscription.updated":
            subscription_id = obj.get("id")
            if not subscription_id:
                return []
            return [
                SubscriptionUpdated(
                    provider_subscription_id=subscription_id,
                    provider_status=str(obj.get("status") or ""),
                    current_period_end=_period_end(obj),
                    cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
                )
            ]

        if event_type == "customer.subscription.deleted":
            subscription_id = obj.get("id")
            return [SubscriptionCancelled(subscription_id)] if subscription_id else []

        if event_type in ("invoice.paid", "invoice.payment_failed"):
            subscription_id = _invoice_subscription(obj)
            if not subscription_id:
                return []
            if event_type == "invoice.paid":
                return [InvoicePaid(subscription_id)]
            return [InvoicePaymentFailed(subscription_id)]

        logger.info("Unhandled Stripe event type: %s", event_type)
        return []


def checkout_completed_from_session(session: Dict[str, Any]) -> Optional[CheckoutCompleted]:
    """Map a completed Checkout Session (webhook object or retrieved session)."""
    metadata = dict(session.get("metadata") or {})
    tenant_id = metadata.get("tenant_id") or session.get("client_reference_id")
    if not tenant_id:
        logger.info("Checkout session %s has no tenant metadata", session.get("id"))
        return None
    return CheckoutCompleted(
        tenant_id=str(tenant_id),
        provider=PaymentProvider.STRIPE,
        reference=metadata.get("reference"),
        customer_id=_identifier(session.get("customer")),
        provider_subscription_id=_identifier(session.get("subscription")),
        plan_name=metadata.get("plan_name"),
        intent=intent_from_metadata(metadata),
    )


def _identifier(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _period_end(obj: Dict[str, Any]) -> Optional[datetime]:
    timestamp = obj.get("current_period_end")
    if timestamp is None:
        # Newer API versions carry the period on the subscription items
        items = (obj.get("items") or {}).get("data") or []
        if items:
            timestamp = items[0].get("current_period_end")
    if timestamp is None:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)


def _invoice_subscription(invoice: Dict[str, Any]) -> Optional[str]:
    subscription = _identifier(invoice.get("subscription"))
    if subscription:
        return subscription
    details = ((invoice.get("parent") or {}).get("subscription_details") or {})
    return _identifier(details.get("subscription"))
