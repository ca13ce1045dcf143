"""Translate Paystack webhook deliveries into canonical transitions."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional

from ..domain.errors import AuthenticationFailed
from ..domain.models import (
    CardDetails,
    ChargeSucceeded,
    InvoicePaid,
    InvoicePaymentFailed,
    PaymentProvider,
    ProviderEvent,
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionWillNotRenew,
    Transition,
    intent_from_metadata,
)
from ..domain.ports.payments import PaystackGateway

logger = logging.getLogger(__name__)


class PaystackWebhookAdapter:
    def __init__(self, client: PaystackGateway) -> None:
        self._client = client

    def parse(self, body: bytes, signature: Optional[str]) -> ProviderEvent:
        """Verify the signature over the raw body, then decode and map the event.

        Raises:
            AuthenticationFailed: Missing or invalid signature, or an undecodable body
        """
        if not signature:
            raise AuthenticationFailed("No signature provided")
        if not self._client.verify_signature(body, signature):
            logger.warning("Rejected Paystack webhook with invalid signature")
            raise AuthenticationFailed()
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise AuthenticationFailed("Invalid payload") from exc

        event_type = str(event.get("event") or "")
        data = event.get("data") or {}
        return ProviderEvent(
            provider=PaymentProvider.PAYSTACK,
            event_key=hashlib.sha256(body).hexdigest(),
            event_type=event_type,
            transitions=tuple(self._map(event_type, data)),
        )

    def _map(self, event_type: str, data: Dict[str, Any]) -> List[Transition]:
        if event_type == "charge.success":
            charge = charge_succeeded_from_transaction(data)
            return [charge] if charge else []

        if event_type == "subscription.create":
            customer_code = (data.get("customer") or {}).get("customer_code")
            subscription_code = data.get("subscription_code")
            if customer_code and subscription_code:
                return [SubscriptionActivated(customer_code, subscription_code)]
            return []

        if event_type in ("subscription.disable", "subscription.not_renew"):
            subscription_code = data.get("subscription_code")
            if not subscription_code:
                return []
            if event_type == "subscription.disable":
                return [SubscriptionCancelled(subscription_code)]
            return [SubscriptionWillNotRenew(subscription_code)]

        if event_type in ("invoice.create", "invoice.update", "invoice.payment_failed"):
            subscription_code = (data.get("subscription") or {}).get("subscription_code")
            if not subscription_code:
                return []
            if event_type != "invoice.payment_failed" and data.get("paid"):
                return [InvoicePaid(subscription_code)]
            return [InvoicePaymentFailed(subscription_code)]

        logger.info("Unhandled Paystack event type: %s", event_type)
        return []


def charge_succeeded_from_transaction(data: Dict[str, Any]) -> Optional[ChargeSucceeded]:
    """Map a successful Paystack transaction (webhook or verify response)."""
    reference = data.get("reference")
    if not reference:
        return None
    customer = data.get("customer") or {}
    return ChargeSucceeded(
        reference=str(reference),
        provider=PaymentProvider.PAYSTACK,
        customer_id=customer.get("customer_code"),
        card=card_details(data.get("authorization") or {}),
        intent=intent_from_metadata(_metadata(data.get("metadata"))),
    )


def card_details(authorization: Dict[str, Any]) -> Optional[CardDetails]:
    if not authorization:
        return None
    code = authorization.get("authorization_code")
    # single-use authorizations cannot be charged again
    if authorization.get("reusable") is False:
        code = None
    return CardDetails(
        authorization_code=code,
        brand=authorization.get("brand") or authorization.get("card_type"),
        last4=_text(authorization.get("last4")),
        exp_month=_text(authorization.get("exp_month")),
        exp_year=_text(authorization.get("exp_year")),
    )


def _metadata(value: Any) -> Dict[str, Any]:
    # Paystack echoes metadata back as sent, which may be a JSON string
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _text(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None
