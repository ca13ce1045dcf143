"""Stripe payment integration service."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import stripe

from ..domain.errors import AuthenticationFailed
from ..domain.models import PaymentProvider
from .provider_errors import PaymentProviderError

logger = logging.getLogger(__name__)


class StripeService:
    """Wraps the Stripe SDK calls the billing core needs.

    The API key is passed on every call so no module-level SDK state is
    shared between applications. Blocking SDK calls run in a worker thread.
    """

    SIGNATURE_HEADER = "stripe-signature"
    SIGNATURE_TOLERANCE_SECONDS = 300

    def __init__(self, secret_key: str, webhook_secret: Optional[str] = None) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret

    async def create_checkout_session(
        self,
        *,
        customer_email: str,
        amount: int,
        currency: str,
        product_name: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a one-time payment Checkout Session.

        Args:
            customer_email: Prefilled e-mail on the hosted page
            amount: Amount in minor units
            currency: ISO currency code
            product_name: Line item label
            success_url: Redirect after payment; may contain ``{CHECKOUT_SESSION_ID}``
            cancel_url: Redirect when the user backs out
            metadata: String-only metadata copied onto the payment intent as well

        Returns:
            Dict with the session ``id`` and hosted ``url``
        """
        params: Dict[str, Any] = {
            "mode": "payment",
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "client_reference_id": metadata.get("tenant_id"),
            "payment_intent_data": {"metadata": metadata},
            "line_items": [
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "product_data": {
                            "name": product_name,
                            "description": description or "Social media management platform",
                        },
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }
            ],
        }
        session = await self._call(stripe.checkout.Session.create, **params)
        data = _to_plain(session)
        return {"id": data.get("id"), "url": data.get("url")}

    async def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        session = await self._call(stripe.checkout.Session.retrieve, session_id)
        data = _to_plain(session)
        return {
            "id": data.get("id"),
            "status": data.get("status"),
            "payment_status": data.get("payment_status"),
            "customer": _identifier(data.get("customer")),
            "subscription": _identifier(data.get("subscription")),
            "client_reference_id": data.get("client_reference_id"),
            "metadata": dict(data.get("metadata") or {}),
        }

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> Dict[str, Any]:
        subscription = await self._call(stripe.Subscription.modify, subscription_id, cancel_at_period_end=cancel)
        data = _to_plain(subscription)
        return {
            "id": data.get("id"),
            "status": data.get("status"),
            "cancel_at_period_end": bool(data.get("cancel_at_period_end")),
        }

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the ``stripe-signature`` header and decode the event.

        Raises:
            AuthenticationFailed: Missing secret, missing header or a bad signature
        """
        if not self._webhook_secret:
            logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not configured")
            raise AuthenticationFailed("Webhook secret not configured")
        if not signature:
            raise AuthenticationFailed("Missing signature")
        text = payload.decode("utf-8")
        try:
            stripe.WebhookSignature.verify_header(
                text,
                signature,
                self._webhook_secret,
                self.SIGNATURE_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Stripe webhook signature verification failed: %s", exc)
            raise AuthenticationFailed() from exc
        try:
            return json.loads(text)
        except ValueError as exc:
            raise AuthenticationFailed("Invalid payload") from exc

    async def _call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, api_key=self._secret_key, **kwargs)
        except stripe.StripeError as exc:
            logger.error("Stripe request failed: %s", exc)
            raise PaymentProviderError(
                PaymentProvider.STRIPE,
                getattr(exc, "user_message", None) or str(exc),
                status_code=getattr(exc, "http_status", None),
            ) from exc


def _to_plain(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _identifier(value: Any) -> Optional[str]:
    """Expanded objects come back as dicts; plain references as ids."""
    if isinstance(value, dict):
        return value.get("id")
    return value
