"""Paystack REST API client."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from ..domain.models import PaymentProvider
from .provider_errors import PaymentProviderError, PaymentProviderTimeout

logger = logging.getLogger(__name__)


class PaystackClient:
    """Thin async wrapper over the Paystack transaction endpoints.

    Amounts are always in minor units (kobo, pesewas, cents).
    """

    SIGNATURE_HEADER = "x-paystack-signature"

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def initialize_transaction(
        self,
        *,
        email: str,
        amount: int,
        reference: str,
        callback_url: str,
        metadata: Dict[str, Any],
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Start a hosted checkout.

        Returns:
            The ``data`` object, holding ``authorization_url``, ``access_code``
            and ``reference``.
        """
        payload: Dict[str, Any] = {
            "email": email,
            "amount": amount,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata,
        }
        if currency:
            payload["currency"] = currency
        return await self._request("POST", "/transaction/initialize", json=payload)

    async def charge_authorization(
        self,
        *,
        email: str,
        amount: int,
        authorization_code: str,
        reference: str,
        metadata: Dict[str, Any],
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Charge a saved card off-session. ``data.status`` is ``success`` when it went through."""
        payload: Dict[str, Any] = {
            "email": email,
            "amount": amount,
            "authorization_code": authorization_code,
            "reference": reference,
            "metadata": metadata,
        }
        if currency:
            payload["currency"] = currency
        return await self._request("POST", "/transaction/charge_authorization", json=payload)

    async def verify_transaction(self, reference: str) -> Dict[str, Any]:
        return await self._request("GET", f"/transaction/verify/{reference}")

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """Check the HMAC-SHA512 webhook signature computed over the raw body."""
        if not signature:
            return False
        expected = hmac.new(self._secret_key.encode("utf-8"), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature.strip())

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._secret_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("Paystack %s %s timed out", method, path)
            raise PaymentProviderTimeout(PaymentProvider.PAYSTACK, "request timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("Paystack %s %s failed: %s", method, path, exc)
            raise PaymentProviderError(PaymentProvider.PAYSTACK, str(exc)) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise PaymentProviderError(
                PaymentProvider.PAYSTACK,
                "invalid JSON response",
                status_code=response.status_code,
            ) from exc

        if response.is_error or not body.get("status"):
            message = body.get("message") or response.reason_phrase
            logger.error("Paystack %s %s returned %s: %s", method, path, response.status_code, message)
            raise PaymentProviderError(
                PaymentProvider.PAYSTACK,
                message,
                status_code=response.status_code,
                payload=body,
            )
        return body.get("data") or {}
