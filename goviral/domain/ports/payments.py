from __future__ import annotations

from typing import Any, Dict, Optional, Protocol


class PaystackGateway(Protocol):
    """Card-authorization provider used for African markets."""

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
        ...

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
        ...

    async def verify_transaction(self, reference: str) -> Dict[str, Any]:
        ...

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        ...


class StripeGateway(Protocol):
    """Checkout-session provider used everywhere else."""

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
        ...

    async def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        ...

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> Dict[str, Any]:
        ...

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        ...
