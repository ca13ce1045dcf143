from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from ...core.config import Settings
from ...domain.errors import PaymentUnavailable
from ...domain.models import PaymentIntent, PaymentProvider, PaymentStatus, Plan, Tenant, intent_to_metadata
from ...domain.ports.payments import PaystackGateway, StripeGateway
from ...domain.ports.persistence import PersistenceGateway
from ...services.plan_catalog import to_minor_units
from ...services.provider_errors import PaymentProviderError
from ...services.provider_selector import ProviderAvailability

logger = logging.getLogger(__name__)


def new_reference(prefix: str, tenant_id: str) -> str:
    """Unique per attempt: ``{prefix}_{tenant}_{epoch_ms}_{random hex}``."""
    return f"{prefix}_{tenant_id}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


@dataclass(slots=True)
class HostedCheckout:
    provider: str
    reference: str
    authorization_url: str
    amount: Decimal
    currency: str


class CheckoutLauncher:
    """Records a pending payment and opens the provider's hosted payment page."""

    def __init__(
        self,
        persistence: PersistenceGateway,
        settings: Settings,
        paystack: Optional[PaystackGateway] = None,
        stripe_service: Optional[StripeGateway] = None,
    ) -> None:
        self._persistence = persistence
        self._settings = settings
        self._paystack = paystack
        self._stripe = stripe_service

    @property
    def availability(self) -> ProviderAvailability:
        return ProviderAvailability(paystack=self._paystack is not None, stripe=self._stripe is not None)

    async def launch(
        self,
        *,
        tenant: Tenant,
        plan: Plan,
        provider: str,
        reference: str,
        amount: Decimal,
        currency: str,
        intent: PaymentIntent,
        return_path: str,
        cancel_path: str,
        extra_metadata: Optional[Dict[str, Any]] = None,
    ) -> HostedCheckout:
        """Create the pending payment first, then call the provider.

        A provider failure leaves the payment pending and surfaces as
        PaymentUnavailable.
        """
        self._persistence.create_payment(
            tenant_id=tenant.id,
            plan_id=plan.id,
            reference=reference,
            provider=provider,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
        )
        metadata: Dict[str, Any] = intent_to_metadata(intent)
        metadata["reference"] = reference
        if extra_metadata:
            metadata.update(extra_metadata)

        try:
            if provider == PaymentProvider.PAYSTACK:
                url = await self._launch_paystack(tenant, reference, amount, currency, metadata, return_path, cancel_path)
            else:
                url = await self._launch_stripe(
                    tenant, plan, reference, amount, currency, metadata, return_path, cancel_path
                )
        except PaymentProviderError as exc:
            logger.error("Could not open %s checkout for %s: %s", provider, reference, exc)
            raise PaymentUnavailable("Failed to initialize payment") from exc

        logger.info("Opened %s checkout %s for tenant %s", provider, reference, tenant.id)
        return HostedCheckout(
            provider=provider,
            reference=reference,
            authorization_url=url,
            amount=amount,
            currency=currency,
        )

    async def _launch_paystack(
        self,
        tenant: Tenant,
        reference: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        return_path: str,
        cancel_path: str,
    ) -> str:
        if self._paystack is None:
            raise PaymentUnavailable()
        metadata.setdefault("cancel_action", self._url(cancel_path))
        data = await self._paystack.initialize_transaction(
            email=tenant.email,
            amount=to_minor_units(amount),
            reference=reference,
            callback_url=self._url(return_path),
            metadata=metadata,
            currency=currency,
        )
        url = data.get("authorization_url")
        if not url:
            raise PaymentProviderError(PaymentProvider.PAYSTACK, "missing authorization_url", payload=data)
        return url

    async def _launch_stripe(
        self,
        tenant: Tenant,
        plan: Plan,
        reference: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        return_path: str,
        cancel_path: str,
    ) -> str:
        if self._stripe is None:
            raise PaymentUnavailable()
        session = await self._stripe.create_checkout_session(
            customer_email=tenant.email,
            amount=to_minor_units(amount),
            currency=currency,
            product_name=f"GoViral {plan.name}",
            success_url=self._url(return_path),
            cancel_url=self._url(cancel_path),
            metadata={key: str(value) for key, value in metadata.items()},
        )
        if not session.get("url"):
            raise PaymentProviderError(PaymentProvider.STRIPE, "missing checkout url", payload=session)
        if session.get("id"):
            self._persistence.set_payment_session(reference, session["id"])
        return session["url"]

    def _url(self, path: str) -> str:
        return f"{self._settings.app_base_url}{path}"
