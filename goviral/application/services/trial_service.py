from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from urllib.parse import quote

from ...core.config import Settings
from ...domain.errors import AlreadySubscribed
from ...domain.models import PaymentProvider, Plan, Tenant, TrialIntent
from ...domain.ports.persistence import PersistenceGateway
from ...services.plan_catalog import PlanCatalog, to_minor_units
from ...services.provider_selector import ProviderAffinity, charge_currency, select_provider
from .checkout_service import CheckoutLauncher, new_reference

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TrialStart:
    authorization_url: str
    reference: str
    provider: str
    plan: Plan


class TrialService:
    """Starts card-backed free trials.

    No subscription is written here. The trial begins when the provider
    confirms the card, through the webhook or the verify endpoints.
    """

    def __init__(
        self,
        persistence: PersistenceGateway,
        catalog: PlanCatalog,
        launcher: CheckoutLauncher,
        settings: Settings,
    ) -> None:
        self._persistence = persistence
        self._catalog = catalog
        self._launcher = launcher
        self._settings = settings

    async def start_trial(self, tenant: Tenant, plan_name: str, country_code: Optional[str]) -> TrialStart:
        """
        Open a hosted card authorization for a trial on ``plan_name``.

        Args:
            tenant: Authenticated tenant
            plan_name: Display name of the plan, case-insensitive
            country_code: ISO country used to pick the provider

        Returns:
            TrialStart with the hosted page URL and the payment reference

        Raises:
            AlreadySubscribed: The tenant has a subscription that is not cancelled
            InvalidPlan: Unknown plan
            PaymentUnavailable: No provider configured, or the provider call failed
        """
        existing = self._persistence.get_subscription(tenant.id)
        if existing is not None and not existing.is_cancelled():
            raise AlreadySubscribed()

        plan = self._catalog.resolve_plan(plan_name)
        provider = select_provider(
            country_code,
            ProviderAffinity(),
            self._launcher.availability,
            self._settings.paystack_countries,
        )
        currency = charge_currency(provider, country_code, self._settings.paystack_currency)
        intent = TrialIntent(tenant.id, plan.name, plan.trial_days)
        reference = new_reference("trial", tenant.id)

        if provider == PaymentProvider.PAYSTACK:
            # nominal charge to capture a reusable authorization
            checkout = await self._launcher.launch(
                tenant=tenant,
                plan=plan,
                provider=provider,
                reference=reference,
                amount=Decimal(self._settings.paystack_trial_auth_amount) / 100,
                currency=currency,
                intent=intent,
                return_path="/payment/trial-callback",
                cancel_path="/pricing",
                extra_metadata={"full_amount": to_minor_units(plan.price_for(currency))},
            )
        else:
            checkout = await self._launcher.launch(
                tenant=tenant,
                plan=plan,
                provider=provider,
                reference=reference,
                amount=plan.price_for(currency),
                currency=currency,
                intent=intent,
                return_path=(
                    "/payment/stripe-trial-callback?session_id={CHECKOUT_SESSION_ID}"
                    f"&plan={quote(plan.name)}"
                ),
                cancel_path="/trial-signup?canceled=true",
            )

        logger.info("Trial checkout %s started for tenant %s on %s", reference, tenant.id, plan.name)
        return TrialStart(
            authorization_url=checkout.authorization_url,
            reference=checkout.reference,
            provider=checkout.provider,
            plan=plan,
        )
