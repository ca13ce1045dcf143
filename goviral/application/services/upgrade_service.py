from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional, Tuple
from urllib.parse import quote

from ...core.config import Settings
from ...domain.errors import DowngradeNotAllowed, InvalidPlan, NoActiveSubscription, PaymentFailed
from ...domain.models import (
    CardDetails,
    ChargeSucceeded,
    Payment,
    PaymentProvider,
    PaymentStatus,
    Plan,
    Subscription,
    Tenant,
    UpgradeIntent,
    intent_to_metadata,
)
from ...domain.ports.payments import PaystackGateway
from ...domain.ports.persistence import PersistenceGateway
from ...services.paystack_webhooks import card_details
from ...services.plan_catalog import PlanCatalog, to_minor_units
from ...services.provider_errors import PaymentProviderError
from ...services.provider_selector import ProviderAffinity, charge_currency, select_provider
from ...services.reconciler import SubscriptionReconciler, utcnow
from .checkout_service import CheckoutLauncher, new_reference

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UpgradeQuote:
    current_plan: str
    new_plan: str
    prorated_amount: Decimal
    days_remaining: int
    next_billing_amount: Decimal
    current_plan_price: Decimal
    new_plan_price: Decimal
    currency: str = "USD"

    @property
    def price_difference(self) -> Decimal:
        return self.new_plan_price - self.current_plan_price


@dataclass(slots=True)
class UpgradeResult:
    deferred: bool
    provider: str
    message: str
    reference: str
    amount: Decimal
    currency: str
    days_remaining: int
    subscription: Optional[Subscription] = None
    authorization_url: Optional[str] = None
    payment_status: str = field(default=PaymentStatus.PENDING)


class UpgradeService:
    """Moves a tenant to a more expensive plan, charging the prorated difference."""

    def __init__(
        self,
        persistence: PersistenceGateway,
        catalog: PlanCatalog,
        reconciler: SubscriptionReconciler,
        launcher: CheckoutLauncher,
        settings: Settings,
        paystack: Optional[PaystackGateway] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._persistence = persistence
        self._catalog = catalog
        self._reconciler = reconciler
        self._launcher = launcher
        self._settings = settings
        self._paystack = paystack
        self._clock = clock

    def quote(self, tenant: Tenant, new_plan_name: str, country_code: Optional[str] = None) -> UpgradeQuote:
        """Cost breakdown for an upgrade, priced in the currency ``upgrade`` would charge."""
        subscription = self._require_subscription(tenant)
        current, new = self._plans_for(subscription, new_plan_name)
        _, currency = self._charge_route(subscription, country_code)
        days_remaining = self._days_remaining(subscription)
        return UpgradeQuote(
            current_plan=current.name,
            new_plan=new.name,
            prorated_amount=self._catalog.calculate_prorated_amount(
                current.name, new.name, days_remaining, self._settings.billing_period_days, currency
            ),
            days_remaining=days_remaining,
            next_billing_amount=new.price_for(currency),
            current_plan_price=current.price_for(currency),
            new_plan_price=new.price_for(currency),
            currency=currency,
        )

    async def upgrade(self, tenant: Tenant, new_plan_name: str, country_code: Optional[str]) -> UpgradeResult:
        """
        Upgrade the tenant's plan.

        A saved Paystack card is charged off-session and the upgrade is
        committed before returning. Otherwise a hosted checkout is opened and
        the upgrade commits when the provider confirms it.

        Raises:
            NoActiveSubscription: No active or trialing subscription, or its period has ended
            InvalidPlan: Unknown new or current plan
            DowngradeNotAllowed: The new plan is not more expensive
            PaymentFailed: The saved card was declined
            PaymentUnavailable: No provider configured, or the hosted checkout failed to open
        """
        subscription = self._require_subscription(tenant)
        current, new = self._plans_for(subscription, new_plan_name)
        if new.price <= current.price:
            raise DowngradeNotAllowed()

        provider, currency = self._charge_route(subscription, country_code)
        days_remaining = self._days_remaining(subscription)
        amount = self._catalog.calculate_prorated_amount(
            current.name, new.name, days_remaining, self._settings.billing_period_days, currency
        )
        intent = UpgradeIntent(tenant.id, new.name, current.name, amount)

        # the period is live here, so zero only happens when both plans share a regional price
        if amount <= 0:
            reference = new_reference("upgrade", tenant.id)
            return self._commit(tenant, new, intent, provider, reference, currency, days_remaining)

        if provider == PaymentProvider.PAYSTACK and subscription.authorization_code:
            return await self._charge_saved_card(tenant, subscription, new, intent, currency, days_remaining)

        plan = self._catalog.resolve_plan(new.name)
        reference = new_reference("upgrade", tenant.id)
        if provider == PaymentProvider.PAYSTACK:
            return_path = "/payment/upgrade-callback"
        else:
            return_path = (
                "/payment/upgrade-callback?session_id={CHECKOUT_SESSION_ID}"
                f"&plan={quote(plan.name)}&provider=stripe"
            )
        checkout = await self._launcher.launch(
            tenant=tenant,
            plan=plan,
            provider=provider,
            reference=reference,
            amount=amount,
            currency=currency,
            intent=intent,
            return_path=return_path,
            cancel_path="/dashboard/settings?canceled=true",
            extra_metadata={"days_remaining": str(days_remaining)},
        )
        return UpgradeResult(
            deferred=True,
            provider=provider,
            message="Please complete payment to upgrade your plan",
            reference=checkout.reference,
            amount=amount,
            currency=currency,
            days_remaining=days_remaining,
            authorization_url=checkout.authorization_url,
        )

    async def _charge_saved_card(
        self,
        tenant: Tenant,
        subscription: Subscription,
        new: Plan,
        intent: UpgradeIntent,
        currency: str,
        days_remaining: int,
    ) -> UpgradeResult:
        if self._paystack is None:
            raise PaymentFailed()
        reference = new_reference("upgrade", tenant.id)
        try:
            data = await self._paystack.charge_authorization(
                email=tenant.email,
                amount=to_minor_units(intent.prorated_amount),
                authorization_code=subscription.authorization_code or "",
                reference=reference,
                metadata={**intent_to_metadata(intent), "reference": reference},
                currency=currency,
            )
        except PaymentProviderError as exc:
            logger.error("Upgrade charge %s for tenant %s failed: %s", reference, tenant.id, exc)
            raise PaymentFailed() from exc
        if data.get("status") != "success":
            logger.warning(
                "Upgrade charge %s for tenant %s declined: %s", reference, tenant.id, data.get("gateway_response")
            )
            raise PaymentFailed()

        card = card_details(data.get("authorization") or {})
        customer_id = (data.get("customer") or {}).get("customer_code")
        return self._commit(
            tenant, new, intent, PaymentProvider.PAYSTACK, reference, currency, days_remaining,
            customer_id=customer_id, card=card,
        )

    def _commit(
        self,
        tenant: Tenant,
        new: Plan,
        intent: UpgradeIntent,
        provider: str,
        reference: str,
        currency: str,
        days_remaining: int,
        *,
        customer_id: Optional[str] = None,
        card: Optional[CardDetails] = None,
    ) -> UpgradeResult:
        plan = self._catalog.resolve_plan(new.name)
        payment: Payment = self._persistence.create_payment(
            tenant_id=tenant.id,
            plan_id=plan.id,
            reference=reference,
            provider=provider,
            amount=intent.prorated_amount,
            currency=currency,
            status=PaymentStatus.PENDING,
        )
        subscription = self._reconciler.apply(
            ChargeSucceeded(
                reference=payment.reference,
                provider=provider,
                customer_id=customer_id,
                card=card,
                intent=intent,
            )
        )
        logger.info("Upgrade %s committed for tenant %s", reference, tenant.id)
        return UpgradeResult(
            deferred=False,
            provider=provider,
            message="Subscription upgraded successfully",
            reference=reference,
            amount=intent.prorated_amount,
            currency=currency,
            days_remaining=days_remaining,
            subscription=subscription,
            payment_status=PaymentStatus.PAID,
        )

    # Helpers ----------------------------------------------------------------
    def _require_subscription(self, tenant: Tenant) -> Subscription:
        """Only a paid-up or trialing subscription inside its period can be upgraded."""
        subscription = self._persistence.get_subscription(tenant.id)
        if subscription is None or not subscription.is_active():
            raise NoActiveSubscription()
        if subscription.current_period_end <= self._clock():
            logger.info("Upgrade refused for tenant %s: period ended %s", tenant.id, subscription.current_period_end)
            raise NoActiveSubscription()
        return subscription

    def _charge_route(self, subscription: Subscription, country_code: Optional[str]) -> Tuple[str, str]:
        provider = select_provider(
            country_code,
            ProviderAffinity.from_subscription(subscription),
            self._launcher.availability,
            self._settings.paystack_countries,
        )
        return provider, charge_currency(provider, country_code, self._settings.paystack_currency)

    def _plans_for(self, subscription: Subscription, new_plan_name: str) -> Tuple[Plan, Plan]:
        new = self._catalog.find_plan(new_plan_name)
        if new is None:
            raise InvalidPlan()
        current = self._catalog.find_plan(subscription.plan_name)
        if current is None:
            raise InvalidPlan("Current plan not found")
        return current, new

    def _days_remaining(self, subscription: Subscription) -> int:
        remaining = subscription.current_period_end - self._clock()
        days = math.ceil(remaining / timedelta(days=1))
        return min(max(days, 0), self._settings.billing_period_days)
