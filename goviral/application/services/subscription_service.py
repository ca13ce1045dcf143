"""Subscription management for tenants and administrators."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ...domain.errors import InvalidSubscriptionState, NotFound
from ...domain.models import (
    AuditLog,
    Notification,
    Payment,
    PaymentProvider,
    Plan,
    Subscription,
    SubscriptionStatus,
    Tenant,
)
from ...domain.ports.payments import StripeGateway
from ...domain.ports.persistence import PersistenceGateway
from ...services.plan_catalog import PlanCatalog
from ...services.provider_errors import PaymentProviderError
from ...services.reconciler import utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AccessDecision:
    authorized: bool
    reason: Optional[str] = None
    redirect_to: Optional[str] = None


@dataclass(slots=True)
class SubscriptionOverview:
    subscription: Optional[Subscription]
    plan: Optional[Plan]
    access: AccessDecision


class SubscriptionService:
    """Read and adjust a tenant's subscription outside of payment flows."""

    def __init__(
        self,
        persistence: PersistenceGateway,
        catalog: PlanCatalog,
        stripe_service: Optional[StripeGateway] = None,
        *,
        period_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._persistence = persistence
        self._catalog = catalog
        self._stripe = stripe_service
        self._period = timedelta(days=period_days)
        self._clock = clock

    def get_status(self, tenant: Tenant) -> SubscriptionOverview:
        access = self.check_access(tenant)
        subscription = self._persistence.get_subscription(tenant.id)
        plan = None
        if subscription is not None:
            plan = self._persistence.get_plan(subscription.plan_id) if subscription.plan_id else None
            plan = plan or self._catalog.find_plan(subscription.plan_name)
        return SubscriptionOverview(subscription=subscription, plan=plan, access=access)

    def check_access(self, tenant: Tenant) -> AccessDecision:
        """
        Decide whether the tenant may use paid features.

        An expired trial is moved to ``inactive`` on the spot.
        """
        if tenant.is_admin:
            return AccessDecision(authorized=True)
        subscription = self._persistence.get_subscription(tenant.id)
        if subscription is None:
            return AccessDecision(
                authorized=False,
                reason="No active subscription. Please start a free trial to access this feature.",
                redirect_to="/trial-signup",
            )
        if subscription.status == SubscriptionStatus.ACTIVE:
            return AccessDecision(authorized=True)
        if subscription.status == SubscriptionStatus.TRIAL:
            if subscription.trial_ends_at and subscription.trial_ends_at < self._clock():
                self._persistence.update_subscription(tenant.id, status=SubscriptionStatus.INACTIVE)
                logger.info("Trial for tenant %s expired", tenant.id)
                return AccessDecision(
                    authorized=False,
                    reason="Your free trial has expired. Please subscribe to continue.",
                    redirect_to="/trial-signup?expired=true",
                )
            return AccessDecision(authorized=True)
        return AccessDecision(
            authorized=False,
            reason="Your subscription is not active. Please subscribe to continue.",
            redirect_to="/trial-signup?expired=true",
        )

    async def cancel(self, tenant: Tenant) -> Tuple[Subscription, str]:
        """Stop renewal at the end of the current period; access continues until then."""
        subscription = self._persistence.get_subscription(tenant.id)
        if subscription is None:
            raise NotFound("No active subscription found")
        if subscription.cancel_at_period_end:
            return subscription, "Subscription is already set to cancel at the end of the billing period."

        await self._sync_stripe_cancel(subscription, True)
        updated = self._persistence.update_subscription(tenant.id, cancel_at_period_end=True) or subscription
        ends = updated.access_ends_at().strftime("%Y-%m-%d")
        self._persistence.add_notification(
            tenant.id,
            f"Your {updated.plan_name} subscription has been set to cancel. You'll have access until {ends}.",
        )
        return updated, f"Subscription will be cancelled at the end of your current period ({ends})."

    async def reactivate(self, tenant: Tenant) -> Tuple[Subscription, str]:
        subscription = self._persistence.get_subscription(tenant.id)
        if subscription is None:
            raise NotFound("No subscription found")
        if not subscription.cancel_at_period_end or subscription.is_cancelled():
            raise InvalidSubscriptionState("Subscription is not set to cancel")

        await self._sync_stripe_cancel(subscription, False)
        updated = self._persistence.update_subscription(tenant.id, cancel_at_period_end=False) or subscription
        self._persistence.add_notification(tenant.id, f"Your {updated.plan_name} subscription has been reactivated.")
        return updated, "Subscription reactivated successfully."

    def list_payments(self, tenant: Tenant, limit: int = 20) -> List[Payment]:
        return self._persistence.list_payments(tenant.id, limit)

    def list_notifications(self, tenant: Tenant, limit: int = 50) -> List[Notification]:
        return self._persistence.list_notifications(tenant.id, limit)

    # Administration ---------------------------------------------------------
    def admin_update(
        self,
        actor: Tenant,
        tenant_id: str,
        *,
        plan_name: Optional[str] = None,
        status: Optional[str] = None,
        trial_ends_at: Optional[datetime] = None,
        clear_trial_ends_at: bool = False,
        current_period_end: Optional[datetime] = None,
    ) -> Subscription:
        """
        Correct a tenant's subscription by hand.

        Cancelling or deactivating is always soft: the row is kept with its
        history and ``cancelled_at`` is stamped once.

        Raises:
            NotFound: Unknown tenant, or no subscription to adjust
            InvalidPlan: Unknown plan name
            InvalidSubscriptionState: Unknown status
        """
        if status is not None and status not in SubscriptionStatus.ALL:
            raise InvalidSubscriptionState(f"Invalid subscription status: {status}")
        if self._persistence.get_tenant(tenant_id) is None:
            raise NotFound("Tenant not found")

        now = self._clock()
        existing = self._persistence.get_subscription(tenant_id)
        details: Dict[str, Any] = {
            "plan_name": plan_name,
            "status": status,
            "trial_ends_at": trial_ends_at,
            "current_period_end": current_period_end,
        }

        if plan_name:
            plan = self._catalog.resolve_plan(plan_name)
            new_status = status or SubscriptionStatus.ACTIVE
            values: Dict[str, Any] = {
                "plan_id": plan.id,
                "plan_name": plan.name,
                "status": new_status,
                "current_period_start": existing.current_period_start if existing else now,
                "current_period_end": current_period_end or now + self._period,
                "trial_ends_at": None if clear_trial_ends_at else trial_ends_at,
            }
            if new_status == SubscriptionStatus.CANCELLED:
                values.update(cancel_at_period_end=True, cancelled_at=now)
            else:
                values.update(cancel_at_period_end=False, cancelled_at=None)
            subscription = self._persistence.upsert_subscription(tenant_id, **values)
            message = (
                f"Your account has been updated by an administrator. Plan: {plan.name}. Status: {new_status}."
            )
        elif status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.INACTIVE):
            if existing is None:
                raise NotFound("No subscription found")
            values = {"status": status, "cancel_at_period_end": True}
            if status == SubscriptionStatus.CANCELLED:
                values["cancelled_at"] = now
            subscription = self._persistence.update_subscription(tenant_id, **values) or existing
            message = "Your subscription has been cancelled by an administrator."
        else:
            if existing is None:
                raise NotFound("No subscription found")
            values = {}
            if status:
                values["status"] = status
            if clear_trial_ends_at:
                values["trial_ends_at"] = None
            elif trial_ends_at is not None:
                values["trial_ends_at"] = trial_ends_at
            if current_period_end is not None:
                values["current_period_end"] = current_period_end
            subscription = self._persistence.update_subscription(tenant_id, **values) or existing
            message = "Your subscription has been updated by an administrator."

        self._persistence.add_notification(tenant_id, message)
        self._persistence.add_audit_log(actor.id, "UPDATE_SUBSCRIPTION", tenant_id, details)
        logger.info("Administrator %s updated subscription of tenant %s", actor.id, tenant_id)
        return subscription

    def list_audit_logs(self, limit: int = 100) -> List[AuditLog]:
        return self._persistence.list_audit_logs(limit)

    async def _sync_stripe_cancel(self, subscription: Subscription, cancel: bool) -> None:
        if (
            self._stripe is None
            or subscription.provider != PaymentProvider.STRIPE
            or not subscription.provider_subscription_id
        ):
            return
        try:
            await self._stripe.set_cancel_at_period_end(subscription.provider_subscription_id, cancel)
        except PaymentProviderError as exc:
            # the local flag still records the tenant's intent
            logger.error(
                "Stripe cancel_at_period_end=%s failed for %s: %s",
                cancel,
                subscription.provider_subscription_id,
                exc,
            )
