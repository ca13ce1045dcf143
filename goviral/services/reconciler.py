"""
Subscription reconciler.

Applies canonical transitions to the subscription store. Both webhook
adapters and the synchronous verification endpoints go through here, so a
given provider outcome always produces the same record no matter which path
saw it first.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from ..domain.errors import InvalidPlan
from ..domain.models import (
    CardDetails,
    ChargeSucceeded,
    CheckoutCompleted,
    FullChargeIntent,
    InvoicePaid,
    InvoicePaymentFailed,
    PaymentAttemptFailed,
    PaymentIntent,
    PaymentStatus,
    Plan,
    Subscription,
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionStatus,
    SubscriptionUpdated,
    SubscriptionWillNotRenew,
    Transition,
    TrialIntent,
    UpgradeIntent,
)
from ..domain.ports.persistence import PersistenceGateway
from .plan_catalog import PlanCatalog

logger = logging.getLogger(__name__)

FALLBACK_PLAN_NAME = "Starter"

CANCELLED_MESSAGE = (
    "Your subscription has been cancelled. You will have access until the end of your billing period."
)
NOT_RENEWING_MESSAGE = (
    "Your subscription will not renew automatically. You can reactivate it from your account settings."
)
PAYMENT_FAILED_MESSAGE = (
    "We were unable to process your payment. Please update your payment method to avoid service interruption."
)

# Stripe subscription statuses in the canonical vocabulary
_STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIAL,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete": SubscriptionStatus.INACTIVE,
    "incomplete_expired": SubscriptionStatus.INACTIVE,
    "paused": SubscriptionStatus.INACTIVE,
}


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def map_provider_status(provider_status: str) -> str:
    return _STRIPE_STATUS_MAP.get((provider_status or "").lower(), SubscriptionStatus.INACTIVE)


class SubscriptionReconciler:
    """Single writer of subscription state changes driven by payment outcomes."""

    def __init__(
        self,
        persistence: PersistenceGateway,
        catalog: PlanCatalog,
        *,
        period_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._persistence = persistence
        self._catalog = catalog
        self._period = timedelta(days=period_days)
        self._clock = clock

    def apply(self, transition: Transition) -> Optional[Subscription]:
        """Apply one transition.

        Returns:
            The subscription after the change, or None when the transition did
            not match anything (unknown reference, unknown provider id).
        """
        if isinstance(transition, ChargeSucceeded):
            return self._charge_succeeded(transition)
        if isinstance(transition, CheckoutCompleted):
            return self._checkout_completed(transition)
        if isinstance(transition, SubscriptionActivated):
            return self._subscription_activated(transition)
        if isinstance(transition, SubscriptionCancelled):
            return self._subscription_cancelled(transition)
        if isinstance(transition, SubscriptionWillNotRenew):
            return self._subscription_will_not_renew(transition)
        if isinstance(transition, InvoicePaid):
            return self._invoice_paid(transition)
        if isinstance(transition, InvoicePaymentFailed):
            return self._invoice_payment_failed(transition)
        if isinstance(transition, SubscriptionUpdated):
            return self._subscription_updated(transition)
        if isinstance(transition, PaymentAttemptFailed):
            return self._payment_attempt_failed(transition)
        raise TypeError(f"Unsupported transition: {type(transition).__name__}")

    def apply_activation(
        self,
        tenant_id: str,
        plan: Plan,
        intent: PaymentIntent,
        *,
        provider: str,
        customer_id: Optional[str] = None,
        provider_subscription_id: Optional[str] = None,
        card: Optional[CardDetails] = None,
    ) -> Subscription:
        """Commit what a successful payment paid for.

        Trial intents start the trial with the card on file, full charges open
        a fresh billing period, and upgrades switch the plan while keeping the
        current period.
        """
        now = self._clock()
        values: Dict[str, Any] = {
            "plan_id": plan.id or None,
            "plan_name": plan.name,
            "provider": provider,
        }
        values.update(_provider_refs(customer_id, provider_subscription_id, card))

        if isinstance(intent, UpgradeIntent):
            values["status"] = SubscriptionStatus.ACTIVE
            subscription = self._persistence.update_subscription(tenant_id, **values)
            if subscription is not None:
                self._notify(tenant_id, _upgrade_message(plan.name, intent.prorated_amount))
                logger.info("Tenant %s upgraded from %s to %s", tenant_id, intent.previous_plan, plan.name)
                return subscription
            logger.warning("Upgrade for tenant %s found no subscription; opening a new period", tenant_id)

        if isinstance(intent, TrialIntent):
            trial_ends_at = now + timedelta(days=intent.trial_days)
            values.update(
                status=SubscriptionStatus.TRIAL,
                current_period_start=now,
                current_period_end=trial_ends_at,
                trial_ends_at=trial_ends_at,
                next_billing_date=trial_ends_at,
            )
            message = f"Your {intent.trial_days}-day free trial of the {plan.name} plan has started."
        else:
            period_end = now + self._period
            values.update(
                status=SubscriptionStatus.ACTIVE,
                current_period_start=now,
                current_period_end=period_end,
                trial_ends_at=None,
                next_billing_date=period_end,
            )
            message = f"Your {plan.name} subscription is now active."
        values.update(cancel_at_period_end=False, cancelled_at=None)

        subscription = self._persistence.upsert_subscription(tenant_id, **values)
        self._notify(tenant_id, message)
        logger.info("Activated %s subscription for tenant %s (%s)", plan.name, tenant_id, subscription.status)
        return subscription

    # Transition handlers ----------------------------------------------------
    def _charge_succeeded(self, transition: ChargeSucceeded) -> Optional[Subscription]:
        payment = self._persistence.get_payment(transition.reference)
        if payment is None:
            logger.info("charge for unknown reference %s ignored", transition.reference)
            return None
        if not self._persistence.transition_payment(
            transition.reference, PaymentStatus.PAID, from_statuses=(PaymentStatus.PENDING,)
        ):
            logger.info("Payment %s already %s; skipping", transition.reference, payment.status)
            return self._persistence.get_subscription(payment.tenant_id)

        intent = transition.intent
        if intent is not None:
            if intent.tenant_id != payment.tenant_id:
                logger.warning(
                    "Payment %s metadata names tenant %s but belongs to %s",
                    transition.reference,
                    intent.tenant_id,
                    payment.tenant_id,
                )
            plan = self._plan_for(intent.plan_name, payment.plan_id)
            return self.apply_activation(
                payment.tenant_id,
                plan,
                intent,
                provider=transition.provider,
                customer_id=transition.customer_id,
                card=transition.card,
            )

        # No intent: a renewal charge on the saved card
        now = self._clock()
        period_end = now + self._period
        values: Dict[str, Any] = {
            "status": SubscriptionStatus.ACTIVE,
            "current_period_start": now,
            "current_period_end": period_end,
            "next_billing_date": period_end,
            "provider": transition.provider,
        }
        values.update(_provider_refs(transition.customer_id, None, transition.card))
        subscription = self._persistence.update_subscription(payment.tenant_id, **values)
        if subscription is None:
            logger.info("Renewal charge %s has no subscription to renew", transition.reference)
        return subscription

    def _checkout_completed(self, transition: CheckoutCompleted) -> Optional[Subscription]:
        tenant_id = transition.tenant_id
        plan_id: Optional[int] = None
        if transition.reference:
            payment = self._persistence.get_payment(transition.reference)
            moved = self._persistence.transition_payment(
                transition.reference, PaymentStatus.SUCCESS, from_statuses=(PaymentStatus.PENDING,)
            )
            if payment is not None:
                if not moved:
                    logger.info("Checkout payment %s already %s; skipping", transition.reference, payment.status)
                    return self._persistence.get_subscription(payment.tenant_id)
                tenant_id = payment.tenant_id
                plan_id = payment.plan_id

        intent = transition.intent
        if intent is not None:
            plan = self._plan_for(intent.plan_name, plan_id)
            return self.apply_activation(
                tenant_id,
                plan,
                intent,
                provider=transition.provider,
                customer_id=transition.customer_id,
                provider_subscription_id=transition.provider_subscription_id,
            )

        if not transition.provider_subscription_id:
            logger.info("Checkout for tenant %s carried nothing to activate", tenant_id)
            return self._persistence.get_subscription(tenant_id)

        plan = self._plan_for(transition.plan_name or FALLBACK_PLAN_NAME, plan_id)
        return self.apply_activation(
            tenant_id,
            plan,
            FullChargeIntent(tenant_id, plan.name),
            provider=transition.provider,
            customer_id=transition.customer_id,
            provider_subscription_id=transition.provider_subscription_id,
        )

    def _subscription_activated(self, transition: SubscriptionActivated) -> Optional[Subscription]:
        subscription = self._persistence.find_subscription(provider_customer_id=transition.customer_id)
        if subscription is None:
            logger.info("No subscription for customer %s", transition.customer_id)
            return None
        return self._persistence.update_subscription(
            subscription.tenant_id,
            status=SubscriptionStatus.ACTIVE,
            provider_subscription_id=transition.provider_subscription_id,
        )

    def _subscription_cancelled(self, transition: SubscriptionCancelled) -> Optional[Subscription]:
        subscription = self._find_by_provider_id(transition.provider_subscription_id)
        if subscription is None:
            return None
        if subscription.is_cancelled():
            return subscription
        updated = self._persistence.update_subscription(
            subscription.tenant_id,
            status=SubscriptionStatus.CANCELLED,
            cancel_at_period_end=True,
            cancelled_at=self._clock(),
        )
        self._notify(subscription.tenant_id, CANCELLED_MESSAGE)
        return updated

    def _subscription_will_not_renew(self, transition: SubscriptionWillNotRenew) -> Optional[Subscription]:
        subscription = self._find_by_provider_id(transition.provider_subscription_id)
        if subscription is None:
            return None
        if subscription.status == SubscriptionStatus.INACTIVE and subscription.cancel_at_period_end:
            return subscription
        updated = self._persistence.update_subscription(
            subscription.tenant_id,
            status=SubscriptionStatus.INACTIVE,
            cancel_at_period_end=True,
        )
        self._notify(subscription.tenant_id, NOT_RENEWING_MESSAGE)
        return updated

    def _invoice_paid(self, transition: InvoicePaid) -> Optional[Subscription]:
        subscription = self._find_by_provider_id(transition.provider_subscription_id)
        if subscription is None:
            return None
        now = self._clock()
        period_end = now + self._period
        return self._persistence.update_subscription(
            subscription.tenant_id,
            status=SubscriptionStatus.ACTIVE,
            current_period_start=now,
            current_period_end=period_end,
            next_billing_date=period_end,
        )

    def _invoice_payment_failed(self, transition: InvoicePaymentFailed) -> Optional[Subscription]:
        subscription = self._find_by_provider_id(transition.provider_subscription_id)
        if subscription is None:
            return None
        if subscription.status == SubscriptionStatus.PAST_DUE:
            return subscription
        updated = self._persistence.update_subscription(subscription.tenant_id, status=SubscriptionStatus.PAST_DUE)
        self._notify(subscription.tenant_id, PAYMENT_FAILED_MESSAGE)
        return updated

    def _subscription_updated(self, transition: SubscriptionUpdated) -> Optional[Subscription]:
        subscription = self._find_by_provider_id(transition.provider_subscription_id)
        if subscription is None:
            return None
        status = map_provider_status(transition.provider_status)
        values: Dict[str, Any] = {
            "status": status,
            "cancel_at_period_end": transition.cancel_at_period_end,
        }
        if transition.current_period_end is not None:
            values["current_period_end"] = transition.current_period_end
            values["next_billing_date"] = transition.current_period_end
        if status == SubscriptionStatus.CANCELLED:
            values["cancelled_at"] = self._clock()
        return self._persistence.update_subscription(subscription.tenant_id, **values)

    def _payment_attempt_failed(self, transition: PaymentAttemptFailed) -> Optional[Subscription]:
        payment = self._persistence.get_payment(transition.reference)
        if payment is None:
            return None
        if self._persistence.transition_payment(
            transition.reference, PaymentStatus.FAILED, from_statuses=(PaymentStatus.PENDING,)
        ):
            logger.info("Payment %s marked failed", transition.reference)
        return self._persistence.get_subscription(payment.tenant_id)

    # Helpers ----------------------------------------------------------------
    def _find_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        subscription = self._persistence.find_subscription(provider_subscription_id=provider_subscription_id)
        if subscription is None:
            logger.info("No subscription for provider id %s", provider_subscription_id)
        return subscription

    def _plan_for(self, plan_name: str, plan_id: Optional[int]) -> Plan:
        try:
            return self._catalog.resolve_plan(plan_name)
        except InvalidPlan:
            stored = self._persistence.get_plan(plan_id) if plan_id else None
            if stored is None:
                raise
            return stored

    def _notify(self, tenant_id: str, message: str) -> None:
        self._persistence.add_notification(tenant_id, message)


def _provider_refs(
    customer_id: Optional[str],
    provider_subscription_id: Optional[str],
    card: Optional[CardDetails],
) -> Dict[str, Any]:
    """Only identifiers the provider actually sent; stored values are never blanked."""
    values: Dict[str, Any] = {}
    if customer_id:
        values["provider_customer_id"] = customer_id
    if provider_subscription_id:
        values["provider_subscription_id"] = provider_subscription_id
    if card is not None:
        fields = {
            "authorization_code": card.authorization_code,
            "card_brand": card.brand,
            "card_last4": card.last4,
            "card_exp_month": card.exp_month,
            "card_exp_year": card.exp_year,
        }
        values.update({key: value for key, value in fields.items() if value})
    return values


def _upgrade_message(plan_name: str, amount: Decimal) -> str:
    if amount > 0:
        return (
            f"Congratulations! You've upgraded to the {plan_name} plan. "
            f"Your card was charged {amount:,.2f} for the rest of this billing period."
        )
    return f"Congratulations! You've upgraded to the {plan_name} plan."
