"""Subscription domain model: the canonical per-tenant billing record."""

from datetime import datetime, timezone
from typing import Optional


class SubscriptionStatus:
    """Provider-agnostic status vocabulary."""

    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"

    ALL = (TRIAL, ACTIVE, PAST_DUE, INACTIVE, CANCELLED)


class Subscription:
    """
    Subscription entity, exactly one per tenant.

    Attributes:
        id: Unique identifier
        tenant_id: Owning tenant (unique)
        plan_id: Reference to Plan
        plan_name: Denormalized plan name
        status: One of SubscriptionStatus.ALL
        current_period_start: Start of current billing period
        current_period_end: End of current billing period
        trial_ends_at: End of the trial, when the tenant is or was trialing
        next_billing_date: Date the next charge is expected
        cancel_at_period_end: Whether access stops at the end of the period
        cancelled_at: When the subscription was cancelled
        provider: Payment provider that holds the recurring mandate
        provider_customer_id: Paystack customer code or Stripe customer id
        provider_subscription_id: Paystack subscription code or Stripe subscription id
        authorization_code: Reusable Paystack card authorization
        card_brand, card_last4, card_exp_month, card_exp_year: Saved card metadata
        version: Incremented on every write
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: int,
        tenant_id: str,
        plan_id: Optional[int],
        plan_name: str,
        status: str,
        current_period_start: datetime,
        current_period_end: datetime,
        trial_ends_at: Optional[datetime] = None,
        next_billing_date: Optional[datetime] = None,
        cancel_at_period_end: bool = False,
        cancelled_at: Optional[datetime] = None,
        provider: Optional[str] = None,
        provider_customer_id: Optional[str] = None,
        provider_subscription_id: Optional[str] = None,
        authorization_code: Optional[str] = None,
        card_brand: Optional[str] = None,
        card_last4: Optional[str] = None,
        card_exp_month: Optional[str] = None,
        card_exp_year: Optional[str] = None,
        version: int = 1,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.tenant_id = tenant_id
        self.plan_id = plan_id
        self.plan_name = plan_name
        self.status = status
        self.current_period_start = current_period_start
        self.current_period_end = current_period_end
        self.trial_ends_at = trial_ends_at
        self.next_billing_date = next_billing_date
        self.cancel_at_period_end = cancel_at_period_end
        self.cancelled_at = cancelled_at
        self.provider = provider
        self.provider_customer_id = provider_customer_id
        self.provider_subscription_id = provider_subscription_id
        self.authorization_code = authorization_code
        self.card_brand = card_brand
        self.card_last4 = card_last4
        self.card_exp_month = card_exp_month
        self.card_exp_year = card_exp_year
        self.version = version
        self.created_at = created_at or datetime.now(tz=timezone.utc)
        self.updated_at = updated_at or datetime.now(tz=timezone.utc)

    def is_active(self) -> bool:
        """Check if the subscription currently grants access."""
        return self.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL)

    def is_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELLED

    def access_ends_at(self) -> datetime:
        if self.status == SubscriptionStatus.TRIAL and self.trial_ends_at:
            return self.trial_ends_at
        return self.current_period_end

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} tenant_id={self.tenant_id} plan={self.plan_name} status={self.status}>"
