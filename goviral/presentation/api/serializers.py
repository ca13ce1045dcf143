"""JSON shapes shared by the billing routers."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from ...application.services.subscription_service import AccessDecision
from ...domain.models import AuditLog, Notification, Payment, Plan, Subscription


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat()


def _money(value: Decimal) -> float:
    return float(value)


def serialize_plan(plan: Plan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "name": plan.name,
        "price": _money(plan.price),
        "currency": plan.currency,
        "trialDays": plan.trial_days,
        "features": list(plan.features),
        "maxPosts": plan.max_posts,
        "maxPlatforms": plan.max_platforms,
        "maxMessages": plan.max_messages,
        "regionalPrices": {code: _money(amount) for code, amount in plan.regional_prices.items()},
    }


def serialize_subscription(subscription: Optional[Subscription]) -> Optional[Dict[str, Any]]:
    if subscription is None:
        return None
    card = None
    if subscription.card_last4:
        card = {
            "brand": subscription.card_brand,
            "last4": subscription.card_last4,
            "expMonth": subscription.card_exp_month,
            "expYear": subscription.card_exp_year,
        }
    return {
        "id": subscription.id,
        "tenantId": subscription.tenant_id,
        "planId": subscription.plan_id,
        "planName": subscription.plan_name,
        "status": subscription.status,
        "currentPeriodStart": _iso(subscription.current_period_start),
        "currentPeriodEnd": _iso(subscription.current_period_end),
        "trialEndsAt": _iso(subscription.trial_ends_at),
        "nextBillingDate": _iso(subscription.next_billing_date),
        "cancelAtPeriodEnd": subscription.cancel_at_period_end,
        "cancelledAt": _iso(subscription.cancelled_at),
        "provider": subscription.provider,
        "card": card,
        "updatedAt": _iso(subscription.updated_at),
    }


def serialize_payment(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "reference": payment.reference,
        "provider": payment.provider,
        "amount": _money(payment.amount),
        "currency": payment.currency,
        "status": payment.status,
        "planId": payment.plan_id,
        "createdAt": _iso(payment.created_at),
    }


def serialize_notification(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "message": notification.message,
        "type": notification.type,
        "isRead": notification.is_read,
        "createdAt": _iso(notification.created_at),
    }


def serialize_audit_log(entry: AuditLog) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "actorId": entry.actor_id,
        "action": entry.action,
        "targetTenantId": entry.target_tenant_id,
        "details": entry.details,
        "createdAt": _iso(entry.created_at),
    }


def serialize_access(access: AccessDecision) -> Dict[str, Any]:
    return {
        "authorized": access.authorized,
        "reason": access.reason,
        "redirectTo": access.redirect_to,
    }
