from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from ....application.services.subscription_service import SubscriptionService
from ....application.services.upgrade_service import UpgradeService
from ....core.dependencies import get_subscription_service, get_upgrade_service
from ....domain.models import Tenant
from ....services.provider_selector import resolve_country
from ..dependencies import require_tenant
from ..schemas.billing import UpgradeRequest
from ..serializers import serialize_access, serialize_plan, serialize_subscription

router = APIRouter(prefix="/api/subscriptions", tags=["Subscriptions"])


@router.get("/status")
def subscription_status(
    tenant: Tenant = Depends(require_tenant),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    overview = subscription_service.get_status(tenant)
    subscription = serialize_subscription(overview.subscription)
    if subscription is not None and overview.plan is not None:
        subscription["plan"] = serialize_plan(overview.plan)
    return {"subscription": subscription, "access": serialize_access(overview.access)}


# ============ UPGRADE ============


@router.post("/upgrade")
async def upgrade_subscription(
    payload: UpgradeRequest,
    request: Request,
    tenant: Tenant = Depends(require_tenant),
    upgrade_service: UpgradeService = Depends(get_upgrade_service),
) -> Dict[str, Any]:
    country = resolve_country(request.headers, payload.country_code)
    result = await upgrade_service.upgrade(tenant, payload.new_plan_name, country)
    payment = {
        "amount": float(result.amount),
        "currency": result.currency,
        "reference": result.reference,
        "daysRemaining": result.days_remaining,
        "status": result.payment_status,
    }
    if result.deferred:
        return {
            "success": True,
            "provider": result.provider,
            "message": result.message,
            "authorizationUrl": result.authorization_url,
            "payment": payment,
        }
    return {
        "success": True,
        "message": result.message,
        "subscription": serialize_subscription(result.subscription),
        "payment": payment,
    }


@router.get("/upgrade")
def upgrade_quote(
    request: Request,
    plan: str = Query(..., min_length=1),
    country_code: Optional[str] = Query(default=None, alias="countryCode"),
    tenant: Tenant = Depends(require_tenant),
    upgrade_service: UpgradeService = Depends(get_upgrade_service),
) -> Dict[str, Any]:
    """Cost breakdown for an upgrade; nothing is charged or written."""
    quote = upgrade_service.quote(tenant, plan, resolve_country(request.headers, country_code))
    return {
        "currentPlan": quote.current_plan,
        "newPlan": quote.new_plan,
        "proratedAmount": float(quote.prorated_amount),
        "daysRemaining": quote.days_remaining,
        "nextBillingAmount": float(quote.next_billing_amount),
        "currency": quote.currency,
        "breakdown": {
            "currentPlanPrice": float(quote.current_plan_price),
            "newPlanPrice": float(quote.new_plan_price),
            "priceDifference": float(quote.price_difference),
            "daysRemaining": quote.days_remaining,
            "proratedCharge": float(quote.prorated_amount),
        },
    }


# ============ CANCELLATION ============


@router.post("/cancel")
async def cancel_subscription(
    tenant: Tenant = Depends(require_tenant),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription, message = await subscription_service.cancel(tenant)
    return {"success": True, "message": message, "subscription": serialize_subscription(subscription)}


@router.delete("/cancel")
async def reactivate_subscription(
    tenant: Tenant = Depends(require_tenant),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription, message = await subscription_service.reactivate(tenant)
    return {"success": True, "message": message, "subscription": serialize_subscription(subscription)}
