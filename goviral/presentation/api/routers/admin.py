from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from ....application.services.subscription_service import SubscriptionService
from ....core.dependencies import get_subscription_service
from ....domain.models import Tenant
from ..dependencies import require_admin
from ..schemas.admin import AdminSubscriptionUpdate
from ..serializers import serialize_audit_log, serialize_subscription

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.patch("/tenants/{tenant_id}/subscription")
def update_tenant_subscription(
    tenant_id: str,
    payload: AdminSubscriptionUpdate,
    admin: Tenant = Depends(require_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = subscription_service.admin_update(
        admin,
        tenant_id,
        plan_name=payload.plan_name,
        status=payload.status,
        trial_ends_at=payload.trial_ends_at,
        clear_trial_ends_at=payload.clears_trial_ends_at,
        current_period_end=payload.current_period_end,
    )
    return {"success": True, "subscription": serialize_subscription(subscription)}


@router.get("/audit-logs")
def list_audit_logs(
    limit: int = Query(default=100, ge=1, le=500),
    _: Tenant = Depends(require_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    items = [serialize_audit_log(entry) for entry in subscription_service.list_audit_logs(limit)]
    return {"items": items, "count": len(items)}
