from typing import Any, Dict

from fastapi import APIRouter, Depends

from ....application.services.subscription_service import SubscriptionService
from ....core.dependencies import get_subscription_service
from ....domain.models import Tenant
from ..dependencies import require_tenant
from ..serializers import serialize_notification

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("")
def list_notifications(
    tenant: Tenant = Depends(require_tenant),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    notifications = subscription_service.list_notifications(tenant)
    return {"notifications": [serialize_notification(item) for item in notifications]}
