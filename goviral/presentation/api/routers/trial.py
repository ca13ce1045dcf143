from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from ....application.services.trial_service import TrialService
from ....core.dependencies import get_trial_service
from ....domain.models import Tenant
from ....services.provider_selector import resolve_country
from ..dependencies import require_tenant
from ..schemas.billing import TrialStartRequest
from ..serializers import serialize_plan

router = APIRouter(prefix="/api/trial", tags=["Trial"])


@router.post("/start-with-card")
async def start_trial_with_card(
    payload: TrialStartRequest,
    request: Request,
    tenant: Tenant = Depends(require_tenant),
    trial_service: TrialService = Depends(get_trial_service),
) -> Dict[str, Any]:
    """Send the tenant to the provider's hosted page to save a card for the trial."""
    country = resolve_country(request.headers, payload.country_code)
    started = await trial_service.start_trial(tenant, payload.plan_name, country)
    return {
        "success": True,
        "message": "Redirecting to payment page",
        "authorizationUrl": started.authorization_url,
        "reference": started.reference,
        "provider": started.provider,
        "plan": serialize_plan(started.plan),
    }
