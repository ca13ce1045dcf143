from typing import Any, Dict

from fastapi import APIRouter, Depends

from ....core.dependencies import get_plan_catalog
from ....services.plan_catalog import PlanCatalog
from ..serializers import serialize_plan

router = APIRouter(prefix="/api/plans", tags=["Plans"])


@router.get("")
def list_plans(catalog: PlanCatalog = Depends(get_plan_catalog)) -> Dict[str, Any]:
    return {"success": True, "plans": [serialize_plan(plan) for plan in catalog.list_plans()]}
