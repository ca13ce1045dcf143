from typing import Any, Dict

from fastapi import APIRouter, Depends

from ....application.services.subscription_service import SubscriptionService
from ....application.services.verification_service import VerificationResult, VerificationService
from ....core.dependencies import get_subscription_service, get_verification_service
from ....domain.models import Tenant
from ..dependencies import require_tenant
from ..schemas.billing import StripeVerifyRequest, VerifyPaymentRequest
from ..serializers import serialize_payment, serialize_subscription

router = APIRouter(prefix="/api/payment", tags=["Payments"])


@router.post("/verify")
async def verify_payment(
    payload: VerifyPaymentRequest,
    verification_service: VerificationService = Depends(get_verification_service),
) -> Dict[str, Any]:
    """Called by the Paystack callback page once the user returns."""
    result = await verification_service.verify(payload.reference)
    return _serialize_result(result)


@router.post("/stripe-trial-verify")
async def verify_stripe_session(
    payload: StripeVerifyRequest,
    verification_service: VerificationService = Depends(get_verification_service),
) -> Dict[str, Any]:
    result = await verification_service.verify_checkout_session(payload.session_id)
    return _serialize_result(result)


@router.get("/history")
def payment_history(
    tenant: Tenant = Depends(require_tenant),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    payments = subscription_service.list_payments(tenant)
    return {"payments": [serialize_payment(payment) for payment in payments]}


def _serialize_result(result: VerificationResult) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": result.success, "message": result.message}
    if result.subscription is not None:
        body["subscription"] = serialize_subscription(result.subscription)
    return body
