"""Provider webhooks.

Bodies are read raw because both signatures are computed over the exact
bytes the provider sent.
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ....application.services.webhook_service import WebhookService
from ....core.dependencies import get_webhook_service
from ....domain.errors import AuthenticationFailed
from ....services.paystack_client import PaystackClient
from ....services.stripe_service import StripeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post("/paystack")
async def paystack_webhook(
    request: Request,
    webhook_service: WebhookService = Depends(get_webhook_service),
) -> JSONResponse:
    body = await request.body()
    signature = request.headers.get(PaystackClient.SIGNATURE_HEADER)
    try:
        result = webhook_service.handle_paystack(body, signature)
    except AuthenticationFailed as exc:
        logger.warning("Rejected Paystack webhook: %s", exc.message)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_dict())
    except Exception:
        logger.exception("Paystack webhook processing failed")
        return _failed()
    return JSONResponse(content=result)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    webhook_service: WebhookService = Depends(get_webhook_service),
) -> JSONResponse:
    body = await request.body()
    signature = request.headers.get(StripeService.SIGNATURE_HEADER)
    try:
        result = webhook_service.handle_stripe(body, signature)
    except AuthenticationFailed as exc:
        logger.warning("Rejected Stripe webhook: %s", exc.message)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_dict())
    except Exception:
        logger.exception("Stripe webhook processing failed")
        return _failed()
    return JSONResponse(content=result)


def _failed() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Webhook processing failed"},
    )
