from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..application.services.auth_service import TenantAuthService
from ..application.services.checkout_service import CheckoutLauncher
from ..application.services.subscription_service import SubscriptionService
from ..application.services.trial_service import TrialService
from ..application.services.upgrade_service import UpgradeService
from ..application.services.verification_service import VerificationService
from ..application.services.webhook_service import WebhookService
from ..domain.errors import BillingError
from ..domain.ports.payments import PaystackGateway, StripeGateway
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..presentation.api.routers import admin as admin_router
from ..presentation.api.routers import notifications as notifications_router
from ..presentation.api.routers import payments as payments_router
from ..presentation.api.routers import plans as plans_router
from ..presentation.api.routers import subscriptions as subscriptions_router
from ..presentation.api.routers import trial as trial_router
from ..presentation.api.routers import webhooks as webhooks_router
from ..services.paystack_client import PaystackClient
from ..services.paystack_webhooks import PaystackWebhookAdapter
from ..services.plan_catalog import PlanCatalog
from ..services.reconciler import SubscriptionReconciler
from ..services.stripe_service import StripeService
from ..services.stripe_webhooks import StripeWebhookAdapter

logger = logging.getLogger(__name__)


def create_application(
    settings: Optional[Settings] = None,
    *,
    paystack: Optional[PaystackGateway] = None,
    stripe_service: Optional[StripeGateway] = None,
) -> FastAPI:
    """Build the ASGI app.

    Provider gateways default to the real clients when their secrets are
    configured; tests pass fakes instead.
    """
    settings = settings or Settings()

    app = FastAPI(
        title="GoViral Billing",
        lifespan=_create_lifespan(settings, paystack, stripe_service),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BillingError)
    async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(trial_router.router)
    app.include_router(subscriptions_router.router)
    app.include_router(payments_router.router)
    app.include_router(plans_router.router)
    app.include_router(notifications_router.router)
    app.include_router(webhooks_router.router)
    app.include_router(admin_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        return {
            "ok": True,
            "providers": {
                "paystack": container.paystack is not None,
                "stripe": container.stripe_service is not None,
            },
        }

    return app


def _create_lifespan(
    settings: Settings,
    paystack: Optional[PaystackGateway],
    stripe_service: Optional[StripeGateway],
):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        persistence = SQLitePersistence(settings.database_path)

        paystack_gateway = paystack
        if paystack_gateway is None and settings.paystack_configured:
            paystack_gateway = PaystackClient(
                settings.paystack_secret_key,
                base_url=settings.paystack_base_url,
                timeout=float(settings.provider_timeout_seconds),
            )
        stripe_gateway = stripe_service
        if stripe_gateway is None and settings.stripe_configured:
            stripe_gateway = StripeService(settings.stripe_secret_key, settings.stripe_webhook_secret)
        if paystack_gateway is None and stripe_gateway is None:
            logger.warning("No payment provider configured; checkout endpoints will answer 503")

        catalog = PlanCatalog(persistence)
        reconciler = SubscriptionReconciler(persistence, catalog, period_days=settings.billing_period_days)
        launcher = CheckoutLauncher(persistence, settings, paystack_gateway, stripe_gateway)

        container = ApplicationContainer(
            settings=settings,
            persistence=persistence,
            plan_catalog=catalog,
            reconciler=reconciler,
            auth_service=TenantAuthService(
                persistence,
                settings.auth_token_secret,
                algorithm=settings.auth_token_algorithm,
            ),
            trial_service=TrialService(persistence, catalog, launcher, settings),
            upgrade_service=UpgradeService(
                persistence,
                catalog,
                reconciler,
                launcher,
                settings,
                paystack=paystack_gateway,
            ),
            verification_service=VerificationService(persistence, reconciler, paystack_gateway, stripe_gateway),
            webhook_service=WebhookService(
                persistence,
                reconciler,
                PaystackWebhookAdapter(paystack_gateway) if paystack_gateway else None,
                StripeWebhookAdapter(stripe_gateway) if stripe_gateway else None,
            ),
            subscription_service=SubscriptionService(
                persistence,
                catalog,
                stripe_gateway,
                period_days=settings.billing_period_days,
            ),
            paystack=paystack_gateway,
            stripe_service=stripe_gateway,
        )

        app.state.container = container  # type: ignore[attr-defined]
        logger.info(
            "Billing service started (paystack=%s, stripe=%s)",
            paystack_gateway is not None,
            stripe_gateway is not None,
        )

        try:
            yield
        finally:
            persistence.close()

    return lifespan
