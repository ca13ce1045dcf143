from dataclasses import dataclass
from typing import Optional

from ..application.services.auth_service import TenantAuthService
from ..application.services.subscription_service import SubscriptionService
from ..application.services.trial_service import TrialService
from ..application.services.upgrade_service import UpgradeService
from ..application.services.verification_service import VerificationService
from ..application.services.webhook_service import WebhookService
from .config import Settings
from ..domain.ports.payments import PaystackGateway, StripeGateway
from ..domain.ports.persistence import PersistenceGateway
from ..services.plan_catalog import PlanCatalog
from ..services.reconciler import SubscriptionReconciler


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    plan_catalog: PlanCatalog
    reconciler: SubscriptionReconciler
    auth_service: TenantAuthService
    trial_service: TrialService
    upgrade_service: UpgradeService
    verification_service: VerificationService
    webhook_service: WebhookService
    subscription_service: SubscriptionService
    paystack: Optional[PaystackGateway] = None
    stripe_service: Optional[StripeGateway] = None
