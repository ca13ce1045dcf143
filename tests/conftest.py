import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from goviral.application.services.checkout_service import CheckoutLauncher
from goviral.application.services.subscription_service import SubscriptionService
from goviral.application.services.trial_service import TrialService
from goviral.application.services.upgrade_service import UpgradeService
from goviral.application.services.verification_service import VerificationService
from goviral.application.services.webhook_service import WebhookService
from goviral.core.config import Settings
from goviral.domain.errors import AuthenticationFailed
from goviral.infrastructure.persistence.sqlite import SQLitePersistence
from goviral.services.paystack_webhooks import PaystackWebhookAdapter
from goviral.services.plan_catalog import PlanCatalog
from goviral.services.provider_errors import PaymentProviderError
from goviral.services.reconciler import SubscriptionReconciler
from goviral.services.stripe_webhooks import StripeWebhookAdapter

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
PAYSTACK_SECRET = "sk_test_paystack"
STRIPE_VALID_SIGNATURE = "t=1,v1=valid"


def fixed_clock() -> datetime:
    return NOW


def paystack_signature(body: bytes, secret: str = PAYSTACK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


class FakePaystack:
    """In-memory stand-in for the Paystack gateway."""

    def __init__(self, secret: str = PAYSTACK_SECRET) -> None:
        self.secret = secret
        self.initialized: List[Dict[str, Any]] = []
        self.charges: List[Dict[str, Any]] = []
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self.charge_response: Dict[str, Any] = {"status": "success"}
        self.charge_error: Optional[Exception] = None
        self.initialize_error: Optional[Exception] = None

    async def initialize_transaction(self, **kwargs: Any) -> Dict[str, Any]:
        if self.initialize_error:
            raise self.initialize_error
        self.initialized.append(kwargs)
        return {
            "authorization_url": f"https://checkout.paystack.test/{kwargs['reference']}",
            "access_code": "ac_test",
            "reference": kwargs["reference"],
        }

    async def charge_authorization(self, **kwargs: Any) -> Dict[str, Any]:
        self.charges.append(kwargs)
        if self.charge_error:
            raise self.charge_error
        return {"reference": kwargs["reference"], **self.charge_response}

    async def verify_transaction(self, reference: str) -> Dict[str, Any]:
        if reference not in self.transactions:
            raise PaymentProviderError("paystack", "Transaction reference not found", status_code=404)
        return self.transactions[reference]

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(paystack_signature(body, self.secret), signature)


class FakeStripe:
    """In-memory stand-in for the Stripe gateway."""

    def __init__(self) -> None:
        self.sessions_created: List[Dict[str, Any]] = []
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.cancel_calls: List[Any] = []

    async def create_checkout_session(self, **kwargs: Any) -> Dict[str, Any]:
        session_id = f"cs_test_{len(self.sessions_created) + 1}"
        self.sessions_created.append(kwargs)
        self.sessions[session_id] = {
            "id": session_id,
            "status": "open",
            "payment_status": "unpaid",
            "customer": None,
            "subscription": None,
            "client_reference_id": kwargs["metadata"].get("tenant_id"),
            "metadata": dict(kwargs["metadata"]),
        }
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    async def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        if session_id not in self.sessions:
            raise PaymentProviderError("stripe", "No such checkout.session", status_code=404)
        return self.sessions[session_id]

    def mark_paid(self, session_id: str, customer: str = "cus_test") -> None:
        self.sessions[session_id].update(status="complete", payment_status="paid", customer=customer)

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> Dict[str, Any]:
        self.cancel_calls.append((subscription_id, cancel))
        return {"id": subscription_id, "status": "active", "cancel_at_period_end": cancel}

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if signature != STRIPE_VALID_SIGNATURE:
            raise AuthenticationFailed()
        return json.loads(payload)


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "billing.db"))
    monkeypatch.setenv("APP_BASE_URL", "https://app.goviral.test")
    monkeypatch.setenv("AUTH_TOKEN_SECRET", "test-secret")
    monkeypatch.setenv("PAYSTACK_CURRENCY", "NGN")
    for name in ("PAYSTACK_SECRET_KEY", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "PAYSTACK_COUNTRIES"):
        monkeypatch.delenv(name, raising=False)
    return Settings()


@pytest.fixture
def persistence(settings):
    store = SQLitePersistence(settings.database_path)
    yield store
    store.close()


@pytest.fixture
def paystack() -> FakePaystack:
    return FakePaystack()


@pytest.fixture
def stripe_gateway() -> FakeStripe:
    return FakeStripe()


@pytest.fixture
def catalog(persistence) -> PlanCatalog:
    return PlanCatalog(persistence)


@pytest.fixture
def reconciler(persistence, catalog) -> SubscriptionReconciler:
    return SubscriptionReconciler(persistence, catalog, clock=fixed_clock)


@pytest.fixture
def launcher(persistence, settings, paystack, stripe_gateway) -> CheckoutLauncher:
    return CheckoutLauncher(persistence, settings, paystack, stripe_gateway)


@pytest.fixture
def trial_service(persistence, catalog, launcher, settings) -> TrialService:
    return TrialService(persistence, catalog, launcher, settings)


@pytest.fixture
def upgrade_service(persistence, catalog, reconciler, launcher, settings, paystack) -> UpgradeService:
    return UpgradeService(persistence, catalog, reconciler, launcher, settings, paystack=paystack, clock=fixed_clock)


@pytest.fixture
def verification_service(persistence, reconciler, paystack, stripe_gateway) -> VerificationService:
    return VerificationService(persistence, reconciler, paystack, stripe_gateway)


@pytest.fixture
def webhook_service(persistence, reconciler, paystack, stripe_gateway) -> WebhookService:
    return WebhookService(
        persistence,
        reconciler,
        PaystackWebhookAdapter(paystack),
        StripeWebhookAdapter(stripe_gateway),
    )


@pytest.fixture
def subscription_service(persistence, catalog, stripe_gateway) -> SubscriptionService:
    return SubscriptionService(persistence, catalog, stripe_gateway, clock=fixed_clock)


@pytest.fixture
def tenant(persistence):
    return persistence.upsert_tenant("tenant-1", "owner@example.com", "user")


@pytest.fixture
def admin(persistence):
    return persistence.upsert_tenant("admin-1", "admin@example.com", "admin")


@pytest.fixture
def save_plan(persistence):
    def _save(name: str, price: str, regional_prices: Optional[Dict[str, str]] = None):
        return persistence.save_plan(
            name,
            Decimal(price),
            "USD",
            7,
            [f"{name} features"],
            100,
            3,
            0,
            {code: Decimal(value) for code, value in (regional_prices or {}).items()},
        )

    return _save


@pytest.fixture
def active_subscription(persistence, catalog):
    """Put a tenant on ``plan_name`` with ``days_left`` of the period remaining."""

    def _create(tenant_id: str, plan_name: str = "Starter", days_left: int = 15, **values: Any):
        plan = catalog.resolve_plan(plan_name)
        fields: Dict[str, Any] = {
            "plan_id": plan.id,
            "plan_name": plan.name,
            "status": "active",
            "current_period_start": NOW - timedelta(days=30 - days_left),
            "current_period_end": NOW + timedelta(days=days_left),
            "next_billing_date": NOW + timedelta(days=days_left),
        }
        fields.update(values)
        return persistence.upsert_subscription(tenant_id, **fields)

    return _create
