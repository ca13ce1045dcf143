from decimal import Decimal

import pytest

from goviral.application.services.checkout_service import CheckoutLauncher
from goviral.application.services.trial_service import TrialService
from goviral.domain.errors import AlreadySubscribed, InvalidPlan, PaymentUnavailable
from goviral.services.provider_errors import PaymentProviderError


@pytest.mark.asyncio
async def test_paystack_trial_charges_nominal_authorization(trial_service, paystack, persistence, tenant):
    started = await trial_service.start_trial(tenant, "starter", "NG")

    assert started.provider == "paystack"
    assert started.plan.name == "Starter"
    assert started.authorization_url.endswith(started.reference)
    assert started.reference.startswith("trial_tenant-1_")

    call = paystack.initialized[0]
    assert call["email"] == "owner@example.com"
    assert call["amount"] == 100
    assert call["currency"] == "NGN"
    assert call["callback_url"] == "https://app.goviral.test/payment/trial-callback"
    metadata = call["metadata"]
    assert metadata["intent"] == "trial"
    assert metadata["tenant_id"] == "tenant-1"
    assert metadata["plan_name"] == "Starter"
    assert metadata["trial_days"] == "7"
    assert metadata["reference"] == started.reference
    assert metadata["full_amount"] == 4500000
    assert metadata["cancel_action"] == "https://app.goviral.test/pricing"

    payment = persistence.get_payment(started.reference)
    assert payment.status == "pending"
    assert payment.amount == Decimal("1")
    assert payment.plan_id == started.plan.id
    # nothing is committed until the provider confirms the card
    assert persistence.get_subscription(tenant.id) is None


@pytest.mark.asyncio
async def test_stripe_trial_uses_full_price_checkout(trial_service, stripe_gateway, persistence, tenant):
    started = await trial_service.start_trial(tenant, "Pro", "GB")

    assert started.provider == "stripe"
    call = stripe_gateway.sessions_created[0]
    assert call["amount"] == 4700
    assert call["currency"] == "GBP"
    assert "{CHECKOUT_SESSION_ID}" in call["success_url"]
    assert call["success_url"].startswith("https://app.goviral.test/payment/stripe-trial-callback")
    assert call["cancel_url"] == "https://app.goviral.test/trial-signup?canceled=true"
    assert call["metadata"]["intent"] == "trial"

    payment = persistence.get_payment(started.reference)
    assert payment.provider == "stripe"
    assert payment.provider_session_id == "cs_test_1"
    assert persistence.find_payment_by_session("cs_test_1").reference == started.reference


@pytest.mark.asyncio
async def test_existing_subscription_blocks_trial(trial_service, active_subscription, tenant, paystack):
    active_subscription(tenant.id)

    with pytest.raises(AlreadySubscribed):
        await trial_service.start_trial(tenant, "Starter", "NG")
    assert paystack.initialized == []


@pytest.mark.asyncio
async def test_cancelled_subscription_may_start_again(trial_service, active_subscription, tenant):
    active_subscription(tenant.id, status="cancelled")

    started = await trial_service.start_trial(tenant, "Starter", "NG")

    assert started.provider == "paystack"


@pytest.mark.asyncio
async def test_unknown_plan(trial_service, tenant, persistence):
    with pytest.raises(InvalidPlan):
        await trial_service.start_trial(tenant, "Enterprise", "NG")
    assert persistence.list_payments(tenant.id, 20) == []


@pytest.mark.asyncio
async def test_no_provider_configured(persistence, catalog, settings, tenant):
    service = TrialService(persistence, catalog, CheckoutLauncher(persistence, settings), settings)

    with pytest.raises(PaymentUnavailable):
        await service.start_trial(tenant, "Starter", "NG")


@pytest.mark.asyncio
async def test_provider_failure_leaves_payment_pending(trial_service, paystack, persistence, tenant):
    paystack.initialize_error = PaymentProviderError("paystack", "Invalid key", status_code=401)

    with pytest.raises(PaymentUnavailable) as excinfo:
        await trial_service.start_trial(tenant, "Starter", "NG")

    assert excinfo.value.message == "Failed to initialize payment"
    payments = persistence.list_payments(tenant.id, 20)
    assert [payment.status for payment in payments] == ["pending"]
