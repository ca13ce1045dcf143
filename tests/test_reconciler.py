from datetime import timedelta
from decimal import Decimal

import pytest

from goviral.domain.models import (
    CardDetails,
    ChargeSucceeded,
    CheckoutCompleted,
    FullChargeIntent,
    InvoicePaid,
    InvoicePaymentFailed,
    PaymentAttemptFailed,
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionUpdated,
    SubscriptionWillNotRenew,
    TrialIntent,
)
from goviral.services.reconciler import map_provider_status

from .conftest import NOW

_VOLATILE = {"version", "created_at", "updated_at", "id"}


def snapshot(subscription):
    return {key: value for key, value in vars(subscription).items() if key not in _VOLATILE}


def pending_payment(persistence, tenant_id, reference, provider="paystack", plan_id=None):
    return persistence.create_payment(
        tenant_id=tenant_id,
        plan_id=plan_id,
        reference=reference,
        provider=provider,
        amount=Decimal("29"),
        currency="USD",
        status="pending",
    )


def test_trial_activation_sets_trial_window(reconciler, catalog, persistence, tenant):
    plan = catalog.resolve_plan("Starter")

    subscription = reconciler.apply_activation(tenant.id, plan, TrialIntent(tenant.id, "Starter"), provider="stripe")

    assert subscription.status == "trial"
    assert subscription.trial_ends_at == NOW + timedelta(days=7)
    assert subscription.current_period_end == subscription.trial_ends_at
    assert subscription.next_billing_date == subscription.trial_ends_at
    assert subscription.plan_id == plan.id


def test_activation_keeps_one_row_per_tenant(reconciler, catalog, persistence, tenant):
    plan = catalog.resolve_plan("Starter")
    first = reconciler.apply_activation(tenant.id, plan, TrialIntent(tenant.id, "Starter"), provider="paystack")
    second = reconciler.apply_activation(
        tenant.id, catalog.resolve_plan("Pro"), FullChargeIntent(tenant.id, "Pro"), provider="paystack"
    )

    assert second.id == first.id
    assert second.version == first.version + 1
    assert second.status == "active"
    assert second.plan_name == "Pro"
    assert second.trial_ends_at is None


def test_charge_succeeded_with_trial_intent(reconciler, persistence, tenant):
    pending_payment(persistence, tenant.id, "trial_ref")
    card = CardDetails("AUTH_1", "visa", "4081", "12", "2030")

    subscription = reconciler.apply(
        ChargeSucceeded("trial_ref", "paystack", "CUS_1", card, TrialIntent(tenant.id, "Starter"))
    )

    assert subscription.status == "trial"
    assert subscription.provider_customer_id == "CUS_1"
    assert subscription.authorization_code == "AUTH_1"
    assert subscription.card_last4 == "4081"
    assert persistence.get_payment("trial_ref").status == "paid"


def test_duplicate_charge_is_idempotent(reconciler, persistence, tenant):
    pending_payment(persistence, tenant.id, "trial_ref")
    charge = ChargeSucceeded("trial_ref", "paystack", "CUS_1", None, TrialIntent(tenant.id, "Starter"))

    first = reconciler.apply(charge)
    second = reconciler.apply(charge)

    assert snapshot(second) == snapshot(first)
    assert second.version == first.version
    assert len(persistence.list_notifications(tenant.id, 50)) == 1


def test_unknown_reference_is_ignored(reconciler, persistence, tenant):
    assert reconciler.apply(ChargeSucceeded("nope", "paystack")) is None
    assert persistence.get_subscription(tenant.id) is None


def test_renewal_charge_opens_new_period(reconciler, persistence, active_subscription, tenant):
    active_subscription(tenant.id, days_left=0, status="past_due")
    pending_payment(persistence, tenant.id, "renewal_ref")

    subscription = reconciler.apply(ChargeSucceeded("renewal_ref", "paystack", "CUS_1"))

    assert subscription.status == "active"
    assert subscription.current_period_start == NOW
    assert subscription.current_period_end == NOW + timedelta(days=30)
    assert subscription.next_billing_date == subscription.current_period_end


def test_invoice_paid_is_idempotent(reconciler, persistence, active_subscription, tenant):
    active_subscription(tenant.id, provider_subscription_id="SUB_1", status="past_due")

    first = reconciler.apply(InvoicePaid("SUB_1"))
    second = reconciler.apply(InvoicePaid("SUB_1"))

    assert first.status == "active"
    assert snapshot(second) == snapshot(first)


@pytest.mark.parametrize("invoice_first", [True, False])
def test_invoice_and_charge_converge_in_any_order(
    invoice_first, reconciler, persistence, active_subscription, tenant
):
    active_subscription(tenant.id, days_left=0, provider_subscription_id="SUB_1", status="past_due")
    pending_payment(persistence, tenant.id, "renewal_ref")
    events = [InvoicePaid("SUB_1"), ChargeSucceeded("renewal_ref", "paystack", "CUS_1")]
    if not invoice_first:
        events.reverse()

    for event in events:
        reconciler.apply(event)

    subscription = persistence.get_subscription(tenant.id)
    assert subscription.status == "active"
    assert subscription.current_period_start == NOW
    assert subscription.current_period_end == NOW + timedelta(days=30)
    assert subscription.provider_customer_id == "CUS_1"


def test_subscription_activated_attaches_provider_id(reconciler, active_subscription, tenant):
    active_subscription(tenant.id, status="trial", provider_customer_id="CUS_1")

    subscription = reconciler.apply(SubscriptionActivated("CUS_1", "SUB_9"))

    assert subscription.status == "active"
    assert subscription.provider_subscription_id == "SUB_9"
    assert reconciler.apply(SubscriptionActivated("CUS_unknown", "SUB_0")) is None


def test_cancellation_is_soft_and_stamped_once(reconciler, persistence, active_subscription, tenant):
    active_subscription(tenant.id, provider_subscription_id="SUB_1")

    first = reconciler.apply(SubscriptionCancelled("SUB_1"))
    second = reconciler.apply(SubscriptionCancelled("SUB_1"))

    assert first.status == "cancelled"
    assert first.cancel_at_period_end is True
    assert first.cancelled_at == NOW
    assert second.cancelled_at == first.cancelled_at
    assert len(persistence.list_notifications(tenant.id, 50)) == 1


def test_will_not_renew_and_failed_invoice_notify_once(reconciler, persistence, active_subscription, tenant):
    active_subscription(tenant.id, provider_subscription_id="SUB_1")

    reconciler.apply(InvoicePaymentFailed("SUB_1"))
    reconciler.apply(InvoicePaymentFailed("SUB_1"))
    assert persistence.get_subscription(tenant.id).status == "past_due"

    reconciler.apply(SubscriptionWillNotRenew("SUB_1"))
    reconciler.apply(SubscriptionWillNotRenew("SUB_1"))
    subscription = persistence.get_subscription(tenant.id)
    assert subscription.status == "inactive"
    assert subscription.cancel_at_period_end is True

    assert len(persistence.list_notifications(tenant.id, 50)) == 2


def test_events_for_unknown_subscription_are_ignored(reconciler):
    assert reconciler.apply(InvoicePaid("SUB_missing")) is None
    assert reconciler.apply(SubscriptionCancelled("SUB_missing")) is None


def test_checkout_with_trial_intent(reconciler, persistence, tenant):
    pending_payment(persistence, tenant.id, "trial_ref", provider="stripe")
    completed = CheckoutCompleted(
        tenant_id=tenant.id,
        provider="stripe",
        reference="trial_ref",
        customer_id="cus_1",
        intent=TrialIntent(tenant.id, "Pro"),
    )

    subscription = reconciler.apply(completed)
    replay = reconciler.apply(completed)

    assert subscription.status == "trial"
    assert subscription.plan_name == "Pro"
    assert subscription.provider == "stripe"
    assert persistence.get_payment("trial_ref").status == "success"
    assert snapshot(replay) == snapshot(subscription)


def test_recurring_checkout_without_intent(reconciler, tenant):
    subscription = reconciler.apply(
        CheckoutCompleted(
            tenant_id=tenant.id,
            provider="stripe",
            customer_id="cus_1",
            provider_subscription_id="sub_1",
            plan_name="pro",
        )
    )

    assert subscription.status == "active"
    assert subscription.plan_name == "Pro"
    assert subscription.provider_subscription_id == "sub_1"
    assert subscription.current_period_end == NOW + timedelta(days=30)


def test_checkout_without_anything_to_activate(reconciler, tenant):
    assert reconciler.apply(CheckoutCompleted(tenant_id=tenant.id, provider="stripe")) is None


def test_subscription_updated_maps_status(reconciler, active_subscription, tenant):
    active_subscription(tenant.id, provider="stripe", provider_subscription_id="sub_1")
    period_end = NOW + timedelta(days=20)

    subscription = reconciler.apply(SubscriptionUpdated("sub_1", "past_due", period_end, True))

    assert subscription.status == "past_due"
    assert subscription.current_period_end == period_end
    assert subscription.next_billing_date == period_end
    assert subscription.cancel_at_period_end is True


def test_map_provider_status():
    assert map_provider_status("trialing") == "trial"
    assert map_provider_status("canceled") == "cancelled"
    assert map_provider_status("unpaid") == "past_due"
    assert map_provider_status("something_new") == "inactive"


def test_payment_attempt_failed(reconciler, persistence, tenant):
    pending_payment(persistence, tenant.id, "upgrade_ref", provider="stripe")

    reconciler.apply(PaymentAttemptFailed("upgrade_ref"))
    reconciler.apply(PaymentAttemptFailed("upgrade_ref"))

    assert persistence.get_payment("upgrade_ref").status == "failed"
    assert persistence.get_subscription(tenant.id) is None
