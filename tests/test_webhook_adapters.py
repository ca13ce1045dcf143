import hashlib
import json
from datetime import datetime, timezone

import pytest

from goviral.domain.errors import AuthenticationFailed
from goviral.domain.models import (
    ChargeSucceeded,
    CheckoutCompleted,
    InvoicePaid,
    InvoicePaymentFailed,
    PaymentAttemptFailed,
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionUpdated,
    SubscriptionWillNotRenew,
    TrialIntent,
)
from goviral.services.paystack_webhooks import PaystackWebhookAdapter
from goviral.services.stripe_webhooks import StripeWebhookAdapter

from .conftest import STRIPE_VALID_SIGNATURE, FakePaystack, FakeStripe, paystack_signature


def paystack_event(event_type, data):
    body = json.dumps({"event": event_type, "data": data}).encode("utf-8")
    return PaystackWebhookAdapter(FakePaystack()).parse(body, paystack_signature(body)), body


def stripe_event(event_type, obj, event_id="evt_1"):
    body = json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode("utf-8")
    return StripeWebhookAdapter(FakeStripe()).parse(body, STRIPE_VALID_SIGNATURE)


def test_paystack_event_key_is_body_digest():
    event, body = paystack_event("subscription.disable", {"subscription_code": "SUB_1"})

    assert event.event_key == hashlib.sha256(body).hexdigest()
    assert event.transitions == (SubscriptionCancelled("SUB_1"),)


def test_paystack_charge_success_carries_card_and_intent():
    event, _ = paystack_event(
        "charge.success",
        {
            "reference": "trial_1",
            "customer": {"customer_code": "CUS_1"},
            "authorization": {"authorization_code": "AUTH_1", "brand": "visa", "last4": "4081", "reusable": False},
            "metadata": json.dumps({"tenant_id": "tenant-1", "plan_name": "Starter", "isTrial": True}),
        },
    )

    (charge,) = event.transitions
    assert isinstance(charge, ChargeSucceeded)
    assert charge.customer_id == "CUS_1"
    # single-use cards are not kept for later charges
    assert charge.card.authorization_code is None
    assert charge.card.last4 == "4081"
    assert charge.intent == TrialIntent("tenant-1", "Starter")


@pytest.mark.parametrize(
    ("event_type", "data", "expected"),
    [
        (
            "subscription.create",
            {"subscription_code": "SUB_1", "customer": {"customer_code": "CUS_1"}},
            SubscriptionActivated("CUS_1", "SUB_1"),
        ),
        ("subscription.not_renew", {"subscription_code": "SUB_1"}, SubscriptionWillNotRenew("SUB_1")),
        ("invoice.create", {"paid": True, "subscription": {"subscription_code": "SUB_1"}}, InvoicePaid("SUB_1")),
        (
            "invoice.update",
            {"paid": False, "subscription": {"subscription_code": "SUB_1"}},
            InvoicePaymentFailed("SUB_1"),
        ),
        (
            "invoice.payment_failed",
            {"subscription": {"subscription_code": "SUB_1"}},
            InvoicePaymentFailed("SUB_1"),
        ),
    ],
)
def test_paystack_event_vocabulary(event_type, data, expected):
    event, _ = paystack_event(event_type, data)

    assert event.transitions == (expected,)


def test_paystack_bad_signature():
    adapter = PaystackWebhookAdapter(FakePaystack())

    with pytest.raises(AuthenticationFailed):
        adapter.parse(b'{"event":"charge.success"}', "bad")
    with pytest.raises(AuthenticationFailed):
        adapter.parse(b'{"event":"charge.success"}', None)


def test_stripe_checkout_completed():
    event = stripe_event(
        "checkout.session.completed",
        {
            "id": "cs_1",
            "client_reference_id": "tenant-1",
            "customer": "cus_1",
            "subscription": None,
            "metadata": {"reference": "trial_1", "intent": "trial", "tenant_id": "tenant-1", "plan_name": "Pro"},
        },
    )

    assert event.event_key == "evt_1"
    (completed,) = event.transitions
    assert isinstance(completed, CheckoutCompleted)
    assert completed.reference == "trial_1"
    assert completed.customer_id == "cus_1"
    assert completed.intent == TrialIntent("tenant-1", "Pro")


def test_stripe_checkout_without_tenant_is_dropped():
    event = stripe_event("checkout.session.completed", {"id": "cs_1", "metadata": {}})

    assert event.transitions == ()


def test_stripe_subscription_updated_reads_item_period():
    period_end = 1767225600
    event = stripe_event(
        "customer.subscription.updated",
        {
            "id": "sub_1",
            "status": "active",
            "cancel_at_period_end": True,
            "items": {"data": [{"current_period_end": period_end}]},
        },
    )

    assert event.transitions == (
        SubscriptionUpdated(
            "sub_1",
            "active",
            datetime.fromtimestamp(period_end, tz=timezone.utc),
            True,
        ),
    )


def test_stripe_invoice_subscription_from_parent_details():
    event = stripe_event(
        "invoice.payment_failed",
        {"id": "in_1", "parent": {"subscription_details": {"subscription": "sub_1"}}},
    )

    assert event.transitions == (InvoicePaymentFailed("sub_1"),)


def test_stripe_other_events():
    assert stripe_event("invoice.paid", {"subscription": "sub_1"}).transitions == (InvoicePaid("sub_1"),)
    assert stripe_event("customer.subscription.deleted", {"id": "sub_1"}).transitions == (
        SubscriptionCancelled("sub_1"),
    )
    assert stripe_event(
        "payment_intent.payment_failed", {"metadata": {"reference": "upgrade_1"}}
    ).transitions == (PaymentAttemptFailed("upgrade_1"),)
    assert stripe_event("customer.created", {"id": "cus_1"}).transitions == ()
