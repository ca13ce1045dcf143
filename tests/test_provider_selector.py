import pytest

from goviral.domain.errors import PaymentUnavailable
from goviral.services.provider_selector import (
    ProviderAffinity,
    ProviderAvailability,
    charge_currency,
    country_from_headers,
    resolve_country,
    select_provider,
)

BOTH = ProviderAvailability(paystack=True, stripe=True)


@pytest.mark.parametrize(
    ("country", "expected"),
    [
        ("NG", "paystack"),
        ("gh", "paystack"),
        ("ZA", "paystack"),
        ("KE", "paystack"),
        ("US", "stripe"),
        ("GB", "stripe"),
        (None, "stripe"),
    ],
)
def test_country_heuristic(country, expected):
    assert select_provider(country, ProviderAffinity(), BOTH) == expected


def test_paystack_authorization_beats_stripe_country():
    affinity = ProviderAffinity(paystack_authorization=True)

    assert select_provider("US", affinity, BOTH) == "paystack"


def test_stripe_subscription_beats_paystack_country():
    affinity = ProviderAffinity(stripe_subscription=True)

    assert select_provider("NG", affinity, BOTH) == "stripe"


def test_falls_back_to_configured_provider():
    only_stripe = ProviderAvailability(paystack=False, stripe=True)
    only_paystack = ProviderAvailability(paystack=True, stripe=False)

    assert select_provider("NG", ProviderAffinity(), only_stripe) == "stripe"
    assert select_provider("US", ProviderAffinity(), only_paystack) == "paystack"


def test_no_provider_configured():
    with pytest.raises(PaymentUnavailable):
        select_provider("NG", ProviderAffinity(), ProviderAvailability(paystack=False, stripe=False))


def test_custom_paystack_countries():
    assert select_provider("EG", ProviderAffinity(), BOTH, paystack_countries=["EG"]) == "paystack"
    assert select_provider("NG", ProviderAffinity(), BOTH, paystack_countries=["EG"]) == "stripe"


def test_affinity_from_subscription(persistence, active_subscription):
    paystack_sub = active_subscription("tenant-1", authorization_code="AUTH_abc", provider="paystack")
    stripe_sub = active_subscription("tenant-2", provider="stripe", provider_subscription_id="sub_123")
    orphan_sub = active_subscription("tenant-3", provider="paystack", provider_subscription_id="SUB_code")

    assert ProviderAffinity.from_subscription(paystack_sub) == ProviderAffinity(paystack_authorization=True)
    assert ProviderAffinity.from_subscription(stripe_sub) == ProviderAffinity(stripe_subscription=True)
    assert ProviderAffinity.from_subscription(orphan_sub) == ProviderAffinity()
    assert ProviderAffinity.from_subscription(None) == ProviderAffinity()


def test_charge_currency():
    assert charge_currency("paystack", "NG") == "NGN"
    assert charge_currency("paystack", "US", "GHS") == "GHS"
    assert charge_currency("stripe", "GB") == "GBP"
    assert charge_currency("stripe", "NG") == "USD"
    assert charge_currency("stripe", None) == "USD"


def test_country_headers_take_priority_over_client_hint():
    headers = {"x-vercel-ip-country": "ng"}

    assert country_from_headers(headers) == "NG"
    assert resolve_country(headers, "US") == "NG"


def test_unknown_edge_country_is_ignored():
    assert country_from_headers({"cf-ipcountry": "XX"}) is None
    assert resolve_country({"cf-ipcountry": "XX"}, "gb") == "GB"
    assert resolve_country({}, None) is None
