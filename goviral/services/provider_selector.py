"""Choosing a payment provider and currency for a request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from ..domain.errors import PaymentUnavailable
from ..domain.models import PaymentProvider, Subscription

DEFAULT_PAYSTACK_COUNTRIES = frozenset({"NG", "GH", "ZA", "KE"})

_COUNTRY_CURRENCIES = {
    "NG": "NGN",
    "GH": "NGN",
    "ZA": "NGN",
    "KE": "NGN",
    "GB": "GBP",
}

# Edge network headers, most specific first
_COUNTRY_HEADERS = ("x-vercel-ip-country", "cf-ipcountry")


@dataclass(frozen=True, slots=True)
class ProviderAffinity:
    """Provider ties carried by an existing subscription."""

    paystack_authorization: bool = False
    stripe_subscription: bool = False

    @classmethod
    def from_subscription(cls, subscription: Optional[Subscription]) -> "ProviderAffinity":
        if subscription is None:
            return cls()
        return cls(
            paystack_authorization=bool(subscription.authorization_code),
            stripe_subscription=bool(
                subscription.provider_subscription_id and subscription.provider == PaymentProvider.STRIPE
            ),
        )


@dataclass(frozen=True, slots=True)
class ProviderAvailability:
    paystack: bool
    stripe: bool


def select_provider(
    country_code: Optional[str],
    affinity: ProviderAffinity,
    availability: ProviderAvailability,
    paystack_countries: Iterable[str] = DEFAULT_PAYSTACK_COUNTRIES,
) -> str:
    """Pick the provider for a charge.

    Existing provider ties win over the country heuristic. When the preferred
    provider is not configured the other one is used.

    Raises:
        PaymentUnavailable: Neither provider is configured
    """
    if affinity.paystack_authorization:
        preferred = PaymentProvider.PAYSTACK
    elif affinity.stripe_subscription:
        preferred = PaymentProvider.STRIPE
    elif country_code and country_code.strip().upper() in {code.upper() for code in paystack_countries}:
        preferred = PaymentProvider.PAYSTACK
    else:
        preferred = PaymentProvider.STRIPE

    configured = {
        PaymentProvider.PAYSTACK: availability.paystack,
        PaymentProvider.STRIPE: availability.stripe,
    }
    if configured[preferred]:
        return preferred
    fallback = PaymentProvider.STRIPE if preferred == PaymentProvider.PAYSTACK else PaymentProvider.PAYSTACK
    if configured[fallback]:
        return fallback
    raise PaymentUnavailable()


def currency_for_country(country_code: Optional[str]) -> str:
    if not country_code:
        return "USD"
    return _COUNTRY_CURRENCIES.get(country_code.strip().upper(), "USD")


def charge_currency(provider: str, country_code: Optional[str], paystack_currency: str = "NGN") -> str:
    """Currency a provider is asked to charge in.

    Paystack always charges in its account currency; Stripe charges GBP for
    British customers and USD otherwise.
    """
    if provider == PaymentProvider.PAYSTACK:
        return paystack_currency
    return "GBP" if currency_for_country(country_code) == "GBP" else "USD"


def country_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    for name in _COUNTRY_HEADERS:
        value = headers.get(name)
        if value and value.strip() and value.strip().upper() != "XX":
            return value.strip().upper()
    return None


def resolve_country(headers: Mapping[str, str], client_hint: Optional[str]) -> Optional[str]:
    """Server-side headers take priority over the country the client reports."""
    country = country_from_headers(headers)
    if country:
        return country
    if client_hint and client_hint.strip():
        return client_hint.strip().upper()
    return None
