"""
Payment intents.

An intent says what a payment is for. It travels to the provider inside the
transaction metadata and comes back on the webhook or verification response,
where the reconciler branches on its type.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Dict, Mapping, Optional, Union

from ...core.plans import DEFAULT_TRIAL_DAYS


@dataclass(frozen=True, slots=True)
class TrialIntent:
    tenant_id: str
    plan_name: str
    trial_days: int = DEFAULT_TRIAL_DAYS

    kind: ClassVar[str] = "trial"


@dataclass(frozen=True, slots=True)
class FullChargeIntent:
    tenant_id: str
    plan_name: str

    kind: ClassVar[str] = "full"


@dataclass(frozen=True, slots=True)
class UpgradeIntent:
    tenant_id: str
    plan_name: str
    previous_plan: str
    prorated_amount: Decimal

    kind: ClassVar[str] = "upgrade"


PaymentIntent = Union[TrialIntent, FullChargeIntent, UpgradeIntent]


def intent_to_metadata(intent: PaymentIntent) -> Dict[str, str]:
    """Flatten an intent into string-only metadata accepted by both providers."""
    metadata = {
        "intent": intent.kind,
        "tenant_id": intent.tenant_id,
        "plan_name": intent.plan_name,
    }
    if isinstance(intent, TrialIntent):
        metadata["trial_days"] = str(intent.trial_days)
    elif isinstance(intent, UpgradeIntent):
        metadata["previous_plan"] = intent.previous_plan
        metadata["prorated_amount"] = str(intent.prorated_amount)
    return metadata


def intent_from_metadata(metadata: Optional[Mapping[str, Any]]) -> Optional[PaymentIntent]:
    """Rebuild the intent from provider metadata, or None when it carries none."""
    if not metadata:
        return None
    tenant_id = _text(metadata.get("tenant_id"))
    plan_name = _text(metadata.get("plan_name"))
    if not tenant_id or not plan_name:
        return None

    kind = _text(metadata.get("intent"))
    if kind is None and "isTrial" in metadata:
        # older checkouts only sent an isTrial flag
        kind = TrialIntent.kind if _truthy(metadata.get("isTrial")) else FullChargeIntent.kind

    if kind == TrialIntent.kind:
        return TrialIntent(tenant_id, plan_name, _int(metadata.get("trial_days"), DEFAULT_TRIAL_DAYS))
    if kind == FullChargeIntent.kind:
        return FullChargeIntent(tenant_id, plan_name)
    if kind == UpgradeIntent.kind:
        return UpgradeIntent(
            tenant_id,
            plan_name,
            previous_plan=_text(metadata.get("previous_plan")) or "",
            prorated_amount=_decimal(metadata.get("prorated_amount")),
        )
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _truthy(value: Any) -> bool:
    return value is True or str(value).lower() == "true"


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
