"""Plan lookup, create-on-read from the static catalog, and proration."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from ..core.plans import STATIC_PLANS, get_static_plan
from ..domain.errors import InvalidPlan
from ..domain.models import Plan
from ..domain.ports.persistence import PlanRepository

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def prorate(current_price: Decimal, new_price: Decimal, days_remaining: int, period_days: int = 30) -> Decimal:
    """Linear proration of a price increase over the remaining days of a period.

    Returns zero when the new price is not higher. ``days_remaining`` is
    clamped into ``[0, period_days]``.
    """
    if period_days <= 0:
        raise ValueError("period_days must be positive")
    difference = Decimal(new_price) - Decimal(current_price)
    if difference <= 0:
        return Decimal("0.00")
    days = min(max(days_remaining, 0), period_days)
    return (difference * days / period_days).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PlanCatalog:
    """Resolves plan names against the store, falling back to the static catalog."""

    def __init__(self, plans: PlanRepository) -> None:
        self._plans = plans

    def find_plan(self, name: str) -> Optional[Plan]:
        """Look a plan up without writing anything.

        Static entries that are not stored yet come back with ``id == 0``.
        """
        if not name or not name.strip():
            return None
        stored = self._plans.get_plan_by_name(name)
        if stored:
            return stored if stored.is_active else None
        config = get_static_plan(name)
        if not config:
            return None
        return _plan_from_config(config)

    def resolve_plan(self, name: str) -> Plan:
        """Return the stored plan, persisting a static entry on first use.

        Raises:
            InvalidPlan: The name is unknown or the plan is inactive
        """
        plan = self.find_plan(name)
        if plan is None:
            raise InvalidPlan()
        if plan.id:
            return plan
        logger.info("Creating plan %s from the static catalog", plan.name)
        return self._plans.save_plan(
            plan.name,
            plan.price,
            plan.currency,
            plan.trial_days,
            plan.features,
            plan.max_posts,
            plan.max_platforms,
            plan.max_messages,
            plan.regional_prices,
        )

    def calculate_prorated_amount(
        self,
        current_name: str,
        new_name: str,
        days_remaining: int,
        period_days: int = 30,
        currency: str = "USD",
    ) -> Decimal:
        current = self.find_plan(current_name)
        new = self.find_plan(new_name)
        if current is None or new is None:
            raise InvalidPlan()
        return prorate(current.price_for(currency), new.price_for(currency), days_remaining, period_days)

    def list_plans(self) -> List[Plan]:
        return self._plans.list_plans(active_only=True)

    def seed_static_plans(self) -> List[Plan]:
        """Write every static catalog entry, overwriting stored prices and limits."""
        seeded = []
        for config in STATIC_PLANS.values():
            plan = _plan_from_config(config)
            seeded.append(
                self._plans.save_plan(
                    plan.name,
                    plan.price,
                    plan.currency,
                    plan.trial_days,
                    plan.features,
                    plan.max_posts,
                    plan.max_platforms,
                    plan.max_messages,
                    plan.regional_prices,
                    overwrite=True,
                )
            )
            logger.info("Seeded plan %s at %s USD", plan.name, plan.price)
        return seeded


def _plan_from_config(config: Dict) -> Plan:
    return Plan(
        id=0,
        name=config["name"],
        price=Decimal(config["price"]),
        currency="USD",
        trial_days=config["trial_days"],
        features=list(config["features"]),
        max_posts=config["max_posts"],
        max_platforms=config["max_platforms"],
        max_messages=config["max_messages"],
        regional_prices={code: Decimal(value) for code, value in config["regional_prices"].items()},
    )
