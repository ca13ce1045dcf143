from decimal import Decimal

import pytest

from goviral.domain.errors import InvalidPlan
from goviral.services.plan_catalog import prorate, to_minor_units


def test_prorate_half_period_upgrade():
    assert prorate(Decimal("9"), Decimal("29"), 15, 30) == Decimal("10.00")


def test_prorate_rounds_half_up_to_cents():
    # 20 * 1 / 3 = 6.666...
    assert prorate(Decimal("10"), Decimal("30"), 1, 3) == Decimal("6.67")


def test_prorate_is_zero_when_new_price_is_not_higher():
    assert prorate(Decimal("29"), Decimal("9"), 15) == Decimal("0.00")
    assert prorate(Decimal("29"), Decimal("29"), 15) == Decimal("0.00")


def test_prorate_clamps_days_into_period():
    assert prorate(Decimal("9"), Decimal("29"), 45, 30) == Decimal("20.00")
    assert prorate(Decimal("9"), Decimal("29"), -3, 30) == Decimal("0.00")


def test_to_minor_units():
    assert to_minor_units(Decimal("10.00")) == 1000
    assert to_minor_units(Decimal("45000")) == 4500000
    assert to_minor_units(Decimal("0.005")) == 1


def test_calculate_prorated_amount_uses_stored_plans(catalog, save_plan):
    save_plan("Basic", "9")
    save_plan("Growth", "29")

    assert catalog.calculate_prorated_amount("Basic", "Growth", 15) == Decimal("10.00")


def test_calculate_prorated_amount_in_regional_currency(catalog):
    # Starter 45000 NGN, Pro 90000 NGN
    amount = catalog.calculate_prorated_amount("Starter", "Pro", 10, 30, "NGN")

    assert amount == Decimal("15000.00")


def test_calculate_prorated_amount_rejects_unknown_plan(catalog):
    with pytest.raises(InvalidPlan):
        catalog.calculate_prorated_amount("Starter", "Enterprise", 10)


def test_find_plan_does_not_write(catalog, persistence):
    plan = catalog.find_plan("starter")

    assert plan is not None
    assert plan.name == "Starter"
    assert plan.id == 0
    assert persistence.get_plan_by_name("Starter") is None


def test_resolve_plan_creates_static_plan_once(catalog, persistence):
    first = catalog.resolve_plan("PRO")
    second = catalog.resolve_plan("pro")

    assert first.id > 0
    assert second.id == first.id
    assert persistence.get_plan_by_name("Pro").price == Decimal("59")
    assert len(persistence.list_plans()) == 1


def test_resolve_plan_prefers_stored_row(catalog, save_plan):
    stored = save_plan("Starter", "19")

    plan = catalog.resolve_plan("starter")

    assert plan.id == stored.id
    assert plan.price == Decimal("19")


def test_resolve_plan_unknown_name(catalog):
    with pytest.raises(InvalidPlan):
        catalog.resolve_plan("Enterprise")
    with pytest.raises(InvalidPlan):
        catalog.resolve_plan("   ")


def test_price_for_falls_back_to_base_price(catalog):
    plan = catalog.resolve_plan("Starter")

    assert plan.price_for("GBP") == Decimal("23")
    assert plan.price_for("usd") == Decimal("29")
    assert plan.price_for("EUR") == Decimal("29")


def test_seed_static_plans_overwrites_prices(catalog, save_plan):
    save_plan("Pro", "99")

    seeded = catalog.seed_static_plans()

    assert [plan.name for plan in seeded] == ["Starter", "Pro"]
    assert [plan.name for plan in catalog.list_plans()] == ["Starter", "Pro"]
    assert catalog.find_plan("Pro").price == Decimal("59")
