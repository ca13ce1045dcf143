import sqlite3
from decimal import Decimal

from goviral.infrastructure.persistence.sqlite import SQLitePersistence

OLD_PLANS_TABLE = """
CREATE TABLE plans (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE COLLATE NOCASE,
    price TEXT NOT NULL,
    currency TEXT NOT NULL DEFAULT 'USD',
    trial_days INTEGER NOT NULL DEFAULT 7,
    features TEXT NOT NULL,
    max_posts INTEGER NOT NULL,
    max_platforms INTEGER NOT NULL,
    max_messages INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""


def plans_schema(path) -> str:
    conn = sqlite3.connect(path)
    try:
        row = conn.execute("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = 'plans'").fetchone()
    finally:
        conn.close()
    return row[0]


def save_growth(store: SQLitePersistence):
    return store.save_plan(
        "Growth", Decimal("29"), "USD", 7, ["Growth features"], 100, 3, 0, {"NGN": Decimal("40000")}
    )


def test_fresh_database_declares_regional_prices(tmp_path):
    path = tmp_path / "fresh.db"
    store = SQLitePersistence(path)
    try:
        plan = save_growth(store)
    finally:
        store.close()

    assert "regional_prices TEXT NOT NULL DEFAULT '{}'" in plans_schema(path)
    assert plan.price_for("NGN") == Decimal("40000")


def test_older_database_gains_regional_prices(tmp_path):
    path = tmp_path / "old.db"
    conn = sqlite3.connect(path)
    conn.execute(OLD_PLANS_TABLE)
    conn.commit()
    conn.close()

    store = SQLitePersistence(path)
    try:
        plan = save_growth(store)
    finally:
        store.close()

    assert "regional_prices" in plans_schema(path)
    assert plan.price_for("NGN") == Decimal("40000")
