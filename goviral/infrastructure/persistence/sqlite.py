import json
import sqlite3
import threading
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ...domain.models import AuditLog, Notification, Payment, Plan, Subscription, Tenant
from ...domain.ports.persistence import PersistenceGateway

_SUBSCRIPTION_COLUMNS = frozenset(
    {
        "plan_id",
        "plan_name",
        "status",
        "current_period_start",
        "current_period_end",
        "trial_ends_at",
        "next_billing_date",
        "cancel_at_period_end",
        "cancelled_at",
        "provider",
        "provider_customer_id",
        "provider_subscription_id",
        "authorization_code",
        "card_brand",
        "card_last4",
        "card_exp_month",
        "card_exp_year",
    }
)


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS tenants (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'user',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    price TEXT NOT NULL,
                    currency TEXT NOT NULL DEFAULT 'USD',
                    trial_days INTEGER NOT NULL DEFAULT 7,
                    features TEXT NOT NULL,
                    max_posts INTEGER NOT NULL,
                    max_platforms INTEGER NOT NULL,
                    max_messages INTEGER NOT NULL DEFAULT 0,
                    regional_prices TEXT NOT NULL DEFAULT '{}',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL UNIQUE,
                    plan_id INTEGER,
                    plan_name TEXT NOT NULL,
                    status TEXT NOT NULL,
                    current_period_start TEXT NOT NULL,
                    current_period_end TEXT NOT NULL,
                    trial_ends_at TEXT,
                    next_billing_date TEXT,
                    cancel_at_period_end INTEGER NOT NULL DEFAULT 0,
                    cancelled_at TEXT,
                    provider TEXT,
                    provider_customer_id TEXT,
                    provider_subscription_id TEXT,
                    authorization_code TEXT,
                    card_brand TEXT,
                    card_last4 TEXT,
                    card_exp_month TEXT,
                    card_exp_year TEXT,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(plan_id) REFERENCES plans(id)
                );

                CREATE INDEX IF NOT EXISTS idx_subscriptions_provider_subscription_id
                    ON subscriptions(provider_subscription_id);

                CREATE INDEX IF NOT EXISTS idx_subscriptions_provider_customer_id
                    ON subscriptions(provider_customer_id);

                CREATE TABLE IF NOT EXISTS payments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    plan_id INTEGER,
                    reference TEXT NOT NULL UNIQUE,
                    provider TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    currency TEXT NOT NULL,
                    status TEXT NOT NULL,
                    provider_session_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_payments_tenant_created
                    ON payments(tenant_id, created_at DESC);

                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    message TEXT NOT NULL,
                    type TEXT NOT NULL DEFAULT 'in-app',
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS audit_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    actor_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    target_tenant_id TEXT,
                    details TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS webhook_events (
                    provider TEXT NOT NULL,
                    event_key TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    processed_at TEXT NOT NULL,
                    PRIMARY KEY(provider, event_key)
                );
                """
            )
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Bring databases created before regional pricing up to date."""
        with self._lock:
            cur = self._conn.execute("PRAGMA table_info(plans)")
            columns = {row[1] for row in cur.fetchall()}
        if "regional_prices" not in columns:
            with self._lock, self._conn:
                self._conn.execute("ALTER TABLE plans ADD COLUMN regional_prices TEXT NOT NULL DEFAULT '{}'")

    def close(self) -> None:
        self._conn.close()

    # PlanRepository API -----------------------------------------------------
    def get_plan(self, plan_id: int) -> Optional[Plan]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM plans WHERE id = ?", (plan_id,))
            row = cur.fetchone()
        return self._row_to_plan(row) if row else None

    def get_plan_by_name(self, name: str) -> Optional[Plan]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM plans WHERE name = ? COLLATE NOCASE", (name.strip(),))
            row = cur.fetchone()
        return self._row_to_plan(row) if row else None

    def save_plan(
        self,
        name: str,
        price: Decimal,
        currency: str,
        trial_days: int,
        features: Sequence[str],
        max_posts: int,
        max_platforms: int,
        max_messages: int,
        regional_prices: Dict[str, Decimal],
        *,
        overwrite: bool = False,
    ) -> Plan:
        now = self._now()
        conflict = (
            """
            DO UPDATE SET
                price = excluded.price,
                currency = excluded.currency,
                trial_days = excluded.trial_days,
                features = excluded.features,
                max_posts = excluded.max_posts,
                max_platforms = excluded.max_platforms,
                max_messages = excluded.max_messages,
                regional_prices = excluded.regional_prices,
                updated_at = excluded.updated_at
            """
            if overwrite
            else "DO NOTHING"
        )
        with self._lock, self._conn:
            self._conn.execute(
                f"""
                INSERT INTO plans (
                    name, price, currency, trial_days, features, max_posts,
                    max_platforms, max_messages, regional_prices, is_active,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(name) {conflict}
                """,
                (
                    name.strip(),
                    str(price),
                    currency.upper(),
                    trial_days,
                    json.dumps(list(features), ensure_ascii=False),
                    max_posts,
                    max_platforms,
                    max_messages,
                    json.dumps({code.upper(): str(value) for code, value in regional_prices.items()}),
                    now,
                    now,
                ),
            )
            cur = self._conn.execute("SELECT * FROM plans WHERE name = ? COLLATE NOCASE", (name.strip(),))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist plan.")
        return self._row_to_plan(row)

    def list_plans(self, active_only: bool = True) -> List[Plan]:
        query = "SELECT * FROM plans"
        if active_only:
            query += " WHERE is_active = 1"
        with self._lock:
            cur = self._conn.execute(query)
            rows = cur.fetchall()
        plans = [self._row_to_plan(row) for row in rows]
        return sorted(plans, key=lambda plan: plan.price)

    # SubscriptionRepository API ---------------------------------------------
    def get_subscription(self, tenant_id: str) -> Optional[Subscription]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE tenant_id = ?", (tenant_id,))
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def find_subscription(
        self,
        *,
        provider_subscription_id: Optional[str] = None,
        provider_customer_id: Optional[str] = None,
    ) -> Optional[Subscription]:
        if provider_subscription_id:
            column, value = "provider_subscription_id", provider_subscription_id
        elif provider_customer_id:
            column, value = "provider_customer_id", provider_customer_id
        else:
            return None
        with self._lock:
            cur = self._conn.execute(
                f"SELECT * FROM subscriptions WHERE {column} = ? ORDER BY updated_at DESC LIMIT 1",
                (value,),
            )
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def upsert_subscription(self, tenant_id: str, **values: Any) -> Subscription:
        """Insert the tenant's subscription or update it in one atomic statement.

        The insert branch needs ``plan_name``, ``status`` and both period
        bounds. ``cancelled_at`` keeps its first non-null value.
        """
        self._check_subscription_columns(values)
        now = self._now()
        columns = list(values)
        encoded = [self._encode(values[column]) for column in columns]
        assignments = [self._assignment(column, f"excluded.{column}", values[column]) for column in columns]
        assignments.append("version = subscriptions.version + 1")
        assignments.append("updated_at = excluded.updated_at")
        statement = (
            f"INSERT INTO subscriptions (tenant_id, {', '.join(columns)}, version, created_at, updated_at) "
            f"VALUES (?, {', '.join('?' for _ in columns)}, 1, ?, ?) "
            f"ON CONFLICT(tenant_id) DO UPDATE SET {', '.join(assignments)}"
        )
        with self._lock, self._conn:
            self._conn.execute(statement, [tenant_id, *encoded, now, now])
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE tenant_id = ?", (tenant_id,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist subscription.")
        return self._row_to_subscription(row)

    def update_subscription(self, tenant_id: str, **values: Any) -> Optional[Subscription]:
        self._check_subscription_columns(values)
        assignments: List[str] = []
        params: List[Any] = []
        for column, value in values.items():
            if value is None:
                assignments.append(f"{column} = NULL")
            else:
                assignments.append(self._assignment(column, "?", value))
                params.append(self._encode(value))
        assignments.append("version = version + 1")
        assignments.append("updated_at = ?")
        params.extend([self._now(), tenant_id])
        with self._lock, self._conn:
            cur = self._conn.execute(
                f"UPDATE subscriptions SET {', '.join(assignments)} WHERE tenant_id = ?",
                params,
            )
            if cur.rowcount == 0:
                return None
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE tenant_id = ?", (tenant_id,))
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    # PaymentRepository API --------------------------------------------------
    def create_payment(
        self,
        tenant_id: str,
        plan_id: Optional[int],
        reference: str,
        provider: str,
        amount: Decimal,
        currency: str,
        status: str,
        provider_session_id: Optional[str] = None,
    ) -> Payment:
        now = self._now()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO payments (
                    tenant_id, plan_id, reference, provider, amount, currency,
                    status, provider_session_id, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (tenant_id, plan_id, reference, provider, str(amount), currency, status, provider_session_id, now, now),
            )
            cur = self._conn.execute("SELECT * FROM payments WHERE reference = ?", (reference,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist payment.")
        return self._row_to_payment(row)

    def get_payment(self, reference: str) -> Optional[Payment]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM payments WHERE reference = ?", (reference,))
            row = cur.fetchone()
        return self._row_to_payment(row) if row else None

    def find_payment_by_session(self, session_id: str) -> Optional[Payment]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM payments WHERE provider_session_id = ?", (session_id,))
            row = cur.fetchone()
        return self._row_to_payment(row) if row else None

    def set_payment_session(self, reference: str, session_id: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "UPDATE payments SET provider_session_id = ?, updated_at = ? WHERE reference = ?",
                (session_id, self._now(), reference),
            )

    def transition_payment(self, reference: str, status: str, from_statuses: Iterable[str]) -> bool:
        """Move a payment to ``status`` only if it is currently in ``from_statuses``."""
        allowed = list(from_statuses)
        if not allowed:
            return False
        placeholders = ", ".join("?" for _ in allowed)
        with self._lock, self._conn:
            cur = self._conn.execute(
                f"UPDATE payments SET status = ?, updated_at = ? WHERE reference = ? AND status IN ({placeholders})",
                [status, self._now(), reference, *allowed],
            )
        return cur.rowcount > 0

    def list_payments(self, tenant_id: str, limit: int) -> List[Payment]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM payments WHERE tenant_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (tenant_id, limit),
            )
            rows = cur.fetchall()
        return [self._row_to_payment(row) for row in rows]

    # NotificationRepository API ---------------------------------------------
    def add_notification(self, tenant_id: str, message: str, type: str = "in-app") -> Notification:
        now = self._now()
        with self._lock, self._conn:
            cur = self._conn.execute(
                "INSERT INTO notifications (tenant_id, message, type, is_read, created_at) VALUES (?, ?, ?, 0, ?)",
                (tenant_id, message, type, now),
            )
            notification_id = cur.lastrowid
        return Notification(
            id=notification_id,
            tenant_id=tenant_id,
            message=message,
            type=type,
            is_read=False,
            created_at=self._parse_datetime(now),
        )

    def list_notifications(self, tenant_id: str, limit: int) -> List[Notification]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM notifications WHERE tenant_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (tenant_id, limit),
            )
            rows = cur.fetchall()
        return [
            Notification(
                id=row["id"],
                tenant_id=row["tenant_id"],
                message=row["message"],
                type=row["type"],
                is_read=bool(row["is_read"]),
                created_at=self._parse_datetime(row["created_at"]),
            )
            for row in rows
        ]

    # AuditLogRepository API -------------------------------------------------
    def add_audit_log(
        self,
        actor_id: str,
        action: str,
        target_tenant_id: Optional[str],
        details: Dict[str, Any],
    ) -> AuditLog:
        now = self._now()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO audit_logs (actor_id, action, target_tenant_id, details, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (actor_id, action, target_tenant_id, json.dumps(details, default=str), now),
            )
            log_id = cur.lastrowid
        return AuditLog(
            id=log_id,
            actor_id=actor_id,
            action=action,
            target_tenant_id=target_tenant_id,
            details=details,
            created_at=self._parse_datetime(now),
        )

    def list_audit_logs(self, limit: int) -> List[AuditLog]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM audit_logs ORDER BY created_at DESC, id DESC LIMIT ?", (limit,))
            rows = cur.fetchall()
        return [
            AuditLog(
                id=row["id"],
                actor_id=row["actor_id"],
                action=row["action"],
                target_tenant_id=row["target_tenant_id"],
                details=json.loads(row["details"]),
                created_at=self._parse_datetime(row["created_at"]),
            )
            for row in rows
        ]

    # TenantRepository API ---------------------------------------------------
    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM tenants WHERE id = ?", (tenant_id,))
            row = cur.fetchone()
        return self._row_to_tenant(row) if row else None

    def upsert_tenant(self, tenant_id: str, email: str, role: str) -> Tenant:
        now = self._now()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO tenants (id, email, role, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email = excluded.email,
                    role = excluded.role,
                    updated_at = excluded.updated_at
                """,
                (tenant_id, email, role, now, now),
            )
            cur = self._conn.execute("SELECT * FROM tenants WHERE id = ?", (tenant_id,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist tenant.")
        return self._row_to_tenant(row)

    # WebhookEventRepository API ---------------------------------------------
    def has_processed_event(self, provider: str, event_key: str) -> bool:
        with self._lock:
            cur = self._conn.execute(
                "SELECT 1 FROM webhook_events WHERE provider = ? AND event_key = ?",
                (provider, event_key),
            )
            row = cur.fetchone()
        return row is not None

    def record_processed_event(
        self,
        provider: str,
        event_key: str,
        event_type: str,
        processed_at: Optional[datetime] = None,
    ) -> None:
        timestamp = processed_at.isoformat() if processed_at else self._now()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT OR IGNORE INTO webhook_events (provider, event_key, event_type, processed_at)
                VALUES (?, ?, ?, ?)
                """,
                (provider, event_key, event_type, timestamp),
            )

    # Helpers ----------------------------------------------------------------
    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _parse_datetime(value: str) -> datetime:
        result = datetime.fromisoformat(value)
        if result.tzinfo is None:
            return result.replace(tzinfo=timezone.utc)
        return result.astimezone(timezone.utc)

    def _parse_optional(self, value: Optional[str]) -> Optional[datetime]:
        return self._parse_datetime(value) if value else None

    @staticmethod
    def _check_subscription_columns(values: Dict[str, Any]) -> None:
        unknown = set(values) - _SUBSCRIPTION_COLUMNS
        if unknown:
            raise ValueError(f"Unknown subscription fields: {', '.join(sorted(unknown))}")

    @staticmethod
    def _assignment(column: str, source: str, value: Any) -> str:
        if column == "cancelled_at" and value is not None:
            return f"cancelled_at = COALESCE(subscriptions.cancelled_at, {source})"
        return f"{column} = {source}"

    @staticmethod
    def _encode(value: Any) -> Any:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc).isoformat()
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, Decimal):
            return str(value)
        return value

    def _row_to_plan(self, row: sqlite3.Row) -> Plan:
        regional = json.loads(row["regional_prices"] or "{}")
        return Plan(
            id=row["id"],
            name=row["name"],
            price=Decimal(row["price"]),
            currency=row["currency"],
            trial_days=row["trial_days"],
            features=json.loads(row["features"]),
            max_posts=row["max_posts"],
            max_platforms=row["max_platforms"],
            max_messages=row["max_messages"],
            regional_prices={code: Decimal(value) for code, value in regional.items()},
            is_active=bool(row["is_active"]),
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_subscription(self, row: sqlite3.Row) -> Subscription:
        return Subscription(
            id=row["id"],
            tenant_id=row["tenant_id"],
            plan_id=row["plan_id"],
            plan_name=row["plan_name"],
            status=row["status"],
            current_period_start=self._parse_datetime(row["current_period_start"]),
            current_period_end=self._parse_datetime(row["current_period_end"]),
            trial_ends_at=self._parse_optional(row["trial_ends_at"]),
            next_billing_date=self._parse_optional(row["next_billing_date"]),
            cancel_at_period_end=bool(row["cancel_at_period_end"]),
            cancelled_at=self._parse_optional(row["cancelled_at"]),
            provider=row["provider"],
            provider_customer_id=row["provider_customer_id"],
            provider_subscription_id=row["provider_subscription_id"],
            authorization_code=row["authorization_code"],
            card_brand=row["card_brand"],
            card_last4=row["card_last4"],
            card_exp_month=row["card_exp_month"],
            card_exp_year=row["card_exp_year"],
            version=row["version"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_payment(self, row: sqlite3.Row) -> Payment:
        return Payment(
            id=row["id"],
            tenant_id=row["tenant_id"],
            plan_id=row["plan_id"],
            reference=row["reference"],
            provider=row["provider"],
            amount=Decimal(row["amount"]),
            currency=row["currency"],
            status=row["status"],
            provider_session_id=row["provider_session_id"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_tenant(self, row: sqlite3.Row) -> Tenant:
        return Tenant(
            id=row["id"],
            email=row["email"],
            role=row["role"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )
