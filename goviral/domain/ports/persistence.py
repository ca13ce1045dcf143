from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from ..models import AuditLog, Notification, Payment, Plan, Subscription, Tenant


class PlanRepository(Protocol):
    """Storage for the plan catalog."""

    def get_plan(self, plan_id: int) -> Optional[Plan]:
        ...

    def get_plan_by_name(self, name: str) -> Optional[Plan]:
        ...

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
        ...

    def list_plans(self, active_only: bool = True) -> List[Plan]:
        ...


class SubscriptionRepository(Protocol):
    """Storage for the one-per-tenant subscription record."""

    def get_subscription(self, tenant_id: str) -> Optional[Subscription]:
        ...

    def find_subscription(
        self,
        *,
        provider_subscription_id: Optional[str] = None,
        provider_customer_id: Optional[str] = None,
    ) -> Optional[Subscription]:
        ...

    def upsert_subscription(self, tenant_id: str, **values: Any) -> Subscription:
        ...

    def update_subscription(self, tenant_id: str, **values: Any) -> Optional[Subscription]:
        ...


class PaymentRepository(Protocol):
    """Storage for payment attempts."""

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
        ...

    def get_payment(self, reference: str) -> Optional[Payment]:
        ...

    def find_payment_by_session(self, session_id: str) -> Optional[Payment]:
        ...

    def set_payment_session(self, reference: str, session_id: str) -> None:
        ...

    def transition_payment(self, reference: str, status: str, from_statuses: Iterable[str]) -> bool:
        ...

    def list_payments(self, tenant_id: str, limit: int) -> List[Payment]:
        ...


class NotificationRepository(Protocol):
    def add_notification(self, tenant_id: str, message: str, type: str = "in-app") -> Notification:
        ...

    def list_notifications(self, tenant_id: str, limit: int) -> List[Notification]:
        ...


class AuditLogRepository(Protocol):
    def add_audit_log(
        self,
        actor_id: str,
        action: str,
        target_tenant_id: Optional[str],
        details: Dict[str, Any],
    ) -> AuditLog:
        ...

    def list_audit_logs(self, limit: int) -> List[AuditLog]:
        ...


class TenantRepository(Protocol):
    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        ...

    def upsert_tenant(self, tenant_id: str, email: str, role: str) -> Tenant:
        ...


class WebhookEventRepository(Protocol):
    """Ledger of provider events that have been fully applied."""

    def has_processed_event(self, provider: str, event_key: str) -> bool:
        ...

    def record_processed_event(
        self,
        provider: str,
        event_key: str,
        event_type: str,
        processed_at: Optional[datetime] = None,
    ) -> None:
        ...


class PersistenceGateway(
    PlanRepository,
    SubscriptionRepository,
    PaymentRepository,
    NotificationRepository,
    AuditLogRepository,
    TenantRepository,
    WebhookEventRepository,
    Protocol,
):
    """Composite gateway combining every persistence concern used by the app."""

    pass
