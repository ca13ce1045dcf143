from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(slots=True)
class Tenant:
    id: str
    email: str
    role: str
    created_at: datetime
    updated_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(slots=True)
class Notification:
    id: int
    tenant_id: str
    message: str
    type: str
    is_read: bool
    created_at: datetime


@dataclass(slots=True)
class AuditLog:
    id: int
    actor_id: str
    action: str
    target_tenant_id: Optional[str]
    details: Dict[str, Any]
    created_at: datetime
