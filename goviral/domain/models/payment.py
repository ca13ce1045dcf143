from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


class PaymentProvider:
    PAYSTACK = "paystack"
    STRIPE = "stripe"

    ALL = (PAYSTACK, STRIPE)


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    SUCCESS = "success"
    FAILED = "failed"

    TERMINAL = (PAID, SUCCESS, FAILED)
    SUCCEEDED = (PAID, SUCCESS)


@dataclass(slots=True)
class Payment:
    id: int
    tenant_id: str
    plan_id: Optional[int]
    reference: str
    provider: str
    amount: Decimal
    currency: str
    status: str
    provider_session_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in PaymentStatus.TERMINAL
