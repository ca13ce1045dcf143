from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional


@dataclass(slots=True)
class Plan:
    id: int
    name: str
    price: Decimal
    currency: str
    trial_days: int
    features: List[str]
    max_posts: int
    max_platforms: int
    max_messages: int
    regional_prices: Dict[str, Decimal] = field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def price_for(self, currency: str) -> Decimal:
        """Monthly price in ``currency``; falls back to the base price."""
        code = currency.upper()
        if code == self.currency.upper():
            return self.price
        return self.regional_prices.get(code, self.price)
