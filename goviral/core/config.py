import os
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/goviral.db")).resolve()
        self.app_base_url = os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/")
        self.auth_token_secret = os.getenv("AUTH_TOKEN_SECRET", "change-me")
        self.auth_token_algorithm = os.getenv("AUTH_TOKEN_ALGORITHM", "HS256")
        self.paystack_secret_key = os.getenv("PAYSTACK_SECRET_KEY") or None
        self.paystack_base_url = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
        self.paystack_currency = os.getenv("PAYSTACK_CURRENCY", "NGN").upper()
        self.paystack_trial_auth_amount = self._get_int("PAYSTACK_TRIAL_AUTH_AMOUNT", default=100)
        self.paystack_countries = self._get_list("PAYSTACK_COUNTRIES", default=["NG", "GH", "ZA", "KE"])
        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY") or None
        self.stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET") or None
        self.billing_period_days = self._get_int("BILLING_PERIOD_DAYS", default=30)
        self.provider_timeout_seconds = self._get_decimal("PROVIDER_TIMEOUT_SECONDS", default=Decimal("15"))
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]

    @property
    def paystack_configured(self) -> bool:
        return bool(self.paystack_secret_key)

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key)

    @staticmethod
    def _get(key: str) -> str:
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"Missing required environment variable: {key}")
        return value

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc

    @staticmethod
    def _get_decimal(key: str, default: Decimal) -> Decimal:
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return Decimal(value)
        except ArithmeticError as exc:
            raise RuntimeError(f"Environment variable {key} must be a number") from exc

    @staticmethod
    def _get_list(key: str, default: List[str]) -> List[str]:
        value = os.getenv(key)
        if not value:
            return list(default)
        return [item.strip().upper() for item in value.split(",") if item.strip()]
