"""Internal errors raised by the payment provider wrappers."""

from typing import Any, Dict, Optional


class PaymentProviderError(RuntimeError):
    """A provider rejected a request or answered with something unusable."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code
        self.payload = payload or {}


class PaymentProviderTimeout(PaymentProviderError):
    """The provider did not answer in time; the outcome is unknown."""
