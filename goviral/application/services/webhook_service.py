from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ...domain.errors import AuthenticationFailed
from ...domain.models import ProviderEvent
from ...domain.ports.persistence import PersistenceGateway
from ...services.paystack_webhooks import PaystackWebhookAdapter
from ...services.reconciler import SubscriptionReconciler
from ...services.stripe_webhooks import StripeWebhookAdapter

logger = logging.getLogger(__name__)


class WebhookService:
    """Verifies provider webhooks and feeds their transitions to the reconciler.

    Events are recorded in the processed-event ledger only after every
    transition applied, so a failure mid-way lets the provider's retry run
    the whole event again.
    """

    def __init__(
        self,
        persistence: PersistenceGateway,
        reconciler: SubscriptionReconciler,
        paystack_adapter: Optional[PaystackWebhookAdapter] = None,
        stripe_adapter: Optional[StripeWebhookAdapter] = None,
    ) -> None:
        self._persistence = persistence
        self._reconciler = reconciler
        self._paystack = paystack_adapter
        self._stripe = stripe_adapter

    def handle_paystack(self, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if self._paystack is None:
            raise AuthenticationFailed("Paystack is not configured")
        return self._process(self._paystack.parse(body, signature))

    def handle_stripe(self, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if self._stripe is None:
            raise AuthenticationFailed("Stripe is not configured")
        return self._process(self._stripe.parse(body, signature))

    def _process(self, event: ProviderEvent) -> Dict[str, Any]:
        logger.info("%s webhook event: %s", event.provider, event.event_type)
        if self._persistence.has_processed_event(event.provider, event.event_key):
            logger.info("Duplicate %s event %s ignored", event.provider, event.event_key)
            return {"received": True, "duplicate": True}

        for transition in event.transitions:
            self._reconciler.apply(transition)

        self._persistence.record_processed_event(event.provider, event.event_key, event.event_type)
        return {"received": True}
