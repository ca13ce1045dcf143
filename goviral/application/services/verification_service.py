from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional

from ...domain.errors import NotFound, PaymentUnavailable
from ...domain.models import (
    PaymentIntent,
    PaymentStatus,
    Subscription,
    TrialIntent,
    UpgradeIntent,
)
from ...domain.ports.payments import PaystackGateway, StripeGateway
from ...domain.ports.persistence import PersistenceGateway
from ...services.paystack_webhooks import charge_succeeded_from_transaction
from ...services.provider_errors import PaymentProviderError
from ...services.reconciler import SubscriptionReconciler
from ...services.stripe_webhooks import checkout_completed_from_session

logger = logging.getLogger(__name__)

_PAYSTACK_FAILED_STATUSES = frozenset({"failed", "abandoned", "reversed"})


@dataclass(slots=True)
class VerificationResult:
    success: bool
    message: str
    subscription: Optional[Subscription] = None


class VerificationService:
    """Confirms a payment when the user returns from the provider.

    Success goes through the same reconciler transitions the webhooks use, so
    whichever arrives second finds the payment terminal and changes nothing.
    """

    def __init__(
        self,
        persistence: PersistenceGateway,
        reconciler: SubscriptionReconciler,
        paystack: Optional[PaystackGateway] = None,
        stripe_service: Optional[StripeGateway] = None,
    ) -> None:
        self._persistence = persistence
        self._reconciler = reconciler
        self._paystack = paystack
        self._stripe = stripe_service

    async def verify(self, reference: str) -> VerificationResult:
        """
        Verify a Paystack transaction by reference.

        Raises:
            NotFound: No payment was recorded under ``reference``
            PaymentUnavailable: Paystack is not configured or could not be reached;
                the payment stays pending
        """
        payment = self._persistence.get_payment(reference)
        if payment is None:
            raise NotFound("Payment record not found")
        if self._paystack is None:
            raise PaymentUnavailable()

        try:
            data = await self._paystack.verify_transaction(reference)
        except PaymentProviderError as exc:
            logger.error("Verification of %s failed: %s", reference, exc)
            raise PaymentUnavailable("Failed to verify payment") from exc

        status = data.get("status")
        if status in _PAYSTACK_FAILED_STATUSES:
            if self._persistence.transition_payment(reference, PaymentStatus.FAILED, (PaymentStatus.PENDING,)):
                logger.info("Payment %s verified as %s", reference, status)
            return VerificationResult(success=False, message="Payment verification failed")
        if status != "success":
            # ongoing, queued, processing: the charge.success webhook may still arrive
            logger.info("Payment %s is still %s at Paystack; leaving it pending", reference, status)
            return VerificationResult(success=False, message="Payment is still processing")

        charge = charge_succeeded_from_transaction({**data, "reference": reference})
        subscription = self._reconciler.apply(charge) if charge else None
        if subscription is None:
            subscription = self._persistence.get_subscription(payment.tenant_id)
        return VerificationResult(
            success=True,
            message=_success_message(charge.intent if charge else None),
            subscription=subscription,
        )

    async def verify_checkout_session(self, session_id: str) -> VerificationResult:
        """Verify a Stripe Checkout Session after the success redirect."""
        if self._stripe is None:
            raise PaymentUnavailable()
        try:
            session = await self._stripe.retrieve_checkout_session(session_id)
        except PaymentProviderError as exc:
            logger.error("Could not retrieve checkout session %s: %s", session_id, exc)
            raise PaymentUnavailable("Failed to verify payment") from exc

        if session.get("payment_status") != "paid":
            return VerificationResult(success=False, message="Payment not completed")

        completed = checkout_completed_from_session(session)
        if completed is None:
            payment = self._persistence.find_payment_by_session(session_id)
            if payment is None:
                raise NotFound("Payment record not found")
            session = {**session, "client_reference_id": payment.tenant_id}
            completed = checkout_completed_from_session(session)
        if completed is not None and not completed.reference:
            payment = self._persistence.find_payment_by_session(session_id)
            if payment is not None:
                completed = dataclasses.replace(completed, reference=payment.reference)

        subscription = self._reconciler.apply(completed) if completed else None
        if subscription is None and completed is not None:
            subscription = self._persistence.get_subscription(completed.tenant_id)
        return VerificationResult(
            success=True,
            message=_success_message(completed.intent if completed else None),
            subscription=subscription,
        )


def _success_message(intent: Optional[PaymentIntent]) -> str:
    if isinstance(intent, TrialIntent):
        return "Trial activated successfully"
    if isinstance(intent, UpgradeIntent):
        return "Subscription upgraded successfully"
    return "Payment verified successfully"
