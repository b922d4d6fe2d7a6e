"""
Stripe payment provider client.

The Stripe SDK is synchronous; every call runs in a worker thread so the
event loop is never blocked. Stripe errors are turned into ExternalProviderError,
bad webhook signatures into SignatureVerificationFailed.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe

from coursehub.config import settings
from coursehub.services.exceptions import (
    ExternalProviderError,
    SignatureVerificationFailed,
    ValidationError,
)
from coursehub.utils.money import from_cents, to_cents

logger = logging.getLogger(__name__)


@dataclass
class PaymentIntentInfo:
    """The parts of a Stripe PaymentIntent the ledger reads."""

    id: str
    status: str
    amount: Decimal
    currency: str
    client_secret: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass
class RefundInfo:
    id: str
    status: str


def _intent_info(intent: Any) -> PaymentIntentInfo:
    metadata = intent["metadata"] or {}
    return PaymentIntentInfo(
        id=intent["id"],
        status=intent["status"],
        amount=from_cents(intent["amount"]),
        currency=intent["currency"],
        client_secret=intent["client_secret"],
        metadata={k: str(metadata[k]) for k in metadata.keys()},
    )


class StripeGateway:
    """Thin async wrapper around the Stripe API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        )
        self.currency = currency or settings.stripe_currency

    def _require_key(self) -> None:
        if not self.api_key:
            raise ExternalProviderError("Stripe is not configured")

    async def _call(self, action: str, func, *args, **kwargs):
        self._require_key()
        try:
            return await asyncio.to_thread(func, *args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as e:
            logger.error(f"Stripe {action} failed: {e}")
            raise ExternalProviderError(
                f"Payment provider error: {e.user_message or str(e)}",
                details={"action": action},
            )

    async def create_payment_intent(
        self,
        amount: Decimal,
        metadata: Dict[str, str],
    ) -> PaymentIntentInfo:
        """Create a PaymentIntent for an amount in major units."""
        intent = await self._call(
            "create_payment_intent",
            stripe.PaymentIntent.create,
            amount=to_cents(amount),
            currency=self.currency,
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )
        return _intent_info(intent)

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentInfo:
        intent = await self._call(
            "retrieve_payment_intent",
            stripe.PaymentIntent.retrieve,
            payment_intent_id,
        )
        return _intent_info(intent)

    async def create_refund(
        self,
        payment_intent_id: str,
        reason: str,
    ) -> RefundInfo:
        """Refund the full amount of a PaymentIntent."""
        refund = await self._call(
            "create_refund",
            stripe.Refund.create,
            payment_intent=payment_intent_id,
            reason="requested_by_customer",
            metadata={"reason": reason[:500]},
        )
        return RefundInfo(id=refund["id"], status=refund["status"])

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook payload and return the event as a plain dict.

        Raises:
            SignatureVerificationFailed: Missing secret, missing header, bad signature
                or a body that cannot have been signed (not UTF-8)
            ValidationError: Correctly signed body that is not a JSON event
        """
        if not self.webhook_secret:
            raise SignatureVerificationFailed("Webhook secret is not configured")
        if not signature:
            raise SignatureVerificationFailed("Missing Stripe-Signature header")

        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("Webhook payload is not valid UTF-8")
                raise SignatureVerificationFailed("Invalid webhook payload")

        try:
            stripe.WebhookSignature.verify_header(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise SignatureVerificationFailed("Invalid webhook signature")

        try:
            event = json.loads(payload)
        except ValueError:
            raise ValidationError("Webhook payload is not valid JSON")
        if not isinstance(event, dict):
            raise ValidationError("Webhook payload is not an event object")
        return event


_gateway: Optional[StripeGateway] = None


def get_stripe_gateway() -> StripeGateway:
    """FastAPI dependency returning the shared gateway."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway
