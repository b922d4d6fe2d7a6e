"""Business logic services."""

from coursehub.services.commission import calculate_commission_amount, compute_commission
from coursehub.services.payment_processor import (
    PaymentEvent,
    PaymentOutcome,
    PaymentResult,
    apply_payment_success,
)
from coursehub.services.stripe_gateway import StripeGateway, get_stripe_gateway

__all__ = [
    "calculate_commission_amount",
    "compute_commission",
    "PaymentEvent",
    "PaymentOutcome",
    "PaymentResult",
    "apply_payment_success",
    "StripeGateway",
    "get_stripe_gateway",
]
