"""
Payment gateway adapters.

All provider calls made by the escrow services go through a
PaymentGateway obtained from ``get_gateway()``, which keeps error
handling, idempotency and observability consistent across providers.

Usage:
    from payments.adapters import IdempotencyKeyGenerator, get_gateway

    gateway = get_gateway("stripe")
    refund = gateway.refund(
        order_id=order.id,
        external_reference=order.external_payment_reference,
        refund_amount_cents=order.amount_cents,
        idempotency_key=IdempotencyKeyGenerator.generate("refund", order.id),
    )
"""

from payments.adapters.base import (
    CaptureConfirmation,
    CheckoutSession,
    IdempotencyKeyGenerator,
    OnboardingLink,
    PaymentGateway,
    PayoutAccountStatus,
    RefundResult,
    TransferResult,
)
from payments.adapters.fake import FakeGateway
from payments.adapters.paypal_adapter import PayPalGateway
from payments.adapters.registry import get_gateway, reset_gateways
from payments.adapters.stripe_adapter import StripeGateway

__all__ = [
    "CaptureConfirmation",
    "CheckoutSession",
    "FakeGateway",
    "IdempotencyKeyGenerator",
    "OnboardingLink",
    "PayPalGateway",
    "PaymentGateway",
    "PayoutAccountStatus",
    "RefundResult",
    "StripeGateway",
    "TransferResult",
    "get_gateway",
    "reset_gateways",
]
