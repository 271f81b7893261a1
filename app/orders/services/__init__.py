"""
Order services.

Usage:
    from orders.services import OrderAdminService, OrderStateMachine
"""

from orders.services.admin_actions import (
    HeldOrder,
    HeldOrdersReport,
    HeldOrdersSummary,
    OrderAdminService,
)
from orders.services.checkout import CheckoutOutcome, OrderCheckoutService
from orders.services.state_machine import (
    APPLIED,
    DECLINED,
    DUPLICATE,
    REFUNDED,
    OrderStateMachine,
    PaymentConfirmation,
    RefundOutcome,
    ReleaseOutcome,
)

__all__ = [
    "APPLIED",
    "CheckoutOutcome",
    "DECLINED",
    "DUPLICATE",
    "HeldOrder",
    "HeldOrdersReport",
    "HeldOrdersSummary",
    "OrderAdminService",
    "OrderCheckoutService",
    "OrderStateMachine",
    "PaymentConfirmation",
    "REFUNDED",
    "RefundOutcome",
    "ReleaseOutcome",
]
