"""
Status enums for order models.
"""

from orders.state_machines.states import (
    DeliveryStatus,
    OrderStatus,
    PaymentMethod,
)

__all__ = [
    "DeliveryStatus",
    "OrderStatus",
    "PaymentMethod",
]
