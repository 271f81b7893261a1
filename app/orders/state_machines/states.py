"""
Status enums for orders.

These are Django TextChoices for database storage and admin integration.

Order status (django-fsm on Order.status):
    pending → held → paid
    pending → cancelled
    held → refunded

    paid, cancelled and refunded are terminal.

Delivery status (django-fsm on Order.delivery_status, advisory only):
    not_shipped → shipped → delivered → confirmed
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """Lifecycle of the money held for an order."""

    PENDING = "pending", "Pending"
    HELD = "held", "Held"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"

    @classmethod
    def terminal_states(cls) -> frozenset[str]:
        return frozenset({cls.PAID, cls.CANCELLED, cls.REFUNDED})

    @classmethod
    def captured_states(cls) -> frozenset[str]:
        """States in which a payment reference must be recorded."""
        return frozenset({cls.HELD, cls.PAID, cls.REFUNDED})


class DeliveryStatus(models.TextChoices):
    """Shipping progress reported by seller and buyer."""

    NOT_SHIPPED = "not_shipped", "Not Shipped"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CONFIRMED = "confirmed", "Confirmed"


class PaymentMethod(models.TextChoices):
    """Provider the buyer pays through."""

    STRIPE = "stripe", "Stripe"
    PAYPAL = "paypal", "PayPal"
