"""
Order models.

Usage:
    from orders.models import Order
"""

from orders.models.order import Order

__all__ = ["Order"]
