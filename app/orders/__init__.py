"""
Orders app: marketplace escrow lifecycle.

A buyer's payment is held by the platform until an operator releases it
to the seller (minus the platform fee) or refunds it to the buyer.

This app handles:
- Order model and its django-fsm state machines
- Platform fee split
- Escrow operations (confirm payment, release, refund, cancel, delivery)
- Capability-checked admin actions and dashboard queries
- Checkout initiation and abandoned checkout cleanup

Related apps:
    - listings: Items being sold
    - payments: Gateway adapters and webhook intake

Usage:
    from orders.services import OrderAdminService

    outcome = OrderAdminService().release_funds(order_id, actor=request.user)
"""
