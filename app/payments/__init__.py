"""
Payments app for payment provider integration.

This app handles:
- Gateway adapters behind a common PaymentGateway interface
- Seller payout accounts (ConnectedAccount)
- Webhook verification, audit logging and dispatch

Related apps:
    - orders: Escrow state machine that drives the gateway
    - authentication: User model for payout account ownership

Usage:
    from payments.adapters import get_gateway

    gateway = get_gateway("stripe")
"""
