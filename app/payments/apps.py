"""
Payments app configuration.

This app provides the payment provider integration used by escrow:
- Gateway adapters (Stripe, in-memory fake)
- Seller payout accounts
- Webhook intake and audit log
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
