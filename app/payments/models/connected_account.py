"""
ConnectedAccount model: a seller's payout destination.

Releasing escrowed funds transfers the seller's share to this account:
the Stripe Connect account for card orders, the PayPal email for PayPal
orders. Sellers without a ready destination cannot be paid out; the
release is refused before the gateway is called.

Usage:
    from payments.models import ConnectedAccount

    account = ConnectedAccount.objects.create(
        user=seller,
        stripe_account_id="acct_1234567890",
        onboarding_status=OnboardingStatus.COMPLETE,
        payouts_enabled=True,
    )

    destination = account.payout_destination(order.payment_method)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import OnboardingStatus

# Payment method whose payouts go to paypal_email
PAYPAL = "paypal"


class ConnectedAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    Provider account that receives seller payouts.

    Fields:
        user: OneToOne link to the seller
        stripe_account_id: Stripe Connect account id (acct_xxx), once created
        paypal_email: PayPal account that receives payouts for PayPal orders
        onboarding_status: Provider onboarding progress
        payouts_enabled: Whether the provider allows transfers to the account
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="connected_account",
        help_text="Seller who owns this payout account",
    )

    stripe_account_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Provider account ID (acct_xxx)",
    )

    paypal_email = models.EmailField(
        blank=True,
        default="",
        help_text="PayPal account that receives payouts for PayPal orders",
    )

    onboarding_status = models.CharField(
        max_length=20,
        choices=OnboardingStatus.choices,
        default=OnboardingStatus.PENDING,
        help_text="Provider onboarding progress",
    )

    payouts_enabled = models.BooleanField(
        default=False,
        help_text="Whether the provider accepts transfers to this account",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Connected Account"
        verbose_name_plural = "Connected Accounts"

    def __str__(self) -> str:
        return f"ConnectedAccount({self.stripe_account_id}, {self.onboarding_status})"

    @property
    def is_ready_for_payouts(self) -> bool:
        """Onboarding finished and the provider has enabled payouts."""
        return (
            self.onboarding_status == OnboardingStatus.COMPLETE
            and self.payouts_enabled
        )

    def payout_destination(self, payment_method: str) -> str:
        """
        Where the seller's share of an order paid with ``payment_method``
        goes, or an empty string when that destination is not ready.
        """
        if payment_method == PAYPAL:
            return self.paypal_email
        if self.stripe_account_id and self.is_ready_for_payouts:
            return self.stripe_account_id
        return ""
