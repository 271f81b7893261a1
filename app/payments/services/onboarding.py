"""
Seller payout account onboarding.

Sellers need a payout destination before escrow can be released to them:
a Connect account for card orders (hosted onboarding on the provider's
site) and a PayPal email for PayPal orders.

Flow:
    1. create_account: provider account created, status PENDING
    2. create_onboarding_link: seller fills the hosted form, IN_PROGRESS
    3. account.updated webhook (or refresh_status): COMPLETE once the
       provider has no requirements due, RESTRICTED if it disabled the
       account

Usage:
    from payments.services import PayoutAccountService

    service = PayoutAccountService()
    account, created = service.create_account(seller)
    link = service.create_onboarding_link(seller)
    redirect(link.url)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import NotFoundError
from core.services import BaseService
from payments.adapters import (
    IdempotencyKeyGenerator,
    OnboardingLink,
    PaymentGateway,
    PayoutAccountStatus,
    get_gateway,
)
from payments.models import ConnectedAccount
from payments.state_machines import OnboardingStatus

if TYPE_CHECKING:
    from authentication.models import User


logger = logging.getLogger(__name__)


def onboarding_status_for(status: PayoutAccountStatus, current: str) -> str:
    """
    Onboarding status implied by the provider's view of an account.

    A disabled account is RESTRICTED; one with its details submitted and
    nothing due is COMPLETE. Otherwise onboarding is IN_PROGRESS, except
    that an account whose seller never opened the form stays PENDING.
    """
    if status.disabled_reason:
        return OnboardingStatus.RESTRICTED
    if status.details_submitted and not status.requirements_due:
        return OnboardingStatus.COMPLETE
    if current == OnboardingStatus.PENDING and not status.details_submitted:
        return OnboardingStatus.PENDING
    return OnboardingStatus.IN_PROGRESS


class PayoutAccountService(BaseService):
    """
    Creates and tracks seller payout accounts.

    Args:
        gateway_resolver: Callable mapping a provider name to its
            PaymentGateway (defaults to payments.adapters.get_gateway)
    """

    def __init__(
        self,
        gateway_resolver: Callable[[str], PaymentGateway] = get_gateway,
    ):
        self._gateway_resolver = gateway_resolver

    def _gateway(self) -> PaymentGateway:
        return self._gateway_resolver(settings.PAYOUT_ACCOUNT_PROVIDER)

    def get_account(self, user: User) -> ConnectedAccount | None:
        return ConnectedAccount.objects.filter(user=user).first()

    def _require_provider_account(self, user: User) -> ConnectedAccount:
        account = self.get_account(user)
        if account is None or not account.stripe_account_id:
            raise NotFoundError(
                "Create a payout account first",
                error_code="PAYOUT_ACCOUNT_NOT_FOUND",
            )
        return account

    # =========================================================================
    # Operations
    # =========================================================================

    def create_account(self, user: User) -> tuple[ConnectedAccount, bool]:
        """
        Create the seller's provider account, or return the existing one.

        Returns:
            (account, created)
        """
        account = self.get_account(user)
        if account is not None and account.stripe_account_id:
            return account, False

        account_id = self._gateway().create_payout_account(
            email=user.email,
            idempotency_key=IdempotencyKeyGenerator.generate("payout_account", user.pk),
        )

        with self.atomic():
            account, _ = ConnectedAccount.objects.update_or_create(
                user=user,
                defaults={"stripe_account_id": account_id},
            )

        logger.info(
            "Payout account created",
            extra={"user_id": user.pk, "account_id": account_id},
        )
        return account, True

    def create_onboarding_link(self, user: User) -> OnboardingLink:
        """
        Hosted onboarding URL for the seller's account.

        Raises:
            NotFoundError: The seller has no provider account yet
        """
        account = self._require_provider_account(user)
        link = self._gateway().create_onboarding_link(
            account_id=account.stripe_account_id,
            refresh_url=settings.ONBOARDING_REFRESH_URL,
            return_url=settings.ONBOARDING_RETURN_URL,
        )

        if account.onboarding_status == OnboardingStatus.PENDING:
            account.onboarding_status = OnboardingStatus.IN_PROGRESS
            account.save(update_fields=["onboarding_status", "updated_at"])
        return link

    def create_dashboard_link(self, user: User) -> str:
        """Login link to the provider's seller dashboard."""
        account = self._require_provider_account(user)
        return self._gateway().create_dashboard_link(account.stripe_account_id)

    def refresh_status(self, user: User) -> tuple[ConnectedAccount | None, PayoutAccountStatus | None]:
        """
        Pull the provider's view of the seller's account and store it.

        Returns (None, None) for sellers without an account, and the stored
        account with no provider status for PayPal-only sellers.
        """
        account = self.get_account(user)
        if account is None or not account.stripe_account_id:
            return account, None

        status = self._gateway().retrieve_payout_account(account.stripe_account_id)
        return self.apply_status(status) or account, status

    def set_paypal_email(self, user: User, email: str) -> ConnectedAccount:
        """Set where payouts for PayPal orders go."""
        with self.atomic():
            account, _ = ConnectedAccount.objects.update_or_create(
                user=user,
                defaults={"paypal_email": email},
            )

        logger.info("PayPal payout email updated", extra={"user_id": user.pk})
        return account

    def apply_status(self, status: PayoutAccountStatus) -> ConnectedAccount | None:
        """
        Store payout readiness reported by the provider.

        Returns None when no seller owns the account.
        """
        with self.atomic():
            account = (
                ConnectedAccount.objects.select_for_update()
                .filter(stripe_account_id=status.account_id)
                .first()
            )
            if account is None:
                logger.warning(
                    "Status update for unknown payout account",
                    extra={"account_id": status.account_id},
                )
                return None

            previous = account.onboarding_status
            account.onboarding_status = onboarding_status_for(status, previous)
            account.payouts_enabled = status.payouts_enabled
            account.save(update_fields=["onboarding_status", "payouts_enabled", "updated_at"])

        logger.info(
            f"Payout account {previous} -> {account.onboarding_status}",
            extra={
                "account_id": status.account_id,
                "payouts_enabled": status.payouts_enabled,
                "requirements_due": list(status.requirements_due),
            },
        )
        return account
