"""
Payment gateway interface shared by every provider implementation.

The escrow state machine is written against PaymentGateway only. Three
implementations ship with the project:

- StripeGateway (payments.adapters.stripe_adapter): card checkout with
  Connect payout accounts
- PayPalGateway (payments.adapters.paypal_adapter): PayPal orders and
  payouts over the REST API
- FakeGateway (payments.adapters.fake): in-memory test double

Which one serves a payment method is decided by settings.PAYMENT_GATEWAYS
(see payments.adapters.registry).

Idempotency:
    Every money-moving call takes an idempotency key built by
    IdempotencyKeyGenerator from the operation and the order id. The key
    is stable across retries and process restarts, so repeating a call
    after a timeout or crash returns the provider's prior result instead
    of moving money twice.

Usage:
    from payments.adapters import IdempotencyKeyGenerator, get_gateway

    gateway = get_gateway(order.payment_method)
    transfer = gateway.transfer_to_seller(
        order_id=order.id,
        seller_payout_account="acct_123",
        seller_amount_cents=6900,
        idempotency_key=IdempotencyKeyGenerator.generate("release", order.id),
    )
"""

from __future__ import annotations

import hashlib
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from django.conf import settings

from payments.exceptions import GatewayRejectedError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from listings.models import Listing
    from orders.models import Order


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class CaptureConfirmation:
    """
    Provider-side confirmation that a payment was captured.

    Attributes:
        external_reference: Provider payment reference (pi_xxx)
        amount_cents: Amount the provider reports as captured
        status: Provider status string (e.g. 'succeeded')
    """

    external_reference: str
    amount_cents: int
    status: str


@dataclass(frozen=True)
class TransferResult:
    """
    Result of a transfer to a seller's payout account.

    Attributes:
        transfer_id: Provider transfer id (tr_xxx)
        amount_cents: Amount transferred
        created_at: When the provider created the transfer
        destination_account: Payout account that received the funds
        currency: ISO 4217 currency code
    """

    transfer_id: str
    amount_cents: int
    created_at: datetime
    destination_account: str
    currency: str = "usd"
    raw_response: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class RefundResult:
    """
    Result of a refund back to the buyer.

    Attributes:
        refund_id: Provider refund id (re_xxx)
        amount_cents: Amount refunded
        status: Provider refund status (succeeded, pending, failed)
        external_reference: Payment the refund was issued against
    """

    refund_id: str
    amount_cents: int
    status: str
    external_reference: str
    raw_response: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class CheckoutSession:
    """Hosted checkout session the buyer is redirected to."""

    session_id: str
    url: str


@dataclass(frozen=True)
class PayoutAccountStatus:
    """
    Provider view of a seller payout account.

    Attributes:
        account_id: Provider account id (acct_xxx)
        payouts_enabled: Whether the provider will accept transfers to it
        details_submitted: Whether the seller finished the onboarding form
        requirements_due: Requirement keys currently or past due
        disabled_reason: Provider reason the account is restricted, if any
    """

    account_id: str
    payouts_enabled: bool
    details_submitted: bool = False
    requirements_due: tuple[str, ...] = ()
    disabled_reason: str = ""


@dataclass(frozen=True)
class OnboardingLink:
    """Single-use provider URL for hosted seller onboarding."""

    url: str
    expires_at: datetime | None = None


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for provider API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The key depends only on its inputs and SECRET_KEY, never on time or
    randomness, so the same action on the same order always produces the
    same key.

    Example:
        key = IdempotencyKeyGenerator.generate("release", order.id)
        # "release:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        """
        Generate a deterministic idempotency key.

        Args:
            operation: The action (release, refund, checkout)
            entity_id: The order id
            attempt: Bump only to deliberately issue a *new* provider call
        """
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Gateway Interface
# =============================================================================


class PaymentGateway(ABC):
    """
    Capability interface for a payment provider.

    Implementations must translate every provider failure into a
    payments.exceptions.GatewayError subclass and must honour idempotency
    keys: a repeated call with the same key returns the original result.
    """

    #: Short provider name used in logs and error details
    name: str = ""

    #: HTTP header carrying the webhook signature
    signature_header: str = ""

    @abstractmethod
    def confirm_capture(
        self,
        *,
        order_id: uuid.UUID,
        external_reference: str,
        captured_amount_cents: int,
    ) -> CaptureConfirmation:
        """Confirm with the provider that ``external_reference`` was captured."""

    @abstractmethod
    def transfer_to_seller(
        self,
        *,
        order_id: uuid.UUID,
        seller_payout_account: str,
        seller_amount_cents: int,
        idempotency_key: str,
        currency: str = "usd",
    ) -> TransferResult:
        """Move the seller's share out of escrow."""

    @abstractmethod
    def refund(
        self,
        *,
        order_id: uuid.UUID,
        external_reference: str,
        refund_amount_cents: int,
        idempotency_key: str,
        reason: str | None = None,
    ) -> RefundResult:
        """Return captured funds to the buyer."""

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify a webhook signature and return the parsed event.

        Raises:
            UnauthenticatedWebhookError: Signature missing or invalid
            ValidationError: Payload is not valid JSON
        """

    @abstractmethod
    def create_checkout_session(
        self,
        *,
        order: Order,
        listing: Listing,
        success_url: str,
        cancel_url: str,
        idempotency_key: str,
        expires_at: datetime | None = None,
    ) -> CheckoutSession:
        """
        Open a hosted checkout for a PENDING order.

        ``expires_at`` bounds how long the buyer can still pay; providers
        that cannot honour it exactly clamp it to their allowed range.
        """

    @abstractmethod
    def expire_checkout_session(self, *, order_id: uuid.UUID, session_id: str) -> None:
        """
        Stop a checkout session from accepting payment.

        Expiring an already expired session is a no-op.

        Raises:
            GatewayRejectedError: The buyer already paid (provider_code
                ``checkout_session_complete``)
        """

    def read_webhook_signature(self, headers: Mapping[str, str]) -> str:
        """Extract the signature a webhook request carries."""
        return headers.get(self.signature_header, "")

    # =========================================================================
    # Optional Capabilities
    # =========================================================================
    # Providers override what they support; the rest refuse with
    # provider_code "unsupported_operation".

    def _unsupported(self, operation: str) -> GatewayRejectedError:
        return GatewayRejectedError(
            f"Payment provider does not support {operation}",
            provider=self.name,
            provider_code="unsupported_operation",
        )

    def capture_approved_checkout(
        self,
        *,
        order_id: uuid.UUID,
        session_id: str,
        idempotency_key: str,
    ) -> CaptureConfirmation:
        """Capture a checkout the buyer approved but the provider did not settle."""
        raise self._unsupported("capturing approved checkouts")

    def create_payout_account(self, *, email: str, idempotency_key: str) -> str:
        """Create a seller payout account and return its id."""
        raise self._unsupported("payout accounts")

    def retrieve_payout_account(self, account_id: str) -> PayoutAccountStatus:
        raise self._unsupported("payout accounts")

    def create_onboarding_link(
        self,
        *,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> OnboardingLink:
        """Hosted onboarding URL for an account that still has requirements due."""
        raise self._unsupported("payout accounts")

    def create_dashboard_link(self, account_id: str) -> str:
        raise self._unsupported("payout accounts")
