"""
In-memory payment gateway.

FakeGateway implements the full PaymentGateway interface without any
network access. It is the default gateway in tests and local
development, and it is strict about the same things a real provider is:

- A repeated idempotency key returns the original result instead of
  moving money again
- Webhooks must carry an HMAC-SHA256 signature made with
  settings.PAYMENT_WEBHOOK_SECRET
- Refunds cannot exceed what was captured for a payment reference
- A checkout session the buyer already paid cannot be expired

Tests can prime failures with ``fail_next()`` and inspect every call
through ``transfers``, ``refunds`` and ``captures``.

Usage:
    gateway = FakeGateway()
    gateway.fail_next(GatewayUnavailableError("down"))

    body = json.dumps(event).encode()
    client.post(url, body, content_type="application/json",
                HTTP_X_WEBHOOK_SIGNATURE=gateway.sign(body))
"""

from __future__ import annotations

import hashlib
import hmac
import itertools
import json
import threading
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone

from core.exceptions import ValidationError
from payments.adapters.base import (
    CaptureConfirmation,
    CheckoutSession,
    OnboardingLink,
    PaymentGateway,
    PayoutAccountStatus,
    RefundResult,
    TransferResult,
)
from payments.exceptions import GatewayRejectedError, UnauthenticatedWebhookError

if TYPE_CHECKING:
    from listings.models import Listing
    from orders.models import Order


class FakeGateway(PaymentGateway):
    """Deterministic, thread-safe stand-in for a real payment provider."""

    name = "fake"
    signature_header = "X-Webhook-Signature"

    def __init__(self, secret: str | None = None):
        self._secret = secret
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._by_key: dict[str, Any] = {}
        self._pending_failures: list[Exception] = []
        self._refunded: dict[str, int] = {}

        self.transfers: list[TransferResult] = []
        self.refunds: list[RefundResult] = []
        self.captures: list[CaptureConfirmation] = []
        self.sessions: list[CheckoutSession] = []
        self.session_expiry: dict[str, datetime | None] = {}
        self.expired_sessions: set[str] = set()
        # Sessions the buyer already paid; expiring them is refused
        self.completed_sessions: set[str] = set()
        self.payout_accounts: dict[str, PayoutAccountStatus] = {}
        self._session_amounts: dict[str, int] = {}
        # Amount the provider reports per payment reference; unknown
        # references report whatever the caller says was captured
        self.captured_amounts: dict[str, int] = {}
        self.uncaptured_references: set[str] = set()
        self.ineligible_accounts: set[str] = set()

    @property
    def secret(self) -> str:
        return self._secret if self._secret is not None else settings.PAYMENT_WEBHOOK_SECRET

    # =========================================================================
    # Test Controls
    # =========================================================================

    def fail_next(self, *errors: Exception) -> None:
        """Make the next money-moving call(s) raise the given errors, in order."""
        with self._lock:
            self._pending_failures.extend(errors)

    def sign(self, payload: bytes) -> str:
        """Signature header value a legitimate sender would attach."""
        return hmac.new(self.secret.encode(), payload, hashlib.sha256).hexdigest()

    def reset(self) -> None:
        with self._lock:
            self._by_key.clear()
            self._pending_failures.clear()
            self._refunded.clear()
            self.transfers.clear()
            self.refunds.clear()
            self.captures.clear()
            self.sessions.clear()
            self.session_expiry.clear()
            self.expired_sessions.clear()
            self.completed_sessions.clear()
            self.payout_accounts.clear()
            self._session_amounts.clear()
            self.captured_amounts.clear()
            self.uncaptured_references.clear()
            self.ineligible_accounts.clear()

    def _raise_pending_failure(self) -> None:
        if self._pending_failures:
            raise self._pending_failures.pop(0)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_fake_{next(self._ids)}"

    # =========================================================================
    # Gateway Operations
    # =========================================================================

    def confirm_capture(
        self,
        *,
        order_id: uuid.UUID,
        external_reference: str,
        captured_amount_cents: int,
    ) -> CaptureConfirmation:
        with self._lock:
            self._raise_pending_failure()
            if external_reference in self.uncaptured_references:
                raise GatewayRejectedError(
                    "Payment has not been captured",
                    provider=self.name,
                    provider_code="payment_not_captured",
                )
            confirmation = CaptureConfirmation(
                external_reference=external_reference,
                amount_cents=self.captured_amounts.get(
                    external_reference, captured_amount_cents
                ),
                status="succeeded",
            )
            self.captures.append(confirmation)
            return confirmation

    def transfer_to_seller(
        self,
        *,
        order_id: uuid.UUID,
        seller_payout_account: str,
        seller_amount_cents: int,
        idempotency_key: str,
        currency: str = "usd",
    ) -> TransferResult:
        with self._lock:
            if idempotency_key in self._by_key:
                return self._by_key[idempotency_key]

            self._raise_pending_failure()
            if seller_payout_account in self.ineligible_accounts:
                raise GatewayRejectedError(
                    "Payment provider rejected the operation",
                    provider=self.name,
                    provider_code="account_invalid",
                    provider_message=f"{seller_payout_account} cannot receive transfers",
                )

            transfer = TransferResult(
                transfer_id=self._next_id("tr"),
                amount_cents=seller_amount_cents,
                created_at=timezone.now(),
                destination_account=seller_payout_account,
                currency=currency,
            )
            self._by_key[idempotency_key] = transfer
            self.transfers.append(transfer)
            return transfer

    def refund(
        self,
        *,
        order_id: uuid.UUID,
        external_reference: str,
        refund_amount_cents: int,
        idempotency_key: str,
        reason: str | None = None,
    ) -> RefundResult:
        with self._lock:
            if idempotency_key in self._by_key:
                return self._by_key[idempotency_key]

            self._raise_pending_failure()
            captured = self.captured_amounts.get(external_reference)
            already_refunded = self._refunded.get(external_reference, 0)
            if captured is not None and already_refunded + refund_amount_cents > captured:
                raise GatewayRejectedError(
                    "Payment provider rejected the operation",
                    provider=self.name,
                    provider_code="amount_too_large",
                    provider_message="Refund exceeds captured amount",
                )

            refund = RefundResult(
                refund_id=self._next_id("re"),
                amount_cents=refund_amount_cents,
                status="succeeded",
                external_reference=external_reference,
            )
            self._refunded[external_reference] = already_refunded + refund_amount_cents
            self._by_key[idempotency_key] = refund
            self.refunds.append(refund)
            return refund

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
        with self._lock:
            if idempotency_key in self._by_key:
                return self._by_key[idempotency_key]

            self._raise_pending_failure()
            session_id = self._next_id("cs")
            session = CheckoutSession(
                session_id=session_id,
                url=f"https://checkout.example.test/pay/{session_id}",
            )
            self._by_key[idempotency_key] = session
            self.sessions.append(session)
            self.session_expiry[session_id] = expires_at
            self._session_amounts[session_id] = order.amount_cents
            return session

    def expire_checkout_session(self, *, order_id: uuid.UUID, session_id: str) -> None:
        with self._lock:
            if session_id in self.completed_sessions:
                raise GatewayRejectedError(
                    "Checkout session was already paid",
                    provider=self.name,
                    provider_code="checkout_session_complete",
                )
            self.expired_sessions.add(session_id)

    def capture_approved_checkout(
        self,
        *,
        order_id: uuid.UUID,
        session_id: str,
        idempotency_key: str,
    ) -> CaptureConfirmation:
        with self._lock:
            if idempotency_key in self._by_key:
                return self._by_key[idempotency_key]

            self._raise_pending_failure()
            if session_id in self.expired_sessions or session_id not in self._session_amounts:
                raise GatewayRejectedError(
                    "Checkout cannot be captured",
                    provider=self.name,
                    provider_code="checkout_not_capturable",
                )

            reference = self._next_id("cap")
            amount = self._session_amounts[session_id]
            self.captured_amounts.setdefault(reference, amount)
            self.completed_sessions.add(session_id)
            confirmation = CaptureConfirmation(
                external_reference=reference,
                amount_cents=amount,
                status="COMPLETED",
            )
            self._by_key[idempotency_key] = confirmation
            return confirmation

    # =========================================================================
    # Payout Accounts
    # =========================================================================

    def create_payout_account(self, *, email: str, idempotency_key: str) -> str:
        with self._lock:
            if idempotency_key in self._by_key:
                return self._by_key[idempotency_key]

            self._raise_pending_failure()
            account_id = self._next_id("acct")
            self.payout_accounts[account_id] = PayoutAccountStatus(
                account_id=account_id,
                payouts_enabled=False,
                requirements_due=("external_account",),
            )
            self._by_key[idempotency_key] = account_id
            return account_id

    def retrieve_payout_account(self, account_id: str) -> PayoutAccountStatus:
        with self._lock:
            self._raise_pending_failure()
            try:
                return self.payout_accounts[account_id]
            except KeyError:
                raise GatewayRejectedError(
                    "Payment provider rejected the operation",
                    provider=self.name,
                    provider_code="account_invalid",
                    provider_message=f"No such account: {account_id}",
                ) from None

    def create_onboarding_link(
        self,
        *,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> OnboardingLink:
        self.retrieve_payout_account(account_id)
        return OnboardingLink(
            url=f"https://connect.example.test/setup/{account_id}",
            expires_at=timezone.now() + timedelta(minutes=5),
        )

    def create_dashboard_link(self, account_id: str) -> str:
        self.retrieve_payout_account(account_id)
        return f"https://connect.example.test/express/{account_id}"

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        if not self.secret:
            raise UnauthenticatedWebhookError("Webhook signature could not be verified")
        if not signature or not hmac.compare_digest(self.sign(payload), signature):
            raise UnauthenticatedWebhookError(
                "Invalid webhook signature",
                details={"provider": self.name},
            )

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise ValidationError("Webhook payload is not valid JSON") from e

        if not isinstance(event, dict):
            raise ValidationError("Webhook payload must be a JSON object")
        return event
