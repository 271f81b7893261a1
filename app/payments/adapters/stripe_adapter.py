"""
Stripe implementation of the payment gateway interface.

All Stripe calls go through StripeGateway so that error handling,
idempotency and observability stay consistent.

Features:
- Automatic error translation to gateway exceptions
- Structured logging with timing metrics
- Idempotency keys forwarded on every money-moving call
- Safe to share between request threads and Celery workers

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_MAX_RETRIES: Network retries performed by the SDK (default: 2)
- STRIPE_WEBHOOK_TOLERANCE_SECONDS: Allowed webhook clock skew (default: 300)

Usage:
    from payments.adapters import StripeGateway

    gateway = StripeGateway()
    transfer = gateway.transfer_to_seller(
        order_id=order.id,
        seller_payout_account="acct_123",
        seller_amount_cents=6900,
        idempotency_key="release:...:1:a1b2c3d4",
    )
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from typing import TYPE_CHECKING, Any

import stripe
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
from payments.exceptions import (
    GatewayAuthFailureError,
    GatewayError,
    GatewayRejectedError,
    GatewayUnavailableError,
    UnauthenticatedWebhookError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from listings.models import Listing
    from orders.models import Order


# Refund reasons Stripe accepts natively; anything else travels in metadata
STRIPE_REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})

# Checkout sessions must expire between 30 minutes and 24 hours after creation
STRIPE_SESSION_MIN_LIFETIME = timedelta(minutes=31)
STRIPE_SESSION_MAX_LIFETIME = timedelta(hours=23, minutes=59)


def payout_status_from_account(account: Mapping[str, Any]) -> PayoutAccountStatus:
    """Read payout readiness from a Stripe Account object or webhook payload."""
    requirements = account.get("requirements") or {}
    due = [
        *(requirements.get("currently_due") or []),
        *(requirements.get("past_due") or []),
    ]
    return PayoutAccountStatus(
        account_id=account.get("id") or "",
        payouts_enabled=bool(account.get("payouts_enabled")),
        details_submitted=bool(account.get("details_submitted")),
        requirements_due=tuple(dict.fromkeys(due)),
        disabled_reason=requirements.get("disabled_reason") or "",
    )


def clamp_session_expiry(expires_at: datetime) -> datetime:
    now = timezone.now()
    return min(
        max(expires_at, now + STRIPE_SESSION_MIN_LIFETIME),
        now + STRIPE_SESSION_MAX_LIFETIME,
    )


class StripeGateway(PaymentGateway):
    """
    Gateway backed by the Stripe API (PaymentIntents, Connect transfers,
    Refunds, hosted Checkout and Express account onboarding).

    Funds are captured into the platform balance at checkout and moved to
    the seller's connected account with a separate Transfer on release.
    """

    name = "stripe"
    signature_header = "Stripe-Signature"

    # =========================================================================
    # Configuration
    # =========================================================================

    def _configure_stripe(self) -> None:
        """Configure the Stripe SDK with API key and retry policy."""
        if not settings.STRIPE_SECRET_KEY:
            raise GatewayAuthFailureError(
                "Payment gateway is not configured",
                provider=self.name,
                provider_code="missing_api_key",
            )
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 2)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Core Operations
    # =========================================================================

    def confirm_capture(
        self,
        *,
        order_id: uuid.UUID,
        external_reference: str,
        captured_amount_cents: int,
    ) -> CaptureConfirmation:
        """
        Retrieve the PaymentIntent and check that it actually succeeded.

        Raises:
            GatewayRejectedError: PaymentIntent exists but is not succeeded
            GatewayUnavailableError: Stripe could not be reached
        """
        self._configure_stripe()
        logger = self.get_logger()

        log_context = {
            "operation": "confirm_capture",
            "order_id": str(order_id),
            "payment_intent_id": external_reference,
            "captured_amount_cents": captured_amount_cents,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.retrieve(external_reference)
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            raise self._handle_stripe_error(e, log_context, duration_ms) from e

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "status": intent.status,
                "amount_received": intent.amount_received,
                "duration_ms": duration_ms,
            },
        )

        if intent.status != "succeeded":
            raise GatewayRejectedError(
                "Payment has not been captured",
                provider=self.name,
                provider_code="payment_not_captured",
                provider_message=f"PaymentIntent status is {intent.status}",
            )

        return CaptureConfirmation(
            external_reference=intent.id,
            amount_cents=intent.amount_received,
            status=intent.status,
        )

    def transfer_to_seller(
        self,
        *,
        order_id: uuid.UUID,
        seller_payout_account: str,
        seller_amount_cents: int,
        idempotency_key: str,
        currency: str = "usd",
    ) -> TransferResult:
        """
        Create a Connect transfer to the seller's account.

        Raises:
            GatewayRejectedError: Destination account cannot receive funds
            GatewayUnavailableError: Stripe could not be reached
            GatewayAuthFailureError: API key invalid or lacking permission
        """
        self._configure_stripe()
        logger = self.get_logger()

        log_context = {
            "operation": "transfer_to_seller",
            "order_id": str(order_id),
            "amount_cents": seller_amount_cents,
            "destination_account": seller_payout_account,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer = stripe.Transfer.create(
                amount=seller_amount_cents,
                currency=currency,
                destination=seller_payout_account,
                transfer_group=f"order_{order_id}",
                metadata={"order_id": str(order_id)},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            raise self._handle_stripe_error(e, log_context, duration_ms) from e

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "transfer_id": transfer.id,
                "duration_ms": duration_ms,
            },
        )

        return TransferResult(
            transfer_id=transfer.id,
            amount_cents=transfer.amount,
            created_at=datetime.fromtimestamp(transfer.created, tz=dt_timezone.utc),
            destination_account=transfer.destination,
            currency=transfer.currency,
        )

    def refund(
        self,
        *,
        order_id: uuid.UUID,
        external_reference: str,
        refund_amount_cents: int,
        idempotency_key: str,
        reason: str | None = None,
    ) -> RefundResult:
        """
        Refund a captured PaymentIntent, fully or partially.

        Raises:
            GatewayRejectedError: Refund not possible (already refunded, too large)
            GatewayUnavailableError: Stripe could not be reached
        """
        self._configure_stripe()
        logger = self.get_logger()

        log_context = {
            "operation": "refund",
            "order_id": str(order_id),
            "payment_intent_id": external_reference,
            "amount_cents": refund_amount_cents,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        refund_params: dict[str, Any] = {
            "payment_intent": external_reference,
            "amount": refund_amount_cents,
            "metadata": {"order_id": str(order_id)},
        }
        if reason in STRIPE_REFUND_REASONS:
            refund_params["reason"] = reason
        elif reason:
            refund_params["metadata"]["reason"] = reason

        try:
            refund = stripe.Refund.create(
                idempotency_key=idempotency_key,
                **refund_params,
            )
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            raise self._handle_stripe_error(e, log_context, duration_ms) from e

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "refund_id": refund.id,
                "status": refund.status,
                "duration_ms": duration_ms,
            },
        )

        return RefundResult(
            refund_id=refund.id,
            amount_cents=refund.amount,
            status=refund.status,
            external_reference=refund.payment_intent,
        )

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
        Open a hosted Stripe Checkout session for the order.

        The order id is attached to both the session and the underlying
        PaymentIntent so that either webhook event can be matched back.
        ``expires_at`` is clamped to the 30 minute to 24 hour window
        Stripe accepts.
        """
        self._configure_stripe()
        logger = self.get_logger()

        log_context = {
            "operation": "create_checkout_session",
            "order_id": str(order.id),
            "listing_id": str(listing.id),
            "amount_cents": order.amount_cents,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        metadata = {"order_id": str(order.id), "listing_id": str(listing.id)}
        extra_params: dict[str, Any] = {}
        if expires_at is not None:
            extra_params["expires_at"] = int(clamp_session_expiry(expires_at).timestamp())

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": order.currency,
                            "unit_amount": order.amount_cents,
                            "product_data": {"name": listing.title},
                        },
                        "quantity": 1,
                    }
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=str(order.id),
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                idempotency_key=idempotency_key,
                **extra_params,
            )
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            raise self._handle_stripe_error(e, log_context, duration_ms) from e

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "session_id": session.id,
                "duration_ms": duration_ms,
            },
        )

        return CheckoutSession(session_id=session.id, url=session.url)

    def expire_checkout_session(self, *, order_id: uuid.UUID, session_id: str) -> None:
        """
        Expire an open Checkout session so the buyer can no longer pay.

        Raises:
            GatewayRejectedError: The session already completed
                (provider_code ``checkout_session_complete``)
        """
        self._configure_stripe()
        logger = self.get_logger()

        log_context = {
            "operation": "expire_checkout_session",
            "order_id": str(order_id),
            "session_id": session_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.retrieve(session_id)
            if session.status == "open":
                session = stripe.checkout.Session.expire(session_id)
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            raise self._handle_stripe_error(e, log_context, duration_ms) from e

        duration_ms = (time.time() - start_time) * 1000
        if session.status == "complete":
            logger.warning(
                "Checkout session already completed",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise GatewayRejectedError(
                "Checkout session was already paid",
                provider=self.name,
                provider_code="checkout_session_complete",
            )

        logger.info(
            "Stripe operation completed",
            extra={**log_context, "status": session.status, "duration_ms": duration_ms},
        )

    # =========================================================================
    # Connect Payout Accounts
    # =========================================================================

    def _call_connect(self, log_context: dict[str, Any], call: Callable[[], Any]) -> Any:
        self._configure_stripe()
        logger = self.get_logger()

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            result = call()
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            raise self._handle_stripe_error(e, log_context, duration_ms) from e

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": duration_ms},
        )
        return result

    def create_payout_account(self, *, email: str, idempotency_key: str) -> str:
        """Create an Express connected account that receives seller transfers."""
        account = self._call_connect(
            {"operation": "create_payout_account", "idempotency_key": idempotency_key},
            lambda: stripe.Account.create(
                type="express",
                email=email,
                capabilities={"transfers": {"requested": True}},
                idempotency_key=idempotency_key,
            ),
        )
        return account.id

    def retrieve_payout_account(self, account_id: str) -> PayoutAccountStatus:
        account = self._call_connect(
            {"operation": "retrieve_payout_account", "account_id": account_id},
            lambda: stripe.Account.retrieve(account_id),
        )
        return payout_status_from_account(account)

    def create_onboarding_link(
        self,
        *,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> OnboardingLink:
        link = self._call_connect(
            {"operation": "create_onboarding_link", "account_id": account_id},
            lambda: stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            ),
        )
        return OnboardingLink(
            url=link.url,
            expires_at=datetime.fromtimestamp(link.expires_at, tz=dt_timezone.utc),
        )

    def create_dashboard_link(self, account_id: str) -> str:
        link = self._call_connect(
            {"operation": "create_dashboard_link", "account_id": account_id},
            lambda: stripe.Account.create_login_link(account_id),
        )
        return link.url

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify the Stripe-Signature header and parse the event body.

        Raises:
            UnauthenticatedWebhookError: Secret unset, header missing or bad
            ValidationError: Body is not a JSON object
        """
        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            self.get_logger().error("STRIPE_WEBHOOK_SECRET is not configured")
            raise UnauthenticatedWebhookError("Webhook signature could not be verified")
        if not signature:
            raise UnauthenticatedWebhookError("Missing webhook signature")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError("Webhook payload is not valid UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                secret,
                tolerance=getattr(settings, "STRIPE_WEBHOOK_TOLERANCE_SECONDS", 300),
            )
        except stripe.SignatureVerificationError as e:
            self.get_logger().warning(
                "Stripe webhook signature verification failed",
                extra={"error": str(e)},
            )
            raise UnauthenticatedWebhookError(
                "Invalid webhook signature",
                details={"provider": self.name},
            ) from e

        try:
            event = json.loads(body)
        except ValueError as e:
            raise ValidationError("Webhook payload is not valid JSON") from e

        if not isinstance(event, dict):
            raise ValidationError("Webhook payload must be a JSON object")
        return event

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _handle_stripe_error(
        self,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> GatewayError:
        """
        Translate a Stripe SDK exception into a gateway exception.

        Returns the exception for the caller to raise, so the original
        Stripe error stays chained as ``__cause__``.
        """
        logger = self.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}
        stripe_code = getattr(error, "code", None)
        stripe_message = str(getattr(error, "user_message", None) or error)

        if isinstance(error, stripe.CardError):
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "stripe_code": stripe_code},
            )
            return GatewayRejectedError(
                "Payment provider declined the operation",
                provider=self.name,
                provider_code=stripe_code,
                provider_message=stripe_message,
            )

        if isinstance(error, (stripe.InvalidRequestError, stripe.IdempotencyError)):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": stripe_code},
            )
            return GatewayRejectedError(
                "Payment provider rejected the operation",
                provider=self.name,
                provider_code=stripe_code,
                provider_message=stripe_message,
            )

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            return GatewayUnavailableError(
                "Payment provider is rate limiting requests. Please retry.",
                provider=self.name,
                provider_code="rate_limit",
                provider_message=stripe_message,
            )

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            return GatewayUnavailableError(
                "Could not reach the payment provider. Please retry.",
                provider=self.name,
                provider_code="api_connection_error",
                provider_message=stripe_message,
            )

        if isinstance(error, (stripe.AuthenticationError, stripe.PermissionError)):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            return GatewayAuthFailureError(
                "Payment gateway is misconfigured",
                provider=self.name,
                provider_code="authentication_error",
            )

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            return GatewayUnavailableError(
                "Payment provider error. Please retry.",
                provider=self.name,
                provider_code="api_error",
                provider_message=stripe_message,
            )

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        return GatewayUnavailableError(
            "Unexpected payment provider error",
            provider=self.name,
            provider_code="unknown_error",
            provider_message=stripe_message,
        )
