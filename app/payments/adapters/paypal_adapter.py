"""
PayPal implementation of the payment gateway interface.

Talks to the PayPal REST API with ``requests``: Orders v2 for hosted
checkout and capture, Payments v2 for refunds, Payouts v1 for releasing
funds to sellers and the Notifications API for webhook verification.

Features:
- OAuth2 client-credentials token, cached until shortly before expiry
- PayPal-Request-Id carries the idempotency key on every money-moving call
- HTTP and transport failures translated to gateway exceptions
- Structured logging with timing metrics

Configuration (via settings):
- PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET: REST app credentials
- PAYPAL_API_BASE: https://api-m.sandbox.paypal.com or https://api-m.paypal.com
- PAYPAL_WEBHOOK_ID: Id of the webhook subscription, used for verification
- PAYPAL_TIMEOUT_SECONDS: Per-request timeout (default: 30)

Amounts:
    PayPal exchanges decimal strings ("45.00"); the rest of the system
    works in integer minor units, so conversion happens only here.

Sellers:
    Payouts go to the PayPal email stored on the seller's
    ConnectedAccount (``paypal_email``).
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import requests
from django.conf import settings
from django.utils import timezone
from requests.auth import HTTPBasicAuth

from core.exceptions import ValidationError
from payments.adapters.base import (
    CaptureConfirmation,
    CheckoutSession,
    PaymentGateway,
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
    from collections.abc import Mapping

    from listings.models import Listing
    from orders.models import Order


COMMON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}

# Headers PayPal signs a webhook delivery with, keyed by the field name the
# verify-webhook-signature endpoint expects
TRANSMISSION_HEADERS = {
    "auth_algo": "PAYPAL-AUTH-ALGO",
    "cert_url": "PAYPAL-CERT-URL",
    "transmission_id": "PAYPAL-TRANSMISSION-ID",
    "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
    "transmission_time": "PAYPAL-TRANSMISSION-TIME",
}

REFUND_STATUSES = {
    "COMPLETED": "succeeded",
    "PENDING": "pending",
    "FAILED": "failed",
    "CANCELLED": "failed",
}

# Refresh the access token this long before PayPal says it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60


def to_paypal_value(amount_cents: int) -> str:
    return f"{Decimal(amount_cents) / 100:.2f}"


def from_paypal_value(value: str) -> int:
    """Convert a PayPal decimal amount string to minor units."""
    return int((Decimal(value) * 100).to_integral_value())


class PayPalGateway(PaymentGateway):
    """
    Gateway backed by the PayPal REST API.

    Buyers approve a PayPal order on paypal.com; the approval webhook
    triggers ``capture_approved_checkout`` and the resulting capture id
    becomes the order's external payment reference.
    """

    name = "paypal"
    signature_header = "PAYPAL-TRANSMISSION-SIG"

    def __init__(self):
        self._token_lock = threading.RLock()
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # HTTP Plumbing
    # =========================================================================

    @property
    def base_url(self) -> str:
        return settings.PAYPAL_API_BASE.rstrip("/")

    @property
    def timeout(self) -> int:
        return getattr(settings, "PAYPAL_TIMEOUT_SECONDS", 30)

    def _get_access_token(self) -> str:
        if not settings.PAYPAL_CLIENT_ID or not settings.PAYPAL_CLIENT_SECRET:
            raise GatewayAuthFailureError(
                "Payment gateway is not configured",
                provider=self.name,
                provider_code="missing_api_key",
            )

        with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expires_at:
                return self._access_token

            log_context = {"operation": "oauth2_token"}
            start_time = time.time()
            try:
                response = requests.post(
                    f"{self.base_url}/v1/oauth2/token",
                    data={"grant_type": "client_credentials"},
                    headers={"Accept": "application/json"},
                    auth=HTTPBasicAuth(
                        settings.PAYPAL_CLIENT_ID, settings.PAYPAL_CLIENT_SECRET
                    ),
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                duration_ms = (time.time() - start_time) * 1000
                raise self._handle_transport_error(e, log_context, duration_ms) from e

            if not response.ok:
                duration_ms = (time.time() - start_time) * 1000
                raise self._handle_http_error(response, log_context, duration_ms)

            body = response.json()
            self._access_token = body["access_token"]
            self._token_expires_at = (
                time.monotonic() + int(body.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN_SECONDS
            )
            return self._access_token

    def _request(
        self,
        method: str,
        path: str,
        log_context: dict[str, Any],
        *,
        json_body: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """
        Call the PayPal API and return the decoded JSON body.

        Raises the translated gateway exception for transport failures and
        non-2xx responses.
        """
        logger = self.get_logger()
        headers = {
            **COMMON_HEADERS,
            "Authorization": f"Bearer {self._get_access_token()}",
        }
        if idempotency_key:
            headers["PayPal-Request-Id"] = idempotency_key

        start_time = time.time()
        logger.info("Starting PayPal operation", extra=log_context)

        try:
            response = requests.request(
                method,
                f"{self.base_url}{path}",
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            raise self._handle_transport_error(e, log_context, duration_ms) from e

        duration_ms = (time.time() - start_time) * 1000
        if not response.ok:
            raise self._handle_http_error(response, log_context, duration_ms)

        logger.info(
            "PayPal operation completed",
            extra={
                **log_context,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response.json() if response.content else {}

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
        Look up the capture and check that it completed.

        Raises:
            GatewayRejectedError: Capture exists but is not COMPLETED
        """
        capture = self._request(
            "GET",
            f"/v2/payments/captures/{external_reference}",
            {
                "operation": "confirm_capture",
                "order_id": str(order_id),
                "capture_id": external_reference,
                "captured_amount_cents": captured_amount_cents,
            },
        )

        status = capture.get("status", "")
        if status != "COMPLETED":
            raise GatewayRejectedError(
                "Payment has not been captured",
                provider=self.name,
                provider_code="payment_not_captured",
                provider_message=f"Capture status is {status}",
            )

        return CaptureConfirmation(
            external_reference=capture["id"],
            amount_cents=from_paypal_value(capture["amount"]["value"]),
            status=status,
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
        Send the seller's share as a single-item payout batch.

        The idempotency key doubles as ``sender_batch_id``, which PayPal
        refuses to reuse, so a replay can never pay twice.
        """
        batch = self._request(
            "POST",
            "/v1/payments/payouts",
            {
                "operation": "transfer_to_seller",
                "order_id": str(order_id),
                "amount_cents": seller_amount_cents,
                "destination_account": seller_payout_account,
                "idempotency_key": idempotency_key,
            },
            json_body={
                "sender_batch_header": {
                    "sender_batch_id": idempotency_key,
                    "email_subject": "You have a payout",
                },
                "items": [
                    {
                        "recipient_type": "EMAIL",
                        "receiver": seller_payout_account,
                        "amount": {
                            "value": to_paypal_value(seller_amount_cents),
                            "currency": currency.upper(),
                        },
                        "sender_item_id": str(order_id),
                    }
                ],
            },
            idempotency_key=idempotency_key,
        )

        header = batch.get("batch_header") or {}
        created = header.get("time_created")
        return TransferResult(
            transfer_id=header["payout_batch_id"],
            amount_cents=seller_amount_cents,
            created_at=datetime.fromisoformat(created.replace("Z", "+00:00"))
            if created
            else timezone.now(),
            destination_account=seller_payout_account,
            currency=currency,
            raw_response=batch,
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
        log_context = {
            "operation": "refund",
            "order_id": str(order_id),
            "capture_id": external_reference,
            "amount_cents": refund_amount_cents,
            "idempotency_key": idempotency_key,
        }
        capture = self._request(
            "GET", f"/v2/payments/captures/{external_reference}", log_context
        )

        body: dict[str, Any] = {
            "amount": {
                "value": to_paypal_value(refund_amount_cents),
                "currency_code": capture["amount"]["currency_code"],
            },
        }
        if reason:
            body["note_to_payer"] = reason[:255]

        refund = self._request(
            "POST",
            f"/v2/payments/captures/{external_reference}/refund",
            log_context,
            json_body=body,
            idempotency_key=idempotency_key,
        )

        return RefundResult(
            refund_id=refund["id"],
            amount_cents=refund_amount_cents,
            status=REFUND_STATUSES.get(refund.get("status", ""), "pending"),
            external_reference=external_reference,
            raw_response=refund,
        )

    # =========================================================================
    # Checkout
    # =========================================================================

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
        Create a PayPal order the buyer approves on paypal.com.

        PayPal orders cannot be given an expiry; an abandoned one is simply
        never captured.
        """
        paypal_order = self._request(
            "POST",
            "/v2/checkout/orders",
            {
                "operation": "create_checkout_session",
                "order_id": str(order.id),
                "listing_id": str(listing.id),
                "amount_cents": order.amount_cents,
                "idempotency_key": idempotency_key,
            },
            json_body={
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "reference_id": str(order.id),
                        "custom_id": str(order.id),
                        "description": listing.title[:127],
                        "amount": {
                            "currency_code": order.currency.upper(),
                            "value": to_paypal_value(order.amount_cents),
                        },
                    }
                ],
                "payment_source": {
                    "paypal": {
                        "experience_context": {
                            "return_url": success_url,
                            "cancel_url": cancel_url,
                            "user_action": "PAY_NOW",
                        }
                    }
                },
            },
            idempotency_key=idempotency_key,
        )

        links = {link.get("rel"): link.get("href") for link in paypal_order.get("links", [])}
        url = links.get("payer-action") or links.get("approve")
        if not url:
            raise GatewayRejectedError(
                "Payment provider returned no approval link",
                provider=self.name,
                provider_code="missing_approval_link",
            )
        return CheckoutSession(session_id=paypal_order["id"], url=url)

    def expire_checkout_session(self, *, order_id: uuid.UUID, session_id: str) -> None:
        """
        Refuse cancellation of a PayPal order that was already captured.

        Anything short of COMPLETED is left to lapse on PayPal's side.
        """
        paypal_order = self._request(
            "GET",
            f"/v2/checkout/orders/{session_id}",
            {
                "operation": "expire_checkout_session",
                "order_id": str(order_id),
                "session_id": session_id,
            },
        )
        if paypal_order.get("status") == "COMPLETED":
            raise GatewayRejectedError(
                "Checkout session was already paid",
                provider=self.name,
                provider_code="checkout_session_complete",
            )

    def capture_approved_checkout(
        self,
        *,
        order_id: uuid.UUID,
        session_id: str,
        idempotency_key: str,
    ) -> CaptureConfirmation:
        """Capture a PayPal order the buyer approved."""
        paypal_order = self._request(
            "POST",
            f"/v2/checkout/orders/{session_id}/capture",
            {
                "operation": "capture_approved_checkout",
                "order_id": str(order_id),
                "session_id": session_id,
                "idempotency_key": idempotency_key,
            },
            json_body={},
            idempotency_key=idempotency_key,
        )

        try:
            capture = paypal_order["purchase_units"][0]["payments"]["captures"][0]
        except (KeyError, IndexError) as e:
            raise GatewayRejectedError(
                "Payment provider returned no capture",
                provider=self.name,
                provider_code="missing_capture",
            ) from e

        return CaptureConfirmation(
            external_reference=capture["id"],
            amount_cents=from_paypal_value(capture["amount"]["value"]),
            status=capture.get("status", ""),
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def read_webhook_signature(self, headers: Mapping[str, str]) -> str:
        """
        Bundle the transmission headers PayPal signs with into one value.

        Returns an empty string when any of them is missing.
        """
        values = {field: headers.get(header, "") for field, header in TRANSMISSION_HEADERS.items()}
        if not all(values.values()):
            return ""
        return json.dumps(values, sort_keys=True)

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Ask PayPal to verify the delivery and parse the event body.

        Raises:
            UnauthenticatedWebhookError: Webhook id unset, headers missing
                or PayPal reports the signature as invalid
            ValidationError: Body is not a JSON object
        """
        webhook_id = settings.PAYPAL_WEBHOOK_ID
        if not webhook_id:
            self.get_logger().error("PAYPAL_WEBHOOK_ID is not configured")
            raise UnauthenticatedWebhookError("Webhook signature could not be verified")
        if not signature:
            raise UnauthenticatedWebhookError("Missing webhook signature")

        try:
            transmission = json.loads(signature)
        except ValueError as e:
            raise UnauthenticatedWebhookError("Invalid webhook signature") from e

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise ValidationError("Webhook payload is not valid JSON") from e
        if not isinstance(event, dict):
            raise ValidationError("Webhook payload must be a JSON object")

        result = self._request(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            {"operation": "verify_webhook", "transmission_id": transmission.get("transmission_id")},
            json_body={**transmission, "webhook_id": webhook_id, "webhook_event": event},
        )
        if result.get("verification_status") != "SUCCESS":
            self.get_logger().warning(
                "PayPal webhook signature verification failed",
                extra={"verification_status": result.get("verification_status")},
            )
            raise UnauthenticatedWebhookError(
                "Invalid webhook signature",
                details={"provider": self.name},
            )
        return event

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _handle_transport_error(
        self,
        error: requests.RequestException,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> GatewayError:
        logger = self.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, requests.Timeout):
            logger.error("Timed out calling PayPal", extra=log_context)
            provider_code = "timeout"
        else:
            logger.error("Connection error to PayPal", extra=log_context, exc_info=True)
            provider_code = "api_connection_error"

        return GatewayUnavailableError(
            "Could not reach the payment provider. Please retry.",
            provider=self.name,
            provider_code=provider_code,
            provider_message=str(error),
        )

    def _handle_http_error(
        self,
        response: requests.Response,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> GatewayError:
        """
        Translate a non-2xx PayPal response into a gateway exception.

        PayPal error bodies carry ``name`` and ``message`` (or
        ``error``/``error_description`` from the OAuth endpoint) plus an
        optional ``details`` list whose first ``issue`` is the most
        specific code.
        """
        logger = self.get_logger()
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        details = body.get("details") or [{}]
        provider_code = (
            (details[0].get("issue") if isinstance(details[0], dict) else None)
            or body.get("name")
            or body.get("error")
        )
        provider_message = body.get("message") or body.get("error_description") or response.text
        log_context = {
            **log_context,
            "status_code": response.status_code,
            "paypal_code": provider_code,
            "debug_id": body.get("debug_id"),
            "duration_ms": duration_ms,
        }

        if response.status_code in (401, 403):
            logger.critical("PayPal authentication failed - check credentials", extra=log_context)
            with self._token_lock:
                self._access_token = None
            return GatewayAuthFailureError(
                "Payment gateway is misconfigured",
                provider=self.name,
                provider_code="authentication_error",
            )

        if response.status_code == 429:
            logger.warning("Rate limited by PayPal", extra=log_context)
            return GatewayUnavailableError(
                "Payment provider is rate limiting requests. Please retry.",
                provider=self.name,
                provider_code="rate_limit",
                provider_message=provider_message,
            )

        if response.status_code >= 500:
            logger.error("PayPal API error", extra=log_context)
            return GatewayUnavailableError(
                "Payment provider error. Please retry.",
                provider=self.name,
                provider_code="api_error",
                provider_message=provider_message,
            )

        logger.error("Invalid request to PayPal", extra=log_context)
        return GatewayRejectedError(
            "Payment provider rejected the operation",
            provider=self.name,
            provider_code=provider_code,
            provider_message=provider_message,
        )
