"""
Payment gateway exceptions.

Every failure coming out of a payment gateway adapter is translated into
one of the classes below, so the escrow services never see provider SDK
exceptions.

Exception Hierarchy:
    GatewayError (ExternalServiceError, base for provider failures)
    ├── GatewayUnavailableError - Transient upstream failure (502, retryable)
    ├── GatewayRejectedError - Terminal upstream refusal (422)
    └── GatewayAuthFailureError - Credentials/configuration problem (502)
    UnauthenticatedWebhookError - Signature verification failed (400)

Retry policy:
    Only GatewayUnavailableError is retryable. Retrying is safe because
    every money-moving call carries a deterministic idempotency key, so
    the provider returns the prior result instead of creating a second
    transfer or refund.

Usage:
    from payments.exceptions import GatewayError, GatewayUnavailableError

    try:
        gateway.transfer_to_seller(...)
    except GatewayError as e:
        if e.is_retryable:
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ExternalServiceError, ValidationError

if TYPE_CHECKING:
    from typing import Any


class GatewayError(ExternalServiceError):
    """
    Base exception for payment gateway failures.

    Attributes:
        provider: Gateway that raised (``stripe``, ``fake``)
        provider_code: Provider error code, when one was returned
        is_retryable: Whether the call may be retried with the same key

    Provider messages go into ``details["provider_message"]`` and are
    stripped from API responses unless EXPOSE_UPSTREAM_ERROR_DETAIL is on.
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider: str | None = None,
        provider_code: str | None = None,
        provider_message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        if provider_code:
            details["provider_code"] = provider_code
        if provider_message:
            details["provider_message"] = provider_message
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider
        self.provider_code = provider_code


class GatewayUnavailableError(GatewayError):
    """
    The provider could not be reached or answered with a server error.

    Network failures, timeouts, rate limiting and 5xx responses land here.
    The order is left untouched, so the admin may simply retry.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    status_code: int = 502
    is_retryable: bool = True


class GatewayRejectedError(GatewayError):
    """
    The provider refused the operation and will keep refusing it.

    Examples: destination account not eligible for payouts, refund larger
    than the captured amount, payment intent not in a capturable state.
    Requires manual handling by an operator.
    """

    default_error_code: str = "GATEWAY_REJECTED"
    status_code: int = 422
    is_retryable: bool = False


class GatewayAuthFailureError(GatewayError):
    """
    The gateway is misconfigured (bad API key, missing permissions, no
    implementation configured for a payment method).

    This is an operational problem; callers only ever see a generic
    message.
    """

    default_error_code: str = "GATEWAY_AUTH_FAILURE"
    status_code: int = 502
    is_retryable: bool = False


class UnauthenticatedWebhookError(ValidationError):
    """
    An inbound webhook failed signature verification.

    The event is logged and dropped without touching any order.
    """

    default_error_code: str = "UNAUTHENTICATED_WEBHOOK"
    status_code: int = 400
