"""
Tests for the application exception hierarchy.

Tests cover:
- Default error codes and HTTP status codes per class
- Dictionary rendering for API responses
- String representations used in logs
- Gateway errors folding provider output into details
"""

import pytest

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from orders.exceptions import (
    AmountMismatchError,
    ForbiddenError,
    InvalidStateTransitionError,
    OrderConflictError,
    OrderNotFoundError,
)
from payments.exceptions import (
    GatewayAuthFailureError,
    GatewayError,
    GatewayRejectedError,
    GatewayUnavailableError,
    UnauthenticatedWebhookError,
)


# =============================================================================
# Base Hierarchy
# =============================================================================


class TestBaseApplicationError:
    @pytest.mark.parametrize(
        "exc_class, error_code, status_code",
        [
            (BaseApplicationError, "APPLICATION_ERROR", 400),
            (ValidationError, "VALIDATION_ERROR", 400),
            (NotFoundError, "NOT_FOUND", 404),
            (PermissionDeniedError, "PERMISSION_DENIED", 403),
            (ConflictError, "CONFLICT", 409),
            (ExternalServiceError, "EXTERNAL_SERVICE_ERROR", 502),
        ],
    )
    def test_defaults(self, exc_class, error_code, status_code):
        exc = exc_class("Something went wrong")

        assert exc.error_code == error_code
        assert exc.status_code == status_code
        assert exc.details == {}

    def test_custom_error_code(self):
        exc = NotFoundError("Order missing", error_code="ORDER_NOT_FOUND")

        assert exc.error_code == "ORDER_NOT_FOUND"
        assert exc.status_code == 404

    def test_to_dict_without_details(self):
        exc = ConflictError("Order was modified")

        assert exc.to_dict() == {"error": "Order was modified", "error_code": "CONFLICT"}

    def test_to_dict_with_details(self):
        exc = ValidationError("Bad amount", details={"amount_cents": -5})

        assert exc.to_dict() == {
            "error": "Bad amount",
            "error_code": "VALIDATION_ERROR",
            "details": {"amount_cents": -5},
        }

    def test_str_includes_code(self):
        assert str(ConflictError("Order was modified")) == "[CONFLICT] Order was modified"

    def test_repr(self):
        exc = ValidationError("Bad amount", details={"field": "amount"})

        assert repr(exc) == (
            "ValidationError(message='Bad amount', error_code='VALIDATION_ERROR', "
            "details={'field': 'amount'})"
        )

    def test_catchable_as_base(self):
        with pytest.raises(BaseApplicationError):
            raise PermissionDeniedError("Not allowed")


# =============================================================================
# Domain Errors
# =============================================================================


class TestDomainErrors:
    def test_order_errors_map_to_http_semantics(self):
        assert issubclass(OrderNotFoundError, NotFoundError)
        assert issubclass(InvalidStateTransitionError, ConflictError)
        assert issubclass(OrderConflictError, ConflictError)
        assert issubclass(ForbiddenError, PermissionDeniedError)
        assert issubclass(AmountMismatchError, ConflictError)

    @pytest.mark.parametrize(
        "exc_class, status_code",
        [
            (GatewayRejectedError, 422),
            (GatewayUnavailableError, 502),
            (GatewayAuthFailureError, 502),
            (UnauthenticatedWebhookError, 400),
        ],
    )
    def test_gateway_status_codes(self, exc_class, status_code):
        assert exc_class("failure").status_code == status_code

    def test_gateway_error_collects_provider_output(self):
        exc = GatewayRejectedError(
            "Transfer rejected",
            provider="stripe",
            provider_code="insufficient_funds",
            provider_message="Your balance is too low",
        )

        assert exc.provider == "stripe"
        assert exc.provider_code == "insufficient_funds"
        assert exc.details == {
            "provider": "stripe",
            "provider_code": "insufficient_funds",
            "provider_message": "Your balance is too low",
        }

    def test_gateway_error_keeps_extra_details(self):
        exc = GatewayError("Failed", provider="fake", details={"order_id": "abc"})

        assert exc.details == {"order_id": "abc", "provider": "fake"}

    def test_unavailable_is_retryable(self):
        assert GatewayUnavailableError("timeout").is_retryable is True
        assert GatewayRejectedError("declined").is_retryable is False
