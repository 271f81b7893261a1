"""
Base exception classes for application-wide error handling.

Every domain error raised by a service derives from BaseApplicationError,
which carries a machine-readable error code, optional structured details
and the HTTP status the API layer should answer with.

Exception Hierarchy:
    BaseApplicationError (base, 400)
    ├── ValidationError - Malformed input (400)
    ├── NotFoundError - Resource not found (404)
    ├── PermissionDeniedError - Authorization failures (403)
    ├── ConflictError - State conflicts and concurrent modification (409)
    └── ExternalServiceError - Upstream provider failures (502)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError("amount_cents must be positive")

    raise NotFoundError(
        f"Order {order_id} not found",
        error_code="ORDER_NOT_FOUND",
        details={"order_id": str(order_id)},
    )

    # API layer (see core.exception_handler)
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.status_code)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, amounts, ids)
        status_code: HTTP status used when the error reaches the API layer

    Example:
        try:
            order = OrderStateMachine().release_funds(order_id)
        except BaseApplicationError as e:
            logger.warning(f"Release refused: {e.error_code}")
            return Response(e.to_dict(), status=e.status_code)
    """

    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Order not found",
                "error_code": "ORDER_NOT_FOUND",
                "details": {"order_id": "…"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for malformed request data, out-of-range amounts and values that
    break a model invariant. For DRF serializer validation, use DRF's
    built-in validation; this class covers service-layer checks.
    """

    default_error_code: str = "VALIDATION_ERROR"
    status_code: int = 400


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Use for single-resource lookups where existence is expected. List
    queries should return empty results instead.
    """

    default_error_code: str = "NOT_FOUND"
    status_code: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller lacks permission for an operation.

    For authentication failures (missing/invalid token), DRF answers with
    401 on its own. Use this for authorization failures only.
    """

    default_error_code: str = "PERMISSION_DENIED"
    status_code: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Duplicate entries (unique constraint violations)
    - Concurrent modification conflicts
    - Invalid state transitions
    - Optimistic locking failures
    """

    default_error_code: str = "CONFLICT"
    status_code: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose provider
    internals to clients unless the deployment opts in.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    status_code: int = 502
