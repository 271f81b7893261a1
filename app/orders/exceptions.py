"""
Order-specific exceptions.

Exception Hierarchy:
    NotFoundError
    └── OrderNotFoundError - Order id does not exist (404)
    ConflictError
    ├── InvalidStateTransitionError - Operation not allowed from current state (409)
    ├── AmountMismatchError - Captured amount differs from order amount (409)
    └── OrderConflictError - Concurrent modification or reference clash (409)
    PermissionDeniedError
    └── ForbiddenError - Actor lacks the capability or is not a party (403)

Gateway failures are raised as payments.exceptions.GatewayError subclasses.
"""

from __future__ import annotations

from core.exceptions import ConflictError, NotFoundError, PermissionDeniedError


class OrderNotFoundError(NotFoundError):
    """The referenced order does not exist."""

    default_error_code: str = "ORDER_NOT_FOUND"


class InvalidStateTransitionError(ConflictError):
    """
    The order is not in a state that allows the requested operation.

    Example: releasing funds for an order that is still PENDING, or
    marking an order delivered before it was shipped.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class AmountMismatchError(ConflictError):
    """
    A payment event reported a captured amount different from the order's.

    ``details`` carries ``expected`` and ``captured`` in cents. The order
    is left PENDING for an operator to investigate.
    """

    default_error_code: str = "AMOUNT_MISMATCH"


class OrderConflictError(ConflictError):
    """
    The order changed between read and write, or a payment reference is
    already attached to a different order.

    Not retried automatically; the caller re-reads and decides.
    """

    default_error_code: str = "CONFLICT"


class ForbiddenError(PermissionDeniedError):
    """The actor may not perform this operation on this order."""

    default_error_code: str = "FORBIDDEN"
