"""
Webhook event handlers for payment provider events.

This module provides a handler registry and the handlers that turn a
verified payment event into an order transition.

The handler registry allows:
- Clean separation between event routing and handling
- Easy extension for new event types
- Unknown event types to be acknowledged without failing

Usage:
    from payments.webhooks.handlers import dispatch_payment_event, register_handler

    @register_handler("charge.dispute.created")
    def handle_dispute(event, state_machine) -> ServiceResult:
        ...

    result = dispatch_payment_event(event)
    result.data  # "applied", "duplicate", "refunded", "declined", "updated" or "ignored"
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from core.services import ServiceResult
from payments.webhooks.events import (
    ACCOUNT_UPDATED,
    CHECKOUT_SESSION_COMPLETED,
    PAYMENT_INTENT_SUCCEEDED,
    PAYPAL_CAPTURE_COMPLETED,
    PAYPAL_ORDER_APPROVED,
    normalize_account_event,
    normalize_approval,
    normalize_event,
)

if TYPE_CHECKING:
    from orders.services import OrderStateMachine


logger = logging.getLogger(__name__)

IGNORED = "ignored"
UPDATED = "updated"

Handler = Callable[[dict[str, Any], "OrderStateMachine"], ServiceResult]


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Handler] = {}


def register_handler(event_type: str) -> Callable[[Handler], Handler]:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("payment_intent.succeeded")
        def handle_payment_succeeded(event, state_machine) -> ServiceResult:
            ...
    """

    def decorator(func: Handler) -> Handler:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_payment_event(
    event: dict[str, Any],
    state_machine: OrderStateMachine | None = None,
) -> ServiceResult:
    """
    Dispatch a verified event to the handler registered for its type.

    Unregistered types succeed with outcome ``ignored``. Handler errors
    (unknown order, amount mismatch, gateway failure) propagate to the
    caller, which maps them to HTTP responses.
    """
    event_type = event.get("type") or event.get("event_type")
    handler = WEBHOOK_HANDLERS.get(event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {event_type}",
            extra={"event_id": event.get("id")},
        )
        return ServiceResult.success(IGNORED)

    if state_machine is None:
        from orders.services import OrderStateMachine

        state_machine = OrderStateMachine()

    logger.info(
        f"Dispatching {event_type} to handler",
        extra={"event_id": event.get("id")},
    )
    return handler(event, state_machine)


# =============================================================================
# Payment Capture Handlers
# =============================================================================


@register_handler(CHECKOUT_SESSION_COMPLETED)
@register_handler(PAYMENT_INTENT_SUCCEEDED)
@register_handler(PAYPAL_CAPTURE_COMPLETED)
def handle_payment_captured(
    event: dict[str, Any],
    state_machine: OrderStateMachine,
) -> ServiceResult:
    """
    Move the referenced order PENDING -> HELD.

    Checkout completion, payment intent success and PayPal capture
    completion land here; whichever arrives second is a duplicate no-op
    because the order already carries the payment reference. A capture
    for a cancelled order is refunded.
    """
    payment = normalize_event(event)

    confirmation = state_machine.confirm_payment(
        payment.order_id,
        external_reference=payment.external_reference,
        captured_amount_cents=payment.captured_amount_cents,
    )

    logger.info(
        f"Payment event {payment.event_type} {confirmation.outcome}",
        extra={
            "event_id": event.get("id"),
            "order_id": str(payment.order_id),
            "external_reference": payment.external_reference,
            "outcome": confirmation.outcome,
        },
    )
    return ServiceResult.success(confirmation.outcome)


@register_handler(PAYPAL_ORDER_APPROVED)
def handle_checkout_approved(
    event: dict[str, Any],
    state_machine: OrderStateMachine,
) -> ServiceResult:
    """Capture a PayPal order the buyer approved, then hold the payment."""
    approval = normalize_approval(event)

    confirmation = state_machine.capture_approved_checkout(
        approval.order_id,
        session_id=approval.session_id,
    )

    logger.info(
        f"Checkout approval {confirmation.outcome}",
        extra={
            "event_id": event.get("id"),
            "order_id": str(approval.order_id),
            "session_id": approval.session_id,
            "outcome": confirmation.outcome,
        },
    )
    return ServiceResult.success(confirmation.outcome)


# =============================================================================
# Payout Account Handlers
# =============================================================================


@register_handler(ACCOUNT_UPDATED)
def handle_account_updated(
    event: dict[str, Any],
    state_machine: OrderStateMachine,
) -> ServiceResult:
    """
    Sync payout readiness when the provider updates a seller account.

    Accounts no seller owns are acknowledged as ignored.
    """
    from payments.services import PayoutAccountService

    status = normalize_account_event(event)
    account = PayoutAccountService().apply_status(status)
    if account is None:
        return ServiceResult.success(IGNORED)
    return ServiceResult.success(UPDATED)
