"""
Normalization of verified provider events.

Providers describe a captured payment in different shapes. Everything
the order state machine needs is pulled out into a NormalizedPaymentEvent
so handlers never dig through raw payloads.

Handled Stripe shapes (``event["data"]["object"]``):

    checkout.session.completed
        payment_intent   -> external_reference
        amount_total     -> captured_amount_cents
        metadata.order_id

    payment_intent.succeeded
        id               -> external_reference
        amount_received  -> captured_amount_cents
        metadata.order_id

    account.updated
        id, payouts_enabled, details_submitted, requirements

Handled PayPal shapes (``event["resource"]``, type in ``event_type``):

    PAYMENT.CAPTURE.COMPLETED
        id               -> external_reference
        amount.value     -> captured_amount_cents
        custom_id        -> order id

    CHECKOUT.ORDER.APPROVED
        id               -> checkout session id
        purchase_units[0].custom_id -> order id
"""

from __future__ import annotations

import decimal
import uuid
from dataclasses import dataclass
from typing import Any

from core.exceptions import ValidationError
from payments.adapters.base import PayoutAccountStatus
from payments.adapters.paypal_adapter import from_paypal_value
from payments.adapters.stripe_adapter import payout_status_from_account

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
ACCOUNT_UPDATED = "account.updated"
PAYPAL_CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
PAYPAL_ORDER_APPROVED = "CHECKOUT.ORDER.APPROVED"

# event type -> (reference key, amount key) inside data.object
PAYMENT_EVENT_FIELDS = {
    CHECKOUT_SESSION_COMPLETED: ("payment_intent", "amount_total"),
    PAYMENT_INTENT_SUCCEEDED: ("id", "amount_received"),
}


@dataclass(frozen=True)
class NormalizedPaymentEvent:
    """Provider-independent view of a payment capture."""

    external_reference: str
    order_id: uuid.UUID
    captured_amount_cents: int
    event_type: str


@dataclass(frozen=True)
class ApprovedCheckout:
    """A checkout the buyer approved that still has to be captured."""

    session_id: str
    order_id: uuid.UUID


def get_event_id(event: dict[str, Any]) -> str:
    """Provider event id, required for the audit log."""
    event_id = event.get("id")
    if not event_id or not isinstance(event_id, str):
        raise ValidationError("Webhook event is missing its id")
    return event_id


def get_event_type(event: dict[str, Any]) -> str:
    event_type = event.get("type") or event.get("event_type")
    if not event_type or not isinstance(event_type, str):
        raise ValidationError("Webhook event is missing its type")
    return event_type


def _require_object(value: Any, field: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError(
            f"Webhook event field {field} must be an object",
            details={"field": field},
        )
    return value


def _data_object(event: dict[str, Any]) -> dict[str, Any]:
    data = _require_object(event.get("data"), "data")
    return _require_object(data.get("object"), "data.object")


def _parse_order_id(raw_order_id: Any, field: str) -> uuid.UUID:
    if not raw_order_id:
        raise ValidationError(
            f"Webhook event is missing {field}",
            details={"field": field},
        )
    try:
        return uuid.UUID(str(raw_order_id))
    except ValueError as e:
        raise ValidationError(
            "Webhook event carries a malformed order id",
            details={"field": field},
        ) from e


def _require_reference(value: Any, field: str) -> str:
    if not value or not isinstance(value, str):
        raise ValidationError(
            "Webhook event is missing the payment reference",
            details={"field": field},
        )
    return value


def normalize_event(event: dict[str, Any]) -> NormalizedPaymentEvent:
    """
    Extract reference, order id and captured amount from a payment event.

    Raises:
        ValidationError: Unsupported event type or a required field is
            missing or malformed
    """
    event_type = get_event_type(event)
    if event_type == PAYPAL_CAPTURE_COMPLETED:
        return _normalize_paypal_capture(event)
    if event_type not in PAYMENT_EVENT_FIELDS:
        raise ValidationError(
            f"Unsupported payment event type: {event_type}",
            details={"event_type": event_type},
        )

    obj = _data_object(event)
    reference_key, amount_key = PAYMENT_EVENT_FIELDS[event_type]
    external_reference = _require_reference(obj.get(reference_key), reference_key)

    metadata = obj.get("metadata")
    metadata = {} if metadata is None else _require_object(metadata, "metadata")
    order_id = _parse_order_id(
        metadata.get("order_id") or metadata.get("orderId"),
        "metadata.order_id",
    )

    amount = obj.get(amount_key)
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(
            "Webhook event is missing the captured amount",
            details={"field": amount_key},
        )

    return NormalizedPaymentEvent(
        external_reference=external_reference,
        order_id=order_id,
        captured_amount_cents=amount,
        event_type=event_type,
    )


def _normalize_paypal_capture(event: dict[str, Any]) -> NormalizedPaymentEvent:
    resource = _require_object(event.get("resource"), "resource")
    external_reference = _require_reference(resource.get("id"), "resource.id")
    order_id = _parse_order_id(resource.get("custom_id"), "resource.custom_id")

    amount = _require_object(resource.get("amount"), "resource.amount")
    value = amount.get("value")
    try:
        captured = from_paypal_value(value) if isinstance(value, str) else 0
    except decimal.InvalidOperation:
        captured = 0
    if captured <= 0:
        raise ValidationError(
            "Webhook event is missing the captured amount",
            details={"field": "resource.amount.value"},
        )

    return NormalizedPaymentEvent(
        external_reference=external_reference,
        order_id=order_id,
        captured_amount_cents=captured,
        event_type=PAYPAL_CAPTURE_COMPLETED,
    )


def normalize_approval(event: dict[str, Any]) -> ApprovedCheckout:
    """Extract the PayPal order and our order id from an approval event."""
    resource = _require_object(event.get("resource"), "resource")
    session_id = resource.get("id")
    if not session_id or not isinstance(session_id, str):
        raise ValidationError(
            "Webhook event is missing the checkout id",
            details={"field": "resource.id"},
        )

    units = resource.get("purchase_units")
    if not isinstance(units, list) or not units:
        raise ValidationError(
            "Webhook event has no purchase units",
            details={"field": "resource.purchase_units"},
        )
    unit = _require_object(units[0], "resource.purchase_units[0]")

    return ApprovedCheckout(
        session_id=session_id,
        order_id=_parse_order_id(unit.get("custom_id"), "resource.purchase_units[0].custom_id"),
    )


def normalize_account_event(event: dict[str, Any]) -> PayoutAccountStatus:
    """
    Read payout readiness from an ``account.updated`` event.

    Raises:
        ValidationError: Account id missing or requirements malformed
    """
    obj = _data_object(event)
    if not obj.get("id") or not isinstance(obj.get("id"), str):
        raise ValidationError(
            "Webhook event is missing the account id",
            details={"field": "data.object.id"},
        )
    requirements = obj.get("requirements")
    if requirements is not None:
        _require_object(requirements, "requirements")
        for key in ("currently_due", "past_due"):
            if not isinstance(requirements.get(key) or [], list):
                raise ValidationError(
                    f"Webhook event field requirements.{key} must be a list",
                    details={"field": f"requirements.{key}"},
                )
    return payout_status_from_account(obj)
