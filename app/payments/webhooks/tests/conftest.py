"""
Pytest fixtures for webhook tests.

Provides orders for events to land on, payload builders for the
supported provider event types and a helper posting signed deliveries to
the webhook endpoint.
"""

import json

import pytest
from django.urls import reverse

from listings.tests.factories import ListingFactory
from orders.tests.factories import OrderFactory


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def pending_order(db):
    """PENDING order for 4500 cents."""
    return OrderFactory(listing=ListingFactory(price_cents=4500))


# =============================================================================
# Webhook Payload Fixtures
# =============================================================================


@pytest.fixture
def checkout_completed_payload():
    """Build a checkout.session.completed event."""

    def _build(order_id, amount_total=4500, payment_intent="pi_test_webhook_123", event_id="evt_test_checkout_1"):
        return {
            "id": event_id,
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_test_123",
                    "object": "checkout.session",
                    "payment_intent": payment_intent,
                    "amount_total": amount_total,
                    "currency": "usd",
                    "metadata": {"order_id": str(order_id)},
                }
            },
        }

    return _build


@pytest.fixture
def payment_intent_succeeded_payload():
    """Build a payment_intent.succeeded event."""

    def _build(order_id, amount_received=4500, payment_intent="pi_test_webhook_123", event_id="evt_test_intent_1"):
        return {
            "id": event_id,
            "type": "payment_intent.succeeded",
            "data": {
                "object": {
                    "id": payment_intent,
                    "object": "payment_intent",
                    "amount": amount_received,
                    "amount_received": amount_received,
                    "currency": "usd",
                    "status": "succeeded",
                    "metadata": {"order_id": str(order_id)},
                }
            },
        }

    return _build


@pytest.fixture
def paypal_capture_payload():
    """Build a PayPal PAYMENT.CAPTURE.COMPLETED event."""

    def _build(order_id, value="45.00", capture_id="CAP123", event_id="WH-CAPTURE-1"):
        return {
            "id": event_id,
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource_type": "capture",
            "resource": {
                "id": capture_id,
                "status": "COMPLETED",
                "amount": {"currency_code": "USD", "value": value},
                "custom_id": str(order_id),
            },
        }

    return _build


@pytest.fixture
def paypal_approved_payload():
    """Build a PayPal CHECKOUT.ORDER.APPROVED event."""

    def _build(order_id, session_id, event_id="WH-APPROVED-1"):
        return {
            "id": event_id,
            "event_type": "CHECKOUT.ORDER.APPROVED",
            "resource_type": "checkout-order",
            "resource": {
                "id": session_id,
                "status": "APPROVED",
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "reference_id": str(order_id),
                        "custom_id": str(order_id),
                        "amount": {"currency_code": "USD", "value": "45.00"},
                    }
                ],
            },
        }

    return _build


@pytest.fixture
def account_updated_payload():
    """Build an account.updated event for a Connect account."""

    def _build(
        account_id="acct_seller_1",
        payouts_enabled=True,
        currently_due=(),
        disabled_reason=None,
        event_id="evt_test_account_1",
    ):
        return {
            "id": event_id,
            "type": "account.updated",
            "data": {
                "object": {
                    "id": account_id,
                    "object": "account",
                    "payouts_enabled": payouts_enabled,
                    "details_submitted": True,
                    "requirements": {
                        "currently_due": list(currently_due),
                        "past_due": [],
                        "disabled_reason": disabled_reason,
                    },
                }
            },
        }

    return _build


@pytest.fixture
def unknown_event_payload():
    """Webhook payload for an unhandled event type."""
    return {
        "id": "evt_test_unknown_123",
        "type": "customer.subscription.created",
        "data": {
            "object": {
                "id": "sub_test_123",
                "object": "subscription",
            }
        },
    }


# =============================================================================
# Request Helpers
# =============================================================================


@pytest.fixture
def post_webhook(client, fake_gateway):
    """
    Post an event to the webhook endpoint, signed by the fake gateway.

    Usage:
        response = post_webhook(payload)
        response = post_webhook(payload, signature="forged")
        response = post_webhook(b"raw body", provider="paypal")
    """

    def _post(payload, provider="stripe", signature=None):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        if signature is None:
            signature = fake_gateway.sign(body)
        return client.post(
            reverse("payments:payment_webhook", kwargs={"provider": provider}),
            data=body,
            content_type="application/json",
            HTTP_X_WEBHOOK_SIGNATURE=signature,
        )

    return _post
