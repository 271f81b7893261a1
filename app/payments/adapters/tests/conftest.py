"""
Pytest fixtures for payment gateway adapter tests.

Sections:
    - Test Data Fixtures
    - Mock Stripe Response Fixtures
    - Stripe Webhook Signing
"""

import hashlib
import hmac
import time
import uuid
from dataclasses import dataclass
from typing import Any

import pytest

from payments.adapters import StripeGateway

STRIPE_WEBHOOK_SECRET = "whsec_stripe_test"


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def order_id():
    """Generate a random order UUID for testing."""
    return uuid.uuid4()


@pytest.fixture
def stripe_gateway(settings):
    """StripeGateway with test credentials configured."""
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = STRIPE_WEBHOOK_SECRET
    settings.STRIPE_MAX_RETRIES = 2
    return StripeGateway()


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with attribute access."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def mock_payment_intent():
    """Build a mock PaymentIntent."""

    def _create(
        id: str = "pi_test123456",
        status: str = "succeeded",
        amount_received: int = 7500,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount_received,
                "amount_received": amount_received,
                "currency": "usd",
            }
        )

    return _create


@pytest.fixture
def mock_transfer():
    """Build a mock Transfer."""

    def _create(
        id: str = "tr_test123456",
        amount: int = 6900,
        destination: str = "acct_seller",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "transfer",
                "amount": amount,
                "currency": "usd",
                "destination": destination,
                "created": 1700000000,
            }
        )

    return _create


@pytest.fixture
def mock_refund():
    """Build a mock Refund."""

    def _create(
        id: str = "re_test123456",
        amount: int = 7500,
        status: str = "succeeded",
        payment_intent: str = "pi_test123456",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "refund",
                "amount": amount,
                "status": status,
                "payment_intent": payment_intent,
            }
        )

    return _create


# =============================================================================
# Stripe Webhook Signing
# =============================================================================


@pytest.fixture
def stripe_signature():
    """Build a Stripe-Signature header the way Stripe signs deliveries."""

    def _sign(payload: bytes, secret: str = STRIPE_WEBHOOK_SECRET, timestamp=None) -> str:
        timestamp = int(time.time()) if timestamp is None else timestamp
        signed = f"{timestamp}.{payload.decode()}".encode()
        digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    return _sign
