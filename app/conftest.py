"""
Shared pytest configuration for the escrow backend.

This module tunes settings for the test run, auto-marks tests by file
name and provides the project-wide fake payment gateway. App-specific
fixtures are defined in each app's tests/conftest.py.
"""

import pytest


def pytest_configure():
    """Adjust settings for fast, deterministic test runs."""
    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Test client requests are plain HTTP
    settings.SECURE_SSL_REDIRECT = False

    # PBKDF2 is too slow for factories that create many users
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full escrow journeys)
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_fees.py, test_adapters.py, etc. → unit
    - Unmatched files → integration

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_state_machine.py",
        "test_admin_service.py",
        "test_checkout_service.py",
        "test_tasks.py",
        "test_handlers.py",
        "test_locks.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_fees.py",
        "test_managers.py",
        "test_adapters.py",
        "test_events.py",
        "test_exceptions.py",
        "test_capabilities.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Payment Gateway
# =============================================================================

WEBHOOK_TEST_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def fake_gateway(settings):
    """
    Route every payment method to a fresh in-memory FakeGateway.

    Autouse so no test can reach the real provider by accident. Tests
    that need StripeGateway instantiate it directly.

    Usage:
        def test_release(fake_gateway, held_order):
            fake_gateway.fail_next(GatewayUnavailableError("down"))
    """
    from payments.adapters import get_gateway, reset_gateways

    settings.PAYMENT_GATEWAYS = {
        "stripe": "payments.adapters.FakeGateway",
        "paypal": "payments.adapters.FakeGateway",
    }
    settings.PAYMENT_WEBHOOK_SECRET = WEBHOOK_TEST_SECRET
    reset_gateways()

    yield get_gateway("stripe")

    reset_gateways()
