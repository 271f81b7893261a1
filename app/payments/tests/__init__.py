"""
Tests for payments app.

This package contains test modules for:
- test_models.py: ConnectedAccount and WebhookEvent model tests

Gateway adapters and webhook intake are tested in payments/adapters/tests/
and payments/webhooks/tests/.

Usage:
    pytest payments/tests/
    pytest payments/webhooks/tests/
"""
