"""
Tests for authentication app.

This package contains:
- factories.py: UserFactory shared by every app's tests
- test_managers.py: UserManager tests

Usage:
    pytest authentication/tests/
"""
