"""
Authentication application.

Provides the email-based User model that buyers, sellers and operators
share. Operator capabilities are plain Django permissions on the Order
model; API clients authenticate with simplejwt access tokens.

Usage:
    from authentication.models import User
"""
