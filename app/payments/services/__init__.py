"""
Payment services.

Usage:
    from payments.services import PayoutAccountService
"""

from payments.services.onboarding import PayoutAccountService, onboarding_status_for

__all__ = [
    "PayoutAccountService",
    "onboarding_status_for",
]
