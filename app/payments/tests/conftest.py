"""
Pytest fixtures for payment app tests.

Sections:
    - Parties: a seller without a payout account
    - API Clients: JWT-authenticated seller client
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory


@pytest.fixture
def seller(db):
    return UserFactory(email="seller@example.com")


@pytest.fixture
def seller_client(seller):
    client = APIClient()
    refresh = RefreshToken.for_user(seller)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


@pytest.fixture
def onboarding_urls(settings):
    settings.PAYOUT_ACCOUNT_PROVIDER = "stripe"
    settings.ONBOARDING_REFRESH_URL = "https://shop.test/payouts/refresh"
    settings.ONBOARDING_RETURN_URL = "https://shop.test/payouts/done"
