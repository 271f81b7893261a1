"""
Pytest fixtures for order tests.

Sections:
    - Parties: seller (with payout account), buyer, listing
    - Orders: pending and held orders for the listing
    - Operators: users holding escrow capabilities
    - API Clients: JWT-authenticated clients

The in-memory gateway comes from the project-wide ``fake_gateway``
fixture in app/conftest.py.
"""

import pytest
from django.contrib.auth.models import Permission
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.models import User
from authentication.tests.factories import UserFactory
from listings.tests.factories import ListingFactory
from orders.tests.factories import OrderFactory
from payments.tests.factories import ConnectedAccountFactory

SELLER_ACCOUNT_ID = "acct_seller_test"


# =============================================================================
# Parties
# =============================================================================


@pytest.fixture
def seller(db):
    return UserFactory(email="seller@example.com")


@pytest.fixture
def buyer(db):
    return UserFactory(email="buyer@example.com")


@pytest.fixture
def connected_account(db, seller):
    """Seller payout account ready to receive transfers."""
    return ConnectedAccountFactory(user=seller, stripe_account_id=SELLER_ACCOUNT_ID)


@pytest.fixture
def listing(db, seller):
    """Active listing priced at 75.00."""
    return ListingFactory(seller=seller, title="Film camera", price_cents=7500)


# =============================================================================
# Orders
# =============================================================================


@pytest.fixture
def pending_order(db, listing, buyer):
    return OrderFactory(listing=listing, buyer=buyer)


@pytest.fixture
def held_order(db, listing, buyer, connected_account, fake_gateway):
    """
    Order captured into escrow for 7500 cents.

    The fake gateway knows the capture so refunds are checked against it.
    """
    order = OrderFactory(
        listing=listing,
        buyer=buyer,
        held=True,
        external_payment_reference="pi_held_order",
    )
    fake_gateway.captured_amounts["pi_held_order"] = order.amount_cents
    return order


# =============================================================================
# Operators
# =============================================================================


@pytest.fixture
def make_operator(db):
    """
    Factory fixture: user holding the given Order permissions.

    The user is re-read after granting so Django's permission cache
    reflects the new grants.

    Usage:
        operator = make_operator("release_funds", "refund_order")
    """

    def _make(*codenames):
        user = UserFactory(is_staff=True)
        permissions = Permission.objects.filter(
            content_type__app_label="orders",
            codename__in=codenames,
        )
        user.user_permissions.add(*permissions)
        return User.objects.get(pk=user.pk)

    return _make


@pytest.fixture
def release_operator(make_operator):
    return make_operator("release_funds")


@pytest.fixture
def refund_operator(make_operator):
    return make_operator("refund_order")


@pytest.fixture
def dashboard_operator(make_operator):
    return make_operator("view_escrow_dashboard")


@pytest.fixture
def superuser(db):
    return UserFactory(is_staff=True, is_superuser=True)


# =============================================================================
# API Clients
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client_factory(db):
    """
    Factory fixture creating API clients authenticated as a given user.

    Usage:
        def test_example(authenticated_client_factory, buyer):
            client = authenticated_client_factory(buyer)
    """

    def _make_client(user):
        client = APIClient()
        refresh = RefreshToken.for_user(user)
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
        return client

    return _make_client


@pytest.fixture
def buyer_client(authenticated_client_factory, buyer):
    return authenticated_client_factory(buyer)


@pytest.fixture
def seller_client(authenticated_client_factory, seller):
    return authenticated_client_factory(seller)
