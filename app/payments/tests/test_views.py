"""
Tests for the payout account endpoints.

Tests cover:
- Creating the provider account and replaying the request
- Status refreshed from the provider
- Onboarding and dashboard links
- PayPal payout email
- Authentication
"""

import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from payments.adapters import PayoutAccountStatus
from payments.models import ConnectedAccount
from payments.state_machines import OnboardingStatus
from payments.tests.factories import ConnectedAccountFactory

pytestmark = pytest.mark.usefixtures("onboarding_urls")


class TestPayoutAccountView:
    def test_create_account(self, seller_client, seller, fake_gateway):
        response = seller_client.post(reverse("payments:payout_account"))

        assert response.status_code == status.HTTP_201_CREATED
        account = ConnectedAccount.objects.get(user=seller)
        assert response.data["stripe_account_id"] == account.stripe_account_id
        assert response.data["onboarding_status"] == OnboardingStatus.PENDING
        assert response.data["is_ready_for_payouts"] is False
        assert account.stripe_account_id in fake_gateway.payout_accounts

    def test_create_twice_returns_existing(self, seller_client, seller):
        first = seller_client.post(reverse("payments:payout_account"))

        second = seller_client.post(reverse("payments:payout_account"))

        assert second.status_code == status.HTTP_200_OK
        assert second.data["id"] == first.data["id"]
        assert ConnectedAccount.objects.filter(user=seller).count() == 1

    def test_status_without_account(self, seller_client):
        response = seller_client.get(reverse("payments:payout_account"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["has_account"] is False
        assert response.data["account"] is None
        assert response.data["requirements_due"] == []

    def test_status_synced_from_provider(self, seller_client, seller, fake_gateway):
        seller_client.post(reverse("payments:payout_account"))
        account = ConnectedAccount.objects.get(user=seller)
        fake_gateway.payout_accounts[account.stripe_account_id] = PayoutAccountStatus(
            account_id=account.stripe_account_id,
            payouts_enabled=True,
            details_submitted=True,
        )

        response = seller_client.get(reverse("payments:payout_account"))

        assert response.data["has_account"] is True
        assert response.data["details_submitted"] is True
        assert response.data["account"]["onboarding_status"] == OnboardingStatus.COMPLETE
        assert response.data["account"]["is_ready_for_payouts"] is True

    def test_set_paypal_email(self, seller_client, seller):
        response = seller_client.patch(
            reverse("payments:payout_account"),
            {"paypal_email": "seller@paypal.example"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert ConnectedAccount.objects.get(user=seller).paypal_email == "seller@paypal.example"

    def test_invalid_paypal_email(self, seller_client):
        response = seller_client.patch(
            reverse("payments:payout_account"),
            {"paypal_email": "not-an-email"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_requires_authentication(self, db):
        response = APIClient().post(reverse("payments:payout_account"))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestLinks:
    def test_onboarding_link(self, seller_client, seller):
        seller_client.post(reverse("payments:payout_account"))

        response = seller_client.post(reverse("payments:onboarding_link"))

        assert response.status_code == status.HTTP_200_OK
        account = ConnectedAccount.objects.get(user=seller)
        assert response.data["url"].endswith(account.stripe_account_id)
        assert response.data["expires_at"] is not None
        assert account.onboarding_status == OnboardingStatus.IN_PROGRESS

    def test_onboarding_link_without_account(self, seller_client):
        response = seller_client.post(reverse("payments:onboarding_link"))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "PAYOUT_ACCOUNT_NOT_FOUND"

    def test_paypal_only_seller_has_no_dashboard(self, seller_client, seller):
        ConnectedAccountFactory(user=seller, stripe_account_id=None, paypal_email="s@paypal.example")

        response = seller_client.post(reverse("payments:dashboard_link"))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_dashboard_link(self, seller_client):
        seller_client.post(reverse("payments:payout_account"))

        response = seller_client.post(reverse("payments:dashboard_link"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["url"].startswith("https://connect.example.test/express/")
