"""
Tests for PayoutAccountService.

Tests cover:
- Onboarding status derived from the provider's account view
- Account creation and its idempotency
- Onboarding links moving PENDING accounts forward
- Status updates from the provider
"""

import pytest

from authentication.tests.factories import UserFactory
from core.exceptions import NotFoundError
from payments.adapters import FakeGateway, IdempotencyKeyGenerator, PayoutAccountStatus
from payments.models import ConnectedAccount
from payments.services import PayoutAccountService, onboarding_status_for
from payments.state_machines import OnboardingStatus
from payments.tests.factories import ConnectedAccountFactory


@pytest.fixture
def service(settings):
    settings.PAYOUT_ACCOUNT_PROVIDER = "stripe"
    return PayoutAccountService()


@pytest.fixture
def seller(db):
    return UserFactory(email="seller@example.com")


def account_status(**overrides):
    values = {
        "account_id": "acct_1",
        "payouts_enabled": True,
        "details_submitted": True,
        "requirements_due": (),
        "disabled_reason": "",
    }
    values.update(overrides)
    return PayoutAccountStatus(**values)


class TestOnboardingStatusFor:
    @pytest.mark.parametrize(
        "overrides,current,expected",
        [
            ({}, OnboardingStatus.IN_PROGRESS, OnboardingStatus.COMPLETE),
            ({"disabled_reason": "rejected.fraud"}, OnboardingStatus.COMPLETE, OnboardingStatus.RESTRICTED),
            ({"requirements_due": ("external_account",)}, OnboardingStatus.COMPLETE, OnboardingStatus.IN_PROGRESS),
            ({"details_submitted": False}, OnboardingStatus.PENDING, OnboardingStatus.PENDING),
            ({"details_submitted": False}, OnboardingStatus.IN_PROGRESS, OnboardingStatus.IN_PROGRESS),
        ],
    )
    def test_status(self, overrides, current, expected):
        assert onboarding_status_for(account_status(**overrides), current) == expected


class TestCreateAccount:
    def test_creates_pending_account(self, service, seller, fake_gateway):
        account, created = service.create_account(seller)

        assert created is True
        assert account.onboarding_status == OnboardingStatus.PENDING
        assert account.payouts_enabled is False
        assert account.stripe_account_id in fake_gateway.payout_accounts

    def test_existing_account_returned(self, service, seller, fake_gateway):
        first, _ = service.create_account(seller)

        second, created = service.create_account(seller)

        assert created is False
        assert second.pk == first.pk
        assert len(fake_gateway.payout_accounts) == 1

    def test_paypal_only_seller_gets_provider_account(self, service, seller):
        existing = ConnectedAccountFactory(
            user=seller, stripe_account_id=None, paypal_email="s@paypal.example"
        )

        account, created = service.create_account(seller)

        assert created is True
        assert account.pk == existing.pk
        assert account.stripe_account_id
        assert account.paypal_email == "s@paypal.example"

    def test_retry_after_lost_response_reuses_provider_account(self, seller):
        gateway = FakeGateway(secret="unused")
        service = PayoutAccountService(gateway_resolver=lambda provider: gateway)
        lost_account_id = gateway.create_payout_account(
            email=seller.email,
            idempotency_key=IdempotencyKeyGenerator.generate("payout_account", seller.pk),
        )

        account, _ = service.create_account(seller)

        assert account.stripe_account_id == lost_account_id
        assert len(gateway.payout_accounts) == 1


class TestLinks:
    def test_onboarding_link_moves_pending_forward(self, service, seller):
        account, _ = service.create_account(seller)

        link = service.create_onboarding_link(seller)

        assert link.url.endswith(account.stripe_account_id)
        stored = ConnectedAccount.objects.get(pk=account.pk)
        assert stored.onboarding_status == OnboardingStatus.IN_PROGRESS

    def test_onboarding_link_keeps_later_status(self, service, seller, fake_gateway):
        account = ConnectedAccountFactory(user=seller, stripe_account_id="acct_done")
        fake_gateway.payout_accounts["acct_done"] = account_status(account_id="acct_done")

        service.create_onboarding_link(seller)

        assert ConnectedAccount.objects.get(pk=account.pk).onboarding_status == OnboardingStatus.COMPLETE

    def test_links_need_provider_account(self, service, seller):
        with pytest.raises(NotFoundError) as exc_info:
            service.create_onboarding_link(seller)

        assert exc_info.value.error_code == "PAYOUT_ACCOUNT_NOT_FOUND"

        with pytest.raises(NotFoundError):
            service.create_dashboard_link(seller)


class TestApplyStatus:
    def test_updates_matching_account(self, service, seller):
        account = ConnectedAccountFactory(
            user=seller,
            stripe_account_id="acct_1",
            onboarding_status=OnboardingStatus.IN_PROGRESS,
            payouts_enabled=False,
        )

        updated = service.apply_status(account_status())

        assert updated.pk == account.pk
        stored = ConnectedAccount.objects.get(pk=account.pk)
        assert stored.onboarding_status == OnboardingStatus.COMPLETE
        assert stored.payouts_enabled is True

    def test_unknown_account(self, service, db):
        assert service.apply_status(account_status(account_id="acct_unknown")) is None

    def test_refresh_without_account(self, service, seller):
        assert service.refresh_status(seller) == (None, None)


class TestPayPalEmail:
    def test_creates_account_for_new_seller(self, service, seller):
        account = service.set_paypal_email(seller, "seller@paypal.example")

        assert account.paypal_email == "seller@paypal.example"
        assert account.stripe_account_id is None
        assert account.payout_destination("paypal") == "seller@paypal.example"

    def test_updates_existing_account(self, service, seller):
        existing = ConnectedAccountFactory(user=seller)

        account = service.set_paypal_email(seller, "new@paypal.example")

        assert account.pk == existing.pk
        assert ConnectedAccount.objects.get(pk=existing.pk).paypal_email == "new@paypal.example"
