"""
Tests for the gateway interface helpers and the in-memory gateway.

Tests cover:
- Idempotency key generation
- Gateway lookup by payment method
- FakeGateway idempotency, failure injection and webhook signing
- FakeGateway checkout sessions and payout accounts
"""

import json
import uuid

import pytest

from core.exceptions import ValidationError
from payments.adapters import (
    FakeGateway,
    IdempotencyKeyGenerator,
    StripeGateway,
    get_gateway,
    reset_gateways,
)
from payments.exceptions import (
    GatewayAuthFailureError,
    GatewayRejectedError,
    GatewayUnavailableError,
    UnauthenticatedWebhookError,
)


# =============================================================================
# IdempotencyKeyGenerator Tests
# =============================================================================


class TestIdempotencyKeyGenerator:
    """Tests for IdempotencyKeyGenerator."""

    def test_generate_key_format(self):
        entity_id = uuid.uuid4()

        key = IdempotencyKeyGenerator.generate("release", entity_id)

        parts = key.split(":")
        assert len(parts) == 4
        assert parts[0] == "release"
        assert parts[1] == str(entity_id)
        assert parts[2] == "1"
        assert len(parts[3]) == 8

    def test_same_inputs_same_key(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate("refund", entity_id) == (
            IdempotencyKeyGenerator.generate("refund", str(entity_id))
        )

    def test_operation_and_attempt_change_key(self):
        entity_id = uuid.uuid4()
        release = IdempotencyKeyGenerator.generate("release", entity_id)

        assert release != IdempotencyKeyGenerator.generate("refund", entity_id)
        assert release != IdempotencyKeyGenerator.generate("release", entity_id, attempt=2)

    def test_key_depends_on_secret(self, settings):
        entity_id = uuid.uuid4()
        original = IdempotencyKeyGenerator.generate("release", entity_id)

        settings.SECRET_KEY = "another-secret"

        assert IdempotencyKeyGenerator.generate("release", entity_id) != original


# =============================================================================
# Registry Tests
# =============================================================================


class TestGetGateway:
    """Tests for get_gateway."""

    def test_returns_configured_gateway(self, fake_gateway):
        assert isinstance(get_gateway("stripe"), FakeGateway)

    def test_instances_are_reused(self, fake_gateway):
        assert get_gateway("stripe") is get_gateway("stripe")
        assert get_gateway("stripe") is fake_gateway

    def test_unconfigured_method_is_auth_failure(self, settings):
        settings.PAYMENT_GATEWAYS = {"stripe": "payments.adapters.FakeGateway"}
        reset_gateways()

        with pytest.raises(GatewayAuthFailureError) as exc_info:
            get_gateway("paypal")

        assert exc_info.value.provider_code == "gateway_not_configured"

    def test_reset_builds_new_instances(self, settings):
        settings.PAYMENT_GATEWAYS = {"stripe": "payments.adapters.StripeGateway"}
        reset_gateways()

        gateway = get_gateway("stripe")

        assert isinstance(gateway, StripeGateway)
        reset_gateways()
        assert get_gateway("stripe") is not gateway


# =============================================================================
# FakeGateway Tests
# =============================================================================


class TestFakeGatewayMoneyMovement:
    """Tests for FakeGateway transfers and refunds."""

    def test_transfer_records_call(self):
        gateway = FakeGateway(secret="s")

        transfer = gateway.transfer_to_seller(
            order_id=uuid.uuid4(),
            seller_payout_account="acct_1",
            seller_amount_cents=6900,
            idempotency_key="k1",
        )

        assert transfer.transfer_id.startswith("tr_fake_")
        assert transfer.amount_cents == 6900
        assert gateway.transfers == [transfer]

    def test_repeated_key_returns_original_transfer(self):
        gateway = FakeGateway(secret="s")
        order_id = uuid.uuid4()

        first = gateway.transfer_to_seller(
            order_id=order_id,
            seller_payout_account="acct_1",
            seller_amount_cents=6900,
            idempotency_key="k1",
        )
        second = gateway.transfer_to_seller(
            order_id=order_id,
            seller_payout_account="acct_1",
            seller_amount_cents=6900,
            idempotency_key="k1",
        )

        assert second.transfer_id == first.transfer_id
        assert len(gateway.transfers) == 1

    def test_ineligible_account_is_rejected(self):
        gateway = FakeGateway(secret="s")
        gateway.ineligible_accounts.add("acct_blocked")

        with pytest.raises(GatewayRejectedError) as exc_info:
            gateway.transfer_to_seller(
                order_id=uuid.uuid4(),
                seller_payout_account="acct_blocked",
                seller_amount_cents=100,
                idempotency_key="k1",
            )

        assert exc_info.value.provider_code == "account_invalid"
        assert gateway.transfers == []

    def test_fail_next_raises_in_order_then_recovers(self):
        gateway = FakeGateway(secret="s")
        gateway.fail_next(
            GatewayUnavailableError("down"),
            GatewayRejectedError("no"),
        )
        call = dict(
            order_id=uuid.uuid4(),
            seller_payout_account="acct_1",
            seller_amount_cents=100,
            idempotency_key="k1",
        )

        with pytest.raises(GatewayUnavailableError):
            gateway.transfer_to_seller(**call)
        with pytest.raises(GatewayRejectedError):
            gateway.transfer_to_seller(**call)

        assert gateway.transfer_to_seller(**call).amount_cents == 100

    def test_refund_cannot_exceed_captured_amount(self):
        gateway = FakeGateway(secret="s")
        gateway.captured_amounts["pi_1"] = 5000

        gateway.refund(
            order_id=uuid.uuid4(),
            external_reference="pi_1",
            refund_amount_cents=3000,
            idempotency_key="r1",
        )
        with pytest.raises(GatewayRejectedError) as exc_info:
            gateway.refund(
                order_id=uuid.uuid4(),
                external_reference="pi_1",
                refund_amount_cents=2500,
                idempotency_key="r2",
            )

        assert exc_info.value.provider_code == "amount_too_large"

    def test_uncaptured_reference_is_rejected(self):
        gateway = FakeGateway(secret="s")
        gateway.uncaptured_references.add("pi_open")

        with pytest.raises(GatewayRejectedError):
            gateway.confirm_capture(
                order_id=uuid.uuid4(),
                external_reference="pi_open",
                captured_amount_cents=100,
            )

    def test_reported_capture_amount_overrides_caller(self):
        gateway = FakeGateway(secret="s")
        gateway.captured_amounts["pi_1"] = 4000

        confirmation = gateway.confirm_capture(
            order_id=uuid.uuid4(),
            external_reference="pi_1",
            captured_amount_cents=5000,
        )

        assert confirmation.amount_cents == 4000

    def test_reset_clears_state(self):
        gateway = FakeGateway(secret="s")
        gateway.transfer_to_seller(
            order_id=uuid.uuid4(),
            seller_payout_account="acct_1",
            seller_amount_cents=100,
            idempotency_key="k1",
        )
        gateway.fail_next(GatewayUnavailableError("down"))

        gateway.reset()

        assert gateway.transfers == []
        transfer = gateway.transfer_to_seller(
            order_id=uuid.uuid4(),
            seller_payout_account="acct_1",
            seller_amount_cents=100,
            idempotency_key="k1",
        )
        assert gateway.transfers == [transfer]


class TestFakeGatewayCheckout:
    """Tests for FakeGateway checkout sessions."""

    def open_session(self, gateway, mocker, amount_cents=4500):
        order = mocker.Mock(id=uuid.uuid4(), amount_cents=amount_cents)
        return gateway.create_checkout_session(
            order=order,
            listing=mocker.Mock(),
            success_url="https://shop.test/ok",
            cancel_url="https://shop.test/cancel",
            idempotency_key=f"checkout:{order.id}",
        )

    def test_expire_open_session(self, mocker):
        gateway = FakeGateway(secret="s")
        session = self.open_session(gateway, mocker)

        gateway.expire_checkout_session(order_id=uuid.uuid4(), session_id=session.session_id)

        assert gateway.expired_sessions == {session.session_id}

    def test_expire_ignores_primed_failures(self, mocker):
        gateway = FakeGateway(secret="s")
        session = self.open_session(gateway, mocker)
        gateway.fail_next(GatewayUnavailableError("down"))

        gateway.expire_checkout_session(order_id=uuid.uuid4(), session_id=session.session_id)

        with pytest.raises(GatewayUnavailableError):
            gateway.capture_approved_checkout(
                order_id=uuid.uuid4(), session_id=session.session_id, idempotency_key="k"
            )

    def test_capture_approved_checkout(self, mocker):
        gateway = FakeGateway(secret="s")
        session = self.open_session(gateway, mocker, amount_cents=4500)

        first = gateway.capture_approved_checkout(
            order_id=uuid.uuid4(), session_id=session.session_id, idempotency_key="capture:k"
        )
        again = gateway.capture_approved_checkout(
            order_id=uuid.uuid4(), session_id=session.session_id, idempotency_key="capture:k"
        )

        assert first == again
        assert first.amount_cents == 4500
        assert gateway.captured_amounts[first.external_reference] == 4500

    def test_paid_session_cannot_be_expired(self, mocker):
        gateway = FakeGateway(secret="s")
        session = self.open_session(gateway, mocker)
        gateway.capture_approved_checkout(
            order_id=uuid.uuid4(), session_id=session.session_id, idempotency_key="capture:k"
        )

        with pytest.raises(GatewayRejectedError) as exc_info:
            gateway.expire_checkout_session(order_id=uuid.uuid4(), session_id=session.session_id)

        assert exc_info.value.provider_code == "checkout_session_complete"

    def test_expired_session_cannot_be_captured(self, mocker):
        gateway = FakeGateway(secret="s")
        session = self.open_session(gateway, mocker)
        gateway.expire_checkout_session(order_id=uuid.uuid4(), session_id=session.session_id)

        with pytest.raises(GatewayRejectedError) as exc_info:
            gateway.capture_approved_checkout(
                order_id=uuid.uuid4(), session_id=session.session_id, idempotency_key="capture:k"
            )

        assert exc_info.value.provider_code == "checkout_not_capturable"


class TestFakeGatewayPayoutAccounts:
    def test_new_account_needs_onboarding(self):
        gateway = FakeGateway(secret="s")

        account_id = gateway.create_payout_account(email="s@example.com", idempotency_key="k")

        assert gateway.create_payout_account(email="s@example.com", idempotency_key="k") == account_id
        status = gateway.retrieve_payout_account(account_id)
        assert status.payouts_enabled is False
        assert status.requirements_due == ("external_account",)

    def test_links_for_known_account(self):
        gateway = FakeGateway(secret="s")
        account_id = gateway.create_payout_account(email="s@example.com", idempotency_key="k")

        link = gateway.create_onboarding_link(
            account_id=account_id, refresh_url="https://r", return_url="https://d"
        )

        assert link.url.endswith(account_id)
        assert link.expires_at is not None
        assert gateway.create_dashboard_link(account_id).endswith(account_id)

    def test_unknown_account_rejected(self):
        with pytest.raises(GatewayRejectedError) as exc_info:
            FakeGateway(secret="s").retrieve_payout_account("acct_missing")

        assert exc_info.value.provider_code == "account_invalid"


class TestFakeGatewayWebhooks:
    """Tests for FakeGateway webhook signing."""

    def test_signed_payload_verifies(self):
        gateway = FakeGateway(secret="whsec")
        payload = json.dumps({"id": "evt_1", "type": "x"}).encode()

        assert gateway.verify_webhook(payload, gateway.sign(payload))["id"] == "evt_1"

    def test_bad_signature_rejected(self):
        gateway = FakeGateway(secret="whsec")
        payload = b'{"id": "evt_1"}'

        with pytest.raises(UnauthenticatedWebhookError):
            gateway.verify_webhook(payload, FakeGateway(secret="other").sign(payload))

    def test_missing_signature_rejected(self):
        gateway = FakeGateway(secret="whsec")

        with pytest.raises(UnauthenticatedWebhookError):
            gateway.verify_webhook(b"{}", "")

    def test_unset_secret_rejects_everything(self):
        gateway = FakeGateway(secret="")
        payload = b"{}"

        with pytest.raises(UnauthenticatedWebhookError):
            gateway.verify_webhook(payload, gateway.sign(payload))

    def test_invalid_json_is_validation_error(self):
        gateway = FakeGateway(secret="whsec")
        payload = b"not json"

        with pytest.raises(ValidationError):
            gateway.verify_webhook(payload, gateway.sign(payload))

    def test_secret_defaults_to_setting(self, settings):
        settings.PAYMENT_WEBHOOK_SECRET = "from-settings"
        payload = b"{}"

        assert FakeGateway().sign(payload) == FakeGateway(secret="from-settings").sign(payload)
