"""
Tests for payment event normalization.
"""

import uuid

import pytest

from core.exceptions import ValidationError
from payments.webhooks.events import (
    CHECKOUT_SESSION_COMPLETED,
    PAYMENT_INTENT_SUCCEEDED,
    PAYPAL_CAPTURE_COMPLETED,
    get_event_id,
    get_event_type,
    normalize_account_event,
    normalize_approval,
    normalize_event,
)


class TestNormalizeEvent:
    def test_checkout_session_completed(self, checkout_completed_payload):
        order_id = uuid.uuid4()

        payment = normalize_event(checkout_completed_payload(order_id, amount_total=7500))

        assert payment.order_id == order_id
        assert payment.external_reference == "pi_test_webhook_123"
        assert payment.captured_amount_cents == 7500
        assert payment.event_type == CHECKOUT_SESSION_COMPLETED

    def test_payment_intent_succeeded(self, payment_intent_succeeded_payload):
        order_id = uuid.uuid4()

        payment = normalize_event(
            payment_intent_succeeded_payload(order_id, amount_received=4500, payment_intent="pi_abc")
        )

        assert payment.external_reference == "pi_abc"
        assert payment.captured_amount_cents == 4500
        assert payment.event_type == PAYMENT_INTENT_SUCCEEDED

    def test_camel_case_order_id_accepted(self, checkout_completed_payload):
        order_id = uuid.uuid4()
        event = checkout_completed_payload(order_id)
        event["data"]["object"]["metadata"] = {"orderId": str(order_id)}

        assert normalize_event(event).order_id == order_id

    def test_unsupported_type(self, unknown_event_payload):
        with pytest.raises(ValidationError):
            normalize_event(unknown_event_payload)

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda obj: obj.pop("payment_intent"),
            lambda obj: obj.update(payment_intent=None),
            lambda obj: obj.pop("metadata"),
            lambda obj: obj.update(metadata={"order_id": "not-a-uuid"}),
            lambda obj: obj.pop("amount_total"),
            lambda obj: obj.update(amount_total=0),
            lambda obj: obj.update(amount_total="4500"),
            lambda obj: obj.update(amount_total=True),
        ],
    )
    def test_malformed_object(self, checkout_completed_payload, mutate):
        event = checkout_completed_payload(uuid.uuid4())
        mutate(event["data"]["object"])

        with pytest.raises(ValidationError):
            normalize_event(event)

    def test_missing_data_object(self, checkout_completed_payload):
        event = checkout_completed_payload(uuid.uuid4())
        event["data"] = {}

        with pytest.raises(ValidationError):
            normalize_event(event)

    @pytest.mark.parametrize("data", ["not-an-object", ["object"], 42])
    def test_data_not_an_object(self, checkout_completed_payload, data):
        event = checkout_completed_payload(uuid.uuid4())
        event["data"] = data

        with pytest.raises(ValidationError) as exc_info:
            normalize_event(event)

        assert exc_info.value.details == {"field": "data"}

    @pytest.mark.parametrize("metadata", ["order_id=1", ["order_id"], 7])
    def test_metadata_not_an_object(self, checkout_completed_payload, metadata):
        event = checkout_completed_payload(uuid.uuid4())
        event["data"]["object"]["metadata"] = metadata

        with pytest.raises(ValidationError) as exc_info:
            normalize_event(event)

        assert exc_info.value.details == {"field": "metadata"}

    def test_null_metadata_reports_missing_order_id(self, checkout_completed_payload):
        event = checkout_completed_payload(uuid.uuid4())
        event["data"]["object"]["metadata"] = None

        with pytest.raises(ValidationError) as exc_info:
            normalize_event(event)

        assert exc_info.value.details == {"field": "metadata.order_id"}


class TestPayPalEvents:
    def test_capture_completed(self, paypal_capture_payload):
        order_id = uuid.uuid4()

        payment = normalize_event(paypal_capture_payload(order_id, value="75.10"))

        assert payment.order_id == order_id
        assert payment.external_reference == "CAP123"
        assert payment.captured_amount_cents == 7510
        assert payment.event_type == PAYPAL_CAPTURE_COMPLETED

    @pytest.mark.parametrize("value", [None, "", "abc", "0.00", 45])
    def test_capture_bad_amount(self, paypal_capture_payload, value):
        event = paypal_capture_payload(uuid.uuid4())
        event["resource"]["amount"]["value"] = value

        with pytest.raises(ValidationError):
            normalize_event(event)

    def test_capture_resource_not_an_object(self, paypal_capture_payload):
        event = paypal_capture_payload(uuid.uuid4())
        event["resource"] = "capture"

        with pytest.raises(ValidationError):
            normalize_event(event)

    def test_order_approved(self, paypal_approved_payload):
        order_id = uuid.uuid4()

        approval = normalize_approval(paypal_approved_payload(order_id, "5O190127TN364715T"))

        assert approval.session_id == "5O190127TN364715T"
        assert approval.order_id == order_id

    @pytest.mark.parametrize("units", [[], None, ["unit"], [{"custom_id": "not-a-uuid"}]])
    def test_order_approved_malformed_units(self, paypal_approved_payload, units):
        event = paypal_approved_payload(uuid.uuid4(), "5O190127TN364715T")
        event["resource"]["purchase_units"] = units

        with pytest.raises(ValidationError):
            normalize_approval(event)


class TestAccountEvents:
    def test_account_updated(self, account_updated_payload):
        status = normalize_account_event(
            account_updated_payload(payouts_enabled=False, currently_due=["external_account"])
        )

        assert status.account_id == "acct_seller_1"
        assert status.payouts_enabled is False
        assert status.requirements_due == ("external_account",)
        assert status.disabled_reason == ""

    def test_missing_account_id(self, account_updated_payload):
        event = account_updated_payload()
        del event["data"]["object"]["id"]

        with pytest.raises(ValidationError):
            normalize_account_event(event)

    @pytest.mark.parametrize("requirements", ["due", {"currently_due": "external_account"}])
    def test_malformed_requirements(self, account_updated_payload, requirements):
        event = account_updated_payload()
        event["data"]["object"]["requirements"] = requirements

        with pytest.raises(ValidationError):
            normalize_account_event(event)


class TestEventEnvelope:
    def test_id_and_type(self, unknown_event_payload):
        assert get_event_id(unknown_event_payload) == "evt_test_unknown_123"
        assert get_event_type(unknown_event_payload) == "customer.subscription.created"

    def test_paypal_event_type_field(self, paypal_capture_payload):
        assert get_event_type(paypal_capture_payload(uuid.uuid4())) == "PAYMENT.CAPTURE.COMPLETED"

    @pytest.mark.parametrize("event", [{}, {"id": ""}, {"id": 42}])
    def test_missing_id(self, event):
        with pytest.raises(ValidationError):
            get_event_id(event)

    @pytest.mark.parametrize("event", [{"id": "evt_1"}, {"id": "evt_1", "type": None}])
    def test_missing_type(self, event):
        with pytest.raises(ValidationError):
            get_event_type(event)
