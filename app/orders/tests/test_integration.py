"""
End-to-end escrow journeys through the HTTP API.

Each test drives an order from checkout to a terminal state the way the
buyer, seller, payment provider and operator would: API calls for the
people, signed webhook deliveries for the provider.
"""

import json
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone
from freezegun import freeze_time
from rest_framework import status

from authentication.tests.factories import UserFactory
from listings.models import Listing, ListingStatus
from orders.models import Order
from orders.state_machines import DeliveryStatus, OrderStatus
from orders.tasks import cancel_abandoned_checkouts


@pytest.fixture(autouse=True)
def eight_percent_fee(settings):
    settings.PLATFORM_FEE_BPS = 800


@pytest.fixture
def deliver_payment(client, fake_gateway):
    """Post a signed checkout.session.completed event for an order."""
    counter = iter(range(1, 1000))

    def _deliver(order_id, amount_cents, reference="pi_e2e_1", event_id=None):
        event = {
            "id": event_id or f"evt_e2e_{next(counter)}",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_e2e",
                    "payment_intent": reference,
                    "amount_total": amount_cents,
                    "metadata": {"order_id": str(order_id)},
                }
            },
        }
        body = json.dumps(event).encode()
        return client.post(
            reverse("payments:payment_webhook", kwargs={"provider": "stripe"}),
            data=body,
            content_type="application/json",
            HTTP_X_WEBHOOK_SIGNATURE=fake_gateway.sign(body),
        )

    return _deliver


def start_checkout(client, listing):
    response = client.post(
        reverse("orders:checkout", kwargs={"listing_id": listing.id}),
        {},
        format="json",
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.data["order"]["id"]


class TestEscrowJourneys:
    def test_purchase_ship_and_release(
        self,
        buyer_client,
        seller_client,
        authenticated_client_factory,
        release_operator,
        listing,
        connected_account,
        deliver_payment,
        fake_gateway,
    ):
        order_id = start_checkout(buyer_client, listing)

        response = deliver_payment(order_id, 7500)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["outcome"] == "applied"
        assert Listing.objects.get(pk=listing.pk).status == ListingStatus.SOLD

        # Provider redelivers the same event
        duplicate = deliver_payment(order_id, 7500)
        assert duplicate.json()["outcome"] == "duplicate"

        shipped = seller_client.post(reverse("orders:mark_shipped", kwargs={"order_id": order_id}))
        assert shipped.data["delivery_status"] == DeliveryStatus.SHIPPED

        admin = authenticated_client_factory(release_operator)
        released = admin.post(reverse("orders:release_funds", kwargs={"order_id": order_id}))
        assert released.status_code == status.HTTP_200_OK
        assert released.data["transfer"]["seller_amount"] == 6900
        assert released.data["transfer"]["platform_fee"] == 600

        again = admin.post(reverse("orders:release_funds", kwargs={"order_id": order_id}))
        assert again.status_code == status.HTTP_409_CONFLICT

        order = Order.objects.get(pk=order_id)
        assert order.status == OrderStatus.PAID
        assert order.external_payment_reference == "pi_e2e_1"
        assert order.released_at >= order.paid_at
        assert len(fake_gateway.transfers) == 1

    def test_purchase_and_partial_refund(
        self,
        buyer_client,
        authenticated_client_factory,
        refund_operator,
        listing,
        deliver_payment,
    ):
        order_id = start_checkout(buyer_client, listing)
        deliver_payment(order_id, 7500, reference="pi_refund_me")

        admin = authenticated_client_factory(refund_operator)
        response = admin.post(
            reverse("orders:refund", kwargs={"order_id": order_id}),
            {"amount_cents": 2500, "reason": "item not as described"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        order = Order.objects.get(pk=order_id)
        assert order.status == OrderStatus.REFUNDED
        assert order.refund_amount_cents == 2500

    def test_mismatched_capture_then_abandoned(
        self,
        buyer_client,
        authenticated_client_factory,
        listing,
        deliver_payment,
    ):
        order_id = start_checkout(buyer_client, listing)

        response = deliver_payment(order_id, 5000, reference="pi_wrong_amount")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "AMOUNT_MISMATCH"
        order = Order.objects.get(pk=order_id)
        assert order.status == OrderStatus.PENDING
        assert order.external_payment_reference is None

        with freeze_time(timezone.now() + timedelta(hours=2)):
            assert cancel_abandoned_checkouts() == {"cancelled": 1, "skipped": 0}

        assert Order.objects.get(pk=order_id).status == OrderStatus.CANCELLED

        # The listing can be bought again by someone else
        second_buyer = authenticated_client_factory(UserFactory())
        start_checkout(second_buyer, listing)

    def test_payment_after_abandoned_checkout_is_refunded(
        self,
        buyer_client,
        listing,
        deliver_payment,
        fake_gateway,
    ):
        order_id = start_checkout(buyer_client, listing)
        session_id = Order.objects.get(pk=order_id).checkout_session_id

        with freeze_time(timezone.now() + timedelta(minutes=61)):
            assert cancel_abandoned_checkouts() == {"cancelled": 1, "skipped": 0}

        assert session_id in fake_gateway.expired_sessions

        # The buyer finished paying on a tab opened before the sweep
        response = deliver_payment(order_id, 7500, reference="pi_after_cancel")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["outcome"] == "refunded"
        assert [(r.external_reference, r.amount_cents) for r in fake_gateway.refunds] == [
            ("pi_after_cancel", 7500)
        ]
        order = Order.objects.get(pk=order_id)
        assert order.status == OrderStatus.CANCELLED
        assert order.external_payment_reference is None
        assert Listing.objects.get(pk=listing.pk).status == ListingStatus.ACTIVE

        # Redelivery does not refund twice
        deliver_payment(order_id, 7500, reference="pi_after_cancel", event_id="evt_redelivered")
        assert len(fake_gateway.refunds) == 1
