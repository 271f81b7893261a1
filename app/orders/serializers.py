"""
Serializers for the orders API.

Read serializers render orders and service outcomes; the write
serializers only validate request bodies, the services do the rest.

Serializer Hierarchy:
    OrderSerializer: Full order with derived fee amounts
    OrderStatusSerializer: id/status/timestamps block inside action responses
    ReleaseResponseSerializer / RefundResponseSerializer: Admin action results
    HeldOrdersResponseSerializer: Escrow dashboard
    CheckoutRequestSerializer / CheckoutResponseSerializer: Checkout
    RefundRequestSerializer: Optional partial refund body

Design Decisions:
    - Platform fee and seller amount are computed, never read from storage
    - Amounts are integers in cents
"""

from __future__ import annotations

from rest_framework import serializers

from orders.models import Order
from orders.services.state_machine import DEFAULT_REFUND_REASON
from orders.state_machines import PaymentMethod


# =============================================================================
# Order Serializers
# =============================================================================


class OrderSerializer(serializers.ModelSerializer):
    """
    Order with listing summary and derived fee amounts.

    Usage:
        OrderSerializer(order).data
    """

    listing_title = serializers.CharField(source="listing.title", read_only=True)
    seller_id = serializers.IntegerField(source="listing.seller_id", read_only=True)
    platform_fee_cents = serializers.IntegerField(read_only=True)
    seller_amount_cents = serializers.IntegerField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "listing",
            "listing_title",
            "buyer",
            "seller_id",
            "amount_cents",
            "currency",
            "payment_method",
            "status",
            "delivery_status",
            "platform_fee_cents",
            "seller_amount_cents",
            "external_payment_reference",
            "transfer_reference",
            "refund_reference",
            "refund_amount_cents",
            "created_at",
            "paid_at",
            "released_at",
            "refunded_at",
            "cancelled_at",
            "shipped_at",
            "delivered_at",
            "confirmed_at",
        ]
        read_only_fields = fields


class OrderStatusSerializer(serializers.ModelSerializer):
    """Compact order state returned by admin actions."""

    class Meta:
        model = Order
        fields = ["id", "status", "released_at", "refunded_at"]
        read_only_fields = fields


class MyOrdersSerializer(serializers.Serializer):
    purchases = OrderSerializer(many=True)
    sales = OrderSerializer(many=True)


# =============================================================================
# Admin Action Serializers
# =============================================================================


class TransferSerializer(serializers.Serializer):
    transfer_id = serializers.CharField()
    seller_amount = serializers.IntegerField()
    platform_fee = serializers.IntegerField()


class ReleaseResponseSerializer(serializers.Serializer):
    """
    Response body for a successful release.

    Usage:
        ReleaseResponseSerializer.from_outcome(outcome)
    """

    transfer = TransferSerializer()
    order = OrderStatusSerializer()

    @classmethod
    def from_outcome(cls, outcome) -> dict:
        return cls(
            {
                "transfer": {
                    "transfer_id": outcome.transfer.transfer_id,
                    "seller_amount": outcome.split.seller_amount_cents,
                    "platform_fee": outcome.split.platform_fee_cents,
                },
                "order": outcome.order,
            }
        ).data


class RefundRequestSerializer(serializers.Serializer):
    """Optional body for a refund: partial amount and reason."""

    amount_cents = serializers.IntegerField(required=False, min_value=1)
    reason = serializers.CharField(
        max_length=200,
        default=DEFAULT_REFUND_REASON,
    )


class RefundSerializer(serializers.Serializer):
    refund_id = serializers.CharField()
    amount = serializers.IntegerField()
    status = serializers.CharField()


class RefundResponseSerializer(serializers.Serializer):
    refund = RefundSerializer()
    order = OrderStatusSerializer()

    @classmethod
    def from_outcome(cls, outcome) -> dict:
        return cls(
            {
                "refund": {
                    "refund_id": outcome.refund.refund_id,
                    "amount": outcome.refund.amount_cents,
                    "status": outcome.refund.status,
                },
                "order": outcome.order,
            }
        ).data


# =============================================================================
# Dashboard Serializers
# =============================================================================


class HeldOrderSerializer(serializers.Serializer):
    """One row of the escrow dashboard."""

    id = serializers.UUIDField(source="order.id")
    listing_id = serializers.UUIDField(source="order.listing_id")
    listing_title = serializers.CharField(source="order.listing.title")
    buyer_email = serializers.EmailField(source="order.buyer.email")
    seller_email = serializers.EmailField(source="order.listing.seller.email")
    amount_cents = serializers.IntegerField(source="split.amount_cents")
    platform_fee_cents = serializers.IntegerField(source="split.platform_fee_cents")
    seller_amount_cents = serializers.IntegerField(source="split.seller_amount_cents")
    delivery_status = serializers.CharField(source="order.delivery_status")
    paid_at = serializers.DateTimeField(source="order.paid_at")
    can_release = serializers.BooleanField()


class HeldOrdersSummarySerializer(serializers.Serializer):
    total_orders = serializers.IntegerField()
    total_held_amount = serializers.IntegerField()
    total_platform_fees = serializers.IntegerField()
    total_seller_payouts = serializers.IntegerField()
    average_order_value = serializers.IntegerField()


class HeldOrdersResponseSerializer(serializers.Serializer):
    orders = HeldOrderSerializer(many=True)
    summary = HeldOrdersSummarySerializer()


class StatusCountsResponseSerializer(serializers.Serializer):
    counts = serializers.DictField(child=serializers.IntegerField())
    total = serializers.IntegerField()


# =============================================================================
# Checkout Serializers
# =============================================================================


class CheckoutRequestSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices,
        default=PaymentMethod.STRIPE,
    )


class CheckoutResponseSerializer(serializers.Serializer):
    order = OrderSerializer()
    checkout_url = serializers.URLField()
    session_id = serializers.CharField()
    platform_fee = serializers.IntegerField()
