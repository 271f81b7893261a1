"""
API views for orders.

Endpoints (prefixed with /api/v1/):
    POST orders/listings/{listing_id}/checkout/   Start checkout (buyer)
    GET  orders/mine/                             Own purchases and sales
    GET  orders/{id}/                             Order detail (buyer or seller)
    POST orders/{id}/mark-shipped/                Seller reports shipping
    POST orders/{id}/mark-delivered/              Seller reports delivery
    POST orders/{id}/confirm-delivery/            Buyer confirms receipt
    POST orders/{id}/release-funds/               Release escrow (orders.release)
    POST orders/{id}/refund/                      Refund escrow (orders.refund)
    GET  admin/orders/held/                       Escrow dashboard (orders.view_dashboard)
    GET  admin/orders/stats/                      Counts per status (orders.view_dashboard)

Design Decisions:
    - Views only parse input and render output; services do the work
    - Domain errors propagate to core.exception_handler, which maps them
      to status codes (403, 404, 409, 422, 502)
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.exceptions import ForbiddenError, OrderNotFoundError
from orders.models import Order
from orders.serializers import (
    CheckoutRequestSerializer,
    CheckoutResponseSerializer,
    HeldOrdersResponseSerializer,
    MyOrdersSerializer,
    OrderSerializer,
    RefundRequestSerializer,
    RefundResponseSerializer,
    ReleaseResponseSerializer,
    StatusCountsResponseSerializer,
)
from orders.services import OrderAdminService, OrderCheckoutService, OrderStateMachine

ERROR_RESPONSES = {
    403: OpenApiResponse(description="Actor may not perform this action"),
    404: OpenApiResponse(description="Order not found"),
    409: OpenApiResponse(description="Invalid state transition or concurrent modification"),
}

GATEWAY_ERROR_RESPONSES = {
    422: OpenApiResponse(description="Payment provider rejected the operation"),
    502: OpenApiResponse(description="Payment provider unavailable, retry later"),
}


# =============================================================================
# Buyer / Seller Views
# =============================================================================


class CheckoutView(APIView):
    """
    Start checkout for a listing.

    POST /api/v1/orders/listings/{listing_id}/checkout/

    Payload:
        payment_method: "stripe" | "paypal" (default "stripe")
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="start_checkout",
        summary="Start checkout",
        description=(
            "Create a PENDING order for the listing and open a hosted checkout "
            "session. Redirect the buyer to checkout_url."
        ),
        request=CheckoutRequestSerializer,
        responses={
            201: CheckoutResponseSerializer,
            400: OpenApiResponse(description="Listing unavailable or own listing"),
            404: OpenApiResponse(description="Listing not found"),
            409: OpenApiResponse(description="Listing already has an active order"),
            **GATEWAY_ERROR_RESPONSES,
        },
        tags=["Orders"],
    )
    def post(self, request, listing_id):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        checkout = OrderCheckoutService().start_checkout(
            listing_id,
            buyer=request.user,
            payment_method=serializer.validated_data["payment_method"],
        )

        data = CheckoutResponseSerializer(
            {
                "order": checkout.order,
                "checkout_url": checkout.checkout_url,
                "session_id": checkout.session_id,
                "platform_fee": checkout.split.platform_fee_cents,
            }
        ).data
        return Response(data, status=status.HTTP_201_CREATED)


class MyOrdersView(APIView):
    """
    GET /api/v1/orders/mine/

    Orders the user bought and orders for listings the user sells.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_my_orders",
        summary="List my purchases and sales",
        responses={200: MyOrdersSerializer},
        tags=["Orders"],
    )
    def get(self, request):
        orders = Order.objects.select_related("listing")
        data = MyOrdersSerializer(
            {
                "purchases": orders.filter(buyer=request.user),
                "sales": orders.filter(listing__seller=request.user),
            }
        ).data
        return Response(data)


class OrderDetailView(APIView):
    """
    GET /api/v1/orders/{id}/

    Visible to the buyer and the listing's seller only.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_order",
        summary="Get order",
        responses={200: OrderSerializer, **ERROR_RESPONSES},
        tags=["Orders"],
    )
    def get(self, request, order_id):
        try:
            order = Order.objects.select_related("listing").get(pk=order_id)
        except Order.DoesNotExist:
            raise OrderNotFoundError(
                f"Order {order_id} not found",
                details={"order_id": str(order_id)},
            ) from None

        if request.user.pk not in (order.buyer_id, order.listing.seller_id):
            raise ForbiddenError("Only the buyer or seller can view this order")

        return Response(OrderSerializer(order).data)


class DeliveryActionView(APIView):
    """
    Base view for the delivery sub-transitions.

    Subclasses name the OrderStateMachine method in ``operation``.
    """

    permission_classes = [IsAuthenticated]
    operation: str = ""

    def post(self, request, order_id):
        machine = OrderStateMachine()
        order = getattr(machine, self.operation)(order_id, actor=request.user)
        return Response(OrderSerializer(order).data)


@extend_schema(
    operation_id="mark_order_shipped",
    summary="Mark order shipped",
    description="Seller reports the item shipped. The order must be HELD.",
    request=None,
    responses={200: OrderSerializer, **ERROR_RESPONSES},
    tags=["Orders - Delivery"],
)
class MarkShippedView(DeliveryActionView):
    """POST /api/v1/orders/{id}/mark-shipped/"""

    operation = "mark_shipped"


@extend_schema(
    operation_id="mark_order_delivered",
    summary="Mark order delivered",
    description="Seller reports the item delivered. The order must have shipped.",
    request=None,
    responses={200: OrderSerializer, **ERROR_RESPONSES},
    tags=["Orders - Delivery"],
)
class MarkDeliveredView(DeliveryActionView):
    """POST /api/v1/orders/{id}/mark-delivered/"""

    operation = "mark_delivered"


@extend_schema(
    operation_id="confirm_order_delivery",
    summary="Confirm delivery",
    description="Buyer confirms the item arrived. The seller must have reported delivery.",
    request=None,
    responses={200: OrderSerializer, **ERROR_RESPONSES},
    tags=["Orders - Delivery"],
)
class ConfirmDeliveryView(DeliveryActionView):
    """POST /api/v1/orders/{id}/confirm-delivery/"""

    operation = "confirm_delivery"


# =============================================================================
# Admin Views
# =============================================================================


class ReleaseFundsView(APIView):
    """
    Release escrowed funds to the seller.

    POST /api/v1/orders/{id}/release-funds/

    Requires the orders.release capability.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="release_order_funds",
        summary="Release escrow to seller",
        description=(
            "Transfer the seller's share (amount minus platform fee) and mark the "
            "order PAID. Only HELD orders can be released."
        ),
        request=None,
        responses={200: ReleaseResponseSerializer, **ERROR_RESPONSES, **GATEWAY_ERROR_RESPONSES},
        tags=["Orders - Admin"],
    )
    def post(self, request, order_id):
        outcome = OrderAdminService().release_funds(order_id, actor=request.user)
        return Response(ReleaseResponseSerializer.from_outcome(outcome))


class RefundView(APIView):
    """
    Refund escrowed funds to the buyer.

    POST /api/v1/orders/{id}/refund/

    Payload (optional):
        amount_cents: Partial refund amount (default: full amount)
        reason: Refund reason
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="refund_order",
        summary="Refund escrow to buyer",
        description="Refund a HELD order fully or partially and mark it REFUNDED.",
        request=RefundRequestSerializer,
        responses={
            200: RefundResponseSerializer,
            400: OpenApiResponse(description="Invalid refund amount"),
            **ERROR_RESPONSES,
            **GATEWAY_ERROR_RESPONSES,
        },
        tags=["Orders - Admin"],
    )
    def post(self, request, order_id):
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        outcome = OrderAdminService().refund(
            order_id,
            actor=request.user,
            amount_override=serializer.validated_data.get("amount_cents"),
            reason=serializer.validated_data["reason"],
        )
        return Response(RefundResponseSerializer.from_outcome(outcome))


class HeldOrdersView(APIView):
    """
    GET /api/v1/admin/orders/held/

    Orders currently in escrow with fee split and payout readiness.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_held_orders",
        summary="Escrow dashboard",
        responses={200: HeldOrdersResponseSerializer, 403: ERROR_RESPONSES[403]},
        tags=["Orders - Admin"],
    )
    def get(self, request):
        report = OrderAdminService().held_orders(actor=request.user)
        return Response(HeldOrdersResponseSerializer(report).data)


class OrderStatsView(APIView):
    """GET /api/v1/admin/orders/stats/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="order_status_counts",
        summary="Order counts per status",
        responses={200: StatusCountsResponseSerializer, 403: ERROR_RESPONSES[403]},
        tags=["Orders - Admin"],
    )
    def get(self, request):
        counts = OrderAdminService().status_counts(actor=request.user)
        data = StatusCountsResponseSerializer(
            {"counts": counts, "total": sum(counts.values())}
        ).data
        return Response(data)
