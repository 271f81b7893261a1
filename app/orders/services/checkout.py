"""
Checkout initiation.

Creates the PENDING order for a listing and opens a hosted checkout
session with the payment provider. The provider later reports the
captured payment through the webhook, which moves the order to HELD.

Usage:
    from orders.services import OrderCheckoutService

    checkout = OrderCheckoutService().start_checkout(listing_id, buyer=request.user)
    redirect(checkout.checkout_url)
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService
from listings.models import Listing
from payments.adapters import IdempotencyKeyGenerator, PaymentGateway, get_gateway

from orders.fees import FeeSplit
from orders.models import Order
from orders.state_machines import OrderStatus, PaymentMethod

if TYPE_CHECKING:
    from authentication.models import User


# Orders in these states keep a listing from being bought again
ACTIVE_ORDER_STATES = (OrderStatus.PENDING, OrderStatus.HELD, OrderStatus.PAID)

DEFAULT_ABANDON_AFTER_MINUTES = 60


def abandon_after() -> timedelta:
    """How long a PENDING order may wait for payment before it is cancelled."""
    return timedelta(
        minutes=getattr(settings, "CHECKOUT_ABANDON_AFTER_MINUTES", DEFAULT_ABANDON_AFTER_MINUTES)
    )


@dataclass(frozen=True)
class CheckoutOutcome:
    order: Order
    checkout_url: str
    session_id: str
    split: FeeSplit


class OrderCheckoutService(BaseService):
    """Start a purchase: PENDING order plus provider checkout session."""

    def __init__(
        self,
        gateway_resolver: Callable[[str], PaymentGateway] = get_gateway,
    ):
        self._gateway_resolver = gateway_resolver

    def start_checkout(
        self,
        listing_id: uuid.UUID | str,
        buyer: User,
        payment_method: str = PaymentMethod.STRIPE,
    ) -> CheckoutOutcome:
        """
        Create a PENDING order for the listing and a checkout session.

        Raises:
            NotFoundError: Listing does not exist
            ValidationError: Listing not active, buyer is the seller, or
                unknown payment method
            ConflictError: Listing already has an active order
            GatewayError: Provider could not open the session (no order
                is left behind)
        """
        logger = self.get_logger()

        if payment_method not in PaymentMethod.values:
            raise ValidationError(
                f"Unsupported payment method: {payment_method}",
                details={"payment_method": payment_method},
            )

        try:
            listing = Listing.objects.get(pk=listing_id)
        except (Listing.DoesNotExist, DjangoValidationError):
            raise NotFoundError(
                f"Listing {listing_id} not found",
                error_code="LISTING_NOT_FOUND",
                details={"listing_id": str(listing_id)},
            ) from None

        if not listing.is_available:
            raise ValidationError(
                "Listing is not available for purchase",
                error_code="LISTING_UNAVAILABLE",
                details={"listing_id": str(listing.id), "status": listing.status},
            )
        if listing.seller_id == buyer.pk:
            raise ValidationError(
                "You cannot buy your own listing",
                error_code="OWN_LISTING",
                details={"listing_id": str(listing.id)},
            )

        gateway = self._gateway_resolver(payment_method)

        with self.atomic():
            # Serialize checkouts for the same listing
            Listing.objects.select_for_update().filter(pk=listing.pk).first()

            if Order.objects.filter(listing=listing, status__in=ACTIVE_ORDER_STATES).exists():
                raise ConflictError(
                    "Listing already has an active order",
                    error_code="LISTING_HAS_ACTIVE_ORDER",
                    details={"listing_id": str(listing.id)},
                )

            order = Order.objects.create(
                listing=listing,
                buyer=buyer,
                amount_cents=listing.price_cents,
                currency=listing.currency,
                payment_method=payment_method,
            )

            session = gateway.create_checkout_session(
                order=order,
                listing=listing,
                success_url=settings.CHECKOUT_SUCCESS_URL.format(order_id=order.id),
                cancel_url=settings.CHECKOUT_CANCEL_URL.format(order_id=order.id),
                idempotency_key=IdempotencyKeyGenerator.generate("checkout", order.id),
                expires_at=order.created_at + abandon_after(),
            )

            order.checkout_session_id = session.session_id
            order.save(update_fields=["checkout_session_id"])

        split = order.fee_split
        logger.info(
            "Checkout started",
            extra={
                "order_id": str(order.id),
                "listing_id": str(listing.id),
                "buyer_id": buyer.pk,
                "amount_cents": order.amount_cents,
                "session_id": session.session_id,
            },
        )
        return CheckoutOutcome(
            order=order,
            checkout_url=session.url,
            session_id=session.session_id,
            split=split,
        )
