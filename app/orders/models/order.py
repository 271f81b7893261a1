"""
Order model: one buyer's escrowed purchase of one listing.

The order carries two django-fsm state machines:

- ``status`` tracks the money (pending → held → paid / refunded, or
  pending → cancelled)
- ``delivery_status`` tracks shipping (not_shipped → shipped →
  delivered → confirmed). It is advisory and never gates release.

Both fields are protected: they change only through the @transition
methods below, and those methods are called only by
orders.services.OrderStateMachine, which wraps them in row locks and
version checks.

Usage:
    from orders.models import Order

    order = Order.objects.create(
        listing=listing,
        buyer=buyer,
        amount_cents=listing.price_cents,
        payment_method=PaymentMethod.STRIPE,
    )

    order.hold(external_reference="pi_123")  # pending -> held
    order.save()                              # version 1 -> 2

    order.fee_split.seller_amount_cents
"""

from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone
from django_fsm import FSMField, transition

from core.exceptions import ValidationError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from orders.fees import FeeSplit, compute_split, get_platform_fee_bps
from orders.state_machines import DeliveryStatus, OrderStatus, PaymentMethod

# Each lifecycle timestamp and the one it may not precede
TIMESTAMP_PREDECESSORS = {
    "paid_at": "created_at",
    "released_at": "paid_at",
    "refunded_at": "paid_at",
    "cancelled_at": "created_at",
    "shipped_at": "paid_at",
    "delivered_at": "shipped_at",
    "confirmed_at": "delivered_at",
}

# Timestamp that must be present once the order reaches a state
STATUS_TIMESTAMPS = {
    OrderStatus.HELD: "paid_at",
    OrderStatus.PAID: "released_at",
    OrderStatus.REFUNDED: "refunded_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

DELIVERY_TIMESTAMPS = {
    DeliveryStatus.SHIPPED: "shipped_at",
    DeliveryStatus.DELIVERED: "delivered_at",
    DeliveryStatus.CONFIRMED: "confirmed_at",
}


def is_held(order: Order) -> bool:
    return order.status == OrderStatus.HELD


def is_open(order: Order) -> bool:
    return order.status not in OrderStatus.terminal_states()


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    Escrowed purchase of a listing.

    Fields:
        listing: Item being bought
        buyer: User paying for it
        amount_cents: Full amount captured from the buyer (> 0)
        currency: ISO 4217 currency code
        payment_method: Provider the buyer pays through
        external_payment_reference: Provider payment id, set on capture
        checkout_session_id: Provider checkout session id
        status: Escrow state (managed by FSM)
        delivery_status: Shipping state (managed by FSM)
        transfer_reference: Provider transfer id, set on release
        refund_reference: Provider refund id, set on refund
        refund_amount_cents: Amount refunded
        version: Optimistic locking version
        *_at timestamps: Each set exactly once, never before its predecessor

    Note:
        Platform fee and seller amount are derived from amount_cents and
        the configured fee rate; they are never stored.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    listing = models.ForeignKey(
        "listings.Listing",
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Listing being purchased",
    )

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="purchases",
        help_text="User paying for the listing",
    )

    # ==========================================================================
    # Amount and Payment
    # ==========================================================================

    amount_cents = models.PositiveIntegerField(
        help_text="Full amount captured from the buyer, in cents",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )

    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.STRIPE,
        help_text="Payment provider used for this order",
    )

    external_payment_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Provider payment reference (pi_xxx), set on capture",
    )

    checkout_session_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Provider checkout session id (cs_xxx)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,
        help_text="Escrow state of the order (managed by FSM)",
    )

    delivery_status = FSMField(
        default=DeliveryStatus.NOT_SHIPPED,
        choices=DeliveryStatus.choices,
        protected=True,
        help_text="Shipping state of the order (managed by FSM)",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # Provider Results
    # ==========================================================================

    transfer_reference = models.CharField(
        max_length=255,
        blank=True,
        help_text="Provider transfer id (tr_xxx), set on release",
    )

    refund_reference = models.CharField(
        max_length=255,
        blank=True,
        help_text="Provider refund id (re_xxx), set on refund",
    )

    refund_amount_cents = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Amount refunded to the buyer, in cents",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment was captured into escrow",
    )

    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When funds were released to the seller",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When funds were refunded to the buyer",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the unpaid order was cancelled",
    )

    shipped_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the seller reported shipping",
    )

    delivered_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the seller reported delivery",
    )

    confirmed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the buyer confirmed delivery",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
            models.Index(fields=["buyer", "status"], name="order_buyer_status_idx"),
            models.Index(fields=["listing", "status"], name="order_listing_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="order_amount_positive",
            ),
        ]
        permissions = [
            ("release_funds", "Can release escrowed funds to the seller"),
            ("refund_order", "Can refund escrowed funds to the buyer"),
            ("view_escrow_dashboard", "Can view the escrow dashboard"),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Order({self.id}, {self.status}, {amount_display})"

    def save(self, *args, **kwargs):
        """
        Validate invariants, then save with version auto-increment.

        On update the version is incremented in the database with F() and
        read back, so the instance always holds the committed version.
        """
        self.validate_invariants()

        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "version", "updated_at"}

        super().save(*args, **kwargs)

        if is_update:
            self.refresh_from_db(fields=["version"])

    def clean(self) -> None:
        self.validate_invariants()

    # ==========================================================================
    # Derived Amounts
    # ==========================================================================

    @property
    def fee_split(self) -> FeeSplit:
        return compute_split(self.amount_cents, get_platform_fee_bps())

    @property
    def platform_fee_cents(self) -> int:
        return self.fee_split.platform_fee_cents

    @property
    def seller_amount_cents(self) -> int:
        return self.fee_split.seller_amount_cents

    @property
    def is_terminal(self) -> bool:
        return self.status in OrderStatus.terminal_states()

    # ==========================================================================
    # Invariants
    # ==========================================================================

    def validate_invariants(self) -> None:
        """
        Check the rules every persisted order must satisfy.

        Raises:
            ValidationError: Describing the first violated rule
        """
        amount = self.amount_cents
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(
                "amount_cents must be a positive integer",
                details={"amount_cents": repr(amount)},
            )

        for field_name, enum in (
            ("payment_method", PaymentMethod),
            ("status", OrderStatus),
            ("delivery_status", DeliveryStatus),
        ):
            value = getattr(self, field_name)
            if value not in enum.values:
                raise ValidationError(
                    f"Unknown {field_name}: {value}",
                    details={field_name: value},
                )

        if self.status in OrderStatus.captured_states():
            if not self.external_payment_reference:
                raise ValidationError(
                    f"A {self.status} order must carry a payment reference",
                    details={"status": self.status},
                )
        elif self.status == OrderStatus.PENDING and self.external_payment_reference:
            raise ValidationError("A pending order cannot carry a payment reference")

        if self.refund_amount_cents is not None and self.refund_amount_cents > amount:
            raise ValidationError(
                "Refund cannot exceed the order amount",
                details={
                    "amount_cents": amount,
                    "refund_amount_cents": self.refund_amount_cents,
                },
            )

        required = [STATUS_TIMESTAMPS.get(self.status), DELIVERY_TIMESTAMPS.get(self.delivery_status)]
        for field_name in filter(None, required):
            if getattr(self, field_name) is None:
                raise ValidationError(
                    f"{field_name} must be set once the order is "
                    f"{self.status}/{self.delivery_status}",
                    details={"field": field_name},
                )

        for field_name, predecessor_name in TIMESTAMP_PREDECESSORS.items():
            value = getattr(self, field_name)
            # created_at is assigned by the database layer on insert;
            # set_timestamp() enforces that link
            if value is None or predecessor_name == "created_at":
                continue
            predecessor = getattr(self, predecessor_name)
            if predecessor is None:
                raise ValidationError(
                    f"{field_name} is set but {predecessor_name} is not",
                    details={"field": field_name},
                )
            if value < predecessor:
                raise ValidationError(
                    f"{field_name} cannot precede {predecessor_name}",
                    details={"field": field_name},
                )

    def set_timestamp(self, field_name: str, value: datetime | None = None) -> None:
        """
        Set a lifecycle timestamp exactly once, after its predecessor.

        Does not save.

        Raises:
            ValidationError: Unknown field, already set, predecessor unset,
                or value earlier than the predecessor
        """
        if field_name not in TIMESTAMP_PREDECESSORS:
            raise ValidationError(f"Unknown lifecycle timestamp: {field_name}")
        if getattr(self, field_name) is not None:
            raise ValidationError(
                f"{field_name} is already set",
                details={"field": field_name},
            )

        predecessor_name = TIMESTAMP_PREDECESSORS[field_name]
        predecessor = getattr(self, predecessor_name)
        if predecessor is None:
            raise ValidationError(
                f"{field_name} cannot be set before {predecessor_name}",
                details={"field": field_name},
            )

        value = value or timezone.now()
        if value < predecessor:
            raise ValidationError(
                f"{field_name} cannot precede {predecessor_name}",
                details={"field": field_name},
            )
        setattr(self, field_name, value)

    # ==========================================================================
    # Escrow Transitions
    # ==========================================================================

    @transition(
        field=status,
        source=OrderStatus.PENDING,
        target=OrderStatus.HELD,
    )
    def hold(self, external_reference: str, paid_at: datetime | None = None):
        """
        Record the captured payment; funds are now in escrow.

        Transition: PENDING -> HELD
        """
        if not external_reference:
            raise ValidationError("A payment reference is required to hold funds")
        self.set_timestamp("paid_at", paid_at)
        self.external_payment_reference = external_reference

    @transition(
        field=status,
        source=OrderStatus.PENDING,
        target=OrderStatus.CANCELLED,
    )
    def cancel(self):
        """
        Cancel an order whose payment was never captured.

        Transition: PENDING -> CANCELLED
        """
        self.set_timestamp("cancelled_at")

    @transition(
        field=status,
        source=OrderStatus.HELD,
        target=OrderStatus.PAID,
    )
    def release(self, transfer_reference: str):
        """
        Record the transfer of the seller's share.

        Transition: HELD -> PAID
        """
        self.set_timestamp("released_at")
        self.transfer_reference = transfer_reference

    @transition(
        field=status,
        source=OrderStatus.HELD,
        target=OrderStatus.REFUNDED,
    )
    def refund(self, refund_reference: str, refund_amount_cents: int):
        """
        Record the refund to the buyer.

        Transition: HELD -> REFUNDED
        """
        self.set_timestamp("refunded_at")
        self.refund_reference = refund_reference
        self.refund_amount_cents = refund_amount_cents

    # ==========================================================================
    # Delivery Transitions
    # ==========================================================================

    @transition(
        field=delivery_status,
        source=DeliveryStatus.NOT_SHIPPED,
        target=DeliveryStatus.SHIPPED,
        conditions=[is_held],
    )
    def mark_shipped(self):
        """Seller shipped the item. Requires captured payment."""
        self.set_timestamp("shipped_at")

    @transition(
        field=delivery_status,
        source=DeliveryStatus.SHIPPED,
        target=DeliveryStatus.DELIVERED,
        conditions=[is_open],
    )
    def mark_delivered(self):
        self.set_timestamp("delivered_at")

    @transition(
        field=delivery_status,
        source=DeliveryStatus.DELIVERED,
        target=DeliveryStatus.CONFIRMED,
        conditions=[is_open],
    )
    def confirm_delivery(self):
        self.set_timestamp("confirmed_at")
