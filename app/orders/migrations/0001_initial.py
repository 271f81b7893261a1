# Generated manually - initial schema for orders

import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("listings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveIntegerField(
                        help_text="Full amount captured from the buyer, in cents"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd", help_text="ISO 4217 currency code", max_length=3
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        choices=[("stripe", "Stripe"), ("paypal", "PayPal")],
                        default="stripe",
                        help_text="Payment provider used for this order",
                        max_length=20,
                    ),
                ),
                (
                    "external_payment_reference",
                    models.CharField(
                        blank=True,
                        help_text="Provider payment reference (pi_xxx), set on capture",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "checkout_session_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Provider checkout session id (cs_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("held", "Held"),
                            ("paid", "Paid"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Escrow state of the order (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "delivery_status",
                    django_fsm.FSMField(
                        choices=[
                            ("not_shipped", "Not Shipped"),
                            ("shipped", "Shipped"),
                            ("delivered", "Delivered"),
                            ("confirmed", "Confirmed"),
                        ],
                        default="not_shipped",
                        help_text="Shipping state of the order (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "transfer_reference",
                    models.CharField(
                        blank=True,
                        help_text="Provider transfer id (tr_xxx), set on release",
                        max_length=255,
                    ),
                ),
                (
                    "refund_reference",
                    models.CharField(
                        blank=True,
                        help_text="Provider refund id (re_xxx), set on refund",
                        max_length=255,
                    ),
                ),
                (
                    "refund_amount_cents",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Amount refunded to the buyer, in cents",
                        null=True,
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the payment was captured into escrow",
                        null=True,
                    ),
                ),
                (
                    "released_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When funds were released to the seller",
                        null=True,
                    ),
                ),
                (
                    "refunded_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When funds were refunded to the buyer",
                        null=True,
                    ),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the unpaid order was cancelled",
                        null=True,
                    ),
                ),
                (
                    "shipped_at",
                    models.DateTimeField(
                        blank=True, help_text="When the seller reported shipping", null=True
                    ),
                ),
                (
                    "delivered_at",
                    models.DateTimeField(
                        blank=True, help_text="When the seller reported delivery", null=True
                    ),
                ),
                (
                    "confirmed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the buyer confirmed delivery", null=True
                    ),
                ),
                (
                    "buyer",
                    models.ForeignKey(
                        help_text="User paying for the listing",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "listing",
                    models.ForeignKey(
                        help_text="Listing being purchased",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="listings.listing",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "permissions": [
                    ("release_funds", "Can release escrowed funds to the seller"),
                    ("refund_order", "Can refund escrowed funds to the buyer"),
                    ("view_escrow_dashboard", "Can view the escrow dashboard"),
                ],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"], name="order_status_created_idx"
                    ),
                    models.Index(fields=["buyer", "status"], name="order_buyer_status_idx"),
                    models.Index(
                        fields=["listing", "status"], name="order_listing_status_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount_cents__gt=0),
                        name="order_amount_positive",
                    ),
                ],
            },
        ),
    ]
