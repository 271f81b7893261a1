# Generated manually - initial schema for listings

import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Listing",
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
                    "title",
                    models.CharField(help_text="Listing title shown to buyers", max_length=200),
                ),
                (
                    "price_cents",
                    models.PositiveIntegerField(help_text="Asking price in cents"),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd", help_text="ISO 4217 currency code", max_length=3
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("sold", "Sold"),
                            ("archived", "Archived"),
                        ],
                        db_index=True,
                        default="active",
                        help_text="Availability of the listing",
                        max_length=20,
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="User selling this item",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="listings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Listing",
                "verbose_name_plural": "Listings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["seller", "status"], name="listing_seller_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("price_cents__gt", 0)),
                        name="listing_price_positive",
                    ),
                ],
            },
        ),
    ]
