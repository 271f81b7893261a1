"""
Listing model.

Only the fields the escrow lifecycle reads are modelled here. Checkout
copies ``price_cents`` into the order, and confirming payment marks the
listing sold.

Usage:
    from listings.models import Listing, ListingStatus

    listing = Listing.objects.create(seller=user, title="Film camera", price_cents=7500)
    listing.mark_sold()
    listing.save(update_fields=["status", "updated_at"])
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.exceptions import ValidationError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ListingStatus(models.TextChoices):
    """Availability of a listing."""

    ACTIVE = "active", "Active"
    SOLD = "sold", "Sold"
    ARCHIVED = "archived", "Archived"


class Listing(UUIDPrimaryKeyMixin, BaseModel):
    """
    An item offered for sale by a seller.

    Fields:
        seller: The user who receives the payout when escrow is released
        title: Short description shown at checkout
        price_cents: Asking price in the smallest currency unit
        currency: ISO 4217 currency code
        status: ACTIVE until an order for it is paid, then SOLD
    """

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="listings",
        help_text="User selling this item",
    )
    title = models.CharField(
        max_length=200,
        help_text="Listing title shown to buyers",
    )
    price_cents = models.PositiveIntegerField(
        help_text="Asking price in cents",
    )
    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )
    status = models.CharField(
        max_length=20,
        choices=ListingStatus.choices,
        default=ListingStatus.ACTIVE,
        db_index=True,
        help_text="Availability of the listing",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Listing"
        verbose_name_plural = "Listings"
        indexes = [
            models.Index(fields=["seller", "status"], name="listing_seller_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_cents__gt=0),
                name="listing_price_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Listing({self.id}, {self.title}, {self.status})"

    @property
    def is_available(self) -> bool:
        return self.status == ListingStatus.ACTIVE

    def mark_sold(self) -> None:
        """
        Mark the listing as sold.

        Idempotent for listings already sold. Does not save.

        Raises:
            ValidationError: If the listing was archived by the seller
        """
        if self.status == ListingStatus.ARCHIVED:
            raise ValidationError(
                "Archived listings cannot be sold",
                error_code="LISTING_ARCHIVED",
                details={"listing_id": str(self.id)},
            )
        self.status = ListingStatus.SOLD
