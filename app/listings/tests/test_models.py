"""
Tests for the Listing model.
"""

import pytest
from django.db import IntegrityError

from core.exceptions import ValidationError
from listings.models import Listing, ListingStatus
from listings.tests.factories import ListingFactory


class TestListingStatus:
    def test_new_listing_is_active(self, db):
        listing = ListingFactory()

        assert listing.status == ListingStatus.ACTIVE
        assert listing.is_available is True

    def test_mark_sold_sets_status(self, db):
        listing = ListingFactory()

        listing.mark_sold()
        listing.save()

        assert Listing.objects.get(pk=listing.pk).status == ListingStatus.SOLD

    def test_mark_sold_is_idempotent(self, db):
        listing = ListingFactory(status=ListingStatus.SOLD)

        listing.mark_sold()

        assert listing.status == ListingStatus.SOLD

    def test_archived_listing_cannot_be_sold(self, db):
        listing = ListingFactory(status=ListingStatus.ARCHIVED)

        with pytest.raises(ValidationError) as exc_info:
            listing.mark_sold()

        assert exc_info.value.error_code == "LISTING_ARCHIVED"


class TestListingConstraints:
    def test_zero_price_rejected_by_database(self, db):
        with pytest.raises(IntegrityError):
            ListingFactory(price_cents=0)
