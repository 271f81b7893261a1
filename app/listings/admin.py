"""
Django admin configuration for listings.
"""

from django.contrib import admin

from listings.models import Listing


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "seller", "price_cents", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("title", "seller__email")
    raw_id_fields = ("seller",)
    readonly_fields = ("id", "created_at", "updated_at")
