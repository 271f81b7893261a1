"""
Order admin configuration.

Orders are read-only in the admin: money state changes only through
OrderStateMachine, which the FSM-protected fields enforce anyway.
"""

from django.contrib import admin

from orders.models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Provides visibility into escrow state for support and finance staff.
    """

    list_display = [
        "id",
        "listing",
        "buyer",
        "amount_cents",
        "currency",
        "status",
        "delivery_status",
        "payment_method",
        "paid_at",
        "created_at",
    ]
    list_filter = ["status", "delivery_status", "payment_method", "created_at"]
    search_fields = [
        "id",
        "external_payment_reference",
        "transfer_reference",
        "refund_reference",
        "buyer__email",
        "listing__title",
    ]
    readonly_fields = [
        "id",
        "listing",
        "buyer",
        "amount_cents",
        "currency",
        "payment_method",
        "status",
        "delivery_status",
        "version",
        "external_payment_reference",
        "checkout_session_id",
        "transfer_reference",
        "refund_reference",
        "refund_amount_cents",
        "paid_at",
        "released_at",
        "refunded_at",
        "cancelled_at",
        "shipped_at",
        "delivered_at",
        "confirmed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "listing", "buyer", "status", "delivery_status", "version"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount_cents", "currency", "payment_method", "refund_amount_cents"),
            },
        ),
        (
            "Provider References",
            {
                "fields": (
                    "external_payment_reference",
                    "checkout_session_id",
                    "transfer_reference",
                    "refund_reference",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "paid_at",
                    "released_at",
                    "refunded_at",
                    "cancelled_at",
                    "shipped_at",
                    "delivered_at",
                    "confirmed_at",
                    "created_at",
                    "updated_at",
                ),
                "classes": ("collapse",),
            },
        ),
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
