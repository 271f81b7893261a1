"""
Payment admin configuration.

Registers seller payout accounts and the webhook audit log with the
Django admin.
"""

from django.contrib import admin

from payments.models import ConnectedAccount, WebhookEvent


@admin.register(ConnectedAccount)
class ConnectedAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for ConnectedAccount.

    Provides visibility into seller payout readiness.
    """

    list_display = [
        "id",
        "user",
        "stripe_account_id",
        "paypal_email",
        "onboarding_status",
        "payouts_enabled",
        "created_at",
    ]
    list_filter = ["onboarding_status", "payouts_enabled"]
    search_fields = ["id", "stripe_account_id", "paypal_email", "user__email"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "user", "stripe_account_id", "paypal_email"),
            },
        ),
        (
            "Status",
            {
                "fields": ("onboarding_status", "payouts_enabled"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Webhook events are immutable once received; only the processing
    fields change.
    """

    list_display = [
        "id",
        "provider",
        "provider_event_id",
        "event_type",
        "status",
        "outcome",
        "attempts",
        "processed_at",
        "created_at",
    ]
    list_filter = ["provider", "status", "event_type", "created_at"]
    search_fields = ["id", "provider_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "provider",
        "provider_event_id",
        "event_type",
        "payload",
        "outcome",
        "processed_at",
        "attempts",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "provider", "provider_event_id", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("outcome", "processed_at", "attempts"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
    )
