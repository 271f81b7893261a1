# Generated manually - initial schema for payments

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
            name="ConnectedAccount",
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
                    "stripe_account_id",
                    models.CharField(
                        help_text="Provider account ID (acct_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "onboarding_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("in_progress", "In Progress"),
                            ("complete", "Complete"),
                            ("restricted", "Restricted"),
                        ],
                        default="pending",
                        help_text="Provider onboarding progress",
                        max_length=20,
                    ),
                ),
                (
                    "payouts_enabled",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the provider accepts transfers to this account",
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        help_text="Seller who owns this payout account",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="connected_account",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Connected Account",
                "verbose_name_plural": "Connected Accounts",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
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
                    "provider",
                    models.CharField(
                        help_text="Payment provider that sent the event", max_length=20
                    ),
                ),
                (
                    "provider_event_id",
                    models.CharField(help_text="Provider event ID (evt_xxx)", max_length=255),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Provider event type (e.g. 'checkout.session.completed')",
                        max_length=100,
                    ),
                ),
                ("payload", models.JSONField(help_text="Full verified webhook payload")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processed", "Processed"),
                            ("ignored", "Ignored"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "outcome",
                    models.CharField(
                        blank=True,
                        help_text="Outcome of the last successful dispatch",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True, help_text="When processing last finished", null=True
                    ),
                ),
                (
                    "error_message",
                    models.TextField(blank=True, help_text="Error from the last failed attempt"),
                ),
                (
                    "attempts",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Number of deliveries seen for this event"
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"], name="webhook_status_created_idx"
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "provider_event_id"),
                        name="webhook_event_unique_provider_event",
                    ),
                ],
            },
        ),
    ]
