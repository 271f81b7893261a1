"""
WebhookEvent model: audit log of inbound payment-provider events.

Every verified event is recorded once per provider event id. The record is
for auditing and operator replay only; whether an order changes state is
decided by the order's own external payment reference, so redelivered
events are always safe to dispatch again.

Usage:
    event, created = WebhookEvent.objects.get_or_create(
        provider="stripe",
        provider_event_id="evt_123",
        defaults={"event_type": "checkout.session.completed", "payload": payload},
    )
    ...
    event.mark_processed()
    event.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A verified provider event and the outcome of processing it.

    Fields:
        provider: Gateway the event came from
        provider_event_id: Provider's event id (evt_xxx), unique per provider
        event_type: Provider event type
        payload: Full verified JSON payload
        status: Processing status
        outcome: Result reported back to the provider (applied, duplicate, ...)
        processed_at: When processing last finished
        error_message: Error from the last failed attempt
        attempts: Number of deliveries seen for this event
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(
        max_length=20,
        help_text="Payment provider that sent the event",
    )

    provider_event_id = models.CharField(
        max_length=255,
        help_text="Provider event ID (evt_xxx)",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Provider event type (e.g. 'checkout.session.completed')",
    )

    payload = models.JSONField(
        help_text="Full verified webhook payload",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    outcome = models.CharField(
        max_length=20,
        blank=True,
        help_text="Outcome of the last successful dispatch",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When processing last finished",
    )

    error_message = models.TextField(
        blank=True,
        help_text="Error from the last failed attempt",
    )

    attempts = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of deliveries seen for this event",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_event_id"],
                name="webhook_event_unique_provider_event",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}:{self.provider_event_id}, {self.event_type})"

    # ==========================================================================
    # Helper Methods (do not save; caller saves)
    # ==========================================================================

    def mark_received(self) -> None:
        self.attempts += 1

    def mark_processed(self, outcome: str) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.outcome = outcome
        self.error_message = ""
        self.processed_at = timezone.now()

    def mark_ignored(self) -> None:
        self.status = WebhookEventStatus.IGNORED
        self.outcome = "ignored"
        self.processed_at = timezone.now()

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
        self.processed_at = timezone.now()
