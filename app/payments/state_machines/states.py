"""
Status enums for payment models.

These are Django TextChoices for database storage and admin integration.

WebhookEvent:
    pending → processed
    pending → ignored (no handler for the event type)
    pending → failed → processed (provider redelivery)

ConnectedAccount onboarding:
    pending → in_progress → complete
    any → restricted (provider disabled payouts)
"""

from django.db import models


class WebhookEventStatus(models.TextChoices):
    """Processing status of a recorded provider event."""

    PENDING = "pending", "Pending"
    PROCESSED = "processed", "Processed"
    IGNORED = "ignored", "Ignored"
    FAILED = "failed", "Failed"


class OnboardingStatus(models.TextChoices):
    """Onboarding status of a seller payout account."""

    PENDING = "pending", "Pending"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETE = "complete", "Complete"
    RESTRICTED = "restricted", "Restricted"
