"""
Model mixins providing reusable fields for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Order(UUIDPrimaryKeyMixin, BaseModel):
        amount_cents = models.PositiveIntegerField()
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a random UUID as primary key instead of an auto-increment integer.

    Order and listing ids appear in URLs and provider metadata, so they
    must not reveal record counts or be guessable.

    Fields:
        id: UUIDField primary key, generated before insert
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
