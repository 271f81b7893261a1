"""
Core abstract base model shared by every domain model.

Base Classes:
    BaseModel: Abstract model with timestamps (created_at, updated_at)

For the UUID primary key mixin, see core.model_mixins.

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Listing(UUIDPrimaryKeyMixin, BaseModel):
        title = models.CharField(max_length=200)

Note:
    Always list mixins before BaseModel in inheritance.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing creation and modification timestamps.

    Fields:
        created_at: Set once when the row is inserted
        updated_at: Refreshed on every save
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
