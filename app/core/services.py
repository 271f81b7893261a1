"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for outcomes a caller records
- BaseService: Base class with logging and transaction helpers

Services encapsulate business logic separate from views and models.
Views handle HTTP concerns, models handle data, services handle logic.

Pattern Comparison:
    - ServiceResult: Use for outcomes a caller branches on (ignored webhook,
      duplicate delivery)
    - Exceptions: Use for refusals that must abort the operation (invalid
      transition, gateway failure)

Usage:
    from core.services import BaseService, ServiceResult

    class OrderService(BaseService):
        def cancel(self, order_id) -> Order:
            with self.atomic():
                order = Order.objects.select_for_update().get(pk=order_id)
                order.cancel()
                order.save()

            self.get_logger().info("Cancelled order", extra={"order_id": str(order_id)})
            return order
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Refusals are raised as application errors, so a ServiceResult always
    describes an outcome the caller records (webhook handlers return the
    outcome string stored on the WebhookEvent).

    Attributes:
        success: Whether the operation succeeded
        data: Result data

    Usage:
        return ServiceResult.success(outcome)
    """

    success: bool
    data: T | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Example:
            return ServiceResult.success(outcome)
        """
        return cls(success=True, data=data)


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management

    Design Notes:
        - Collaborators (gateways, capability checkers) are injected through
          __init__ so tests can swap in doubles
        - Raise exceptions for refusals, return ServiceResult for outcomes
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database operations within this context manager are
        wrapped in a transaction. If any operation fails, all
        changes are rolled back.

        Example:
            with cls.atomic():
                order = Order.objects.select_for_update().get(pk=order_id)
                order.cancel()
                order.save()
        """
        with transaction.atomic():
            yield
