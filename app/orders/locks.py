"""
Optimistic locking for orders.

Money-moving transitions read the order, validate the precondition, and
then re-read it under a row lock inside the transaction that calls the
gateway. check_version() performs that re-read and refuses to continue if
anyone saved the order in between.

Usage:
    from orders.locks import check_version

    order = state_machine.get_order(order_id)   # version 3, HELD
    with transaction.atomic():
        locked = check_version(order.pk, expected_version=order.version)
        ...                                      # gateway call
        locked.release(transfer_reference=transfer.transfer_id)
        locked.save()                            # version 4

Note:
    Must be called within a transaction; the lock is held until it
    commits or rolls back. Concurrent callers block on the row lock and
    the loser sees the incremented version.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction

from orders.exceptions import OrderConflictError, OrderNotFoundError
from orders.models import Order

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def check_version(pk: Any, expected_version: int) -> Order:
    """
    Lock an order row and verify it still has the expected version.

    Raises:
        OrderNotFoundError: The order does not exist
        OrderConflictError: The order was modified since it was read
    """
    with transaction.atomic():
        instance = (
            Order.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )

        if instance is None:
            current = Order.objects.filter(pk=pk).values_list("version", flat=True).first()
            if current is None:
                raise OrderNotFoundError(
                    f"Order {pk} not found",
                    details={"order_id": str(pk)},
                )

            logger.warning(
                "Order modified concurrently",
                extra={
                    "order_id": str(pk),
                    "expected_version": expected_version,
                    "current_version": current,
                },
            )
            raise OrderConflictError(
                "Order was modified by another request. Reload and retry.",
                details={
                    "order_id": str(pk),
                    "expected_version": expected_version,
                    "current_version": current,
                },
            )

        return instance
