"""
Celery tasks for orders.

Scheduled via CELERY_BEAT_SCHEDULE in settings:
- cancel_abandoned_checkouts: hourly

Usage:
    from orders.tasks import cancel_abandoned_checkouts

    cancel_abandoned_checkouts.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

from core.exceptions import BaseApplicationError

from orders.models import Order
from orders.services import OrderStateMachine
from orders.services.checkout import abandon_after
from orders.state_machines import OrderStatus

logger = logging.getLogger(__name__)


@shared_task
def cancel_abandoned_checkouts() -> dict:
    """
    Cancel PENDING orders whose checkout was never completed.

    Orders older than CHECKOUT_ABANDON_AFTER_MINUTES are cancelled one by
    one through the state machine, which frees their listings for other
    buyers. Their hosted checkouts are expired first. An order that
    changes underneath (its payment webhook just arrived) or whose
    checkout was already paid is skipped.

    Returns:
        Dict with cancelled and skipped counts
    """
    cutoff = timezone.now() - abandon_after()

    order_ids = list(
        Order.objects.filter(status=OrderStatus.PENDING, created_at__lt=cutoff)
        .order_by("created_at")
        .values_list("id", flat=True)
    )

    machine = OrderStateMachine()
    cancelled = 0
    skipped = 0

    for order_id in order_ids:
        try:
            machine.cancel(order_id, reason="checkout_abandoned")
            cancelled += 1
        except BaseApplicationError as e:
            skipped += 1
            logger.warning(
                f"Skipped abandoned checkout: {e.message}",
                extra={"order_id": str(order_id), "error_code": e.error_code},
            )

    if order_ids:
        logger.info(
            "Abandoned checkouts processed",
            extra={"cancelled": cancelled, "skipped": skipped, "cutoff": cutoff.isoformat()},
        )

    return {"cancelled": cancelled, "skipped": skipped}
