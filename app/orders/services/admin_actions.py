"""
Admin actions on escrowed orders.

OrderAdminService is the only entry point operators use to move money.
Every call first asks the capability checker whether the actor may
perform it, then delegates to OrderStateMachine.

Usage:
    from orders.services import OrderAdminService

    service = OrderAdminService()
    outcome = service.release_funds(order_id, actor=request.user)
    dashboard = service.held_orders(actor=request.user)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from django.db.models import Count

from core.services import BaseService
from payments.models import ConnectedAccount

from orders.capabilities import (
    REFUND,
    RELEASE_FUNDS,
    VIEW_DASHBOARD,
    CapabilityChecker,
    get_capability_checker,
)
from orders.exceptions import ForbiddenError
from orders.fees import FeeSplit, compute_split, get_platform_fee_bps
from orders.models import Order
from orders.services.state_machine import (
    DEFAULT_REFUND_REASON,
    OrderStateMachine,
    RefundOutcome,
    ReleaseOutcome,
)
from orders.state_machines import OrderStatus

if TYPE_CHECKING:
    from authentication.models import User


@dataclass(frozen=True)
class HeldOrder:
    """A held order with its fee split and payout readiness."""

    order: Order
    split: FeeSplit
    can_release: bool


@dataclass(frozen=True)
class HeldOrdersSummary:
    total_orders: int
    total_held_amount: int
    total_platform_fees: int
    total_seller_payouts: int
    average_order_value: int


@dataclass(frozen=True)
class HeldOrdersReport:
    orders: list[HeldOrder]
    summary: HeldOrdersSummary


class OrderAdminService(BaseService):
    """
    Capability-checked release, refund and dashboard queries.

    Args:
        state_machine: Service applying the transitions
        capability_checker: Policy deciding what an actor may do
            (defaults to settings.ORDER_CAPABILITY_CHECKER)
    """

    def __init__(
        self,
        state_machine: OrderStateMachine | None = None,
        capability_checker: CapabilityChecker | None = None,
    ):
        self.state_machine = state_machine or OrderStateMachine()
        self.capability_checker = capability_checker or get_capability_checker()

    def _require(self, actor: User, capability: str, **context: Any) -> None:
        if self.capability_checker.has_capability(actor, capability):
            return

        self.get_logger().warning(
            f"Capability {capability} denied",
            extra={"actor_id": getattr(actor, "pk", None), **context},
        )
        raise ForbiddenError(
            "You do not have permission to perform this action",
            details={"capability": capability},
        )

    # =========================================================================
    # Money Movement
    # =========================================================================

    def release_funds(self, order_id: uuid.UUID | str, actor: User) -> ReleaseOutcome:
        """
        Release a HELD order's funds to its seller.

        Raises:
            ForbiddenError: Actor lacks ``orders.release``
            (plus everything OrderStateMachine.release_funds raises)
        """
        self._require(actor, RELEASE_FUNDS, order_id=str(order_id))

        outcome = self.state_machine.release_funds(order_id)

        self.get_logger().info(
            "Admin released escrow",
            extra={
                "order_id": str(order_id),
                "actor_id": actor.pk,
                "transfer_id": outcome.transfer.transfer_id,
            },
        )
        return outcome

    def refund(
        self,
        order_id: uuid.UUID | str,
        actor: User,
        amount_override: int | None = None,
        reason: str = DEFAULT_REFUND_REASON,
    ) -> RefundOutcome:
        """
        Refund a HELD order to its buyer.

        Raises:
            ForbiddenError: Actor lacks ``orders.refund``
            (plus everything OrderStateMachine.refund raises)
        """
        self._require(actor, REFUND, order_id=str(order_id))

        outcome = self.state_machine.refund(
            order_id,
            amount_override=amount_override,
            reason=reason,
        )

        self.get_logger().info(
            "Admin refunded escrow",
            extra={
                "order_id": str(order_id),
                "actor_id": actor.pk,
                "refund_id": outcome.refund.refund_id,
            },
        )
        return outcome

    # =========================================================================
    # Dashboard
    # =========================================================================

    def held_orders(self, actor: User) -> HeldOrdersReport:
        """Orders currently in escrow, oldest payment first, with totals."""
        self._require(actor, VIEW_DASHBOARD)

        orders = list(
            Order.objects.filter(status=OrderStatus.HELD)
            .select_related("listing", "listing__seller", "buyer")
            .order_by("paid_at")
        )

        accounts = {
            account.user_id: account
            for account in ConnectedAccount.objects.filter(
                user_id__in={order.listing.seller_id for order in orders},
            )
        }

        bps = get_platform_fee_bps()
        rows = [
            HeldOrder(
                order=order,
                split=compute_split(order.amount_cents, bps),
                can_release=bool(
                    order.listing.seller_id in accounts
                    and accounts[order.listing.seller_id].payout_destination(order.payment_method)
                ),
            )
            for order in orders
        ]

        total_held = sum(row.split.amount_cents for row in rows)
        summary = HeldOrdersSummary(
            total_orders=len(rows),
            total_held_amount=total_held,
            total_platform_fees=sum(row.split.platform_fee_cents for row in rows),
            total_seller_payouts=sum(row.split.seller_amount_cents for row in rows),
            average_order_value=total_held // len(rows) if rows else 0,
        )
        return HeldOrdersReport(orders=rows, summary=summary)

    def status_counts(self, actor: User) -> dict[str, int]:
        """Number of orders per status; every status is present."""
        self._require(actor, VIEW_DASHBOARD)

        counts = {status: 0 for status in OrderStatus.values}
        for row in Order.objects.values("status").annotate(n=Count("id")).order_by():
            counts[row["status"]] = row["n"]
        return counts
