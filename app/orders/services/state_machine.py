"""
Order state machine service: every escrow transition goes through here.

The model declares which transitions exist (django-fsm). This service
decides when they may run and pairs them with their gateway calls:

    confirm_payment   PENDING -> HELD       (webhook)
    cancel            PENDING -> CANCELLED  (abandoned checkout, expires it)
    release_funds     HELD -> PAID          (admin, transfers seller share)
    refund            HELD -> REFUNDED      (admin, refunds buyer)
    mark_shipped / mark_delivered / confirm_delivery  (delivery, advisory)

At-most-once money movement:
    1. Read the order and check it is HELD
    2. Open a transaction, re-read the row under select_for_update and
       compare versions (orders.locks.check_version)
    3. Call the gateway with a deterministic idempotency key
    4. Apply the transition and save (version increments)
    5. Commit

    Concurrent callers serialize on the row lock; the loser sees a new
    version and never reaches the gateway. A gateway failure rolls the
    transaction back and the order stays HELD. If the process dies after
    the gateway call but before commit, the retry sends the same key and
    the provider returns the original transfer.

Payment confirmation:
    The provider is asked to confirm the capture before the row lock is
    taken, and the order is re-read under the lock before HELD is written.
    A capture that lands on a CANCELLED order (the buyer paid just as the
    abandoned checkout was swept) is refunded, keyed on the payment
    reference.

Usage:
    from orders.services import OrderStateMachine

    machine = OrderStateMachine()
    outcome = machine.release_funds(order_id)
    outcome.transfer.transfer_id
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from django_fsm import TransitionNotAllowed, can_proceed

from core.exceptions import ValidationError
from core.services import BaseService
from payments.adapters import (
    CaptureConfirmation,
    IdempotencyKeyGenerator,
    PaymentGateway,
    RefundResult,
    TransferResult,
    get_gateway,
)
from payments.exceptions import GatewayError, GatewayRejectedError
from payments.models import ConnectedAccount

from orders.exceptions import (
    AmountMismatchError,
    ForbiddenError,
    InvalidStateTransitionError,
    OrderConflictError,
    OrderNotFoundError,
)
from orders.fees import FeeSplit
from orders.locks import check_version
from orders.models import Order
from orders.state_machines import OrderStatus

if TYPE_CHECKING:
    from authentication.models import User


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

APPLIED = "applied"
DUPLICATE = "duplicate"
REFUNDED = "refunded"
DECLINED = "declined"

DEFAULT_REFUND_REASON = "requested_by_customer"
LATE_CAPTURE_REFUND_REASON = "order_cancelled"

SELLER = "seller"
BUYER = "buyer"


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class PaymentConfirmation:
    """
    Result of applying a payment capture to an order.

    Attributes:
        order: The order after the call
        outcome: ``applied`` (PENDING -> HELD), ``duplicate`` (already held
            with this reference, nothing changed), ``refunded`` (captured
            after cancellation and returned to the buyer) or ``declined``
            (approval for a cancelled order left uncaptured)
    """

    order: Order
    outcome: str


@dataclass(frozen=True)
class ReleaseOutcome:
    order: Order
    transfer: TransferResult
    split: FeeSplit


@dataclass(frozen=True)
class RefundOutcome:
    order: Order
    refund: RefundResult


# =============================================================================
# State Machine Service
# =============================================================================


class OrderStateMachine(BaseService):
    """
    Applies escrow transitions with locking and gateway side effects.

    Args:
        gateway_resolver: Callable mapping a payment method to its
            PaymentGateway (defaults to payments.adapters.get_gateway)
    """

    def __init__(
        self,
        gateway_resolver: Callable[[str], PaymentGateway] = get_gateway,
    ):
        self._gateway_resolver = gateway_resolver

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_order(self, order_id: uuid.UUID | str) -> Order:
        try:
            return Order.objects.select_related("listing").get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError):
            raise OrderNotFoundError(
                f"Order {order_id} not found",
                details={"order_id": str(order_id)},
            ) from None

    def get_order(self, order_id: uuid.UUID | str) -> Order:
        """Load an order or raise OrderNotFoundError."""
        return self._get_order(order_id)

    @staticmethod
    def _invalid_transition(order: Order, operation: str) -> InvalidStateTransitionError:
        return InvalidStateTransitionError(
            f"Cannot {operation.replace('_', ' ')} an order that is "
            f"{order.status} / {order.delivery_status}",
            details={
                "order_id": str(order.id),
                "operation": operation,
                "status": order.status,
                "delivery_status": order.delivery_status,
            },
        )

    def _apply(self, order: Order, operation: str, *args: Any, **kwargs: Any) -> None:
        """Run a django-fsm transition, translating refusal to a domain error."""
        try:
            getattr(order, operation)(*args, **kwargs)
        except TransitionNotAllowed as e:
            raise self._invalid_transition(order, operation) from e

    def _require_status(self, order: Order, status: str, operation: str) -> None:
        if order.status != status:
            logger.warning(
                f"Refused {operation}: order is {order.status}",
                extra={"order_id": str(order.id), "status": order.status},
            )
            raise self._invalid_transition(order, operation)

    def _payout_destination(self, order: Order) -> str:
        account = ConnectedAccount.objects.filter(user_id=order.listing.seller_id).first()
        destination = account.payout_destination(order.payment_method) if account else ""
        if not destination:
            logger.warning(
                "Seller cannot receive payouts",
                extra={
                    "order_id": str(order.id),
                    "seller_id": order.listing.seller_id,
                },
            )
            raise GatewayRejectedError(
                "Seller has no payout account ready to receive funds",
                provider=order.payment_method,
                provider_code="payout_account_not_ready",
            )
        return destination

    # =========================================================================
    # PENDING -> HELD
    # =========================================================================

    def confirm_payment(
        self,
        order_id: uuid.UUID | str,
        external_reference: str,
        captured_amount_cents: int,
    ) -> PaymentConfirmation:
        """
        Apply a captured payment to a PENDING order.

        Idempotent on ``external_reference``: if the order already carries
        it, nothing changes and the outcome is ``duplicate``.

        The capture is verified with the provider before the row lock is
        taken; the order state is checked again under the lock. A capture
        that lands on a CANCELLED order is refunded (outcome ``refunded``)
        and the order stays CANCELLED.

        Raises:
            OrderNotFoundError: Unknown order
            OrderConflictError: Reference already belongs to another order
            InvalidStateTransitionError: Order is past PENDING with another
                reference
            AmountMismatchError: Captured amount differs from the order
            GatewayError: Provider could not confirm the capture, or could
                not refund a late one
        """
        log_context = {
            "order_id": str(order_id),
            "external_reference": external_reference,
            "captured_amount_cents": captured_amount_cents,
        }

        try:
            order = self._get_order(order_id)
        except OrderNotFoundError:
            logger.warning("Payment event for unknown order", extra=log_context)
            raise

        if order.external_payment_reference == external_reference:
            logger.info("Duplicate payment event ignored", extra=log_context)
            return PaymentConfirmation(order=order, outcome=DUPLICATE)

        self._require_reference_free(order, external_reference, log_context)
        if order.status not in (OrderStatus.PENDING, OrderStatus.CANCELLED):
            self._require_status(order, OrderStatus.PENDING, "confirm_payment")
        if order.status == OrderStatus.PENDING:
            self._check_amount(order, captured_amount_cents, log_context)

        gateway = self._gateway_resolver(order.payment_method)
        confirmation = gateway.confirm_capture(
            order_id=order.id,
            external_reference=external_reference,
            captured_amount_cents=captured_amount_cents,
        )

        if order.status == OrderStatus.CANCELLED:
            return self._refund_late_capture(order, gateway, confirmation, log_context)
        self._check_amount(order, confirmation.amount_cents, log_context)

        with self.atomic():
            locked = Order.objects.select_for_update().get(pk=order.pk)

            if locked.external_payment_reference == external_reference:
                logger.info("Duplicate payment event ignored", extra=log_context)
                return PaymentConfirmation(order=locked, outcome=DUPLICATE)

            if locked.status != OrderStatus.CANCELLED:
                self._require_status(locked, OrderStatus.PENDING, "confirm_payment")
                self._apply(locked, "hold", external_reference)
                try:
                    locked.save()
                except IntegrityError as e:
                    raise self._reference_conflict(locked, external_reference) from e

                listing = locked.listing
                if listing.is_available:
                    listing.mark_sold()
                    listing.save(update_fields=["status", "updated_at"])
                else:
                    logger.warning(
                        f"Paid order for listing that is {listing.status}",
                        extra={**log_context, "listing_id": str(listing.id)},
                    )

        if locked.status == OrderStatus.CANCELLED:
            # Cancelled while the capture was being verified
            return self._refund_late_capture(locked, gateway, confirmation, log_context)

        logger.info(
            "Payment captured into escrow",
            extra={**log_context, "version": locked.version},
        )
        return PaymentConfirmation(order=locked, outcome=APPLIED)

    def capture_approved_checkout(
        self,
        order_id: uuid.UUID | str,
        session_id: str,
    ) -> PaymentConfirmation:
        """
        Capture a checkout the buyer approved and apply it to the order.

        Used for providers that settle only on an explicit capture
        (PayPal). Approvals for orders that are no longer PENDING are left
        uncaptured (outcome ``declined``) unless the order already holds a
        payment (outcome ``duplicate``).

        Raises:
            OrderNotFoundError: Unknown order
            OrderConflictError: Checkout belongs to a different order
            GatewayError: Provider refused or could not capture
        """
        order = self._get_order(order_id)
        log_context = {"order_id": str(order.id), "session_id": session_id}

        if order.checkout_session_id != session_id:
            logger.warning("Approved checkout does not match order", extra=log_context)
            raise OrderConflictError(
                "Checkout does not belong to this order",
                details={"order_id": str(order.id), "session_id": session_id},
            )

        if order.external_payment_reference:
            logger.info("Approval for an order that is already paid", extra=log_context)
            return PaymentConfirmation(order=order, outcome=DUPLICATE)

        if order.status != OrderStatus.PENDING:
            logger.warning(
                f"Approved checkout left uncaptured: order is {order.status}",
                extra=log_context,
            )
            return PaymentConfirmation(order=order, outcome=DECLINED)

        gateway = self._gateway_resolver(order.payment_method)
        capture = gateway.capture_approved_checkout(
            order_id=order.id,
            session_id=session_id,
            idempotency_key=IdempotencyKeyGenerator.generate("capture", order.id),
        )
        return self.confirm_payment(
            order.id,
            external_reference=capture.external_reference,
            captured_amount_cents=capture.amount_cents,
        )

    def _refund_late_capture(
        self,
        order: Order,
        gateway: PaymentGateway,
        confirmation: CaptureConfirmation,
        log_context: dict[str, Any],
    ) -> PaymentConfirmation:
        """
        Return money captured for an order that was already cancelled.

        Keyed on the payment reference, so every redelivery of the event
        gets the same provider refund back.
        """
        logger.warning("Payment captured for a cancelled order", extra=log_context)
        refund = gateway.refund(
            order_id=order.id,
            external_reference=confirmation.external_reference,
            refund_amount_cents=confirmation.amount_cents,
            idempotency_key=IdempotencyKeyGenerator.generate(
                "late_capture_refund", confirmation.external_reference
            ),
            reason=LATE_CAPTURE_REFUND_REASON,
        )
        logger.warning(
            "Refunded payment captured after cancellation",
            extra={
                **log_context,
                "refund_id": refund.refund_id,
                "refund_amount_cents": refund.amount_cents,
            },
        )
        return PaymentConfirmation(order=order, outcome=REFUNDED)

    def _require_reference_free(
        self,
        order: Order,
        external_reference: str,
        log_context: dict[str, Any],
    ) -> None:
        reference_taken = (
            Order.objects.filter(external_payment_reference=external_reference)
            .exclude(pk=order.pk)
            .exists()
        )
        if reference_taken:
            logger.warning(
                "Payment reference already attached to another order",
                extra=log_context,
            )
            raise self._reference_conflict(order, external_reference)

    @staticmethod
    def _reference_conflict(order: Order, external_reference: str) -> OrderConflictError:
        return OrderConflictError(
            "Payment reference is already attached to another order",
            details={
                "order_id": str(order.id),
                "external_reference": external_reference,
            },
        )

    def _check_amount(
        self,
        order: Order,
        captured_amount_cents: int,
        log_context: dict[str, Any],
    ) -> None:
        if captured_amount_cents == order.amount_cents:
            return

        logger.warning(
            "Captured amount does not match order amount",
            extra={**log_context, "expected_amount_cents": order.amount_cents},
        )
        raise AmountMismatchError(
            "Captured amount does not match the order amount",
            details={
                "order_id": str(order.id),
                "expected": order.amount_cents,
                "captured": captured_amount_cents,
            },
        )

    # =========================================================================
    # PENDING -> CANCELLED
    # =========================================================================

    def cancel(self, order_id: uuid.UUID | str, reason: str = "") -> Order:
        """
        Cancel an order whose payment never arrived.

        The hosted checkout is expired before the status changes, so the
        buyer can no longer pay for a cancelled order.

        Raises:
            OrderNotFoundError: Unknown order
            InvalidStateTransitionError: Order is not PENDING
            OrderConflictError: Order changed while cancelling
            GatewayRejectedError: The buyer already paid the checkout
                (provider_code ``checkout_session_complete``); the order
                stays PENDING for the capture event to settle
        """
        order = self._get_order(order_id)
        self._require_status(order, OrderStatus.PENDING, "cancel")

        gateway = None
        if order.checkout_session_id:
            gateway = self._gateway_resolver(order.payment_method)

        with self.atomic():
            locked = check_version(order.pk, order.version)
            if gateway is not None:
                gateway.expire_checkout_session(
                    order_id=locked.id,
                    session_id=locked.checkout_session_id,
                )
            self._apply(locked, "cancel")
            locked.save()

        logger.info(
            "Order cancelled",
            extra={"order_id": str(locked.id), "reason": reason},
        )
        return locked

    # =========================================================================
    # HELD -> PAID
    # =========================================================================

    def release_funds(self, order_id: uuid.UUID | str) -> ReleaseOutcome:
        """
        Transfer the seller's share and mark the order PAID.

        Raises:
            OrderNotFoundError: Unknown order
            InvalidStateTransitionError: Order is not HELD
            OrderConflictError: Order changed since it was read
            GatewayRejectedError: Seller cannot receive payouts, or the
                provider refused the transfer
            GatewayUnavailableError: Provider unreachable (order stays HELD)
        """
        order = self._get_order(order_id)
        self._require_status(order, OrderStatus.HELD, "release_funds")

        split = order.fee_split
        destination = self._payout_destination(order)
        gateway = self._gateway_resolver(order.payment_method)
        idempotency_key = IdempotencyKeyGenerator.generate("release", order.id)

        log_context = {
            "order_id": str(order.id),
            "amount_cents": split.amount_cents,
            "platform_fee_cents": split.platform_fee_cents,
            "seller_amount_cents": split.seller_amount_cents,
            "idempotency_key": idempotency_key,
        }

        try:
            with self.atomic():
                locked = check_version(order.pk, order.version)
                transfer = gateway.transfer_to_seller(
                    order_id=locked.id,
                    seller_payout_account=destination,
                    seller_amount_cents=split.seller_amount_cents,
                    idempotency_key=idempotency_key,
                    currency=locked.currency,
                )
                self._apply(locked, "release", transfer.transfer_id)
                locked.save()
        except GatewayError as e:
            logger.error(
                f"Release failed at gateway: {e.message}",
                extra={**log_context, "error_code": e.error_code},
            )
            raise

        logger.info(
            "Escrow released to seller",
            extra={**log_context, "transfer_id": transfer.transfer_id},
        )
        return ReleaseOutcome(order=locked, transfer=transfer, split=split)

    # =========================================================================
    # HELD -> REFUNDED
    # =========================================================================

    def refund(
        self,
        order_id: uuid.UUID | str,
        amount_override: int | None = None,
        reason: str = DEFAULT_REFUND_REASON,
    ) -> RefundOutcome:
        """
        Refund the buyer (fully, or ``amount_override`` cents) and mark
        the order REFUNDED.

        Raises:
            ValidationError: amount_override outside (0, amount_cents]
            OrderNotFoundError: Unknown order
            InvalidStateTransitionError: Order is not HELD
            OrderConflictError: Order changed since it was read
            GatewayError: Provider refused or was unreachable (order stays HELD)
        """
        order = self._get_order(order_id)
        self._require_status(order, OrderStatus.HELD, "refund")

        refund_amount = order.amount_cents
        if amount_override is not None:
            if (
                isinstance(amount_override, bool)
                or not isinstance(amount_override, int)
                or not 0 < amount_override <= order.amount_cents
            ):
                raise ValidationError(
                    "Refund amount must be between 1 and the order amount",
                    details={
                        "amount_cents": order.amount_cents,
                        "amount_override": repr(amount_override),
                    },
                )
            refund_amount = amount_override

        gateway = self._gateway_resolver(order.payment_method)
        idempotency_key = IdempotencyKeyGenerator.generate("refund", order.id)

        log_context = {
            "order_id": str(order.id),
            "refund_amount_cents": refund_amount,
            "reason": reason,
            "idempotency_key": idempotency_key,
        }

        try:
            with self.atomic():
                locked = check_version(order.pk, order.version)
                refund = gateway.refund(
                    order_id=locked.id,
                    external_reference=locked.external_payment_reference,
                    refund_amount_cents=refund_amount,
                    idempotency_key=idempotency_key,
                    reason=reason,
                )
                self._apply(locked, "refund", refund.refund_id, refund.amount_cents)
                locked.save()
        except GatewayError as e:
            logger.error(
                f"Refund failed at gateway: {e.message}",
                extra={**log_context, "error_code": e.error_code},
            )
            raise

        logger.info(
            "Escrow refunded to buyer",
            extra={**log_context, "refund_id": refund.refund_id},
        )
        return RefundOutcome(order=locked, refund=refund)

    # =========================================================================
    # Delivery (advisory)
    # =========================================================================

    def mark_shipped(self, order_id: uuid.UUID | str, actor: User) -> Order:
        """Seller reports shipping. Requires the order to be HELD."""
        return self._advance_delivery(order_id, actor, SELLER, "mark_shipped")

    def mark_delivered(self, order_id: uuid.UUID | str, actor: User) -> Order:
        """Seller reports delivery. Requires a prior shipment."""
        return self._advance_delivery(order_id, actor, SELLER, "mark_delivered")

    def confirm_delivery(self, order_id: uuid.UUID | str, actor: User) -> Order:
        """Buyer confirms receipt. Requires a reported delivery."""
        return self._advance_delivery(order_id, actor, BUYER, "confirm_delivery")

    def _advance_delivery(
        self,
        order_id: uuid.UUID | str,
        actor: User,
        role: str,
        operation: str,
    ) -> Order:
        order = self._get_order(order_id)

        party_id = order.listing.seller_id if role == SELLER else order.buyer_id
        if actor is None or actor.pk != party_id:
            logger.warning(
                f"Refused {operation}: actor is not the {role}",
                extra={"order_id": str(order.id), "actor_id": getattr(actor, "pk", None)},
            )
            raise ForbiddenError(
                f"Only the {role} can {operation.replace('_', ' ')}",
                details={"order_id": str(order.id)},
            )

        if not can_proceed(getattr(order, operation)):
            raise self._invalid_transition(order, operation)

        with self.atomic():
            locked = check_version(order.pk, order.version)
            self._apply(locked, operation)
            locked.save()

        logger.info(
            f"Delivery updated: {locked.delivery_status}",
            extra={"order_id": str(locked.id), "actor_id": actor.pk},
        )
        return locked
