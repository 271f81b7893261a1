"""
Platform fee calculation.

The platform keeps ``fee_basis_points / 10000`` of every order, rounded
down to the cent; the seller receives the remainder. All arithmetic is on
integers, so the two parts always add up to the order amount exactly.

Usage:
    from orders.fees import compute_split, get_platform_fee_bps

    split = compute_split(7500, get_platform_fee_bps())
    split.platform_fee_cents   # 600
    split.seller_amount_cents  # 6900
"""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings

from core.exceptions import ValidationError

BASIS_POINTS_DENOMINATOR = 10_000
DEFAULT_PLATFORM_FEE_BPS = 800


def _require_int(name: str, value: object) -> int:
    # bool is a subclass of int
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"{name} must be an integer",
            details={name: repr(value)},
        )
    return value


@dataclass(frozen=True)
class FeeSplit:
    """
    Division of an order amount between platform and seller.

    Attributes:
        amount_cents: Full amount paid by the buyer
        fee_basis_points: Fee rate used (800 = 8%)
        platform_fee_cents: Platform's share, rounded down
        seller_amount_cents: Seller's share (amount minus fee)
    """

    amount_cents: int
    fee_basis_points: int
    platform_fee_cents: int
    seller_amount_cents: int

    def __post_init__(self) -> None:
        if self.platform_fee_cents < 0 or self.seller_amount_cents < 0:
            raise ValidationError("Fee split parts cannot be negative")
        if self.platform_fee_cents + self.seller_amount_cents != self.amount_cents:
            raise ValidationError(
                "Fee split does not add up to the order amount",
                details={
                    "amount_cents": self.amount_cents,
                    "platform_fee_cents": self.platform_fee_cents,
                    "seller_amount_cents": self.seller_amount_cents,
                },
            )


def compute_split(amount_cents: int, fee_basis_points: int) -> FeeSplit:
    """
    Split an amount into platform fee and seller payout.

    Args:
        amount_cents: Positive order amount
        fee_basis_points: Fee rate in [0, 10000]

    Raises:
        ValidationError: Non-integer input, non-positive amount or rate
            out of range
    """
    amount_cents = _require_int("amount_cents", amount_cents)
    fee_basis_points = _require_int("fee_basis_points", fee_basis_points)

    if amount_cents <= 0:
        raise ValidationError(
            "amount_cents must be positive",
            details={"amount_cents": amount_cents},
        )
    if not 0 <= fee_basis_points <= BASIS_POINTS_DENOMINATOR:
        raise ValidationError(
            "fee_basis_points must be between 0 and 10000",
            details={"fee_basis_points": fee_basis_points},
        )

    platform_fee_cents = amount_cents * fee_basis_points // BASIS_POINTS_DENOMINATOR
    return FeeSplit(
        amount_cents=amount_cents,
        fee_basis_points=fee_basis_points,
        platform_fee_cents=platform_fee_cents,
        seller_amount_cents=amount_cents - platform_fee_cents,
    )


def get_platform_fee_bps() -> int:
    """Configured platform fee rate (settings.PLATFORM_FEE_BPS)."""
    bps = _require_int(
        "PLATFORM_FEE_BPS",
        getattr(settings, "PLATFORM_FEE_BPS", DEFAULT_PLATFORM_FEE_BPS),
    )
    if not 0 <= bps <= BASIS_POINTS_DENOMINATOR:
        raise ValidationError(
            "PLATFORM_FEE_BPS must be between 0 and 10000",
            details={"PLATFORM_FEE_BPS": bps},
        )
    return bps
