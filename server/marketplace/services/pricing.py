"""Commission split and refund policy arithmetic, in integer minor units."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..models.account import SellerTier

COMMISSION_PERCENT_BY_TIER = {
    SellerTier.FREE.value: 15,
    SellerTier.PRO.value: 10,
    SellerTier.ELITE.value: 5,
}

DEFAULT_FREE_CANCEL_HOURS = 48
DEFAULT_REFUND_PERCENT_AFTER_DEADLINE = 0


@dataclass(frozen=True)
class CommissionSplit:
    """How one booking amount divides between platform and seller."""

    commission_percent: int
    application_fee_amount: int
    seller_net_amount: int


def commission_percent_for_tier(tier: Optional[str]) -> int:
    """Platform commission for a seller tier; unknown tiers pay the free rate."""
    return COMMISSION_PERCENT_BY_TIER.get(
        (tier or SellerTier.FREE.value).lower(),
        COMMISSION_PERCENT_BY_TIER[SellerTier.FREE.value],
    )


def split_amount(amount: int, commission_percent: int) -> CommissionSplit:
    """
    Split an amount into application fee and seller net.

    The fee rounds half up, so exact halves go to the platform. The net
    is derived by subtraction, so the two parts always sum to ``amount``.
    """
    if amount <= 0:
        raise ValueError("amount must be positive")
    if not 0 <= commission_percent <= 100:
        raise ValueError("commission_percent must be within 0..100")

    fee = (amount * commission_percent + 50) // 100
    return CommissionSplit(
        commission_percent=commission_percent,
        application_fee_amount=fee,
        seller_net_amount=amount - fee,
    )


def clamp_percent(value: int) -> int:
    return max(0, min(100, int(value)))


def refund_percent(
    start: datetime,
    now: datetime,
    free_cancel_hours: int = DEFAULT_FREE_CANCEL_HOURS,
    refund_percent_after_deadline: int = DEFAULT_REFUND_PERCENT_AFTER_DEADLINE,
) -> int:
    """
    Refund percentage for a cancellation at ``now``.

    Full refund when at least ``free_cancel_hours`` remain before the
    start, otherwise the post-deadline percentage clamped to 0..100.
    Both instants must be timezone-aware.
    """
    hours_before_start = (start - now).total_seconds() / 3600
    if hours_before_start >= free_cancel_hours:
        return 100
    return clamp_percent(refund_percent_after_deadline)


def refund_amount(amount: int, percent: int) -> int:
    """Refund in minor units, rounded down."""
    return (amount * clamp_percent(percent)) // 100
