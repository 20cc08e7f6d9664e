"""
fees.py - Fee Waterfall

Splits a gross amount into creator, protocol and referrer shares using
fixed-point basis-point rates:

    share = amount * bps // 10_000          (truncation toward zero)

Shares are always computed in the same order (creator, protocol, referrer)
and every truncation loss stays in the remainder, so no recipient ever
receives more than its nominal rate and identical inputs give identical
outputs.

Without a referrer the referrer share is 0 and is not redistributed: it
stays with the counterparty (lower cost for a buyer, higher proceeds for a
seller).
"""

from __future__ import annotations

from .arith import require_u64, checked_add, checked_sub, mul_div
from .core import (
    BPS_DENOMINATOR,
    FeeSchedule, RevenueDistribution, TradeBreakdown, TradeSide,
    InvalidAmount,
)


# Volume thresholds for fee discounts (smallest payment unit, 24h window)
HIGH_VOLUME_THRESHOLD = 100_000_000_000
MEDIUM_VOLUME_THRESHOLD = 10_000_000_000

# Holder-count thresholds for fee discounts
LARGE_COMMUNITY_HOLDERS = 1000
MEDIUM_COMMUNITY_HOLDERS = 100


def fee_share(amount: int, bps: int) -> int:
    """amount * bps / 10_000, truncated."""
    return mul_div(amount, bps, BPS_DENOMINATOR)


def distribute(total: int, schedule: FeeSchedule, has_referrer: bool) -> RevenueDistribution:
    """
    Split a gross amount into fee shares plus the remainder.

    Args:
        total: Gross amount to split
        schedule: Fee rates
        has_referrer: Whether a referrer takes its share

    Returns:
        RevenueDistribution whose four fields sum exactly to total.
    """
    require_u64(total, "total")
    creator = fee_share(total, schedule.creator_bps)
    protocol = fee_share(total, schedule.protocol_bps)
    referrer = fee_share(total, schedule.referrer_bps) if has_referrer else 0
    distributed = checked_add(checked_add(creator, protocol), referrer)
    return RevenueDistribution(
        creator_amount=creator,
        protocol_amount=protocol,
        referrer_amount=referrer,
        remaining_amount=checked_sub(total, distributed),
    )


def split(
    base_price: int,
    schedule: FeeSchedule,
    has_referrer: bool,
    side: TradeSide = TradeSide.BUY,
    require_positive: bool = False,
) -> TradeBreakdown:
    """
    Build the settlement breakdown of a trade from its base price.

    Buy:  net_amount = base_price + fees   (what the buyer pays)
    Sell: net_amount = base_price - fees   (what the seller receives)

    Raises:
        InvalidAmount: If require_positive and base_price == 0.
        ArithmeticOverflow: If the buy total exceeds u64.
    """
    if require_positive and base_price == 0:
        raise InvalidAmount("trade must have a positive base price")
    dist = distribute(base_price, schedule, has_referrer)
    if side is TradeSide.BUY:
        net = checked_add(base_price, dist.total_fees)
    else:
        net = dist.remaining_amount
    return TradeBreakdown(
        side=side,
        base_price=base_price,
        creator_fee=dist.creator_amount,
        protocol_fee=dist.protocol_amount,
        referrer_fee=dist.referrer_amount,
        net_amount=net,
    )


# ============================================================================
# DYNAMIC FEE RATES
# ============================================================================

def dynamic_fee_bps(base_fee_bps: int, volume_24h: int, holder_count: int) -> int:
    """
    Discount a fee rate for busy markets and large communities.

    Volume above 100e9 units takes 90% of the rate, above 10e9 takes 95%.
    More than 1000 holders then takes 85%, more than 100 takes 90%.
    The result never drops below half of the base rate.
    """
    adjusted = base_fee_bps
    if volume_24h > HIGH_VOLUME_THRESHOLD:
        adjusted = adjusted * 90 // 100
    elif volume_24h > MEDIUM_VOLUME_THRESHOLD:
        adjusted = adjusted * 95 // 100

    if holder_count > LARGE_COMMUNITY_HOLDERS:
        adjusted = adjusted * 85 // 100
    elif holder_count > MEDIUM_COMMUNITY_HOLDERS:
        adjusted = adjusted * 90 // 100

    return max(adjusted, base_fee_bps // 2)


def adjusted_schedule(schedule: FeeSchedule, volume_24h: int, holder_count: int) -> FeeSchedule:
    """Apply dynamic_fee_bps to the creator and protocol rates of a schedule."""
    return FeeSchedule(
        creator_bps=dynamic_fee_bps(schedule.creator_bps, volume_24h, holder_count),
        protocol_bps=dynamic_fee_bps(schedule.protocol_bps, volume_24h, holder_count),
        referrer_bps=schedule.referrer_bps,
    )
