"""
curve.py - Bonding Curve Engine

Pure pricing functions for a quadratic bonding curve:

    price_of_supply(s) = base_price + s² * slope / precision

A batch of n contiguous units starting at supply s is priced in constant
time. The canonical (EXACT) method uses the sum-of-squares identity

    Σ_{k=s}^{s+n-1} k² = f(s+n) - f(s),    f(x) = x(x-1)(2x-1)/6

    batch_price(s, n) = base_price * n + floor(slope * (f(s+n) - f(s)) / precision)

The quadratic term is truncated once per batch, so the result is exactly
the floor of the true discrete sum. The TRAPEZOIDAL method averages the
end-point marginal prices instead; it is cheaper and biased, and a market
that uses it uses it for both buys and sells.

Selling n units at supply s pays exactly what buying n units at supply s - n
costs:

    sell_price(s, n) == buy_price(s - n, n)

All functions are pure, take every input explicitly, and raise a MathError
instead of wrapping on overflow.
"""

from __future__ import annotations
from typing import Optional
import logging

from .arith import (
    require_u64, checked_add, checked_sub, checked_mul, checked_div, mul_div, narrow,
)
from .core import (
    U128_MAX,
    CurveParameters, CurveStats, FeeSchedule, PricingMode, TradeSide,
    InvalidSupply, ExceedsMaxSupply, InsufficientSupply, MathError,
)
from .fees import split

logger = logging.getLogger(__name__)


# ============================================================================
# MARGINAL PRICE
# ============================================================================

def price_of_supply(params: CurveParameters, supply: int) -> int:
    """
    Instantaneous marginal unit price at a supply point.

    Raises:
        InvalidSupply: If supply > max_supply.
        ArithmeticOverflow: If any intermediate exceeds its width.
    """
    require_u64(supply, "supply")
    if supply > params.max_supply:
        raise InvalidSupply(f"supply {supply} above max_supply {params.max_supply}")
    squared = checked_mul(supply, supply, U128_MAX)
    curve_term = mul_div(squared, params.slope, params.precision)
    return checked_add(params.base_price, curve_term)


def sum_of_squares(supply: int, amount: int) -> int:
    """Σ k² for k in [supply, supply + amount), in closed form (128-bit)."""
    end = checked_add(supply, amount)
    return checked_sub(_square_pyramid(end), _square_pyramid(supply))


def _square_pyramid(x: int) -> int:
    # f(x) = 0² + 1² + ... + (x-1)² = x(x-1)(2x-1)/6
    if x == 0:
        return 0
    product = checked_mul(checked_mul(x, x - 1, U128_MAX), 2 * x - 1, U128_MAX)
    return checked_div(product, 6)


# ============================================================================
# BATCH PRICE
# ============================================================================

def _check_batch(params: CurveParameters, supply: int, amount: int) -> int:
    require_u64(supply, "supply")
    require_u64(amount, "amount")
    if supply > params.max_supply:
        raise InvalidSupply(f"supply {supply} above max_supply {params.max_supply}")
    end = checked_add(supply, amount)
    if end > params.max_supply:
        raise ExceedsMaxSupply(
            f"supply {supply} + amount {amount} exceeds max_supply {params.max_supply}"
        )
    return end


def batch_price_exact(params: CurveParameters, supply: int, amount: int) -> int:
    """Exact discrete-sum price of `amount` units starting at `supply`."""
    require_u64(amount, "amount")
    if amount == 0:
        return 0
    _check_batch(params, supply, amount)
    linear = checked_mul(params.base_price, amount)
    curve = mul_div(sum_of_squares(supply, amount), params.slope, params.precision)
    return checked_add(linear, curve)


def batch_price_trapezoidal(params: CurveParameters, supply: int, amount: int) -> int:
    """
    Trapezoidal approximation: amount * (p(s) + p(s + amount)) / 2.

    Lower-precision mode. Overstates the exact discrete sum on a convex
    curve; never mix with the exact method inside one market.
    """
    require_u64(amount, "amount")
    if amount == 0:
        return 0
    end = _check_batch(params, supply, amount)
    endpoints = checked_add(price_of_supply(params, supply), price_of_supply(params, end), U128_MAX)
    return narrow(checked_div(checked_mul(endpoints, amount, U128_MAX), 2))


def batch_price(params: CurveParameters, supply: int, amount: int) -> int:
    """
    Price of `amount` contiguous units starting at `supply`, using the
    market's configured pricing mode.

    Returns 0 for amount == 0.

    Raises:
        InvalidSupply: If supply > max_supply.
        ExceedsMaxSupply: If supply + amount > max_supply.
        ArithmeticOverflow: If any intermediate exceeds its width.
    """
    if params.mode is PricingMode.TRAPEZOIDAL:
        return batch_price_trapezoidal(params, supply, amount)
    return batch_price_exact(params, supply, amount)


def buy_price(params: CurveParameters, supply: int, amount: int) -> int:
    """Base price of buying `amount` units at current `supply`."""
    return batch_price(params, supply, amount)


def sell_price(params: CurveParameters, supply: int, amount: int) -> int:
    """
    Base price of selling `amount` units at current `supply`.

    Priced as the purchase of the same units at the post-sale supply.

    Raises:
        InsufficientSupply: If amount > supply.
    """
    require_u64(supply, "supply")
    require_u64(amount, "amount")
    if amount == 0:
        return 0
    if amount > supply:
        raise InsufficientSupply(f"cannot sell {amount} of supply {supply}")
    if supply > params.max_supply:
        raise InvalidSupply(f"supply {supply} above max_supply {params.max_supply}")
    return batch_price(params, supply - amount, amount)


# ============================================================================
# CURVE STATISTICS
# ============================================================================

def market_cap(params: CurveParameters, supply: int) -> int:
    """Marginal price at `supply` times the circulating supply."""
    return checked_mul(price_of_supply(params, supply), supply)


def liquidity(params: CurveParameters, supply: int) -> int:
    """Value returned by selling the whole circulating supply back to the curve."""
    if supply == 0:
        return 0
    return sell_price(params, supply, supply)


def curve_stats(params: CurveParameters, supply: int) -> CurveStats:
    return CurveStats(
        current_price=price_of_supply(params, supply),
        market_cap=market_cap(params, supply),
        liquidity=liquidity(params, supply),
        supply=supply,
        max_supply=params.max_supply,
    )


def max_buy_amount(
    params: CurveParameters,
    schedule: FeeSchedule,
    supply: int,
    max_payment: int,
    has_referrer: bool = False,
    limit: Optional[int] = None,
) -> int:
    """
    Largest amount whose fee-inclusive buy cost is at most max_payment.

    Binary search over the closed-form price, so the cost is
    O(log(max_supply)) price evaluations regardless of the answer.

    Args:
        params: Curve parameters
        schedule: Fee schedule applied to the buy
        supply: Current supply
        max_payment: Budget including fees
        has_referrer: Whether a referrer fee applies
        limit: Optional additional cap (e.g. the per-trade maximum)

    Returns:
        The amount, or 0 if not even one unit is affordable or the market is full.
    """
    require_u64(supply, "supply")
    require_u64(max_payment, "max_payment")
    if supply > params.max_supply:
        raise InvalidSupply(f"supply {supply} above max_supply {params.max_supply}")

    # Every unit costs at least base_price, which bounds the search.
    high = min(params.max_supply - supply, max_payment // params.base_price)
    if limit is not None:
        high = min(high, limit)
    low = 0

    while low < high:
        mid = low + (high - low + 1) // 2
        try:
            cost = split(buy_price(params, supply, mid), schedule, has_referrer, TradeSide.BUY).net_amount
        except MathError:
            # A cost outside the integer range is certainly above the budget.
            cost = None
        if cost is not None and cost <= max_payment:
            low = mid
        else:
            high = mid - 1

    logger.debug("max_buy_amount supply=%d budget=%d -> %d", supply, max_payment, low)
    return low
