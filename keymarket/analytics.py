"""
analytics.py - Curve Series for Charts and Audits

Vectorised evaluations of the bonding curve over many supply points, used
to draw price charts and cost tables. The float series are for display
only; settlement always goes through the integer functions in curve.py.

Functions:
    price_series(params, supplies)       - marginal price at each supply (float64)
    cost_series(params, supply, amounts) - batch cost of each amount from one supply (float64)
    exact_price_table(params, start, stop) - exact integer marginal prices (object array)
"""

from __future__ import annotations
from typing import Sequence, Union

import numpy as np

from .core import CurveParameters, PricingMode, InvalidSupply, ExceedsMaxSupply
from .curve import price_of_supply

ArrayLike = Union[Sequence[int], np.ndarray]


def _as_supply_array(values: ArrayLike, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be one-dimensional")
    if np.any(arr < 0):
        raise ValueError(f"{name} must be non-negative")
    return arr


def price_series(params: CurveParameters, supplies: ArrayLike) -> np.ndarray:
    """
    Marginal price base_price + s² * slope / precision at each supply.

    Raises:
        InvalidSupply: If any supply exceeds max_supply.
    """
    s = _as_supply_array(supplies, "supplies")
    if s.size and s.max() > params.max_supply:
        raise InvalidSupply(f"supply {int(s.max())} above max_supply {params.max_supply}")
    return params.base_price + s * s * (params.slope / params.precision)


def cost_series(params: CurveParameters, supply: int, amounts: ArrayLike) -> np.ndarray:
    """
    Cost of buying each amount starting at `supply` under the market's
    pricing mode, evaluated in float64: the sum-of-squares closed form for
    EXACT, the endpoint average for TRAPEZOIDAL. Entries agree with
    batch_price up to float rounding and integer truncation.

    Raises:
        ExceedsMaxSupply: If supply + max(amounts) exceeds max_supply.
    """
    n = _as_supply_array(amounts, "amounts")
    if supply > params.max_supply:
        raise InvalidSupply(f"supply {supply} above max_supply {params.max_supply}")
    if n.size and supply + n.max() > params.max_supply:
        raise ExceedsMaxSupply(
            f"supply {supply} + amount {int(n.max())} exceeds max_supply {params.max_supply}"
        )

    start = np.float64(supply)
    if params.mode is PricingMode.TRAPEZOIDAL:
        def marginal(x):
            return params.base_price + x * x * (params.slope / params.precision)
        return n * (marginal(start) + marginal(start + n)) / 2

    def pyramid(x: np.ndarray) -> np.ndarray:
        return x * (x - 1) * (2 * x - 1) / 6

    squares = pyramid(start + n) - pyramid(np.full_like(n, start))
    return params.base_price * n + squares * (params.slope / params.precision)


def exact_price_table(params: CurveParameters, start: int, stop: int) -> np.ndarray:
    """Exact integer marginal prices for supplies in [start, stop), as Python ints."""
    if start < 0 or stop < start:
        raise ValueError(f"invalid range [{start}, {stop})")
    return np.array([price_of_supply(params, s) for s in range(start, stop)], dtype=object)
