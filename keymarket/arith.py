"""
arith.py - Checked Unsigned Integer Arithmetic

Every amount in the engine is an unsigned integer of fixed width. Python ints
never overflow, so the width is enforced here explicitly:

    checked_add / checked_sub / checked_mul / checked_div
    mul_div      - (a * b) // d with a 128-bit intermediate
    require_u64  - validate an input amount

Each function raises a distinct MathError subclass instead of wrapping,
saturating or returning a fallback value.
"""

from __future__ import annotations

from .core import (
    U64_MAX, U128_MAX,
    ArithmeticOverflow, ArithmeticUnderflow, DivisionByZero,
)


def require_u64(value: int, name: str = "value") -> int:
    """
    Validate that value is an int in [0, U64_MAX].

    Raises:
        TypeError: If value is not an int (bools are rejected).
        ArithmeticUnderflow: If value is negative.
        ArithmeticOverflow: If value does not fit in 64 bits.
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ArithmeticUnderflow(f"{name} is negative: {value}")
    if value > U64_MAX:
        raise ArithmeticOverflow(f"{name} exceeds u64: {value}")
    return value


def checked_add(a: int, b: int, limit: int = U64_MAX) -> int:
    result = a + b
    if result > limit:
        raise ArithmeticOverflow(f"{a} + {b} exceeds {limit.bit_length()}-bit range")
    return result


def checked_sub(a: int, b: int) -> int:
    if b > a:
        raise ArithmeticUnderflow(f"{a} - {b} is negative")
    return a - b


def checked_mul(a: int, b: int, limit: int = U64_MAX) -> int:
    result = a * b
    if result > limit:
        raise ArithmeticOverflow(f"{a} * {b} exceeds {limit.bit_length()}-bit range")
    return result


def checked_div(a: int, b: int) -> int:
    """Floor division of non-negative integers (truncation toward zero)."""
    if b == 0:
        raise DivisionByZero(f"{a} / 0")
    return a // b


def mul_div(a: int, b: int, d: int, limit: int = U64_MAX) -> int:
    """
    Compute (a * b) // d.

    The product may use the full 128-bit intermediate width; the quotient
    must fit in `limit`.
    """
    product = checked_mul(a, b, U128_MAX)
    return narrow(checked_div(product, d), limit)


def narrow(value: int, limit: int = U64_MAX) -> int:
    """Check that a wide intermediate fits back into the target width."""
    if value > limit:
        raise ArithmeticOverflow(f"{value} exceeds {limit.bit_length()}-bit range")
    return value
