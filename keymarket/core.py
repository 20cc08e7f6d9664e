"""
Core types for the key market pricing-and-settlement engine.

This module provides the foundational data structures and protocols:
1. Constants: integer widths, basis-point denominator, reserved accounts
2. Exceptions: MarketError and its four families (input, math, state, settlement)
3. Immutable records: CurveParameters, FeeSchedule, Market, HolderBalance,
   TradeBreakdown, RevenueDistribution, Transfer, TradeEvent, TradeQuote
4. Protocols: MarketStore, Settlement, AtomicSettlement, Clock, EventSink

Every record is a frozen dataclass. Nothing in this module mutates state;
new state is expressed by constructing new records.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import (
    ContextManager, Optional, Protocol, Sequence, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Width of every persisted amount (prices, fees, supply, balances).
U64_MAX = 2 ** 64 - 1

# Width allowed for intermediate products inside curve and fee formulas.
U128_MAX = 2 ** 128 - 1

# 10_000 basis points = 100%.
BPS_DENOMINATOR = 10_000

# Reserved account that issues payment units into the settlement ledger.
# It is exempt from balance validation.
SYSTEM_ACCOUNT = "system"

# Prefix of the per-subject escrow account holding curve reserves.
RESERVE_PREFIX = "reserve:"


def reserve_account(subject_id: str) -> str:
    """Return the escrow account that holds the curve reserve of a subject."""
    return f"{RESERVE_PREFIX}{subject_id}"


# ============================================================================
# ENUMS
# ============================================================================

class TradeSide(Enum):
    """Direction of a trade from the trader's point of view."""
    BUY = "buy"
    SELL = "sell"


class PricingMode(Enum):
    """
    Batch pricing formula used by a market.

    EXACT: closed-form discrete sum of the marginal price (canonical).
    TRAPEZOIDAL: average of the end-point prices times the amount. Cheaper,
                 but only an approximation with a bias that grows with
                 curvature. Lower-precision mode.
    """
    EXACT = "exact"
    TRAPEZOIDAL = "trapezoidal"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MarketError(Exception):
    """Base exception for all key market errors."""
    pass


# -- domain input errors ------------------------------------------------------

class InputError(MarketError):
    """Raised when a request is rejected before any computation."""
    pass


class InvalidAmount(InputError):
    """Raised when a trade amount is zero or a positive price is required."""
    pass


class ExceedsMaxPerTrade(InputError):
    """Raised when a trade amount exceeds the configured per-trade cap."""
    pass


class InvalidReferrer(InputError):
    """Raised when a referrer is empty or refers the trader to themselves."""
    pass


class SlippageExceeded(InputError):
    """Raised when the priced trade is worse than the caller's bound."""
    pass


class TradeDeadlineExceeded(InputError):
    """Raised when the caller's deadline has passed before execution."""
    pass


class TradingPaused(InputError):
    """Raised when trading has been paused platform-wide."""
    pass


# -- configuration errors -------------------------------------------------------

class ConfigurationError(MarketError, ValueError):
    """Raised when immutable market parameters are invalid."""
    pass


class InvalidCurveParameters(ConfigurationError):
    """Raised when curve parameters violate their invariants."""
    pass


class InvalidFeeSchedule(ConfigurationError):
    """Raised when fee rates are out of range or sum above 100%."""
    pass


# -- arithmetic errors ----------------------------------------------------------

class MathError(MarketError):
    """Raised when checked arithmetic hits a system limit."""
    pass


class ArithmeticOverflow(MathError):
    """Raised when a result or intermediate product exceeds its integer width."""
    pass


class ArithmeticUnderflow(MathError):
    """Raised when a subtraction would produce a negative amount."""
    pass


class DivisionByZero(MathError):
    """Raised when a checked division has a zero divisor."""
    pass


# -- state errors ---------------------------------------------------------------

class StateError(MarketError):
    """Raised when current market state does not allow the trade."""
    pass


class InvalidSupply(StateError):
    """Raised when a supply point lies outside the curve's domain."""
    pass


class ExceedsMaxSupply(StateError):
    """Raised when a purchase would push supply above max_supply."""
    pass


class InsufficientSupply(StateError):
    """Raised when a sale is larger than the circulating supply."""
    pass


class InsufficientKeys(StateError):
    """Raised when a sale is larger than the seller's holding."""
    pass


class MarketNotFound(StateError):
    """Raised when no market exists for a subject."""
    pass


class MarketInactive(StateError):
    """Raised when a market has been archived."""
    pass


class CannotSellLastKey(StateError):
    """Raised when a subject tries to sell the last outstanding key."""
    pass


# -- settlement errors ----------------------------------------------------------

class SettlementError(MarketError):
    """Raised when the external settlement collaborator fails."""
    pass


class InsufficientFunds(SettlementError):
    """Raised when an account cannot cover a transfer."""
    pass


class AccountNotRegistered(SettlementError):
    """Raised when a transfer names an unknown account."""
    pass


class DuplicateSettlement(SettlementError):
    """Raised when a settlement batch id has already been applied."""
    pass


# ============================================================================
# PARAMETERS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CurveParameters:
    """
    Immutable bonding curve parameters for one market.

    Marginal price at supply s: base_price + s * s * slope // precision.

    Attributes:
        base_price: Price of the first unit, in the smallest payment unit.
        slope: Numerator of the quadratic coefficient.
        precision: Denominator of the quadratic coefficient.
        max_supply: Upper bound on circulating supply.
        mode: Batch pricing formula; fixed for the life of the market.
    """
    base_price: int
    slope: int
    precision: int
    max_supply: int
    mode: PricingMode = PricingMode.EXACT

    def __post_init__(self):
        for name in ('base_price', 'slope', 'precision', 'max_supply'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidCurveParameters(f"{name} must be an int, got {type(value).__name__}")
            if value <= 0:
                raise InvalidCurveParameters(f"{name} must be positive, got {value}")
            if value > U64_MAX:
                raise InvalidCurveParameters(f"{name} exceeds u64: {value}")
        if not isinstance(self.mode, PricingMode):
            raise InvalidCurveParameters(f"mode must be a PricingMode, got {self.mode!r}")


@dataclass(frozen=True, slots=True)
class FeeSchedule:
    """
    Fee rates in basis points, applied to the base price of a batch.

    The three rates together may not exceed 100%.
    """
    creator_bps: int
    protocol_bps: int
    referrer_bps: int = 0

    def __post_init__(self):
        for name in ('creator_bps', 'protocol_bps', 'referrer_bps'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidFeeSchedule(f"{name} must be an int, got {type(value).__name__}")
            if not 0 <= value <= BPS_DENOMINATOR:
                raise InvalidFeeSchedule(f"{name} must be in [0, {BPS_DENOMINATOR}], got {value}")
        if self.total_bps > BPS_DENOMINATOR:
            raise InvalidFeeSchedule(
                f"fees sum to {self.total_bps} bps, above {BPS_DENOMINATOR}"
            )

    @property
    def total_bps(self) -> int:
        return self.creator_bps + self.protocol_bps + self.referrer_bps


# ============================================================================
# PERSISTED RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Market:
    """
    Per-subject market state.

    Attributes:
        subject_id: The subject whose keys trade in this market.
        total_supply: Circulating keys (0 <= total_supply <= max_supply).
        total_volume: Cumulative base price traded, both directions.
        created_at: When the first key was issued.
        last_trade_at: Time of the most recent committed trade.
        holder_count: Holders with a non-zero balance.
        is_active: False once the market has been archived.
    """
    subject_id: str
    total_supply: int
    total_volume: int
    created_at: datetime
    last_trade_at: datetime
    holder_count: int = 0
    is_active: bool = True

    def __repr__(self) -> str:
        state = "" if self.is_active else ", archived"
        return (f"Market({self.subject_id}: supply={self.total_supply}, "
                f"volume={self.total_volume}, holders={self.holder_count}{state})")


@dataclass(frozen=True, slots=True)
class HolderBalance:
    """Keys of one subject held by one account."""
    subject_id: str
    holder_id: str
    amount: int
    last_trade_at: datetime


# ============================================================================
# TRADE RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class RevenueDistribution:
    """
    Fixed-point split of a gross amount.

    remaining carries every truncation loss; it is what is left for the
    counterparty once the fee recipients have been paid.
    """
    creator_amount: int
    protocol_amount: int
    referrer_amount: int
    remaining_amount: int

    @property
    def total_fees(self) -> int:
        return self.creator_amount + self.protocol_amount + self.referrer_amount


@dataclass(frozen=True, slots=True)
class TradeBreakdown:
    """
    Settlement breakdown of one trade.

    Buy:  net_amount = base_price + creator_fee + protocol_fee + referrer_fee
          (total cost to the buyer)
    Sell: net_amount = base_price - creator_fee - protocol_fee - referrer_fee
          (proceeds to the seller)
    """
    side: TradeSide
    base_price: int
    creator_fee: int
    protocol_fee: int
    referrer_fee: int
    net_amount: int

    @property
    def total_fees(self) -> int:
        return self.creator_fee + self.protocol_fee + self.referrer_fee


@dataclass(frozen=True, slots=True)
class Transfer:
    """A single payment between two settlement accounts."""
    source: str
    dest: str
    amount: int
    memo: str = ""

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Transfer source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Transfer dest cannot be empty")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            raise ValueError(f"Transfer amount must be int, got {type(self.amount)}")
        if self.amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {self.amount}")

    def reversed(self) -> Transfer:
        return Transfer(self.dest, self.source, self.amount, f"reversal:{self.memo}")

    def __repr__(self) -> str:
        return f"Transfer({self.amount}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class TradeEvent:
    """Notification produced for the external event collaborator."""
    subject_id: str
    actor_id: str
    side: TradeSide
    amount: int
    breakdown: TradeBreakdown
    new_supply: int
    new_balance: int
    referrer_id: Optional[str]
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class TradeQuote:
    """
    Non-binding preview of a trade.

    price_impact_bps is the relative change of the marginal price caused by
    the trade, in basis points of the pre-trade marginal price.
    """
    breakdown: TradeBreakdown
    supply_before: int
    supply_after: int
    marginal_price_before: int
    marginal_price_after: int
    price_impact_bps: int


@dataclass(frozen=True, slots=True)
class CurveStats:
    """Snapshot of a curve at one supply point."""
    current_price: int
    market_cap: int
    liquidity: int
    supply: int
    max_supply: int


# ============================================================================
# COLLABORATOR PROTOCOLS
# ============================================================================

@runtime_checkable
class MarketStore(Protocol):
    """
    Persistence collaborator for markets and holder balances.

    The store serialises access to a subject: while exclusive(subject_id) is
    held, no other trade may read or commit that subject's records.
    """

    def get_market(self, subject_id: str) -> Optional[Market]:
        """Return the market for a subject, or None if none was created."""
        ...

    def get_balance(self, subject_id: str, holder_id: str) -> Optional[HolderBalance]:
        """Return a holder's balance record, or None if absent."""
        ...

    def commit(self, market: Market, balance: HolderBalance) -> None:
        """Persist both records atomically. A zero balance removes its record."""
        ...

    def put_market(self, market: Market) -> None:
        """Persist a market record alone (opening and archiving)."""
        ...

    def exclusive(self, subject_id: str) -> ContextManager[None]:
        """Return a context manager holding the subject's exclusive section."""
        ...


@runtime_checkable
class Settlement(Protocol):
    """Payment collaborator moving value between accounts."""

    def transfer(self, source: str, dest: str, amount: int) -> None:
        """Move amount from source to dest. Raises InsufficientFunds."""
        ...

    def available(self, account_id: str) -> int:
        """Return the spendable balance of an account."""
        ...


@runtime_checkable
class AtomicSettlement(Settlement, Protocol):
    """Payment collaborator that can apply a batch all-or-nothing."""

    def settle(self, transfers: Sequence[Transfer], settlement_id: Optional[str] = None) -> str:
        """Apply every transfer or none. Returns the settlement id."""
        ...

    def reverse(self, settlement_id: str) -> str:
        """Apply the inverse of a previously applied batch."""
        ...


@runtime_checkable
class Clock(Protocol):
    """Source of trade timestamps."""

    def now(self) -> datetime:
        ...


@runtime_checkable
class EventSink(Protocol):
    """Observability collaborator receiving trade notifications."""

    def emit(self, event: TradeEvent) -> None:
        ...
