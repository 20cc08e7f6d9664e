"""
market_ledger.py - Supply and Holder Balance Accounting

Pure functions that compute the effect of a trade on a market and one
holder balance:

    apply_buy(market, balance, amount, base_price, now)  -> LedgerUpdate
    apply_sell(market, balance, amount, base_price, now) -> LedgerUpdate

Records are frozen, so an update is a pair of NEW records. Either both are
produced or an exception is raised and the caller still holds the old ones;
a partially-updated supply/balance pair can never be observed.

Invariants preserved:
    0 <= market.total_supply <= max_supply
    balance.amount >= 0
    market.holder_count == number of holders with a non-zero balance

A balance that reaches exactly 0 after a sale is flagged with
balance_closed=True; dropping the record is the persistence layer's job.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from .arith import require_u64, checked_add, checked_sub
from .core import (
    Market, HolderBalance,
    ExceedsMaxSupply, InsufficientKeys, InsufficientSupply,
)


@dataclass(frozen=True, slots=True)
class LedgerUpdate:
    """
    New market and balance records produced by one trade.

    Attributes:
        market: Market after the trade
        balance: Holder balance after the trade
        balance_closed: The sale took the holder's balance to exactly 0
        new_holder: The purchase gave a previously empty holder a balance
    """
    market: Market
    balance: HolderBalance
    balance_closed: bool = False
    new_holder: bool = False


def new_market(subject_id: str, now: datetime) -> Market:
    """Empty market for a subject, as created on first issuance."""
    if not subject_id or not subject_id.strip():
        raise ValueError("subject_id cannot be empty")
    return Market(
        subject_id=subject_id,
        total_supply=0,
        total_volume=0,
        created_at=now,
        last_trade_at=now,
    )


def new_balance(subject_id: str, holder_id: str, now: datetime) -> HolderBalance:
    """Zero balance for a holder who has never bought."""
    if not holder_id or not holder_id.strip():
        raise ValueError("holder_id cannot be empty")
    return HolderBalance(subject_id=subject_id, holder_id=holder_id, amount=0, last_trade_at=now)


def _check_pair(market: Market, balance: HolderBalance) -> None:
    if balance.subject_id != market.subject_id:
        raise ValueError(
            f"balance of {balance.subject_id} does not belong to market {market.subject_id}"
        )


def apply_buy(
    market: Market,
    balance: HolderBalance,
    amount: int,
    base_price: int,
    now: datetime,
    max_supply: Optional[int] = None,
) -> LedgerUpdate:
    """
    Issue `amount` keys to a holder.

    Increments supply, the holder's balance and the market volume, and
    touches both trade timestamps. amount == 0 is a no-op.

    Raises:
        ExceedsMaxSupply: If max_supply is given and would be exceeded.
        ArithmeticOverflow: If any counter would exceed u64.
    """
    _check_pair(market, balance)
    require_u64(amount, "amount")
    require_u64(base_price, "base_price")
    if amount == 0:
        return LedgerUpdate(market=market, balance=balance)

    new_supply = checked_add(market.total_supply, amount)
    if max_supply is not None and new_supply > max_supply:
        raise ExceedsMaxSupply(f"supply {new_supply} would exceed max_supply {max_supply}")
    new_amount = checked_add(balance.amount, amount)
    new_volume = checked_add(market.total_volume, base_price)
    new_holder = balance.amount == 0
    holder_count = checked_add(market.holder_count, 1) if new_holder else market.holder_count

    return LedgerUpdate(
        market=replace(
            market,
            total_supply=new_supply,
            total_volume=new_volume,
            holder_count=holder_count,
            last_trade_at=now,
        ),
        balance=replace(balance, amount=new_amount, last_trade_at=now),
        new_holder=new_holder,
    )


def apply_sell(
    market: Market,
    balance: HolderBalance,
    amount: int,
    base_price: int,
    now: datetime,
) -> LedgerUpdate:
    """
    Burn `amount` keys from a holder.

    Both balance and supply are checked before anything is computed.
    amount == 0 is a no-op.

    Raises:
        InsufficientKeys: If the holder owns fewer than amount keys.
        InsufficientSupply: If the circulating supply is below amount.
        ArithmeticOverflow: If the market volume would exceed u64.
    """
    _check_pair(market, balance)
    require_u64(amount, "amount")
    require_u64(base_price, "base_price")
    if amount > balance.amount:
        raise InsufficientKeys(
            f"{balance.holder_id} holds {balance.amount} of {market.subject_id}, cannot sell {amount}"
        )
    if amount > market.total_supply:
        raise InsufficientSupply(
            f"supply of {market.subject_id} is {market.total_supply}, cannot sell {amount}"
        )
    if amount == 0:
        return LedgerUpdate(market=market, balance=balance)

    new_supply = checked_sub(market.total_supply, amount)
    new_amount = checked_sub(balance.amount, amount)
    new_volume = checked_add(market.total_volume, base_price)
    closed = new_amount == 0
    holder_count = checked_sub(market.holder_count, 1) if closed else market.holder_count

    return LedgerUpdate(
        market=replace(
            market,
            total_supply=new_supply,
            total_volume=new_volume,
            holder_count=holder_count,
            last_trade_at=now,
        ),
        balance=replace(balance, amount=new_amount, last_trade_at=now),
        balance_closed=closed,
    )
