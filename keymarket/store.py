"""
store.py - In-Memory Market Persistence

Reference implementation of the MarketStore protocol plus the platform-wide
statistics aggregate.

InMemoryMarketStore:
    - One re-entrant lock per subject; exclusive(subject_id) holds it for
      the whole read-price-settle-commit sequence of a trade
    - A separate registry lock guards creation of per-subject locks
    - commit() writes market and balance together; a zero balance removes
      the holder's record

PlatformStats:
    - Independently locked totals updated after a trade commits, outside
      any subject's exclusive section, so trades on different subjects
      never serialise on it
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple
import threading

from .arith import checked_add
from .core import Market, HolderBalance, TradeBreakdown, TradeSide


class InMemoryMarketStore:
    """
    Thread-safe in-memory store for markets and holder balances.

    Example:
        store = InMemoryMarketStore()
        with store.exclusive("alice"):
            market = store.get_market("alice")
            ...
            store.commit(new_market, new_balance)
    """

    def __init__(self):
        self._markets: Dict[str, Market] = {}
        self._balances: Dict[Tuple[str, str], HolderBalance] = {}
        self._subject_locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    # ========================================================================
    # MarketStore PROTOCOL
    # ========================================================================

    def get_market(self, subject_id: str) -> Optional[Market]:
        return self._markets.get(subject_id)

    def get_balance(self, subject_id: str, holder_id: str) -> Optional[HolderBalance]:
        return self._balances.get((subject_id, holder_id))

    def commit(self, market: Market, balance: HolderBalance) -> None:
        """
        Persist a market and one holder balance together.

        Both records are validated before either is written.

        Raises:
            ValueError: If the balance belongs to another subject.
        """
        if balance.subject_id != market.subject_id:
            raise ValueError(
                f"balance of {balance.subject_id} committed with market {market.subject_id}"
            )
        with self._lock_for(market.subject_id):
            key = (balance.subject_id, balance.holder_id)
            self._markets[market.subject_id] = market
            if balance.amount == 0:
                self._balances.pop(key, None)
            else:
                self._balances[key] = balance

    @contextmanager
    def exclusive(self, subject_id: str) -> Iterator[None]:
        lock = self._lock_for(subject_id)
        with lock:
            yield

    # ========================================================================
    # MAINTENANCE
    # ========================================================================

    def put_market(self, market: Market) -> None:
        """Write a market record without touching any balance."""
        with self._lock_for(market.subject_id):
            self._markets[market.subject_id] = market

    def holders(self, subject_id: str) -> Dict[str, int]:
        """All non-zero holdings of a subject, keyed by holder."""
        return {
            holder: bal.amount
            for (subject, holder), bal in sorted(self._balances.items())
            if subject == subject_id
        }

    def list_markets(self) -> List[str]:
        return sorted(self._markets)

    def _lock_for(self, subject_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._subject_locks.get(subject_id)
            if lock is None:
                lock = threading.RLock()
                self._subject_locks[subject_id] = lock
            return lock


# ============================================================================
# PLATFORM STATISTICS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PlatformSnapshot:
    """Point-in-time copy of the platform totals."""
    total_trades: int
    total_buys: int
    total_sells: int
    total_volume: int
    total_protocol_fees: int
    total_referrer_fees: int
    markets_opened: int


class PlatformStats:
    """Platform-wide counters, guarded by their own lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._trades = 0
        self._buys = 0
        self._sells = 0
        self._volume = 0
        self._protocol_fees = 0
        self._referrer_fees = 0
        self._markets_opened = 0

    def record_trade(self, breakdown: TradeBreakdown) -> None:
        with self._lock:
            self._volume = checked_add(self._volume, breakdown.base_price)
            self._protocol_fees = checked_add(self._protocol_fees, breakdown.protocol_fee)
            self._referrer_fees = checked_add(self._referrer_fees, breakdown.referrer_fee)
            self._trades += 1
            if breakdown.side is TradeSide.BUY:
                self._buys += 1
            else:
                self._sells += 1

    def record_market_opened(self) -> None:
        with self._lock:
            self._markets_opened += 1

    def snapshot(self) -> PlatformSnapshot:
        with self._lock:
            return PlatformSnapshot(
                total_trades=self._trades,
                total_buys=self._buys,
                total_sells=self._sells,
                total_volume=self._volume,
                total_protocol_fees=self._protocol_fees,
                total_referrer_fees=self._referrer_fees,
                markets_opened=self._markets_opened,
            )
