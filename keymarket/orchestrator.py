"""
orchestrator.py - Trade Orchestrator

TradeOrchestrator combines the curve engine, the fee waterfall and the
market ledger into atomic buy and sell operations against the persistence,
settlement, clock and event collaborators.

Per trade, terminal on success or on the first failure:

    1. Validate  - paused flag, amount, per-trade cap, referrer, deadline
    2. Price     - curve engine base price, fee waterfall breakdown,
                   slippage bound
    3. Settle    - one atomic batch, or staged transfers with compensation
    4. Commit    - new market and balance records written together
    5. Emit      - notification only; a failing sink never undoes the trade

Steps 2 to 5 run inside the subject's exclusive section, so two trades on
one subject never interleave between reading the supply and committing it.
Platform statistics are updated after the section is released.

Accounts touched by a trade:

    buy:  buyer -> reserve:<subject>   base price
          buyer -> <subject>           creator fee
          buyer -> protocol account    protocol fee
          buyer -> referrer            referrer fee
    sell: reserve:<subject> -> seller            net proceeds
          reserve:<subject> -> <subject>         creator fee
          reserve:<subject> -> protocol account  protocol fee
          reserve:<subject> -> referrer          referrer fee
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Sequence
import logging
import threading

from .config import MarketConfig
from .core import (
    U64_MAX, BPS_DENOMINATOR,
    reserve_account,
    Market, TradeBreakdown, TradeEvent, TradeQuote, TradeSide,
    Transfer, CurveStats,
    MarketStore, Settlement, AtomicSettlement, Clock, EventSink,
    MarketError, InputError, InvalidAmount, ExceedsMaxPerTrade, InvalidReferrer,
    SlippageExceeded, TradeDeadlineExceeded, TradingPaused,
    MarketNotFound, MarketInactive, CannotSellLastKey, InsufficientKeys,
    InsufficientFunds, SettlementError,
)
from . import curve
from .events import build_trade_event
from .fees import split
from .market_ledger import LedgerUpdate, new_market, new_balance, apply_buy, apply_sell
from .store import PlatformStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TradeResult:
    """
    Outcome of a committed trade.

    Attributes:
        breakdown: Base price, fee legs and net amount
        new_supply: Market supply after the trade
        new_balance: Trader's holding after the trade
        balance_closed: The trade took the trader's holding to 0
        event: Notification handed to the event collaborator
        settlement_id: Id of the settlement batch, when the collaborator issues one
    """
    breakdown: TradeBreakdown
    new_supply: int
    new_balance: int
    balance_closed: bool
    event: TradeEvent
    settlement_id: Optional[str] = None


class TradeOrchestrator:
    """
    Atomic buy/sell entry points over pluggable collaborators.

    Example:
        orchestrator = TradeOrchestrator(
            store=InMemoryMarketStore(),
            settlement=PaymentLedger(),
            clock=SystemClock(),
            config=MarketConfig(),
        )
        result = orchestrator.buy("alice", "bob", 10, max_payment=20_000_000)
    """

    def __init__(
        self,
        store: MarketStore,
        settlement: Settlement,
        clock: Clock,
        config: Optional[MarketConfig] = None,
        events: Optional[EventSink] = None,
        stats: Optional[PlatformStats] = None,
    ):
        self.store = store
        self.settlement = settlement
        self.clock = clock
        self.config = config or MarketConfig()
        self.events = events
        self.stats = stats or PlatformStats()
        self._paused = threading.Event()

    # ========================================================================
    # TRADING
    # ========================================================================

    def buy(
        self,
        subject_id: str,
        buyer_id: str,
        amount: int,
        max_payment: int,
        referrer_id: Optional[str] = None,
        deadline: Optional[datetime] = None,
    ) -> TradeResult:
        """
        Buy `amount` keys of a subject for at most `max_payment` (fees included).

        Raises:
            InputError: Rejected request (paused, amount, cap, referrer,
                        deadline, slippage)
            StateError: Market missing or archived, supply exhausted
            MathError: Price outside the integer range
            SettlementError: Buyer cannot pay or a transfer failed
        """
        try:
            return self._buy(subject_id, buyer_id, amount, max_payment, referrer_id, deadline)
        except MarketError as e:
            logger.warning("REJECTED buy %s x%s by %s: %s: %s",
                           subject_id, amount, buyer_id, type(e).__name__, e)
            raise

    def sell(
        self,
        subject_id: str,
        seller_id: str,
        amount: int,
        min_proceeds: int,
        referrer_id: Optional[str] = None,
        deadline: Optional[datetime] = None,
    ) -> TradeResult:
        """
        Sell `amount` keys of a subject for at least `min_proceeds` (after fees).

        Each buy truncates its curve term once, so a reserve filled by many
        small buys can hold a little less than one large sale of the same
        keys pays out. Such a sale raises InsufficientFunds and changes
        nothing; selling one key at a time always succeeds.

        Raises:
            InputError: Rejected request (paused, amount, cap, referrer,
                        deadline, slippage)
            StateError: Market missing or archived, holding or supply too
                        small, last key protected
            MathError: Price outside the integer range
            SettlementError: Reserve cannot pay or a transfer failed
        """
        try:
            return self._sell(subject_id, seller_id, amount, min_proceeds, referrer_id, deadline)
        except MarketError as e:
            logger.warning("REJECTED sell %s x%s by %s: %s: %s",
                           subject_id, amount, seller_id, type(e).__name__, e)
            raise

    def _buy(self, subject_id, buyer_id, amount, max_payment, referrer_id, deadline) -> TradeResult:
        now = self._validate_request(subject_id, buyer_id, amount, referrer_id, deadline)
        _require_bound(max_payment, "max_payment")
        params = self.config.curve
        opened = False

        with self.store.exclusive(subject_id):
            market = self.store.get_market(subject_id)
            if market is None:
                if not self.config.auto_open_markets:
                    raise MarketNotFound(f"No market for {subject_id}")
                market = new_market(subject_id, now)
                opened = True
            self._require_active(market)
            balance = self.store.get_balance(subject_id, buyer_id) or new_balance(subject_id, buyer_id, now)

            base = curve.buy_price(params, market.total_supply, amount)
            breakdown = split(base, self.config.fees, referrer_id is not None, TradeSide.BUY,
                              self.config.require_positive_price)
            logger.debug("priced buy %s supply=%d amount=%d base=%d cost=%d",
                         subject_id, market.total_supply, amount, base, breakdown.net_amount)
            if breakdown.net_amount > max_payment:
                raise SlippageExceeded(
                    f"cost {breakdown.net_amount} exceeds max_payment {max_payment}"
                )

            update = apply_buy(market, balance, amount, base, now, params.max_supply)

            funds = self.settlement.available(buyer_id)
            if funds < breakdown.net_amount:
                raise InsufficientFunds(
                    f"{buyer_id} has {funds}, buy costs {breakdown.net_amount}"
                )
            transfers = self._fee_transfers(
                payer=buyer_id,
                legs=[
                    (reserve_account(subject_id), breakdown.base_price, "reserve"),
                    *self._fee_legs(subject_id, breakdown, referrer_id),
                ],
            )
            result = self._settle_and_commit(subject_id, buyer_id, amount, breakdown, update,
                                             transfers, referrer_id, now)

        if opened:
            self.stats.record_market_opened()
            logger.info("Opened market %s on first buy", subject_id)
        self.stats.record_trade(breakdown)
        return result

    def _sell(self, subject_id, seller_id, amount, min_proceeds, referrer_id, deadline) -> TradeResult:
        now = self._validate_request(subject_id, seller_id, amount, referrer_id, deadline)
        _require_bound(min_proceeds, "min_proceeds")
        params = self.config.curve

        with self.store.exclusive(subject_id):
            market = self.store.get_market(subject_id)
            if market is None:
                raise MarketNotFound(f"No market for {subject_id}")
            self._require_active(market)
            balance = self.store.get_balance(subject_id, seller_id) or new_balance(subject_id, seller_id, now)
            if amount > balance.amount:
                raise InsufficientKeys(
                    f"{seller_id} holds {balance.amount} of {subject_id}, cannot sell {amount}"
                )
            if (self.config.protect_last_key and seller_id == subject_id
                    and amount >= market.total_supply):
                raise CannotSellLastKey(f"{subject_id} cannot sell the last outstanding key")

            base = curve.sell_price(params, market.total_supply, amount)
            breakdown = split(base, self.config.fees, referrer_id is not None, TradeSide.SELL,
                              self.config.require_positive_price)
            logger.debug("priced sell %s supply=%d amount=%d base=%d proceeds=%d",
                         subject_id, market.total_supply, amount, base, breakdown.net_amount)
            if breakdown.net_amount < min_proceeds:
                raise SlippageExceeded(
                    f"proceeds {breakdown.net_amount} below min_proceeds {min_proceeds}"
                )

            update = apply_sell(market, balance, amount, base, now)

            reserve = reserve_account(subject_id)
            funds = self.settlement.available(reserve)
            if funds < breakdown.base_price:
                raise InsufficientFunds(
                    f"{reserve} holds {funds}, sale pays out {breakdown.base_price}"
                )
            transfers = self._fee_transfers(
                payer=reserve,
                legs=[
                    (seller_id, breakdown.net_amount, "proceeds"),
                    *self._fee_legs(subject_id, breakdown, referrer_id),
                ],
            )
            result = self._settle_and_commit(subject_id, seller_id, amount, breakdown, update,
                                             transfers, referrer_id, now)

        self.stats.record_trade(breakdown)
        return result

    # ========================================================================
    # QUOTES
    # ========================================================================

    def quote_buy(self, subject_id: str, amount: int, has_referrer: bool = False) -> TradeQuote:
        """Preview a buy at the current supply. Nothing is reserved or mutated."""
        supply = self._current_supply(subject_id)
        base = curve.buy_price(self.config.curve, supply, amount)
        return self._quote(split(base, self.config.fees, has_referrer, TradeSide.BUY),
                           supply, supply + amount)

    def quote_sell(self, subject_id: str, amount: int, has_referrer: bool = False) -> TradeQuote:
        """Preview a sell at the current supply. Nothing is reserved or mutated."""
        supply = self._current_supply(subject_id)
        base = curve.sell_price(self.config.curve, supply, amount)
        return self._quote(split(base, self.config.fees, has_referrer, TradeSide.SELL),
                           supply, supply - amount)

    def max_buy_amount(self, subject_id: str, max_payment: int, has_referrer: bool = False) -> int:
        """Largest buy that fits a budget, capped by max_per_trade."""
        return curve.max_buy_amount(
            self.config.curve, self.config.fees, self._current_supply(subject_id),
            max_payment, has_referrer, limit=self.config.max_per_trade,
        )

    def market_stats(self, subject_id: str) -> CurveStats:
        return curve.curve_stats(self.config.curve, self._current_supply(subject_id))

    def _quote(self, breakdown: TradeBreakdown, before: int, after: int) -> TradeQuote:
        p_before = curve.price_of_supply(self.config.curve, before)
        p_after = curve.price_of_supply(self.config.curve, after)
        moved = abs(p_after - p_before)
        return TradeQuote(
            breakdown=breakdown,
            supply_before=before,
            supply_after=after,
            marginal_price_before=p_before,
            marginal_price_after=p_after,
            price_impact_bps=moved * BPS_DENOMINATOR // p_before,
        )

    def _current_supply(self, subject_id: str) -> int:
        market = self.store.get_market(subject_id)
        return market.total_supply if market is not None else 0

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def open_market(self, subject_id: str) -> Market:
        """Create an empty market for a subject. Returns the existing one if present."""
        with self.store.exclusive(subject_id):
            market = self.store.get_market(subject_id)
            if market is not None:
                return market
            market = new_market(subject_id, self.clock.now())
            self.store.put_market(market)
        self.stats.record_market_opened()
        logger.info("Opened market %s", subject_id)
        return market

    def archive_market(self, subject_id: str) -> Market:
        """
        Deactivate a subject's market. Supply and balances are kept; further
        trades fail with MarketInactive.
        """
        with self.store.exclusive(subject_id):
            market = self.store.get_market(subject_id)
            if market is None:
                raise MarketNotFound(f"No market for {subject_id}")
            archived = replace(market, is_active=False)
            self.store.put_market(archived)
        logger.info("Archived market %s", subject_id)
        return archived

    def pause(self) -> None:
        self._paused.set()
        logger.warning("Trading paused")

    def resume(self) -> None:
        self._paused.clear()
        logger.info("Trading resumed")

    @property
    def is_paused(self) -> bool:
        return self._paused.is_set()

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _validate_request(self, subject_id: str, trader_id: str, amount: int,
                          referrer_id: Optional[str], deadline: Optional[datetime]) -> datetime:
        """Reject malformed requests before any state is read. Returns the trade time."""
        if self.is_paused:
            raise TradingPaused("Trading is paused")
        if not subject_id or not subject_id.strip():
            raise InputError("subject_id cannot be empty")
        if not trader_id or not trader_id.strip():
            raise InputError("trader id cannot be empty")
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise InvalidAmount(f"amount must be an int, got {type(amount).__name__}")
        if amount <= 0:
            raise InvalidAmount(f"amount must be positive, got {amount}")
        if amount > self.config.max_per_trade:
            raise ExceedsMaxPerTrade(
                f"amount {amount} exceeds max_per_trade {self.config.max_per_trade}"
            )
        if referrer_id is not None:
            if not referrer_id.strip():
                raise InvalidReferrer("referrer_id cannot be empty")
            if referrer_id == trader_id:
                raise InvalidReferrer(f"{trader_id} cannot refer themselves")
        now = self.clock.now()
        if deadline is not None and now > deadline:
            raise TradeDeadlineExceeded(f"deadline {deadline} passed at {now}")
        return now

    @staticmethod
    def _require_active(market: Market) -> None:
        if not market.is_active:
            raise MarketInactive(f"Market {market.subject_id} is archived")

    def _fee_legs(self, subject_id: str, breakdown: TradeBreakdown,
                  referrer_id: Optional[str]) -> List[tuple]:
        legs = [
            (subject_id, breakdown.creator_fee, "creator_fee"),
            (self.config.protocol_account, breakdown.protocol_fee, "protocol_fee"),
        ]
        if referrer_id is not None:
            legs.append((referrer_id, breakdown.referrer_fee, "referrer_fee"))
        return legs

    @staticmethod
    def _fee_transfers(payer: str, legs: Sequence[tuple]) -> List[Transfer]:
        # Zero legs and payments to oneself move nothing.
        return [
            Transfer(payer, dest, amount, memo)
            for dest, amount, memo in legs
            if amount > 0 and dest != payer
        ]

    def _settle_and_commit(
        self,
        subject_id: str,
        trader_id: str,
        amount: int,
        breakdown: TradeBreakdown,
        update: LedgerUpdate,
        transfers: List[Transfer],
        referrer_id: Optional[str],
        now: datetime,
    ) -> TradeResult:
        settlement_id = self._settle(transfers)
        try:
            self.store.commit(update.market, update.balance)
        except Exception:
            logger.error("Commit failed for %s %s; compensating settlement %s",
                         breakdown.side.value, subject_id, settlement_id)
            self._compensate(transfers, settlement_id)
            raise

        event = build_trade_event(
            subject_id=subject_id,
            actor_id=trader_id,
            amount=amount,
            breakdown=breakdown,
            new_supply=update.market.total_supply,
            new_balance=update.balance.amount,
            timestamp=now,
            referrer_id=referrer_id,
        )
        logger.info("%s %s x%d by %s: base=%d net=%d supply=%d",
                    breakdown.side.value.upper(), subject_id, amount, trader_id,
                    breakdown.base_price, breakdown.net_amount, update.market.total_supply)
        self._emit(event)

        return TradeResult(
            breakdown=breakdown,
            new_supply=update.market.total_supply,
            new_balance=update.balance.amount,
            balance_closed=update.balance_closed,
            event=event,
            settlement_id=settlement_id,
        )

    def _settle(self, transfers: List[Transfer]) -> Optional[str]:
        """
        Apply the transfers of a trade all-or-nothing.

        With an AtomicSettlement the batch is handed over whole. Otherwise
        transfers are staged one by one and, on the first failure, the
        completed ones are reversed in reverse order before re-raising.
        """
        if isinstance(self.settlement, AtomicSettlement):
            return self.settlement.settle(transfers)

        completed: List[Transfer] = []
        for t in transfers:
            try:
                self.settlement.transfer(t.source, t.dest, t.amount)
            except SettlementError:
                logger.warning("Transfer %r failed after %d of %d; compensating",
                               t, len(completed), len(transfers))
                self._reverse_staged(completed)
                raise
            completed.append(t)
        return None

    def _compensate(self, transfers: List[Transfer], settlement_id: Optional[str]) -> None:
        if settlement_id is not None and isinstance(self.settlement, AtomicSettlement):
            try:
                self.settlement.reverse(settlement_id)
            except SettlementError:
                logger.exception("Compensating settlement %s failed", settlement_id)
        else:
            self._reverse_staged(transfers)

    def _reverse_staged(self, completed: List[Transfer]) -> None:
        for t in reversed(completed):
            back = t.reversed()
            try:
                self.settlement.transfer(back.source, back.dest, back.amount)
            except SettlementError:
                logger.exception("Compensating transfer %r failed", back)

    def _emit(self, event: TradeEvent) -> None:
        if self.events is None:
            return
        try:
            self.events.emit(event)
        except Exception:
            logger.exception("Event sink failed for %s %s; trade stands",
                             event.side.value, event.subject_id)


def _require_bound(value: int, name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidAmount(f"{name} must be an int, got {type(value).__name__}")
    if not 0 <= value <= U64_MAX:
        raise InvalidAmount(f"{name} out of range: {value}")
