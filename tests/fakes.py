"""
fakes.py - Test Collaborators and Factories

Factories for the curves, funded ledgers and orchestrators most tests start
from, plus minimal collaborator implementations for exercising the orchestrator's
failure paths without a full PaymentLedger:

- StagedSettlement: plain Settlement (no batch API) that can be told to
  fail after a number of successful transfers
- FailingCommitStore: InMemoryMarketStore whose commit() always raises
- SpendingCommitStore: commit() drains an account, then raises
- FailingSink: EventSink whose emit() always raises
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from keymarket import (
    CurveParameters, PricingMode, MarketConfig, TradeOrchestrator,
    InMemoryMarketStore, PaymentLedger, LogicalClock, EventLog,
    Market, HolderBalance, TradeEvent,
    InsufficientFunds, SettlementError,
)


class StagedSettlement:
    """
    Settlement collaborator with single transfers only.

    Example:
        settlement = StagedSettlement({'bob': 1_000_000_000}, fail_after=2)
        settlement.transfer('bob', 'alice', 10)   # ok
        settlement.transfer('bob', 'alice', 10)   # ok
        settlement.transfer('bob', 'alice', 10)   # raises SettlementError
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None, fail_after: Optional[int] = None):
        self.balances: Dict[str, int] = dict(balances or {})
        self.fail_after = fail_after
        self.calls: List[Tuple[str, str, int]] = []

    def available(self, account_id: str) -> int:
        return self.balances.get(account_id, 0)

    def transfer(self, source: str, dest: str, amount: int) -> None:
        if self.fail_after is not None and len(self.calls) >= self.fail_after:
            self.fail_after = None
            raise SettlementError(f"transfer {source}->{dest} refused")
        if self.balances.get(source, 0) < amount:
            raise InsufficientFunds(f"{source} cannot pay {amount}")
        self.balances[source] = self.balances.get(source, 0) - amount
        self.balances[dest] = self.balances.get(dest, 0) + amount
        self.calls.append((source, dest, amount))


class FailingCommitStore(InMemoryMarketStore):
    """Store whose commit() fails after settlement has been applied."""

    def commit(self, market: Market, balance: HolderBalance) -> None:
        raise RuntimeError("store unavailable")


class SpendingCommitStore(InMemoryMarketStore):
    """
    Store whose commit() fails after an account has spent everything it
    holds, including what the trade just paid it.
    """

    def __init__(self, payments: PaymentLedger, spender: str, recipient: str):
        super().__init__()
        self.payments = payments
        self.spender = spender
        self.recipient = recipient

    def commit(self, market: Market, balance: HolderBalance) -> None:
        self.payments.transfer(self.spender, self.recipient, self.payments.available(self.spender))
        raise RuntimeError("store unavailable")


class FailingSink:
    """Event sink that always fails."""

    def __init__(self):
        self.attempts = 0

    def emit(self, event: TradeEvent) -> None:
        self.attempts += 1
        raise RuntimeError("event bus down")


# =============================================================================
# FACTORIES
# =============================================================================

START = datetime(2025, 1, 1, 9, 30, tzinfo=timezone.utc)

# Starting payment balance of every funded trader.
FUNDING = 10 ** 15

TRADERS = ("alice", "bob", "carol", "dave", "erin")


def default_params() -> CurveParameters:
    """The deployed curve: base 1_000_000, slope 16_000, precision 1e9."""
    return CurveParameters(
        base_price=1_000_000,
        slope=16_000,
        precision=1_000_000_000,
        max_supply=1_000_000_000_000,
    )


def exact_params(mode: PricingMode = PricingMode.EXACT) -> CurveParameters:
    """A steep curve with precision 1: price(s) = 100 + s², no truncation."""
    return CurveParameters(base_price=100, slope=1, precision=1, max_supply=1_000_000, mode=mode)


def funded_payments(traders=TRADERS, amount: int = FUNDING) -> PaymentLedger:
    payments = PaymentLedger("test")
    for trader in traders:
        payments.deposit(trader, amount)
    return payments


def make_orchestrator(config: MarketConfig, **overrides) -> TradeOrchestrator:
    parts = dict(
        store=InMemoryMarketStore(),
        settlement=funded_payments(),
        clock=LogicalClock(START),
        config=config,
        events=EventLog(),
    )
    parts.update(overrides)
    return TradeOrchestrator(**parts)


def run_sequence(orchestrator: TradeOrchestrator, subject_id: str, steps) -> list:
    """
    Apply (side, trader, amount, referrer) steps with unbounded slippage.

    Sells are clamped to the trader's holding; empty sells are skipped.
    Returns the TradeResults in order.
    """
    results = []
    for side, trader, amount, referrer in steps:
        if side == "buy":
            results.append(orchestrator.buy(subject_id, trader, amount,
                                            max_payment=10 ** 15, referrer_id=referrer))
            continue
        held = orchestrator.store.get_balance(subject_id, trader)
        amount = min(amount, held.amount if held else 0)
        if amount:
            results.append(orchestrator.sell(subject_id, trader, amount,
                                             min_proceeds=0, referrer_id=referrer))
    return results
