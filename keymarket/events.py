"""
events.py - Trade Notifications

build_trade_event() assembles the TradeEvent handed to the event
collaborator after a trade commits. EventLog is an in-memory EventSink
that keeps every event it receives, in arrival order.
"""

from __future__ import annotations
from datetime import datetime
from typing import List, Optional
import threading

from .core import TradeBreakdown, TradeEvent, TradeSide


def build_trade_event(
    subject_id: str,
    actor_id: str,
    amount: int,
    breakdown: TradeBreakdown,
    new_supply: int,
    new_balance: int,
    timestamp: datetime,
    referrer_id: Optional[str] = None,
) -> TradeEvent:
    return TradeEvent(
        subject_id=subject_id,
        actor_id=actor_id,
        side=breakdown.side,
        amount=amount,
        breakdown=breakdown,
        new_supply=new_supply,
        new_balance=new_balance,
        referrer_id=referrer_id,
        timestamp=timestamp,
    )


class EventLog:
    """Thread-safe, append-only event sink."""

    def __init__(self):
        self._events: List[TradeEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: TradeEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[TradeEvent]:
        with self._lock:
            return list(self._events)

    def for_subject(self, subject_id: str) -> List[TradeEvent]:
        return [e for e in self.events if e.subject_id == subject_id]

    def for_side(self, side: TradeSide) -> List[TradeEvent]:
        return [e for e in self.events if e.side is side]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
