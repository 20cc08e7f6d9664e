"""
clock.py - Clock Collaborators

SystemClock reads wall-clock UTC time. LogicalClock is a manually advanced
clock for tests and replays; like the ledger's logical time it only moves
forward.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading


class SystemClock:
    """Timezone-aware wall clock (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class LogicalClock:
    """
    Deterministic clock advanced explicitly by the caller.

    Example:
        clock = LogicalClock(datetime(2025, 1, 1))
        clock.advance(timedelta(minutes=5))
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._current_time = initial_time or datetime(1970, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the clock to new_time.

        Raises:
            ValueError: If new_time is before the current time
        """
        with self._lock:
            if new_time < self._current_time:
                raise ValueError(
                    f"Cannot move time backwards: {new_time} < {self._current_time}"
                )
            self._current_time = new_time

    def advance(self, delta: timedelta) -> datetime:
        """Move the clock forward by delta and return the new time."""
        if delta < timedelta(0):
            raise ValueError(f"Cannot advance by a negative delta: {delta}")
        with self._lock:
            self._current_time = self._current_time + delta
            return self._current_time
