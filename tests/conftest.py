"""
conftest.py - Shared pytest fixtures for key market tests

Provides common fixtures used across unit, conformance and functional tests:
- Curve parameters (deployed defaults, an exact precision-1 curve)
- Fee schedules
- Collaborators (logical clock, funded payment ledger, store, event log)
- Ready-to-trade orchestrators
"""

import pytest

from keymarket import (
    FeeSchedule,
    InMemoryMarketStore, LogicalClock, EventLog,
    MarketConfig, TradeOrchestrator,
)

from tests.fakes import START, default_params, exact_params, funded_payments


@pytest.fixture
def params():
    return default_params()


@pytest.fixture
def steep():
    return exact_params()


@pytest.fixture
def fees():
    """Creator 5%, protocol 2.5%, no referrer rate."""
    return FeeSchedule(creator_bps=500, protocol_bps=250, referrer_bps=0)


@pytest.fixture
def fees_with_referrer():
    return FeeSchedule(creator_bps=500, protocol_bps=250, referrer_bps=100)


@pytest.fixture
def clock():
    return LogicalClock(START)


@pytest.fixture
def payments():
    return funded_payments()


@pytest.fixture
def store():
    return InMemoryMarketStore()


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def config(params, fees_with_referrer):
    return MarketConfig(curve=params, fees=fees_with_referrer)


@pytest.fixture
def orchestrator(store, payments, clock, config, events):
    return TradeOrchestrator(
        store=store, settlement=payments, clock=clock, config=config, events=events,
    )


@pytest.fixture
def steep_orchestrator(store, payments, clock, events, fees_with_referrer):
    """Orchestrator over the precision-1 curve, where every price is exact."""
    config = MarketConfig(curve=exact_params(), fees=fees_with_referrer)
    return TradeOrchestrator(
        store=store, settlement=payments, clock=clock, config=config, events=events,
    )
