"""
test_core_types.py - Unit tests for core records and the error hierarchy

Tests:
- CurveParameters validation
- FeeSchedule validation
- Transfer validation and reversal
- Exception families
- Protocol conformance of the reference collaborators
"""

import pytest
from datetime import datetime

from keymarket import (
    U64_MAX, reserve_account,
    CurveParameters, FeeSchedule, PricingMode, Market, Transfer, TradeSide,
    MarketStore, Settlement, AtomicSettlement, Clock, EventSink,
    InMemoryMarketStore, PaymentLedger, SystemClock, LogicalClock, EventLog,
    MarketError, InputError, MathError, StateError, SettlementError, ConfigurationError,
    InvalidCurveParameters, InvalidFeeSchedule,
    InvalidAmount, ExceedsMaxPerTrade, InvalidReferrer, SlippageExceeded,
    TradeDeadlineExceeded, TradingPaused,
    ArithmeticOverflow, ArithmeticUnderflow, DivisionByZero,
    InvalidSupply, ExceedsMaxSupply, InsufficientSupply, InsufficientKeys,
    MarketNotFound, MarketInactive, CannotSellLastKey,
    InsufficientFunds, AccountNotRegistered, DuplicateSettlement,
)

from tests.fakes import StagedSettlement


class TestCurveParameters:
    """Tests for CurveParameters construction."""

    def test_valid_parameters(self):
        p = CurveParameters(1_000_000, 16_000, 1_000_000_000, 1_000_000_000_000)
        assert p.mode is PricingMode.EXACT

    @pytest.mark.parametrize("field", ["base_price", "slope", "precision", "max_supply"])
    def test_zero_rejected(self, field):
        kwargs = dict(base_price=1, slope=1, precision=1, max_supply=1)
        kwargs[field] = 0
        with pytest.raises(InvalidCurveParameters):
            CurveParameters(**kwargs)

    def test_above_u64_rejected(self):
        with pytest.raises(InvalidCurveParameters):
            CurveParameters(1, 1, 1, U64_MAX + 1)

    def test_float_rejected(self):
        with pytest.raises(InvalidCurveParameters):
            CurveParameters(1.5, 1, 1, 10)

    def test_invalid_mode_rejected(self):
        with pytest.raises(InvalidCurveParameters):
            CurveParameters(1, 1, 1, 10, mode="exact")

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            CurveParameters(0, 1, 1, 1)

    def test_immutable(self):
        p = CurveParameters(1, 1, 1, 10)
        with pytest.raises(AttributeError):
            p.base_price = 2


class TestFeeSchedule:
    """Tests for FeeSchedule construction."""

    def test_total_bps(self):
        assert FeeSchedule(500, 250, 100).total_bps == 850

    def test_referrer_defaults_to_zero(self):
        assert FeeSchedule(500, 250).referrer_bps == 0

    def test_full_rate_allowed(self):
        assert FeeSchedule(10_000, 0, 0).total_bps == 10_000

    def test_sum_above_100_percent_rejected(self):
        with pytest.raises(InvalidFeeSchedule):
            FeeSchedule(6_000, 4_000, 1)

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidFeeSchedule):
            FeeSchedule(-1, 0, 0)

    def test_rate_above_denominator_rejected(self):
        with pytest.raises(InvalidFeeSchedule):
            FeeSchedule(10_001, 0, 0)


class TestTransfer:
    """Tests for Transfer validation."""

    def test_valid_transfer(self):
        t = Transfer("bob", "alice", 10, "creator_fee")
        assert t.amount == 10

    def test_same_source_and_dest_rejected(self):
        with pytest.raises(ValueError):
            Transfer("bob", "bob", 10)

    def test_zero_amount_rejected(self):
        with pytest.raises(ValueError):
            Transfer("bob", "alice", 0)

    def test_empty_account_rejected(self):
        with pytest.raises(ValueError):
            Transfer("", "alice", 1)

    def test_reversed(self):
        back = Transfer("bob", "alice", 10, "fee").reversed()
        assert (back.source, back.dest, back.amount) == ("alice", "bob", 10)
        assert back.memo == "reversal:fee"

    def test_repr(self):
        assert "bob" in repr(Transfer("bob", "alice", 10))


class TestMarketRecord:

    def test_repr_shows_archive_state(self):
        t = datetime(2025, 1, 1)
        m = Market("alice", 10, 100, t, t, holder_count=2, is_active=False)
        assert "archived" in repr(m)
        assert "supply=10" in repr(m)

    def test_reserve_account_is_per_subject(self):
        assert reserve_account("alice") != reserve_account("bob")
        assert reserve_account("alice").endswith("alice")


class TestErrorHierarchy:
    """Every error belongs to exactly one family under MarketError."""

    @pytest.mark.parametrize("exc", [
        InvalidAmount, ExceedsMaxPerTrade, InvalidReferrer, SlippageExceeded,
        TradeDeadlineExceeded, TradingPaused,
    ])
    def test_input_errors(self, exc):
        assert issubclass(exc, InputError)
        assert issubclass(exc, MarketError)

    @pytest.mark.parametrize("exc", [ArithmeticOverflow, ArithmeticUnderflow, DivisionByZero])
    def test_math_errors(self, exc):
        assert issubclass(exc, MathError)
        assert not issubclass(exc, InputError)

    @pytest.mark.parametrize("exc", [
        InvalidSupply, ExceedsMaxSupply, InsufficientSupply, InsufficientKeys,
        MarketNotFound, MarketInactive, CannotSellLastKey,
    ])
    def test_state_errors(self, exc):
        assert issubclass(exc, StateError)

    @pytest.mark.parametrize("exc", [InsufficientFunds, AccountNotRegistered, DuplicateSettlement])
    def test_settlement_errors(self, exc):
        assert issubclass(exc, SettlementError)

    @pytest.mark.parametrize("exc", [InvalidCurveParameters, InvalidFeeSchedule])
    def test_configuration_errors(self, exc):
        assert issubclass(exc, ConfigurationError)
        assert issubclass(exc, MarketError)


class TestProtocolConformance:
    """Reference collaborators satisfy the runtime-checkable protocols."""

    def test_store(self):
        assert isinstance(InMemoryMarketStore(), MarketStore)

    def test_payment_ledger_is_atomic(self):
        payments = PaymentLedger()
        assert isinstance(payments, Settlement)
        assert isinstance(payments, AtomicSettlement)

    def test_staged_settlement_is_not_atomic(self):
        staged = StagedSettlement()
        assert isinstance(staged, Settlement)
        assert not isinstance(staged, AtomicSettlement)

    def test_clocks(self):
        assert isinstance(SystemClock(), Clock)
        assert isinstance(LogicalClock(), Clock)

    def test_event_log(self):
        assert isinstance(EventLog(), EventSink)

    def test_trade_side_values(self):
        assert TradeSide.BUY.value == "buy"
        assert TradeSide.SELL.value == "sell"
