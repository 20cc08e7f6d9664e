"""
test_market_ledger.py - Unit tests for supply and holder balance accounting
"""

import pytest
from dataclasses import replace
from datetime import datetime, timedelta

from keymarket import (
    U64_MAX,
    new_market, new_balance, apply_buy, apply_sell,
    ExceedsMaxSupply, InsufficientKeys, InsufficientSupply, ArithmeticOverflow,
)


T0 = datetime(2025, 1, 1)
T1 = T0 + timedelta(minutes=1)


@pytest.fixture
def market():
    return new_market("alice", T0)


@pytest.fixture
def balance():
    return new_balance("alice", "bob", T0)


class TestConstruction:

    def test_new_market_is_empty(self, market):
        assert market.total_supply == 0
        assert market.total_volume == 0
        assert market.holder_count == 0
        assert market.is_active
        assert market.created_at == market.last_trade_at == T0

    def test_new_balance_is_zero(self, balance):
        assert balance.amount == 0
        assert balance.subject_id == "alice"

    def test_empty_subject_rejected(self):
        with pytest.raises(ValueError):
            new_market(" ", T0)

    def test_empty_holder_rejected(self):
        with pytest.raises(ValueError):
            new_balance("alice", "", T0)


class TestApplyBuy:

    def test_increments_everything(self, market, balance):
        update = apply_buy(market, balance, 10, 10_000_000, T1)
        assert update.market.total_supply == 10
        assert update.market.total_volume == 10_000_000
        assert update.market.holder_count == 1
        assert update.market.last_trade_at == T1
        assert update.market.created_at == T0
        assert update.balance.amount == 10
        assert update.balance.last_trade_at == T1
        assert update.new_holder
        assert not update.balance_closed

    def test_inputs_untouched(self, market, balance):
        apply_buy(market, balance, 10, 10_000_000, T1)
        assert market.total_supply == 0
        assert balance.amount == 0

    def test_existing_holder_not_recounted(self, market, balance):
        first = apply_buy(market, balance, 1, 100, T1)
        second = apply_buy(first.market, first.balance, 2, 200, T1)
        assert second.market.holder_count == 1
        assert not second.new_holder
        assert second.balance.amount == 3

    def test_zero_amount_is_noop(self, market, balance):
        update = apply_buy(market, balance, 0, 0, T1)
        assert update.market is market
        assert update.balance is balance

    def test_max_supply(self, market, balance):
        with pytest.raises(ExceedsMaxSupply):
            apply_buy(market, balance, 11, 1, T1, max_supply=10)

    def test_volume_overflow(self, market, balance):
        full = replace(market, total_volume=U64_MAX)
        with pytest.raises(ArithmeticOverflow):
            apply_buy(full, balance, 1, 1, T1)

    def test_supply_overflow(self, market, balance):
        full = replace(market, total_supply=U64_MAX)
        with pytest.raises(ArithmeticOverflow):
            apply_buy(full, balance, 1, 1, T1)

    def test_mismatched_subject(self, market):
        other = new_balance("carol", "bob", T0)
        with pytest.raises(ValueError):
            apply_buy(market, other, 1, 1, T1)


class TestApplySell:

    @pytest.fixture
    def held(self, market, balance):
        return apply_buy(market, balance, 10, 10_000_000, T0)

    def test_partial_sale(self, held):
        update = apply_sell(held.market, held.balance, 4, 4_000_000, T1)
        assert update.market.total_supply == 6
        assert update.market.total_volume == 14_000_000
        assert update.balance.amount == 6
        assert update.market.holder_count == 1
        assert not update.balance_closed

    def test_sale_to_zero_closes_balance(self, held):
        update = apply_sell(held.market, held.balance, 10, 10_000_000, T1)
        assert update.balance.amount == 0
        assert update.balance_closed
        assert update.market.holder_count == 0
        assert update.market.total_supply == 0

    def test_more_than_held(self, held):
        with pytest.raises(InsufficientKeys):
            apply_sell(held.market, held.balance, 11, 1, T1)

    def test_more_than_supply(self, held):
        # A corrupt pair: balance larger than supply
        shrunk = replace(held.market, total_supply=5)
        with pytest.raises(InsufficientSupply):
            apply_sell(shrunk, held.balance, 6, 1, T1)

    def test_keys_checked_before_supply(self, market, balance):
        with pytest.raises(InsufficientKeys):
            apply_sell(market, balance, 1, 1, T1)

    def test_zero_amount_is_noop(self, held):
        update = apply_sell(held.market, held.balance, 0, 0, T1)
        assert update.market is held.market
        assert not update.balance_closed
