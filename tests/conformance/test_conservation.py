"""
Conservation Law Conformance Tests

INVARIANT: Trading redistributes payment value, it never creates or destroys it.

    ∀ base, schedule:
        creator + protocol + referrer + remaining = base

    ∀ trade sequences:
        Σ_{accounts} balance = Σ deposits
        reserve(subject) = liquidity(supply)          (precision 1)
        Σ_{holders} keys = supply
        holder_count = |{holders with keys > 0}|
"""

from hypothesis import given, settings, note
from hypothesis import strategies as st

from keymarket import (
    FeeSchedule, MarketConfig, TradeSide,
    distribute, split, liquidity, reserve_account,
)

from tests.conformance.strategies import fee_schedule, trade_sequence
from tests.fakes import FUNDING, TRADERS, exact_params, make_orchestrator, run_sequence


SUBJECT = "alice"

u64_amounts = st.integers(min_value=0, max_value=2 ** 63)


# =============================================================================
# FEE SPLIT CONSERVATION
# =============================================================================

class TestFeeSplitProperties:

    @given(u64_amounts, fee_schedule(), st.booleans())
    @settings(max_examples=300)
    def test_distribution_sums_to_total(self, total, schedule, referred):
        """
        PROPERTY: creator + protocol + referrer + remaining = total
        """
        dist = distribute(total, schedule, referred)
        assert (dist.creator_amount + dist.protocol_amount
                + dist.referrer_amount + dist.remaining_amount) == total
        assert dist.remaining_amount >= 0

    @given(u64_amounts, fee_schedule())
    @settings(max_examples=300)
    def test_referrer_share_only_when_referred(self, total, schedule):
        """
        PROPERTY: without a referrer, the referrer share stays with the remainder.
        """
        assert distribute(total, schedule, False).referrer_amount == 0

    @given(st.integers(min_value=0, max_value=2 ** 62), fee_schedule(), st.booleans())
    @settings(max_examples=300)
    def test_breakdown_balances_both_sides(self, base, schedule, referred):
        """
        PROPERTY: buy net = base + fees, sell net + fees = base
        """
        bought = split(base, schedule, referred, TradeSide.BUY)
        sold = split(base, schedule, referred, TradeSide.SELL)
        assert bought.net_amount == base + bought.total_fees
        assert sold.net_amount + sold.total_fees == base
        assert bought.total_fees == sold.total_fees


# =============================================================================
# PAYMENT AND KEY CONSERVATION
# =============================================================================

class TestTradingConservation:

    @given(trade_sequence())
    @settings(max_examples=50, deadline=None)
    def test_payments_and_keys_are_conserved(self, steps):
        """
        PROPERTY: after any trade sequence, deposits are conserved across all
        accounts, the reserve holds exactly the curve's liquidity, and the
        holdings add up to the supply.
        """
        params = exact_params()
        orchestrator = make_orchestrator(MarketConfig(curve=params, fees=FeeSchedule(500, 250, 100)))
        payments = orchestrator.settlement

        run_sequence(orchestrator, SUBJECT, steps)

        market = orchestrator.store.get_market(SUBJECT)
        holders = orchestrator.store.holders(SUBJECT)
        note(f"market={market!r} holders={holders}")

        report = payments.verify_conservation()
        assert report['valid']
        assert report['held'] == FUNDING * len(TRADERS)
        assert payments.total_supply() == 0

        assert payments.available(reserve_account(SUBJECT)) == liquidity(params, market.total_supply)
        assert sum(holders.values()) == market.total_supply
        assert market.holder_count == len(holders)
        assert all(amount > 0 for amount in holders.values())

    @given(trade_sequence())
    @settings(max_examples=50, deadline=None)
    def test_fees_reach_their_accounts(self, steps):
        """
        PROPERTY: every fee the orchestrator reports lands in its account.
        """
        orchestrator = make_orchestrator(MarketConfig(curve=exact_params(), fees=FeeSchedule(500, 250, 100)))
        payments = orchestrator.settlement
        run_sequence(orchestrator, SUBJECT, steps)

        snap = orchestrator.stats.snapshot()
        assert payments.available("protocol_treasury") == snap.total_protocol_fees
        # erin refers but never trades
        assert payments.available("erin") == FUNDING + snap.total_referrer_fees
