#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Key Market Step by Step

A walk through the pricing and settlement engine. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  The Curve      - Marginal price, batch price, buy/sell symmetry
  4-5:  Fees           - The fee waterfall, referrers
  6-8:  Trading        - Buying, selling, slippage and rejections
  9-10: Guarantees     - Conservation of payments, the settlement log

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
    python demo.py --verbose # Also show the engine's own log lines
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import sys

from keymarket import (
    # Configuration
    CurveParameters, FeeSchedule, MarketConfig,
    # Curve engine
    price_of_supply, batch_price, buy_price, sell_price, curve_stats,
    # Fee waterfall
    split, TradeSide,
    # Collaborators
    InMemoryMarketStore, PaymentLedger, LogicalClock, EventLog,
    # Orchestrator
    TradeOrchestrator,
    # Errors
    MarketError, reserve_account,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

    curve: CurveParameters = field(default_factory=lambda: CurveParameters(
        base_price=1_000_000,
        slope=16_000,
        precision=1_000_000_000,
        max_supply=1_000_000_000_000,
    ))
    fees: FeeSchedule = field(default_factory=lambda: FeeSchedule(500, 250, 100))

    # Initial funding, in the smallest payment unit
    bob_funding: int = 1_000_000_000
    carol_funding: int = 1_000_000_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv
VERBOSE = "--verbose" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


# ============================================================================
# PHASE 1: THE CURVE (Steps 1-3)
# ============================================================================

def step_01_marginal_price():
    step_header(1, "The Marginal Price",
        "See how the price of the next key grows with the square of supply.")

    params = CONFIG.curve
    print("    price(s) = base_price + slope * s² / precision\n")
    for supply in (0, 1_000, 10_000, 100_000, 1_000_000):
        print(f"    supply {supply:>9,}  ->  price {price_of_supply(params, supply):>15,}")


def step_02_batch_price():
    step_header(2, "Pricing a Batch",
        "A batch of keys is the exact sum of the marginal prices it crosses.")

    params = CONFIG.curve
    print(">>> batch_price(params, supply=0, amount=10)")
    print(f"    {batch_price(params, 0, 10):,}")
    print("\n    0² + ... + 9² = 285 is too small to register at precision 1e9,")
    print("    so the first ten keys cost exactly 10 * base_price.\n")
    print(">>> batch_price(params, supply=1000, amount=10)")
    print(f"    {batch_price(params, 1000, 10):,}")
    print("\n    Further up the curve the quadratic term shows through.")


def step_03_symmetry():
    step_header(3, "Buy/Sell Symmetry",
        "Selling keys prices them exactly as buying them back would.")

    params = CONFIG.curve
    paid = buy_price(params, 5_000, 25)
    received = sell_price(params, 5_025, 25)
    print(f">>> buy_price(params, 5000, 25)   = {paid:,}")
    print(f">>> sell_price(params, 5025, 25)  = {received:,}")
    print(f"\n    Identical: {paid == received}")


# ============================================================================
# PHASE 2: FEES (Steps 4-5)
# ============================================================================

def step_04_fee_waterfall():
    step_header(4, "The Fee Waterfall",
        "Fees are cut from the base price in a fixed order and truncated.")

    buy = split(10_000_000, CONFIG.fees, has_referrer=False, side=TradeSide.BUY)
    sell = split(10_000_000, CONFIG.fees, has_referrer=False, side=TradeSide.SELL)
    print(f"    base price      {buy.base_price:>12,}")
    print(f"    creator fee     {buy.creator_fee:>12,}   ({CONFIG.fees.creator_bps} bps)")
    print(f"    protocol fee    {buy.protocol_fee:>12,}   ({CONFIG.fees.protocol_bps} bps)")
    print(f"    buyer pays      {buy.net_amount:>12,}")
    print(f"    seller receives {sell.net_amount:>12,}")


def step_05_referrers():
    step_header(5, "Referrers",
        "A referred trade adds a third share; without one it stays unpaid.")

    referred = split(10_000_000, CONFIG.fees, has_referrer=True)
    print(f"    referrer fee    {referred.referrer_fee:>12,}   ({CONFIG.fees.referrer_bps} bps)")
    print(f"    buyer pays      {referred.net_amount:>12,}")


# ============================================================================
# PHASE 3: TRADING (Steps 6-8)
# ============================================================================

def build_orchestrator() -> TradeOrchestrator:
    payments = PaymentLedger("demo")
    payments.deposit("bob", CONFIG.bob_funding)
    payments.deposit("carol", CONFIG.carol_funding)
    return TradeOrchestrator(
        store=InMemoryMarketStore(),
        settlement=payments,
        clock=LogicalClock(CONFIG.start_time),
        config=MarketConfig(curve=CONFIG.curve, fees=CONFIG.fees),
        events=EventLog(),
    )


def step_06_buy(orch: TradeOrchestrator):
    step_header(6, "Buying Keys",
        "bob buys ten of alice's keys; her market opens on the first buy.")

    quote = orch.quote_buy("alice", 10)
    print(f">>> orch.quote_buy('alice', 10).breakdown.net_amount = {quote.breakdown.net_amount:,}")
    result = orch.buy("alice", "bob", 10, max_payment=quote.breakdown.net_amount)
    print(">>> orch.buy('alice', 'bob', 10, max_payment=...)")
    print(f"    new supply: {result.new_supply}, bob holds {result.new_balance}")

    section_header("Where the money went")
    payments = orch.settlement
    for account in ("bob", reserve_account("alice"), "alice", "protocol_treasury"):
        print(f"    {account:<20} {payments.available(account):>15,}")


def step_07_sell(orch: TradeOrchestrator):
    step_header(7, "Selling Keys",
        "The reserve pays sellers back along the same curve.")

    result = orch.sell("alice", "bob", 4, min_proceeds=0, referrer_id="carol")
    print(">>> orch.sell('alice', 'bob', 4, min_proceeds=0, referrer_id='carol')")
    print(f"    proceeds: {result.breakdown.net_amount:,}, referrer fee: {result.breakdown.referrer_fee:,}")
    print(f"    new supply: {result.new_supply}")
    print(f"\n    market: {orch.store.get_market('alice')!r}")
    stats = curve_stats(orch.config.curve, result.new_supply)
    print(f"    stats:  price={stats.current_price:,} cap={stats.market_cap:,} "
          f"liquidity={stats.liquidity:,}")


def step_08_rejections(orch: TradeOrchestrator):
    step_header(8, "Rejections",
        "Bad requests fail with a named error and change nothing.")

    attempts = [
        ("amount 0", lambda: orch.buy("alice", "carol", 0, max_payment=10 ** 9)),
        ("slippage", lambda: orch.buy("alice", "carol", 10, max_payment=1)),
        ("oversell", lambda: orch.sell("alice", "carol", 1, min_proceeds=0)),
        ("self referral", lambda: orch.buy("alice", "carol", 1, max_payment=10 ** 9, referrer_id="carol")),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except MarketError as e:
            print(f"    {label:<14} -> {type(e).__name__}: {e}")


# ============================================================================
# PHASE 4: GUARANTEES (Steps 9-10)
# ============================================================================

def step_09_conservation(orch: TradeOrchestrator):
    step_header(9, "Conservation",
        "Every unit of payment issued is still held by someone.")

    report = orch.settlement.verify_conservation()
    print(f"    issued: {report['issued']:,}")
    print(f"    held:   {report['held']:,}")
    print(f"    valid:  {report['valid']}")


def step_10_settlement_log(orch: TradeOrchestrator):
    step_header(10, "The Settlement Log",
        "Each trade settled as one content-hashed batch.")

    for record in orch.settlement.settlement_log:
        print(f"    {record!r}")
    print(f"\n    platform: {orch.stats.snapshot()}")


# ============================================================================
# MAIN
# ============================================================================

def main():
    logging.basicConfig(
        level=logging.INFO if VERBOSE else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    print("=" * 70)
    print("       KEY MARKET TUTORIAL")
    print("=" * 70)

    step_01_marginal_price()
    wait_for_enter()
    step_02_batch_price()
    wait_for_enter()
    step_03_symmetry()
    wait_for_enter()

    step_04_fee_waterfall()
    wait_for_enter()
    step_05_referrers()
    wait_for_enter()

    orch = build_orchestrator()
    step_06_buy(orch)
    wait_for_enter()
    step_07_sell(orch)
    wait_for_enter()
    step_08_rejections(orch)
    wait_for_enter()

    step_09_conservation(orch)
    wait_for_enter()
    step_10_settlement_log(orch)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See keymarket/curve.py for the closed-form batch price
      - See keymarket/orchestrator.py for the trade state machine
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
