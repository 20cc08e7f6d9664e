"""
keymarket - Bonding-Curve Key Market Engine

Prices and settles trades of per-subject "keys" whose unit price rises with
circulating supply along a quadratic bonding curve.

Usage:
    from keymarket import (
        TradeOrchestrator, InMemoryMarketStore, PaymentLedger,
        SystemClock, MarketConfig,
    )

    payments = PaymentLedger("main")
    payments.deposit("bob", 50_000_000)

    orchestrator = TradeOrchestrator(
        store=InMemoryMarketStore(),
        settlement=payments,
        clock=SystemClock(),
        config=MarketConfig(),
    )

    quote = orchestrator.quote_buy("alice", 10)
    result = orchestrator.buy("alice", "bob", 10, max_payment=quote.breakdown.net_amount)
    orchestrator.sell("alice", "bob", 10, min_proceeds=0)
"""

# Core types
from .core import (
    U64_MAX,
    U128_MAX,
    BPS_DENOMINATOR,
    SYSTEM_ACCOUNT,
    reserve_account,
    TradeSide,
    PricingMode,
    CurveParameters,
    FeeSchedule,
    Market,
    HolderBalance,
    RevenueDistribution,
    TradeBreakdown,
    Transfer,
    TradeEvent,
    TradeQuote,
    CurveStats,
    MarketStore,
    Settlement,
    AtomicSettlement,
    Clock,
    EventSink,
    MarketError,
    InputError,
    InvalidAmount,
    ExceedsMaxPerTrade,
    InvalidReferrer,
    SlippageExceeded,
    TradeDeadlineExceeded,
    TradingPaused,
    ConfigurationError,
    InvalidCurveParameters,
    InvalidFeeSchedule,
    MathError,
    ArithmeticOverflow,
    ArithmeticUnderflow,
    DivisionByZero,
    StateError,
    InvalidSupply,
    ExceedsMaxSupply,
    InsufficientSupply,
    InsufficientKeys,
    MarketNotFound,
    MarketInactive,
    CannotSellLastKey,
    SettlementError,
    InsufficientFunds,
    AccountNotRegistered,
    DuplicateSettlement,
)

# Curve engine
from .curve import (
    price_of_supply,
    sum_of_squares,
    batch_price,
    batch_price_exact,
    batch_price_trapezoidal,
    buy_price,
    sell_price,
    market_cap,
    liquidity,
    curve_stats,
    max_buy_amount,
)

# Fee waterfall
from .fees import (
    fee_share,
    distribute,
    split,
    dynamic_fee_bps,
    adjusted_schedule,
)

# Market ledger
from .market_ledger import (
    LedgerUpdate,
    new_market,
    new_balance,
    apply_buy,
    apply_sell,
)

# Collaborators
from .store import InMemoryMarketStore, PlatformStats, PlatformSnapshot
from .settlement import PaymentLedger, SettlementRecord, compute_content_hash
from .clock import SystemClock, LogicalClock
from .events import EventLog, build_trade_event

# Configuration
from .config import MarketConfig

# Orchestrator
from .orchestrator import TradeOrchestrator, TradeResult

# Chart and audit series
from .analytics import price_series, cost_series, exact_price_table

__all__ = [
    # Core
    'U64_MAX', 'U128_MAX', 'BPS_DENOMINATOR', 'SYSTEM_ACCOUNT', 'reserve_account',
    'TradeSide', 'PricingMode',
    'CurveParameters', 'FeeSchedule', 'Market', 'HolderBalance',
    'RevenueDistribution', 'TradeBreakdown', 'Transfer', 'TradeEvent', 'TradeQuote', 'CurveStats',
    'MarketStore', 'Settlement', 'AtomicSettlement', 'Clock', 'EventSink',
    # Errors
    'MarketError',
    'InputError', 'InvalidAmount', 'ExceedsMaxPerTrade', 'InvalidReferrer',
    'SlippageExceeded', 'TradeDeadlineExceeded', 'TradingPaused',
    'ConfigurationError', 'InvalidCurveParameters', 'InvalidFeeSchedule',
    'MathError', 'ArithmeticOverflow', 'ArithmeticUnderflow', 'DivisionByZero',
    'StateError', 'InvalidSupply', 'ExceedsMaxSupply', 'InsufficientSupply', 'InsufficientKeys',
    'MarketNotFound', 'MarketInactive', 'CannotSellLastKey',
    'SettlementError', 'InsufficientFunds', 'AccountNotRegistered', 'DuplicateSettlement',
    # Curve
    'price_of_supply', 'sum_of_squares', 'batch_price', 'batch_price_exact',
    'batch_price_trapezoidal', 'buy_price', 'sell_price',
    'market_cap', 'liquidity', 'curve_stats', 'max_buy_amount',
    # Fees
    'fee_share', 'distribute', 'split', 'dynamic_fee_bps', 'adjusted_schedule',
    # Market ledger
    'LedgerUpdate', 'new_market', 'new_balance', 'apply_buy', 'apply_sell',
    # Collaborators
    'InMemoryMarketStore', 'PlatformStats', 'PlatformSnapshot',
    'PaymentLedger', 'SettlementRecord', 'compute_content_hash',
    'SystemClock', 'LogicalClock',
    'EventLog', 'build_trade_event',
    # Configuration
    'MarketConfig',
    # Orchestrator
    'TradeOrchestrator', 'TradeResult',
    # Analytics
    'price_series', 'cost_series', 'exact_price_table',
]

__version__ = '1.0.0'
