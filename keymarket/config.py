"""
config.py - Market Configuration

MarketConfig gathers the immutable parameters a TradeOrchestrator runs
with. Defaults reproduce the deployed social-key program:

    base price   1_000_000          slope      16_000
    precision    1_000_000_000      max supply 1_000_000_000_000
    creator fee  500 bps            protocol   250 bps     referrer 100 bps
    max keys per trade 1000

Configuration can be built from nested plain data (from_mapping) and a small
set of operational settings can be overridden from KEYMARKET_* environment
variables (from_env).
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional
import logging
import os

from .core import (
    U64_MAX,
    CurveParameters, FeeSchedule, PricingMode,
    ConfigurationError,
)

logger = logging.getLogger(__name__)


# ============================================================================
# DEFAULTS
# ============================================================================

DEFAULT_BASE_PRICE = 1_000_000
DEFAULT_SLOPE = 16_000
DEFAULT_PRECISION = 1_000_000_000
DEFAULT_MAX_SUPPLY = 1_000_000_000_000

DEFAULT_CREATOR_BPS = 500
DEFAULT_PROTOCOL_BPS = 250
DEFAULT_REFERRER_BPS = 100

DEFAULT_MAX_PER_TRADE = 1000
DEFAULT_PROTOCOL_ACCOUNT = "protocol_treasury"

ENV_PREFIX = "KEYMARKET_"


def default_curve() -> CurveParameters:
    return CurveParameters(
        base_price=DEFAULT_BASE_PRICE,
        slope=DEFAULT_SLOPE,
        precision=DEFAULT_PRECISION,
        max_supply=DEFAULT_MAX_SUPPLY,
    )


def default_fees() -> FeeSchedule:
    return FeeSchedule(
        creator_bps=DEFAULT_CREATOR_BPS,
        protocol_bps=DEFAULT_PROTOCOL_BPS,
        referrer_bps=DEFAULT_REFERRER_BPS,
    )


@dataclass(frozen=True, slots=True)
class MarketConfig:
    """
    Settings of one trading deployment.

    Attributes:
        curve: Bonding curve shared by every market of the deployment
        fees: Fee rates applied to every trade
        max_per_trade: Largest amount a single trade may buy or sell
        protocol_account: Settlement account receiving protocol fees
        auto_open_markets: Create a subject's market on its first buy
        protect_last_key: Forbid a subject from selling the last outstanding key
        require_positive_price: Reject trades whose base price is 0
    """
    curve: CurveParameters = field(default_factory=default_curve)
    fees: FeeSchedule = field(default_factory=default_fees)
    max_per_trade: int = DEFAULT_MAX_PER_TRADE
    protocol_account: str = DEFAULT_PROTOCOL_ACCOUNT
    auto_open_markets: bool = True
    protect_last_key: bool = True
    require_positive_price: bool = False

    def __post_init__(self):
        if not isinstance(self.curve, CurveParameters):
            raise ConfigurationError(f"curve must be CurveParameters, got {type(self.curve).__name__}")
        if not isinstance(self.fees, FeeSchedule):
            raise ConfigurationError(f"fees must be FeeSchedule, got {type(self.fees).__name__}")
        if not isinstance(self.max_per_trade, int) or isinstance(self.max_per_trade, bool):
            raise ConfigurationError("max_per_trade must be an int")
        if not 0 < self.max_per_trade <= U64_MAX:
            raise ConfigurationError(f"max_per_trade must be positive, got {self.max_per_trade}")
        if not self.protocol_account or not self.protocol_account.strip():
            raise ConfigurationError("protocol_account cannot be empty")

    # ========================================================================
    # CONSTRUCTION
    # ========================================================================

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MarketConfig:
        """
        Build a config from nested plain data.

        Missing keys keep their defaults. Example:

            MarketConfig.from_mapping({
                "curve": {"base_price": 1_000_000, "mode": "trapezoidal"},
                "fees": {"creator_bps": 400},
                "max_per_trade": 500,
            })
        """
        unknown = set(data) - {
            "curve", "fees", "max_per_trade", "protocol_account",
            "auto_open_markets", "protect_last_key", "require_positive_price",
        }
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        curve_data = dict(data.get("curve") or {})
        mode = curve_data.pop("mode", PricingMode.EXACT.value)
        curve = CurveParameters(
            base_price=curve_data.pop("base_price", DEFAULT_BASE_PRICE),
            slope=curve_data.pop("slope", DEFAULT_SLOPE),
            precision=curve_data.pop("precision", DEFAULT_PRECISION),
            max_supply=curve_data.pop("max_supply", DEFAULT_MAX_SUPPLY),
            mode=_parse_mode(mode),
        )
        if curve_data:
            raise ConfigurationError(f"Unknown curve keys: {', '.join(sorted(curve_data))}")

        fee_data = dict(data.get("fees") or {})
        fees = FeeSchedule(
            creator_bps=fee_data.pop("creator_bps", DEFAULT_CREATOR_BPS),
            protocol_bps=fee_data.pop("protocol_bps", DEFAULT_PROTOCOL_BPS),
            referrer_bps=fee_data.pop("referrer_bps", DEFAULT_REFERRER_BPS),
        )
        if fee_data:
            raise ConfigurationError(f"Unknown fee keys: {', '.join(sorted(fee_data))}")

        return cls(
            curve=curve,
            fees=fees,
            max_per_trade=data.get("max_per_trade", DEFAULT_MAX_PER_TRADE),
            protocol_account=data.get("protocol_account", DEFAULT_PROTOCOL_ACCOUNT),
            auto_open_markets=data.get("auto_open_markets", True),
            protect_last_key=data.get("protect_last_key", True),
            require_positive_price=data.get("require_positive_price", False),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 base: Optional[MarketConfig] = None) -> MarketConfig:
        """
        Apply KEYMARKET_* environment overrides on top of base (or defaults).

        Recognised variables: KEYMARKET_BASE_PRICE, KEYMARKET_SLOPE,
        KEYMARKET_PRECISION, KEYMARKET_MAX_SUPPLY, KEYMARKET_PRICING_MODE,
        KEYMARKET_CREATOR_BPS, KEYMARKET_PROTOCOL_BPS, KEYMARKET_REFERRER_BPS,
        KEYMARKET_MAX_PER_TRADE, KEYMARKET_PROTOCOL_ACCOUNT,
        KEYMARKET_AUTO_OPEN_MARKETS, KEYMARKET_PROTECT_LAST_KEY,
        KEYMARKET_REQUIRE_POSITIVE_PRICE.
        """
        env = os.environ if environ is None else environ
        cfg = base or cls()

        curve_overrides: Dict[str, Any] = {}
        for name in ("base_price", "slope", "precision", "max_supply"):
            value = _env_int(env, name)
            if value is not None:
                curve_overrides[name] = value
        if env.get(ENV_PREFIX + "PRICING_MODE"):
            curve_overrides["mode"] = _parse_mode(env[ENV_PREFIX + "PRICING_MODE"])

        fee_overrides: Dict[str, Any] = {}
        for name in ("creator_bps", "protocol_bps", "referrer_bps"):
            value = _env_int(env, name)
            if value is not None:
                fee_overrides[name] = value

        overrides: Dict[str, Any] = {}
        if curve_overrides:
            overrides["curve"] = replace(cfg.curve, **curve_overrides)
        if fee_overrides:
            overrides["fees"] = replace(cfg.fees, **fee_overrides)
        max_per_trade = _env_int(env, "max_per_trade")
        if max_per_trade is not None:
            overrides["max_per_trade"] = max_per_trade
        if env.get(ENV_PREFIX + "PROTOCOL_ACCOUNT"):
            overrides["protocol_account"] = env[ENV_PREFIX + "PROTOCOL_ACCOUNT"]
        for name in ("auto_open_markets", "protect_last_key", "require_positive_price"):
            value = _env_bool(env, name)
            if value is not None:
                overrides[name] = value

        if overrides:
            logger.info("Config overrides from environment: %s", ", ".join(sorted(overrides)))
            cfg = replace(cfg, **overrides)
        return cfg


# ============================================================================
# PARSING HELPERS
# ============================================================================

def _parse_mode(value: Any) -> PricingMode:
    if isinstance(value, PricingMode):
        return value
    try:
        return PricingMode(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown pricing mode: {value!r}") from None


def _env_int(env: Mapping[str, str], name: str) -> Optional[int]:
    key = ENV_PREFIX + name.upper()
    raw = env.get(key)
    if not raw:
        return None
    try:
        return int(raw.replace("_", ""))
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(env: Mapping[str, str], name: str) -> Optional[bool]:
    key = ENV_PREFIX + name.upper()
    raw = env.get(key)
    if not raw:
        return None
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {raw!r}")
