"""Configuration loader with Pydantic validation and environment variable interpolation."""

from __future__ import annotations

import os
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables at module level
load_dotenv(find_dotenv(usecwd=True))

from marketsim.constants import (
    DEFAULT_CANDLE_HISTORY,
    DEFAULT_CANDLE_SECONDS,
    DEFAULT_LEADERBOARD_INTERVAL_SEC,
    DEFAULT_LEADERBOARD_TOP_N,
    DEFAULT_RATE_LIMIT_MAX_ORDERS,
    DEFAULT_RATE_LIMIT_WINDOW_SEC,
    DEFAULT_ROOM,
    DEFAULT_STARTING_CASH,
    DEFAULT_TICK_INTERVAL_SEC,
    DEFAULT_USERNAME_MAX_LEN,
    LogLevel,
)


def interpolate_env_vars(value: Any) -> Any:
    """
    Interpolate environment variables in string values.

    Supports formats:
    - ${VAR_NAME} - empty string if not set
    - ${VAR_NAME:default} - optional with default value
    """
    if not isinstance(value, str):
        return value

    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)

        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value
        elif default is not None:
            return default
        else:
            return ""

    return re.sub(pattern, replacer, value)


def process_config_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively process config dict to interpolate env vars."""
    result = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = process_config_dict(value)
        elif isinstance(value, list):
            result[key] = [
                process_config_dict(item) if isinstance(item, dict) else interpolate_env_vars(item)
                for item in value
            ]
        else:
            result[key] = interpolate_env_vars(value)
    return result


def _to_decimal(v: Any) -> Decimal:
    if isinstance(v, Decimal):
        return v
    try:
        return Decimal(str(v))
    except InvalidOperation:
        raise ValueError(f"Expected a number, got: {v!r}") from None


# ============================================
# Pydantic Configuration Models
# ============================================


class EnvironmentConfig(BaseModel):
    """Environment and runtime settings."""

    log_level: LogLevel = LogLevel.INFO
    data_dir: str = "./data"


class SymbolSeedConfig(BaseModel):
    """Opening state for one tradable symbol."""

    symbol: str
    name: str
    price: Decimal

    @field_validator("price", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        return _to_decimal(v)

    @field_validator("price")
    @classmethod
    def validate_positive_price(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError(f"Seed price must be positive, got: {v}")
        return v

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Symbol must not be empty")
        return v


def _default_symbols() -> list[SymbolSeedConfig]:
    return [
        SymbolSeedConfig(symbol="BTC", name="Bitcoin", price=Decimal("60000")),
        SymbolSeedConfig(symbol="ETH", name="Ethereum", price=Decimal("3000")),
        SymbolSeedConfig(symbol="SOL", name="Solana", price=Decimal("120")),
        SymbolSeedConfig(symbol="DOGE", name="Dogecoin", price=Decimal("0.15")),
    ]


class MarketDefaultsConfig(BaseModel):
    """Market parameters every symbol opens the session with."""

    volatility: Decimal = Decimal("0.002")
    liquidity: Decimal = Decimal("12000")
    spread: Decimal = Decimal("0.002")
    fee_bps: Decimal = Decimal("12")
    supply: Decimal = Decimal("1000000")

    @field_validator("volatility", "liquidity", "spread", "fee_bps", "supply", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        return _to_decimal(v)


class MarketLimitsConfig(BaseModel):
    """Floors and caps that keep market parameters in a sane range."""

    price_floor: Decimal = Decimal("0.0001")
    volatility_floor: Decimal = Decimal("0.0002")
    volatility_cap: Decimal = Decimal("0.05")
    liquidity_floor: Decimal = Decimal("50")
    spread_floor: Decimal = Decimal("0.0005")
    spread_cap: Decimal = Decimal("0.2")
    fee_bps_floor: Decimal = Decimal("0")
    fee_bps_cap: Decimal = Decimal("200")
    supply_floor: Decimal = Decimal("1")

    @field_validator(
        "price_floor",
        "volatility_floor",
        "volatility_cap",
        "liquidity_floor",
        "spread_floor",
        "spread_cap",
        "fee_bps_floor",
        "fee_bps_cap",
        "supply_floor",
        mode="before",
    )
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        return _to_decimal(v)

    @model_validator(mode="after")
    def validate_ranges(self) -> MarketLimitsConfig:
        """Validate every floor sits below its cap."""
        if self.price_floor <= 0:
            raise ValueError(f"price_floor must be positive, got: {self.price_floor}")
        for name in ("volatility", "spread", "fee_bps"):
            floor = getattr(self, f"{name}_floor")
            cap = getattr(self, f"{name}_cap")
            if floor > cap:
                raise ValueError(f"{name}_floor ({floor}) must not exceed {name}_cap ({cap})")
        return self


class PriceProcessConfig(BaseModel):
    """Tunables of the mean-reverting price process."""

    reference_supply: Decimal = Decimal("1000000")
    supply_pressure_k: Decimal = Decimal("0.0005")
    mean_reversion_k: Decimal = Decimal("0.0002")
    liquidity_reference: Decimal = Decimal("15000")
    liquidity_floor: Decimal = Decimal("500")
    min_liquidity_scaler: Decimal = Decimal("0.4")
    trend_decay: Decimal = Decimal("0.985")
    drift_decay: Decimal = Decimal("0.98")

    @field_validator(
        "reference_supply",
        "supply_pressure_k",
        "mean_reversion_k",
        "liquidity_reference",
        "liquidity_floor",
        "min_liquidity_scaler",
        "trend_decay",
        "drift_decay",
        mode="before",
    )
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        return _to_decimal(v)

    @field_validator("trend_decay", "drift_decay")
    @classmethod
    def validate_decay(cls, v: Decimal) -> Decimal:
        """Decay factors must shrink the value each tick."""
        if not Decimal("0") <= v <= Decimal("1"):
            raise ValueError(f"Decay must be within [0, 1], got: {v}")
        return v

    @field_validator("reference_supply", "liquidity_reference", "liquidity_floor")
    @classmethod
    def validate_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v


class CandleConfig(BaseModel):
    """Candle bucketing."""

    bucket_seconds: int = DEFAULT_CANDLE_SECONDS
    history_limit: int = DEFAULT_CANDLE_HISTORY

    @field_validator("bucket_seconds", "history_limit")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v


class ExecutionConfig(BaseModel):
    """Fill pricing settings."""

    slippage_coefficient: Decimal = Decimal("0.02")
    liquidity_floor: Decimal = Decimal("100")

    @field_validator("slippage_coefficient", "liquidity_floor", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        return _to_decimal(v)

    @field_validator("liquidity_floor")
    @classmethod
    def validate_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError(f"liquidity_floor must be positive, got: {v}")
        return v


class RateLimitConfig(BaseModel):
    """Per-account order rate limit (sliding window)."""

    window_seconds: float = DEFAULT_RATE_LIMIT_WINDOW_SEC
    max_orders: int = DEFAULT_RATE_LIMIT_MAX_ORDERS

    @field_validator("window_seconds")
    @classmethod
    def validate_window(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"window_seconds must be positive, got: {v}")
        return v

    @field_validator("max_orders")
    @classmethod
    def validate_max_orders(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_orders must be at least 1, got: {v}")
        return v


class TeachingEventConfig(BaseModel):
    """Magnitudes of the instructor teaching events."""

    pump_bias: Decimal = Decimal("0.003")
    dump_bias: Decimal = Decimal("0.003")

    rug_liquidity_factor: Decimal = Decimal("0.05")
    rug_spread_add: Decimal = Decimal("0.03")
    rug_bias: Decimal = Decimal("0.005")

    fake_breakout_bias: Decimal = Decimal("0.004")
    fake_breakout_reversal: Decimal = Decimal("0.007")
    fake_breakout_delay_seconds: float = 15.0

    dilution_supply_factor: Decimal = Decimal("1.4")
    dilution_drift: Decimal = Decimal("0.002")

    whale_move: Decimal = Decimal("0.08")

    fee_hike_bps: Decimal = Decimal("25")

    spread_widen_add: Decimal = Decimal("0.01")
    spread_widen_cap: Decimal = Decimal("0.1")

    wash_volatility_add: Decimal = Decimal("0.0015")
    wash_bias: Decimal = Decimal("0.001")
    wash_volatility_floor: Decimal = Decimal("0.001")
    wash_delay_seconds: float = 20.0

    @field_validator(
        "pump_bias",
        "dump_bias",
        "rug_liquidity_factor",
        "rug_spread_add",
        "rug_bias",
        "fake_breakout_bias",
        "fake_breakout_reversal",
        "dilution_supply_factor",
        "dilution_drift",
        "whale_move",
        "fee_hike_bps",
        "spread_widen_add",
        "spread_widen_cap",
        "wash_volatility_add",
        "wash_bias",
        "wash_volatility_floor",
        mode="before",
    )
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        return _to_decimal(v)

    @model_validator(mode="after")
    def validate_fake_breakout(self) -> TeachingEventConfig:
        """The fake breakout must end net negative."""
        if self.fake_breakout_reversal <= self.fake_breakout_bias:
            raise ValueError(
                f"fake_breakout_reversal ({self.fake_breakout_reversal}) must exceed "
                f"fake_breakout_bias ({self.fake_breakout_bias})"
            )
        return self


class ClockConfig(BaseModel):
    """Periodic drivers."""

    tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SEC
    leaderboard_interval_seconds: float = DEFAULT_LEADERBOARD_INTERVAL_SEC

    @field_validator("tick_interval_seconds", "leaderboard_interval_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Interval must be positive, got: {v}")
        return v


class LeaderboardConfig(BaseModel):
    """Leaderboard publishing."""

    top_n: int = DEFAULT_LEADERBOARD_TOP_N

    @field_validator("top_n")
    @classmethod
    def validate_top_n(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"top_n must be at least 1, got: {v}")
        return v


class AccountsConfig(BaseModel):
    """Participant accounts."""

    starting_cash: Decimal = DEFAULT_STARTING_CASH
    username_max_length: int = DEFAULT_USERNAME_MAX_LEN
    default_room: str = DEFAULT_ROOM

    @field_validator("starting_cash", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        return _to_decimal(v)

    @field_validator("starting_cash")
    @classmethod
    def validate_cash(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError(f"starting_cash must be non-negative, got: {v}")
        return v


class AdminConfig(BaseModel):
    """Instructor credentials."""

    pin: str = "1234"

    @field_validator("pin")
    @classmethod
    def validate_pin(cls, v: str) -> str:
        if not v:
            raise ValueError("Admin pin must not be empty")
        return v


class StorageConfig(BaseModel):
    """Durable ledger store."""

    enabled: bool = True
    database_path: str = "./data/marketsim.db"


class AppConfig(BaseModel):
    """Root application configuration."""

    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    symbols: list[SymbolSeedConfig] = Field(default_factory=_default_symbols)
    market_defaults: MarketDefaultsConfig = Field(default_factory=MarketDefaultsConfig)
    limits: MarketLimitsConfig = Field(default_factory=MarketLimitsConfig)
    price_process: PriceProcessConfig = Field(default_factory=PriceProcessConfig)
    candles: CandleConfig = Field(default_factory=CandleConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    events: TeachingEventConfig = Field(default_factory=TeachingEventConfig)
    clock: ClockConfig = Field(default_factory=ClockConfig)
    leaderboard: LeaderboardConfig = Field(default_factory=LeaderboardConfig)
    accounts: AccountsConfig = Field(default_factory=AccountsConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("symbols")
    @classmethod
    def validate_unique_symbols(cls, v: list[SymbolSeedConfig]) -> list[SymbolSeedConfig]:
        """Symbols must be non-empty and unique."""
        if not v:
            raise ValueError("At least one symbol must be configured")
        seen = [s.symbol for s in v]
        if len(seen) != len(set(seen)):
            raise ValueError(f"Duplicate symbols configured: {seen}")
        return v

    @property
    def symbol_codes(self) -> list[str]:
        return [s.symbol for s in self.symbols]


# ============================================
# Configuration Loader
# ============================================


class ConfigLoader:
    """Load and validate configuration from YAML files with env var interpolation."""

    def __init__(self, config_path: str | Path) -> None:
        """
        Initialize config loader.

        Args:
            config_path: Path to the YAML configuration file.
        """
        self.config_path = Path(config_path)
        self._config: AppConfig | None = None

    def load(self) -> AppConfig:
        """
        Load and validate configuration.

        Returns:
            Validated AppConfig instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            yaml.YAMLError: If YAML is invalid.
            pydantic.ValidationError: If config validation fails.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        processed_config = process_config_dict(raw_config)

        self._config = AppConfig.model_validate(processed_config)

        return self._config

    @property
    def config(self) -> AppConfig:
        """Get loaded config, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config

    def reload(self) -> AppConfig:
        """Force reload configuration from disk."""
        self._config = None
        return self.load()


def load_config(config_path: str | Path) -> AppConfig:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated AppConfig instance.
    """
    loader = ConfigLoader(config_path)
    return loader.load()


def load_config_with_overrides(
    config_path: str | Path,
    *,
    log_level: str | None = None,
    database_path: str | None = None,
    tick_interval: float | None = None,
) -> AppConfig:
    """
    Load configuration with CLI overrides.

    Args:
        config_path: Path to the YAML configuration file.
        log_level: Override logging level.
        database_path: Override the ledger database location.
        tick_interval: Override the price tick interval in seconds.

    Returns:
        Validated AppConfig instance with overrides applied.
    """
    config = load_config(config_path)

    updates: dict[str, Any] = {}

    if log_level is not None:
        level_enum = LogLevel(log_level.upper())
        updates["environment"] = config.environment.model_copy(update={"log_level": level_enum})

    if database_path is not None:
        updates["storage"] = config.storage.model_copy(update={"database_path": database_path})

    if tick_interval is not None:
        if tick_interval <= 0:
            raise ValueError(f"Tick interval must be positive, got: {tick_interval}")
        updates["clock"] = config.clock.model_copy(
            update={"tick_interval_seconds": tick_interval}
        )

    if updates:
        return config.model_copy(update=updates)

    return config
