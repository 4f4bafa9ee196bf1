"""Centralized engine settings powered by Pydantic.

Environment matrix:

| Section  | Environment Variable        | Default   | Purpose                                        |
|----------|-----------------------------|-----------|------------------------------------------------|
| Runtime  | `ENV`                       | `local`   | Deployment environment label for log records   |
| Runtime  | `LOG_LEVEL`                 | `INFO`    | Default loguru level                           |
| Runtime  | `APP_VERSION`               | package   | Version stamped on log records                 |
| Market   | `FX_PIP_SIZE`               | `0.0001`  | Price delta of one pip                         |
| Market   | `FX_CONTRACT_SIZE`          | `100000`  | Units per standard lot                         |
| Market   | `FX_DEFAULT_SPREAD`         | `0.00015` | Spread used when a config does not supply one  |
| Market   | `FX_VOLATILITY_LOW_PIPS`    | `30`      | ATR (pips) below which volatility is low       |
| Market   | `FX_VOLATILITY_HIGH_PIPS`   | `60`      | ATR (pips) at or above which volatility is high|
| Backtest | `FX_TRADING_DAYS`           | `252`     | Trading days per year for annualisation        |
| Backtest | `FX_PROGRESS_STEP_PCT`      | `1.0`     | Progress callback cadence (% of bars)          |
| Backtest | `FX_RATIO_SENTINEL`         | `1e6`     | Finite stand-in for an unbounded ratio         |
| Backtest | `FX_MIN_LOT`                | `0.01`    | Smallest tradable lot                          |
| Backtest | `FX_MAX_LOT`                | `10`      | Largest lot a single position may use          |
| Backtest | `FX_LOT_STEP`               | `0.01`    | Lot granularity                                |
| Backtest | `FX_SWEEP_MAX_WORKERS`      | `4`       | Thread pool size for parameter sweeps          |
| Decision | `FX_MIN_CONFIDENCE`         | `70`      | Minimum confidence to emit a trading signal    |
| Decision | `FX_CACHE_TTL_SECONDS`      | `300`     | Default TTL for prediction caches              |
| Decision | `FX_BOT_INTERVAL_SECONDS`   | `60`      | Default bot evaluation interval                |

Settings are read from the environment on every ``get_settings()`` call and
are frozen once built. Components take explicit arguments and only fall back
to these values for their defaults.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fxengine import __version__


class _SettingsBase(BaseSettings):
    """Common configuration for BaseSettings subclasses."""

    model_config = SettingsConfigDict(
        env_prefix="",
        populate_by_name=True,
        extra="ignore",
        case_sensitive=True,
        frozen=True,
    )


class RuntimeSettings(_SettingsBase):
    """Process-level metadata used by logging."""

    environment: str = Field(default="local", alias="ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    version: str = Field(default=__version__, alias="APP_VERSION")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: str | None) -> str:
        return (value or "INFO").upper()


class MarketSettings(_SettingsBase):
    """Instrument conventions for forex majors."""

    pip_size: float = Field(default=0.0001, alias="FX_PIP_SIZE", gt=0)
    contract_size: float = Field(default=100_000.0, alias="FX_CONTRACT_SIZE", gt=0)
    default_spread: float = Field(default=0.00015, alias="FX_DEFAULT_SPREAD", ge=0)
    volatility_low_pips: float = Field(default=30.0, alias="FX_VOLATILITY_LOW_PIPS")
    volatility_high_pips: float = Field(default=60.0, alias="FX_VOLATILITY_HIGH_PIPS")


class BacktestSettings(_SettingsBase):
    """Simulation and metrics defaults."""

    trading_days: int = Field(default=252, alias="FX_TRADING_DAYS", gt=0)
    progress_step_pct: float = Field(default=1.0, alias="FX_PROGRESS_STEP_PCT", gt=0)
    ratio_sentinel: float = Field(default=1e6, alias="FX_RATIO_SENTINEL", gt=0)
    min_lot: float = Field(default=0.01, alias="FX_MIN_LOT", gt=0)
    max_lot: float = Field(default=10.0, alias="FX_MAX_LOT", gt=0)
    lot_step: float = Field(default=0.01, alias="FX_LOT_STEP", gt=0)
    sweep_max_workers: int = Field(default=4, alias="FX_SWEEP_MAX_WORKERS", ge=1)


class DecisionSettings(_SettingsBase):
    """Signal fusion and bot loop defaults."""

    min_confidence: float = Field(default=70.0, alias="FX_MIN_CONFIDENCE", ge=0, le=100)
    cache_ttl_seconds: float = Field(default=300.0, alias="FX_CACHE_TTL_SECONDS", ge=0)
    bot_interval_seconds: float = Field(
        default=60.0, alias="FX_BOT_INTERVAL_SECONDS", gt=0
    )


class Settings(BaseModel):
    """Aggregate accessor for domain-specific settings."""

    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    market: MarketSettings = Field(default_factory=MarketSettings)
    backtest: BacktestSettings = Field(default_factory=BacktestSettings)
    decision: DecisionSettings = Field(default_factory=DecisionSettings)

    model_config = {"frozen": True}


def get_settings() -> Settings:
    """Instantiate settings from the current environment."""
    return Settings()


def reload_settings() -> Settings:
    """Alias for get_settings to maintain a consistent API."""
    return get_settings()


def get_runtime_settings() -> RuntimeSettings:
    return get_settings().runtime


def get_market_settings() -> MarketSettings:
    return get_settings().market


def get_backtest_settings() -> BacktestSettings:
    return get_settings().backtest


def get_decision_settings() -> DecisionSettings:
    return get_settings().decision


__all__ = [
    "Settings",
    "RuntimeSettings",
    "MarketSettings",
    "BacktestSettings",
    "DecisionSettings",
    "get_settings",
    "reload_settings",
    "get_runtime_settings",
    "get_market_settings",
    "get_backtest_settings",
    "get_decision_settings",
]
