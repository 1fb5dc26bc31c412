from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from engine.errors import ConfigurationError


class BacktestSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    TICKS_PATH: str = "tick_strategy_ticks.jsonl"
    SYMBOL: str = "BTC/USD"
    TIMEFRAME_SECS: int = 1
    TIMESTAMP_UNIT: str = "s"
    INITIAL_CASH: float = 10000.0
    STRATEGY: str = "stochastic"
    STRATEGY_PARAMS: str = "{}"
    LOG_LEVEL: str = "INFO"
    MAX_PRICE: float | None = None
    MAX_QUANTITY: float | None = None
    MAX_TRADES_PER_DAY: int | None = None
    MAX_ENTRY_RSI: float | None = None


def _check_period(name: str, value: int) -> None:
    if value < 1:
        raise ConfigurationError(f"{name} must be >= 1, got {value}")


def _check_level(name: str, value: float) -> None:
    if not 0.0 <= value <= 100.0:
        raise ConfigurationError(f"{name} must be within [0, 100], got {value}")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value}")


class StrategyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    position_size: float = 1.0

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

    @classmethod
    def from_options(cls, **options: Any) -> "StrategyConfig":
        return cls(**options)


class StochasticConfig(StrategyConfig):
    k_period: int = 14
    d_period: int = 3
    oversold_threshold: float = 20.0
    overbought_threshold: float = 80.0
    atr_period: int = 14
    atr_multiplier: float = 2.0

    @model_validator(mode="after")
    def check_ranges(self) -> "StochasticConfig":
        _check_period("k_period", self.k_period)
        _check_period("d_period", self.d_period)
        _check_period("atr_period", self.atr_period)
        _check_level("oversold_threshold", self.oversold_threshold)
        _check_level("overbought_threshold", self.overbought_threshold)
        if self.oversold_threshold >= self.overbought_threshold:
            raise ConfigurationError("oversold_threshold must be below overbought_threshold")
        _check_positive("position_size", self.position_size)
        _check_positive("atr_multiplier", self.atr_multiplier)
        return self


class RsiConfig(StrategyConfig):
    rsi_period: int = 14
    oversold_threshold: float = 30.0
    overbought_threshold: float = 70.0
    use_dynamic_levels: bool = False
    volatility_window: int = 20
    oversold_min: float = 20.0
    oversold_max: float = 35.0
    overbought_min: float = 65.0
    overbought_max: float = 80.0

    @model_validator(mode="after")
    def check_ranges(self) -> "RsiConfig":
        _check_period("rsi_period", self.rsi_period)
        _check_period("volatility_window", self.volatility_window)
        for name in (
            "oversold_threshold",
            "overbought_threshold",
            "oversold_min",
            "oversold_max",
            "overbought_min",
            "overbought_max",
        ):
            _check_level(name, getattr(self, name))
        if self.oversold_threshold >= self.overbought_threshold:
            raise ConfigurationError("oversold_threshold must be below overbought_threshold")
        if self.oversold_min > self.oversold_max:
            raise ConfigurationError("oversold_min must not exceed oversold_max")
        if self.overbought_min > self.overbought_max:
            raise ConfigurationError("overbought_min must not exceed overbought_max")
        _check_positive("position_size", self.position_size)
        return self


class MovingAverageConfig(StrategyConfig):
    fast_period: int = 10
    slow_period: int = 30
    min_separation_pct: float = 0.0
    min_bars_since_cross: int = 0
    use_volume_confirmation: bool = False
    volume_period: int = 20
    volume_surge_threshold: float = 1.5

    @model_validator(mode="after")
    def check_ranges(self) -> "MovingAverageConfig":
        _check_period("fast_period", self.fast_period)
        _check_period("slow_period", self.slow_period)
        _check_period("volume_period", self.volume_period)
        if self.fast_period >= self.slow_period:
            raise ConfigurationError("fast_period must be shorter than slow_period")
        if self.min_separation_pct < 0:
            raise ConfigurationError("min_separation_pct must be >= 0")
        if self.min_bars_since_cross < 0:
            raise ConfigurationError("min_bars_since_cross must be >= 0")
        _check_positive("volume_surge_threshold", self.volume_surge_threshold)
        _check_positive("position_size", self.position_size)
        return self


STRATEGY_CONFIGS: dict[str, type[StrategyConfig]] = {
    "stochastic": StochasticConfig,
    "rsi": RsiConfig,
    "moving_average": MovingAverageConfig,
}


class ConfigService:
    def __init__(self, settings: BacktestSettings) -> None:
        self.settings = settings

    def timeframe_ms(self) -> int:
        if self.settings.TIMEFRAME_SECS < 1:
            raise ConfigurationError(f"TIMEFRAME_SECS must be >= 1, got {self.settings.TIMEFRAME_SECS}")
        return self.settings.TIMEFRAME_SECS * 1000

    def strategy_config(self) -> StrategyConfig:
        name = self.settings.STRATEGY.lower()
        config_cls = STRATEGY_CONFIGS.get(name)
        if config_cls is None:
            raise ConfigurationError(f"Unknown strategy: {self.settings.STRATEGY}")
        try:
            params = json.loads(self.settings.STRATEGY_PARAMS or "{}")
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"STRATEGY_PARAMS is not valid JSON: {exc}") from exc
        if not isinstance(params, dict):
            raise ConfigurationError("STRATEGY_PARAMS must be a JSON object")
        return config_cls.from_options(**params)
