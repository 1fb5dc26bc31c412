from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable

import pandas as pd
from loguru import logger

from backtest.metrics import compute_metrics
from backtest.report import render_report
from engine.core import TickStrategyRunner
from engine.errors import ConfigurationError, OutOfOrderTickError
from engine.models import BacktestResult, Tick
from engine.pipeline import TradeObserver
from risk.observers import (
    MaxTradesPerDayObserver,
    PriceCeilingObserver,
    QuantityCapObserver,
    RsiConfirmationObserver,
    TradeJournal,
)
from services.config_service import (
    BacktestSettings,
    ConfigService,
    MovingAverageConfig,
    RsiConfig,
    StochasticConfig,
    StrategyConfig,
)
from strategies.base import Strategy
from strategies.moving_average import MovingAverageStrategy
from strategies.rsi import RsiStrategy
from strategies.stochastic import StochasticStrategy

_TIMESTAMP_SCALE = {"s": 1000, "ms": 1}


def configure_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def build_strategy(config: StrategyConfig, initial_cash: float, symbol: str) -> Strategy:
    if isinstance(config, StochasticConfig):
        return StochasticStrategy(config, initial_cash, symbol)
    if isinstance(config, RsiConfig):
        return RsiStrategy(config, initial_cash, symbol)
    if isinstance(config, MovingAverageConfig):
        return MovingAverageStrategy(config, initial_cash, symbol)
    raise ConfigurationError(f"No strategy for config {type(config).__name__}")


def build_observers(settings: BacktestSettings) -> list[TradeObserver]:
    observers: list[TradeObserver] = []
    if settings.MAX_PRICE is not None:
        if settings.MAX_PRICE <= 0:
            raise ConfigurationError(f"MAX_PRICE must be > 0, got {settings.MAX_PRICE}")
        observers.append(PriceCeilingObserver(settings.MAX_PRICE))
    if settings.MAX_QUANTITY is not None:
        if settings.MAX_QUANTITY <= 0:
            raise ConfigurationError(f"MAX_QUANTITY must be > 0, got {settings.MAX_QUANTITY}")
        observers.append(QuantityCapObserver(settings.MAX_QUANTITY))
    if settings.MAX_TRADES_PER_DAY is not None:
        if settings.MAX_TRADES_PER_DAY < 1:
            raise ConfigurationError(f"MAX_TRADES_PER_DAY must be >= 1, got {settings.MAX_TRADES_PER_DAY}")
        observers.append(MaxTradesPerDayObserver(settings.MAX_TRADES_PER_DAY))
    if settings.MAX_ENTRY_RSI is not None:
        observers.append(RsiConfirmationObserver(settings.MAX_ENTRY_RSI))
    return observers


def load_ticks(path: str, symbol: str, timestamp_unit: str = "s") -> list[Tick]:
    if timestamp_unit not in _TIMESTAMP_SCALE:
        raise ConfigurationError(f"Unsupported timestamp unit: {timestamp_unit}")
    scale = _TIMESTAMP_SCALE[timestamp_unit]
    if Path(path).suffix in (".jsonl", ".json"):
        df = pd.read_json(path, lines=path.endswith(".jsonl"), convert_dates=False)
    else:
        df = pd.read_csv(path)
    if "volume" not in df.columns:
        df["volume"] = 0.0
    df["volume"] = df["volume"].fillna(0.0)
    for column in ("timestamp", "price", "volume"):
        df[column] = pd.to_numeric(df[column], errors="coerce")
    valid = df["timestamp"].notna() & df["price"].gt(0) & df["volume"].ge(0)
    dropped = int((~valid).sum())
    if dropped:
        logger.warning("Dropping {} malformed tick rows from {}", dropped, path)
    df = df[valid]
    return [
        Tick(
            timestamp=int(row["timestamp"]) * scale,
            price=float(row["price"]),
            volume=float(row["volume"]),
            symbol=symbol,
        )
        for _, row in df.iterrows()
    ]


def run_ticks(runner: TickStrategyRunner, ticks: Iterable[Tick]) -> BacktestResult:
    strategy = runner.strategy
    last: Tick | None = None
    skipped = 0
    for tick in ticks:
        try:
            runner.process_tick(tick)
        except OutOfOrderTickError as exc:
            skipped += 1
            logger.warning("Skipping tick: {}", exc)
            continue
        last = tick
    if last is not None:
        runner.force_close(last.timestamp)
    if skipped:
        logger.warning("{} out-of-order ticks skipped", skipped)

    final_price = runner.last_price
    final_equity = strategy.equity(final_price) if final_price is not None else strategy.ledger.cash
    return BacktestResult(
        symbol=strategy.symbol,
        initial_cash=strategy.ledger.initial_cash,
        final_equity=final_equity,
        candles=runner.candles_formed,
        trades=list(strategy.trades()),
        rejections=runner.rejections,
    )


def run_backtest(settings: BacktestSettings, observers: Iterable[TradeObserver] = ()) -> BacktestResult:
    config_service = ConfigService(settings)
    observers = [*build_observers(settings), *observers]
    strategy = build_strategy(config_service.strategy_config(), settings.INITIAL_CASH, settings.SYMBOL)
    runner = TickStrategyRunner(strategy, config_service.timeframe_ms())
    for observer in observers:
        runner.add_observer(observer)
    logger.info("Registered {} trade observers", len(observers))
    ticks = load_ticks(settings.TICKS_PATH, settings.SYMBOL, settings.TIMESTAMP_UNIT)
    logger.info("Loaded {} ticks from {}", len(ticks), settings.TICKS_PATH)
    result = run_ticks(runner, ticks)
    logger.info(
        "Backtest finished: {} candles, {} trades, {} rejected",
        result.candles,
        len(result.trades),
        result.rejections,
    )
    return result


def main() -> None:
    settings = BacktestSettings()
    configure_logging(settings.LOG_LEVEL)
    result = run_backtest(settings, observers=[TradeJournal()])
    metrics = compute_metrics(result.trades, result.initial_cash, result.final_equity)
    print(render_report(metrics, result.trades))


if __name__ == "__main__":
    main()
