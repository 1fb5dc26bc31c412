from __future__ import annotations

from typing import Any

from loguru import logger

from engine.aggregator import CandleAggregator
from engine.models import Candle, Executed, Rejected, SubmitResult, Tick, TradeContext
from engine.pipeline import TradeDecisionPipeline, TradeObserver
from services.notifier import TradeNotifier
from strategies.base import Strategy


class TickStrategyRunner:
    """Drives one strategy from raw ticks.

    Each tick is handled to completion before the next one: a sealed candle
    is evaluated by the strategy and any proposal goes through the decision
    pipeline before the tick is absorbed into the new bucket.
    """

    def __init__(
        self,
        strategy: Strategy,
        bucket_ms: int,
        notifier: TradeNotifier | None = None,
        custom_context: Any = None,
    ) -> None:
        self.strategy = strategy
        self.aggregator = CandleAggregator(bucket_ms)
        self.pipeline = TradeDecisionPipeline(strategy.ledger, notifier)
        self.custom_context = custom_context
        self.rejections = 0
        self.last_price: float | None = None

    @property
    def current_candle(self) -> Candle | None:
        return self.aggregator.current_candle

    @property
    def candles_formed(self) -> int:
        return self.aggregator.sealed_count

    def add_observer(self, observer: TradeObserver) -> None:
        self.pipeline.add_observer(observer)

    def process_tick(self, tick: Tick) -> SubmitResult | None:
        if tick.symbol != self.strategy.symbol:
            raise ValueError(f"Tick for {tick.symbol} sent to {self.strategy.symbol} runner")
        sealed = self.aggregator.seal_due(tick)
        result = self.on_candle(sealed) if sealed is not None else None
        self.aggregator.absorb(tick)
        self.last_price = tick.price
        return result

    def force_close(self, at_timestamp: int) -> SubmitResult | None:
        sealed = self.aggregator.force_close(at_timestamp)
        if sealed is None:
            return None
        return self.on_candle(sealed)

    def on_candle(self, candle: Candle) -> SubmitResult | None:
        proposed = self.strategy.evaluate(candle)
        if proposed is None:
            return None
        context = TradeContext(
            symbol=self.strategy.symbol,
            strategy=self.strategy.snapshot(),
            custom=self.custom_context,
        )
        result = self.pipeline.submit(proposed, context)
        if isinstance(result, Rejected):
            self.rejections += 1
        elif isinstance(result, Executed):
            logger.debug("Executed {} at candle {}", type(result.event).__name__, candle.open_time)
        return result
