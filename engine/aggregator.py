from __future__ import annotations

from dataclasses import replace

from loguru import logger

from engine.errors import ConfigurationError, OutOfOrderTickError
from engine.models import Candle, Tick


class CandleAggregator:
    """Folds ticks into OHLCV candles; empty buckets are never back-filled."""

    def __init__(self, bucket_ms: int) -> None:
        if bucket_ms < 1:
            raise ConfigurationError(f"bucket_ms must be >= 1, got {bucket_ms}")
        self.bucket_ms = bucket_ms
        self._candle: Candle | None = None
        self._last_bucket_start: int | None = None
        self.sealed_count = 0

    def bucket_start(self, timestamp: int) -> int:
        return (timestamp // self.bucket_ms) * self.bucket_ms

    @property
    def current_candle(self) -> Candle | None:
        if self._candle is None:
            return None
        return replace(self._candle)

    def ingest(self, tick: Tick) -> Candle | None:
        sealed = self.seal_due(tick)
        self.absorb(tick)
        return sealed

    def seal_due(self, tick: Tick) -> Candle | None:
        """Seals the open candle if ``tick`` belongs to a later bucket, without absorbing it."""
        start = self.bucket_start(tick.timestamp)
        if self._last_bucket_start is not None and start < self._last_bucket_start:
            raise OutOfOrderTickError(tick, self._last_bucket_start)
        if self._candle is not None and start > self._candle.open_time:
            return self._seal()
        return None

    def absorb(self, tick: Tick) -> None:
        start = self.bucket_start(tick.timestamp)
        if self._candle is not None and start > self._candle.open_time:
            raise ValueError(f"Candle {self._candle.open_time} must be sealed before absorbing tick at {tick.timestamp}")
        if self._candle is None:
            self._candle = Candle(
                open_time=start,
                open=tick.price,
                high=tick.price,
                low=tick.price,
                close=tick.price,
                volume=tick.volume,
            )
            self._last_bucket_start = start
        else:
            candle = self._candle
            candle.high = max(candle.high, tick.price)
            candle.low = min(candle.low, tick.price)
            candle.close = tick.price
            candle.volume += tick.volume

    def force_close(self, at_timestamp: int) -> Candle | None:
        if self._candle is None:
            return None
        logger.debug("Force closing candle {} at {}", self._candle.open_time, at_timestamp)
        return self._seal()

    def _seal(self) -> Candle:
        candle = self._candle
        self._candle = None
        self.sealed_count += 1
        logger.debug(
            "Sealed candle {} O={} H={} L={} C={} V={}",
            candle.open_time,
            candle.open,
            candle.high,
            candle.low,
            candle.close,
            candle.volume,
        )
        return candle
