from __future__ import annotations

from typing import Any

from loguru import logger

from engine.models import Candle, MovingAverageSnapshot, ProposedTrade
from services.config_service import MovingAverageConfig
from strategies.base import Strategy
from strategies.indicators import SimpleMovingAverage


class MovingAverageStrategy(Strategy):
    name = "moving_average"

    def __init__(self, config: MovingAverageConfig, initial_cash: float, symbol: str = "BTC/USD") -> None:
        super().__init__(config, initial_cash, symbol)
        self.config: MovingAverageConfig = config
        self._fast = SimpleMovingAverage(config.fast_period)
        self._slow = SimpleMovingAverage(config.slow_period)
        self._volume = SimpleMovingAverage(config.volume_period)
        self._prev_diff: float | None = None
        self._last_cross_bar: int | None = None

    def _separation_pct(self) -> float | None:
        fast, slow = self._fast.value, self._slow.value
        if fast is None or slow is None or slow == 0:
            return None
        return abs(fast - slow) / abs(slow) * 100.0

    def bars_since_cross(self) -> int | None:
        if self._last_cross_bar is None:
            return None
        return self.candles_seen - self._last_cross_bar

    def current_indicators(self) -> dict[str, Any]:
        return {
            "fast_ma": self._fast.value,
            "slow_ma": self._slow.value,
            "separation_pct": self._separation_pct(),
            "avg_volume": self._volume.value,
            "bars_since_cross": self.bars_since_cross(),
        }

    def snapshot(self) -> MovingAverageSnapshot:
        return MovingAverageSnapshot(
            fast=self._fast.value,
            slow=self._slow.value,
            separation_pct=self._separation_pct(),
            bars_since_cross=self.bars_since_cross(),
        )

    def evaluate(self, candle: Candle) -> ProposedTrade | None:
        self.candles_seen += 1
        cfg = self.config
        # average of the candles before this one
        avg_volume = self._volume.value if self._volume.ready else None
        self._volume.update(candle.volume)
        fast = self._fast.update(candle.close)
        slow = self._slow.update(candle.close)
        if fast is None or slow is None:
            return None

        diff = fast - slow
        prev_diff = self._prev_diff
        self._prev_diff = diff
        if prev_diff is None:
            return None
        crossed_up = prev_diff <= 0 < diff
        crossed_down = prev_diff >= 0 > diff
        if not (crossed_up or crossed_down):
            return None

        bars_since = self.bars_since_cross()
        self._last_cross_bar = self.candles_seen
        if bars_since is not None and bars_since < cfg.min_bars_since_cross:
            logger.debug("Cross at {} suppressed: {} bars since previous cross", candle.open_time, bars_since)
            return None
        separation = self._separation_pct()
        if separation is None or separation < cfg.min_separation_pct:
            logger.debug("Cross at {} suppressed: separation {}", candle.open_time, separation)
            return None
        if cfg.use_volume_confirmation:
            if avg_volume is None or candle.volume <= cfg.volume_surge_threshold * avg_volume:
                logger.debug("Cross at {} suppressed: volume {} vs avg {}", candle.open_time, candle.volume, avg_volume)
                return None

        position = self.ledger.position
        if crossed_up and position is None:
            return self._entry(candle, f"fast MA crossed above slow ({separation:.3f}% apart)")
        if crossed_down and position is not None:
            return self._exit(candle, f"fast MA crossed below slow ({separation:.3f}% apart)")
        return None
