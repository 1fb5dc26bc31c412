from __future__ import annotations

from collections import deque
from statistics import pstdev

from engine.models import Candle


class SimpleMovingAverage:
    def __init__(self, period: int) -> None:
        self.period = period
        self._values: deque[float] = deque(maxlen=period)
        self._sum = 0.0
        self.value: float | None = None

    def update(self, value: float) -> float | None:
        if len(self._values) == self.period:
            self._sum -= self._values[0]
        self._values.append(value)
        self._sum += value
        if len(self._values) < self.period:
            return None
        self.value = self._sum / self.period
        return self.value

    @property
    def ready(self) -> bool:
        return len(self._values) == self.period


class RollingExtremes:
    def __init__(self, period: int) -> None:
        self.period = period
        self._highs: deque[float] = deque(maxlen=period)
        self._lows: deque[float] = deque(maxlen=period)

    def update(self, high: float, low: float) -> tuple[float, float] | None:
        self._highs.append(high)
        self._lows.append(low)
        if len(self._highs) < self.period:
            return None
        return max(self._highs), min(self._lows)


class StochasticOscillator:
    """%K over ``k_period`` candles and %D as the SMA of %K over ``d_period``."""

    def __init__(self, k_period: int, d_period: int) -> None:
        self._extremes = RollingExtremes(k_period)
        self._d = SimpleMovingAverage(d_period)
        self.k: float | None = None
        self.d: float | None = None

    def update(self, candle: Candle) -> tuple[float | None, float | None]:
        extremes = self._extremes.update(candle.high, candle.low)
        if extremes is None:
            return None, None
        highest, lowest = extremes
        span = highest - lowest
        self.k = 0.0 if span == 0 else 100.0 * (candle.close - lowest) / span
        self.d = self._d.update(self.k)
        return self.k, self.d


class AverageTrueRange:
    """SMA of true range; the first candle's true range is high - low."""

    def __init__(self, period: int) -> None:
        self._sma = SimpleMovingAverage(period)
        self._prev_close: float | None = None
        self.value: float | None = None

    def update(self, candle: Candle) -> float | None:
        if self._prev_close is None:
            true_range = candle.high - candle.low
        else:
            true_range = max(
                candle.high - candle.low,
                abs(candle.high - self._prev_close),
                abs(candle.low - self._prev_close),
            )
        self._prev_close = candle.close
        self.value = self._sma.update(true_range)
        return self.value


class WilderRsi:
    """Wilder's RSI, seeded with the simple mean of the first ``period`` changes."""

    def __init__(self, period: int) -> None:
        self.period = period
        self._prev_close: float | None = None
        self._seed_gains: list[float] = []
        self._seed_losses: list[float] = []
        self._avg_gain: float | None = None
        self._avg_loss: float | None = None
        self.value: float | None = None

    def update(self, close: float) -> float | None:
        if self._prev_close is None:
            self._prev_close = close
            return None
        change = close - self._prev_close
        self._prev_close = close
        gain = max(change, 0.0)
        loss = max(-change, 0.0)

        if self._avg_gain is None:
            self._seed_gains.append(gain)
            self._seed_losses.append(loss)
            if len(self._seed_gains) < self.period:
                return None
            self._avg_gain = sum(self._seed_gains) / self.period
            self._avg_loss = sum(self._seed_losses) / self.period
            self._seed_gains.clear()
            self._seed_losses.clear()
        else:
            n = self.period
            self._avg_gain = (self._avg_gain * (n - 1) + gain) / n
            self._avg_loss = (self._avg_loss * (n - 1) + loss) / n

        self.value = self._compute()
        return self.value

    def _compute(self) -> float:
        if self._avg_loss == 0:
            return 100.0 if self._avg_gain > 0 else 50.0
        rs = self._avg_gain / self._avg_loss
        return 100.0 - 100.0 / (1.0 + rs)


class RealizedVolatility:
    """Population standard deviation of close-to-close returns, in percent."""

    def __init__(self, window: int) -> None:
        self.window = window
        self._returns: deque[float] = deque(maxlen=window)
        self._prev_close: float | None = None
        self.value: float | None = None

    def update(self, close: float) -> float | None:
        if self._prev_close is not None and self._prev_close > 0:
            self._returns.append((close - self._prev_close) / self._prev_close * 100.0)
        self._prev_close = close
        if len(self._returns) < self.window:
            return None
        self.value = pstdev(self._returns)
        return self.value
