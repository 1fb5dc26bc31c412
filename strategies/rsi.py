from __future__ import annotations

from collections import deque
from typing import Any

from engine.models import Candle, ProposedTrade, RsiSnapshot
from services.config_service import RsiConfig
from strategies.base import Strategy
from strategies.indicators import RealizedVolatility, WilderRsi


class RsiStrategy(Strategy):
    """RSI mean reversion with optional volatility-scaled levels.

    With ``use_dynamic_levels`` the latest realized volatility is placed
    within the min/max of its last ``volatility_window`` readings and the
    levels are interpolated from that ratio: calm markets use the tight
    bands (``oversold_max`` / ``overbought_min``), volatile markets the wide
    ones (``oversold_min`` / ``overbought_max``). Fixed thresholds apply
    until volatility is warm.
    """

    name = "rsi"

    def __init__(self, config: RsiConfig, initial_cash: float, symbol: str = "BTC/USD") -> None:
        super().__init__(config, initial_cash, symbol)
        self.config: RsiConfig = config
        self._rsi = WilderRsi(config.rsi_period)
        self._volatility = RealizedVolatility(config.volatility_window)
        self._vol_history: deque[float] = deque(maxlen=config.volatility_window)
        self.oversold = config.oversold_threshold
        self.overbought = config.overbought_threshold
        self._prev: tuple[float, float, float] | None = None

    @property
    def current_rsi(self) -> float | None:
        return self._rsi.value

    def current_indicators(self) -> dict[str, Any]:
        return {
            "rsi": self._rsi.value,
            "oversold": self.oversold,
            "overbought": self.overbought,
            "volatility": self._volatility.value,
        }

    def snapshot(self) -> RsiSnapshot:
        return RsiSnapshot(
            rsi_value=self._rsi.value,
            dynamic_oversold=self.oversold,
            dynamic_overbought=self.overbought,
        )

    def _update_levels(self, close: float) -> None:
        cfg = self.config
        volatility = self._volatility.update(close)
        if not cfg.use_dynamic_levels or volatility is None:
            return
        self._vol_history.append(volatility)
        low, high = min(self._vol_history), max(self._vol_history)
        ratio = 0.5 if high == low else (volatility - low) / (high - low)
        self.oversold = cfg.oversold_max - ratio * (cfg.oversold_max - cfg.oversold_min)
        self.overbought = cfg.overbought_min + ratio * (cfg.overbought_max - cfg.overbought_min)

    def evaluate(self, candle: Candle) -> ProposedTrade | None:
        self.candles_seen += 1
        self._update_levels(candle.close)
        rsi = self._rsi.update(candle.close)
        if rsi is None:
            return None
        prev = self._prev
        self._prev = (rsi, self.oversold, self.overbought)
        if prev is None:
            return None
        prev_rsi, prev_oversold, prev_overbought = prev

        if self.ledger.position is not None:
            if prev_rsi > prev_overbought and rsi <= self.overbought:
                return self._exit(candle, f"RSI {rsi:.2f} crossed down through {self.overbought:.2f}")
            return None
        if prev_rsi < prev_oversold and rsi >= self.oversold:
            return self._entry(candle, f"RSI {rsi:.2f} crossed up through {self.oversold:.2f}")
        return None
