from __future__ import annotations

from typing import Any

from engine.models import Candle, ProposedTrade, Side, StochasticSnapshot
from services.config_service import StochasticConfig
from strategies.base import Strategy
from strategies.indicators import AverageTrueRange, StochasticOscillator


class StochasticStrategy(Strategy):
    """Enters when %K crosses up out of oversold, exits when it crosses up
    through overbought or when an ATR stop below the entry is hit."""

    name = "stochastic"

    def __init__(self, config: StochasticConfig, initial_cash: float, symbol: str = "BTC/USD") -> None:
        super().__init__(config, initial_cash, symbol)
        self.config: StochasticConfig = config
        self._oscillator = StochasticOscillator(config.k_period, config.d_period)
        self._atr = AverageTrueRange(config.atr_period)
        self._prev_k: float | None = None

    @property
    def current_k(self) -> float | None:
        return self._oscillator.k

    @property
    def current_d(self) -> float | None:
        return self._oscillator.d

    def current_indicators(self) -> dict[str, Any]:
        return {"k": self._oscillator.k, "d": self._oscillator.d, "atr": self._atr.value}

    def snapshot(self) -> StochasticSnapshot:
        return StochasticSnapshot(k=self._oscillator.k, d=self._oscillator.d, atr=self._atr.value)

    def stop_price(self) -> float | None:
        position = self.ledger.position
        atr = self._atr.value
        if position is None or atr is None or position.side is not Side.LONG:
            return None
        stop = position.entry_price - self.config.atr_multiplier * atr
        return stop if stop > 0 else None

    def evaluate(self, candle: Candle) -> ProposedTrade | None:
        self.candles_seen += 1
        k, _ = self._oscillator.update(candle)
        self._atr.update(candle)
        prev_k = self._prev_k
        if k is None:
            return None
        self._prev_k = k

        cfg = self.config
        if self.ledger.position is not None:
            stop = self.stop_price()
            if stop is not None and candle.low <= stop:
                # gap through the stop fills at the open
                return self._exit(candle, f"ATR stop at {stop:.4f}", price=min(stop, candle.open))
            if prev_k is not None and prev_k <= cfg.overbought_threshold < k:
                return self._exit(candle, f"%K crossed above {cfg.overbought_threshold}")
            return None

        if prev_k is not None and prev_k <= cfg.oversold_threshold < k:
            return self._entry(candle, f"%K crossed above {cfg.oversold_threshold}")
        return None
