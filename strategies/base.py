from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from engine.ledger import PositionLedger
from engine.models import Candle, OrderSide, Position, ProposedTrade, StrategySnapshot, Trade
from services.config_service import StrategyConfig


class Strategy(ABC):
    """Candle-driven signal policy owning its indicator state and one ledger."""

    name = "strategy"

    def __init__(self, config: StrategyConfig, initial_cash: float, symbol: str = "BTC/USD") -> None:
        self.config = config
        self.symbol = symbol
        self.ledger = PositionLedger(symbol, initial_cash)
        self.candles_seen = 0

    @abstractmethod
    def evaluate(self, candle: Candle) -> ProposedTrade | None:
        raise NotImplementedError

    @abstractmethod
    def current_indicators(self) -> dict[str, Any]:
        raise NotImplementedError

    def snapshot(self) -> StrategySnapshot | None:
        return None

    def open_position(self) -> Position | None:
        return self.ledger.position

    def trades(self) -> tuple[Trade, ...]:
        return self.ledger.trades

    def equity(self, price: float) -> float:
        return self.ledger.equity(price)

    def _entry(self, candle: Candle, reason: str) -> ProposedTrade:
        logger.debug("{} entry signal at {}: {}", self.name, candle.open_time, reason)
        return ProposedTrade(
            side=OrderSide.BUY,
            price=candle.close,
            quantity=self.config.position_size,
            timestamp=candle.open_time,
            reason=reason,
        )

    def _exit(self, candle: Candle, reason: str, price: float | None = None) -> ProposedTrade:
        position = self.ledger.position
        side = OrderSide.SELL if position.side.sign > 0 else OrderSide.BUY
        logger.debug("{} exit signal at {}: {}", self.name, candle.open_time, reason)
        return ProposedTrade(
            side=side,
            price=candle.close if price is None else price,
            quantity=position.quantity,
            timestamp=candle.open_time,
            reason=reason,
            closes_position=True,
        )
