from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union


class Side(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        return 1 if self is Side.LONG else -1


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opens(self) -> Side:
        return Side.LONG if self is OrderSide.BUY else Side.SHORT

    def closes(self, side: Side) -> bool:
        return self.opens is not side


@dataclass(frozen=True)
class Tick:
    timestamp: int
    price: float
    volume: float
    symbol: str

    def __post_init__(self) -> None:
        if not self.price > 0:
            raise ValueError(f"Tick price must be > 0, got {self.price}")
        if not self.volume >= 0:
            raise ValueError(f"Tick volume must be >= 0, got {self.volume}")


@dataclass
class Candle:
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass
class Position:
    side: Side
    entry_price: float
    quantity: float
    entry_time: int


@dataclass(frozen=True)
class Trade:
    symbol: str
    side: Side
    entry_price: float
    exit_price: float
    quantity: float
    entry_time: int
    exit_time: int
    pnl: float
    pnl_percentage: float


@dataclass
class ProposedTrade:
    side: OrderSide
    price: float
    quantity: float
    timestamp: int
    reason: str = ""
    closes_position: bool = False


@dataclass(frozen=True)
class Approve:
    pass


@dataclass(frozen=True)
class Reject:
    reason: str


@dataclass(frozen=True)
class Modify:
    proposed: ProposedTrade


TradeDecision = Union[Approve, Reject, Modify]


def approve() -> Approve:
    return Approve()


def reject(reason: str) -> Reject:
    return Reject(reason)


def modify(proposed: ProposedTrade) -> Modify:
    return Modify(proposed)


@dataclass(frozen=True)
class BuyEvent:
    """Opened leg of a position."""

    symbol: str
    side: Side
    price: float
    quantity: float
    timestamp: int


@dataclass(frozen=True)
class SellEvent:
    """Completed round trip."""

    trade: Trade


TradeEvent = Union[BuyEvent, SellEvent]


@dataclass(frozen=True)
class StochasticSnapshot:
    k: float | None
    d: float | None
    atr: float | None
    kind: Literal["stochastic"] = "stochastic"


@dataclass(frozen=True)
class RsiSnapshot:
    rsi_value: float | None
    dynamic_oversold: float
    dynamic_overbought: float
    kind: Literal["rsi"] = "rsi"


@dataclass(frozen=True)
class MovingAverageSnapshot:
    fast: float | None
    slow: float | None
    separation_pct: float | None
    bars_since_cross: int | None
    kind: Literal["moving_average"] = "moving_average"


StrategySnapshot = Union[StochasticSnapshot, RsiSnapshot, MovingAverageSnapshot]


@dataclass(frozen=True)
class TradeContext:
    symbol: str
    strategy: StrategySnapshot | None = None
    custom: Any = None


@dataclass(frozen=True)
class Executed:
    event: TradeEvent


@dataclass(frozen=True)
class Rejected:
    reason: str
    observer: str | None = None


SubmitResult = Union[Executed, Rejected]


@dataclass
class BacktestResult:
    symbol: str
    initial_cash: float
    final_equity: float
    candles: int
    trades: list[Trade] = field(default_factory=list)
    rejections: int = 0
