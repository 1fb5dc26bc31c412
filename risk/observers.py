from __future__ import annotations

import threading
from collections import Counter
from dataclasses import replace

from loguru import logger

from engine.models import (
    BuyEvent,
    OrderSide,
    ProposedTrade,
    Reject,
    RsiSnapshot,
    SellEvent,
    TradeContext,
    TradeDecision,
    TradeEvent,
    approve,
    modify,
    reject,
)

_DAY_MS = 86_400_000


class PriceCeilingObserver:
    """Rejects buys above ``max_price``."""

    def __init__(self, max_price: float) -> None:
        self.max_price = max_price

    def pre_trade(self, proposed: ProposedTrade, context: TradeContext) -> TradeDecision:
        if proposed.side is OrderSide.BUY and proposed.price > self.max_price:
            return reject(f"Price {proposed.price:.2f} above max {self.max_price:.2f}")
        return approve()

    def post_trade(self, event: TradeEvent, context: TradeContext) -> None:
        return None


class QuantityCapObserver:
    """Shrinks entries larger than ``max_quantity``."""

    def __init__(self, max_quantity: float) -> None:
        self.max_quantity = max_quantity

    def pre_trade(self, proposed: ProposedTrade, context: TradeContext) -> TradeDecision:
        if proposed.quantity > self.max_quantity:
            return modify(replace(proposed, quantity=self.max_quantity))
        return approve()

    def post_trade(self, event: TradeEvent, context: TradeContext) -> None:
        return None


class RsiConfirmationObserver:
    """Blocks buys unless the RSI strategy reports RSI at or below ``max_entry_rsi``.

    Trades from other strategies pass untouched.
    """

    def __init__(self, max_entry_rsi: float) -> None:
        self.max_entry_rsi = max_entry_rsi

    def pre_trade(self, proposed: ProposedTrade, context: TradeContext) -> TradeDecision:
        snapshot = context.strategy
        if proposed.side is not OrderSide.BUY or not isinstance(snapshot, RsiSnapshot):
            return approve()
        if snapshot.rsi_value is None or snapshot.rsi_value > self.max_entry_rsi:
            return reject(f"RSI {snapshot.rsi_value} above entry limit {self.max_entry_rsi}")
        return approve()

    def post_trade(self, event: TradeEvent, context: TradeContext) -> None:
        return None


class MaxTradesPerDayObserver:
    """Caps entries per UTC day; exits are never blocked."""

    def __init__(self, max_trades_per_day: int) -> None:
        self.max_trades_per_day = max_trades_per_day
        self._entries: Counter[int] = Counter()

    def pre_trade(self, proposed: ProposedTrade, context: TradeContext) -> TradeDecision:
        day = proposed.timestamp // _DAY_MS
        if not proposed.closes_position and self._entries[day] >= self.max_trades_per_day:
            return reject("Max trades per day reached")
        return approve()

    def post_trade(self, event: TradeEvent, context: TradeContext) -> None:
        if isinstance(event, BuyEvent):
            self._entries[event.timestamp // _DAY_MS] += 1


class RejectionTally:
    """Rejection counts shared across runs; safe to use from several threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reasons: Counter[str] = Counter()

    def record(self, reason: str) -> None:
        with self._lock:
            self._reasons[reason] += 1

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._reasons.values())

    def by_reason(self) -> dict[str, int]:
        with self._lock:
            return dict(self._reasons)


class TallyingObserver:
    """Forwards to ``inner`` and records its rejections in a shared tally."""

    def __init__(self, inner, tally: RejectionTally) -> None:
        self.inner = inner
        self.tally = tally

    def pre_trade(self, proposed: ProposedTrade, context: TradeContext) -> TradeDecision:
        decision = self.inner.pre_trade(proposed, context)
        if isinstance(decision, Reject):
            self.tally.record(decision.reason)
        return decision

    def post_trade(self, event: TradeEvent, context: TradeContext) -> None:
        self.inner.post_trade(event, context)


class TradeJournal:
    """Keeps every committed event and logs it."""

    def __init__(self) -> None:
        self.events: list[TradeEvent] = []

    def pre_trade(self, proposed: ProposedTrade, context: TradeContext) -> TradeDecision:
        return approve()

    def post_trade(self, event: TradeEvent, context: TradeContext) -> None:
        self.events.append(event)
        if isinstance(event, SellEvent):
            trade = event.trade
            logger.info(
                "Trade closed {} {} entry={} exit={} pnl={:.2f} ({:.2f}%)",
                trade.side.value,
                trade.symbol,
                trade.entry_price,
                trade.exit_price,
                trade.pnl,
                trade.pnl_percentage,
            )
        else:
            logger.info("Position opened {} {} {} @ {}", event.side.value, event.quantity, event.symbol, event.price)
