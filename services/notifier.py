from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from loguru import logger

from engine.models import TradeContext, TradeEvent

if TYPE_CHECKING:
    from engine.pipeline import TradeObserver


class TradeNotifier:
    """Replays committed trade events to observers in registration order."""

    def notify(self, observers: Iterable["TradeObserver"], event: TradeEvent, context: TradeContext) -> int:
        delivered = 0
        for observer in observers:
            try:
                observer.post_trade(event, context)
            except Exception as exc:
                logger.exception("Observer {} failed in post_trade: {}", type(observer).__name__, exc)
                continue
            delivered += 1
        return delivered
