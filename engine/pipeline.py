from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from loguru import logger

from engine.ledger import PositionLedger
from engine.models import (
    Approve,
    Executed,
    Modify,
    ProposedTrade,
    Reject,
    Rejected,
    SubmitResult,
    TradeContext,
    TradeDecision,
    TradeEvent,
)
from services.notifier import TradeNotifier


class TradeObserver(Protocol):
    def pre_trade(self, proposed: ProposedTrade, context: TradeContext) -> TradeDecision:
        ...

    def post_trade(self, event: TradeEvent, context: TradeContext) -> None:
        ...


class TradeDecisionPipeline:
    """Runs observers over a proposed trade, commits it, then notifies.

    The first ``Reject`` stops the pipeline: later observers are not consulted,
    nothing is committed and nobody is notified. ``Modify`` swaps the proposal
    for every later observer and for execution.
    """

    def __init__(self, ledger: PositionLedger, notifier: TradeNotifier | None = None) -> None:
        self.ledger = ledger
        self.notifier = notifier or TradeNotifier()
        self._observers: list[TradeObserver] = []

    @property
    def observers(self) -> tuple[TradeObserver, ...]:
        return tuple(self._observers)

    def add_observer(self, observer: TradeObserver) -> None:
        self._observers.append(observer)

    def submit(self, proposed: ProposedTrade, context: TradeContext) -> SubmitResult:
        current = proposed
        for observer in self._observers:
            name = type(observer).__name__
            decision = observer.pre_trade(replace(current), context)
            if isinstance(decision, Reject):
                logger.info("Trade rejected by {}: {}", name, decision.reason)
                return Rejected(decision.reason, observer=name)
            if isinstance(decision, Modify):
                problem = _invalid_modification(current, decision.proposed)
                if problem:
                    logger.warning("Invalid modification from {}: {}", name, problem)
                    return Rejected(problem, observer=name)
                current = decision.proposed
            elif not isinstance(decision, Approve):
                raise TypeError(f"{name}.pre_trade returned {decision!r}, expected a TradeDecision")

        event = self.ledger.commit(current)
        self.notifier.notify(self._observers, event, context)
        return Executed(event)


def _invalid_modification(original: ProposedTrade, modified: ProposedTrade) -> str | None:
    if modified.side is not original.side:
        return "modify changed trade side"
    if modified.closes_position != original.closes_position:
        return "modify turned an entry into an exit or back"
    if modified.quantity <= 0:
        return f"modify produced non-positive quantity {modified.quantity}"
    if modified.price <= 0:
        return f"modify produced non-positive price {modified.price}"
    return None
