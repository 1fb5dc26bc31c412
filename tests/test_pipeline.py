from dataclasses import replace

import pytest

from engine.ledger import PositionLedger
from engine.models import (
    BuyEvent,
    Executed,
    OrderSide,
    ProposedTrade,
    Rejected,
    TradeContext,
    approve,
    modify,
    reject,
)
from engine.pipeline import TradeDecisionPipeline


class Recorder:
    def __init__(self, name, log, decide=None):
        self.name = name
        self.log = log
        self.decide = decide or (lambda proposed: approve())
        self.seen = []
        self.events = []

    def pre_trade(self, proposed, context):
        self.log.append(("pre", self.name))
        self.seen.append(proposed)
        return self.decide(proposed)

    def post_trade(self, event, context):
        self.log.append(("post", self.name))
        self.events.append(event)


class Exploding:
    def pre_trade(self, proposed, context):
        return approve()

    def post_trade(self, event, context):
        raise RuntimeError("boom")


def _pipeline():
    return TradeDecisionPipeline(PositionLedger("BTC/USD", 10_000))


def _buy(price=100.0, qty=1.0) -> ProposedTrade:
    return ProposedTrade(side=OrderSide.BUY, price=price, quantity=qty, timestamp=0)


def _ctx() -> TradeContext:
    return TradeContext(symbol="BTC/USD")


def test_all_approve_commits_and_notifies_in_order():
    log = []
    pipeline = _pipeline()
    for name in ("a", "b", "c"):
        pipeline.add_observer(Recorder(name, log))

    result = pipeline.submit(_buy(), _ctx())

    assert isinstance(result, Executed)
    assert isinstance(result.event, BuyEvent)
    assert pipeline.ledger.position is not None
    assert log == [("pre", "a"), ("pre", "b"), ("pre", "c"), ("post", "a"), ("post", "b"), ("post", "c")]


def test_reject_short_circuits():
    log = []
    pipeline = _pipeline()
    pipeline.add_observer(Recorder("a", log))
    pipeline.add_observer(Recorder("b", log, lambda p: reject("too risky")))
    late = Recorder("c", log)
    pipeline.add_observer(late)

    result = pipeline.submit(_buy(), _ctx())

    assert result == Rejected("too risky", observer="Recorder")
    assert late.seen == []
    assert log == [("pre", "a"), ("pre", "b")]
    assert pipeline.ledger.position is None
    assert pipeline.ledger.cash == 10_000


def test_modify_chains_to_later_observers_and_execution():
    log = []
    pipeline = _pipeline()
    first = Recorder("a", log, lambda p: modify(replace(p, quantity=0.5)))
    second = Recorder("b", log, lambda p: modify(replace(p, price=p.price - 1)))
    third = Recorder("c", log)
    for observer in (first, second, third):
        pipeline.add_observer(observer)

    result = pipeline.submit(_buy(), _ctx())

    assert second.seen[0].quantity == 0.5
    assert third.seen[0].quantity == 0.5
    assert third.seen[0].price == 99.0
    assert result.event.quantity == 0.5
    assert result.event.price == 99.0
    assert first.events == [result.event]


def test_modify_changing_side_is_rejected():
    pipeline = _pipeline()
    pipeline.add_observer(Recorder("a", [], lambda p: modify(replace(p, side=OrderSide.SELL))))
    result = pipeline.submit(_buy(), _ctx())
    assert isinstance(result, Rejected)
    assert result.reason == "modify changed trade side"
    assert pipeline.ledger.position is None


@pytest.mark.parametrize("qty", [0.0, -1.0])
def test_modify_to_non_positive_quantity_is_rejected(qty):
    log = []
    pipeline = _pipeline()
    pipeline.add_observer(Recorder("a", log, lambda p: modify(replace(p, quantity=qty))))
    later = Recorder("b", log)
    pipeline.add_observer(later)

    result = pipeline.submit(_buy(), _ctx())

    assert isinstance(result, Rejected)
    assert later.seen == []
    assert pipeline.ledger.position is None


def test_failing_post_trade_does_not_block_other_observers():
    log = []
    pipeline = _pipeline()
    pipeline.add_observer(Exploding())
    tail = Recorder("tail", log)
    pipeline.add_observer(tail)

    result = pipeline.submit(_buy(), _ctx())

    assert isinstance(result, Executed)
    assert tail.events == [result.event]


def test_no_observers_commits_directly():
    pipeline = _pipeline()
    assert isinstance(pipeline.submit(_buy(), _ctx()), Executed)
    assert pipeline.observers == ()


def test_unknown_decision_type_raises():
    pipeline = _pipeline()
    pipeline.add_observer(Recorder("a", [], lambda p: True))
    with pytest.raises(TypeError):
        pipeline.submit(_buy(), _ctx())
    assert pipeline.ledger.position is None


class InPlaceEditor:
    """Mutates the proposal it is handed, then approves."""

    def __init__(self, edit):
        self.edit = edit

    def pre_trade(self, proposed, context):
        self.edit(proposed)
        return approve()

    def post_trade(self, event, context):
        return None


def test_in_place_edit_with_approve_does_not_reach_ledger():
    pipeline = _pipeline()
    pipeline.add_observer(InPlaceEditor(lambda p: setattr(p, "quantity", 0)))
    later = Recorder("later", [])
    pipeline.add_observer(later)
    proposed = _buy(qty=2.0)

    result = pipeline.submit(proposed, _ctx())

    assert isinstance(result, Executed)
    assert result.event.quantity == 2.0
    assert later.seen[0].quantity == 2.0
    assert proposed.quantity == 2.0


def test_in_place_side_flip_is_ignored():
    pipeline = _pipeline()
    pipeline.add_observer(InPlaceEditor(lambda p: setattr(p, "side", OrderSide.SELL)))

    result = pipeline.submit(_buy(), _ctx())

    assert isinstance(result, Executed)
    assert isinstance(result.event, BuyEvent)
    assert pipeline.ledger.position is not None
