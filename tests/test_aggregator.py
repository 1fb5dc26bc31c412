import math
import random

import pytest

from engine.aggregator import CandleAggregator
from engine.errors import ConfigurationError, OutOfOrderTickError
from engine.models import Tick


def _tick(ts: int, price: float, volume: float = 1.0) -> Tick:
    return Tick(timestamp=ts, price=price, volume=volume, symbol="BTC/USD")


def test_seals_candle_when_next_bucket_starts():
    agg = CandleAggregator(1000)
    assert agg.ingest(_tick(0, 100)) is None
    assert agg.ingest(_tick(500, 101)) is None
    assert agg.ingest(_tick(999, 99)) is None

    sealed = agg.ingest(_tick(1000, 102))

    assert sealed is not None
    assert sealed.open_time == 0
    assert (sealed.open, sealed.high, sealed.low, sealed.close) == (100, 101, 99, 99)
    assert sealed.volume == 3
    assert agg.current_candle.open_time == 1000
    assert agg.current_candle.open == 102


def test_gaps_are_not_back_filled():
    agg = CandleAggregator(1000)
    agg.ingest(_tick(100, 10))
    sealed = agg.ingest(_tick(5500, 11))
    assert sealed.open_time == 0
    assert agg.current_candle.open_time == 5000
    assert agg.sealed_count == 1


def test_out_of_order_tick_leaves_state_unchanged():
    agg = CandleAggregator(1000)
    agg.ingest(_tick(2500, 10))
    before = agg.current_candle

    with pytest.raises(OutOfOrderTickError) as exc_info:
        agg.ingest(_tick(1500, 50))

    assert exc_info.value.current_bucket_start == 2000
    assert agg.current_candle == before


def test_force_close_is_idempotent():
    agg = CandleAggregator(1000)
    agg.ingest(_tick(10, 5, 2))
    agg.ingest(_tick(20, 6, 3))

    sealed = agg.force_close(20)

    assert sealed.open_time == 0
    assert sealed.close == 6
    assert sealed.volume == 5
    assert agg.force_close(20) is None
    assert agg.current_candle is None
    assert agg.sealed_count == 1


def test_force_close_on_empty_aggregator():
    assert CandleAggregator(1000).force_close(0) is None


def test_tick_after_force_close_in_same_bucket_starts_fresh_candle():
    agg = CandleAggregator(1000)
    agg.ingest(_tick(100, 5))
    agg.force_close(100)
    assert agg.ingest(_tick(200, 7)) is None
    assert agg.current_candle.open == 7


def test_force_close_keeps_bucket_ordering():
    agg = CandleAggregator(1000)
    agg.ingest(_tick(1500, 5))
    agg.force_close(1500)
    with pytest.raises(OutOfOrderTickError):
        agg.ingest(_tick(900, 7))


def test_sealed_candles_are_aligned_and_consistent():
    rng = random.Random(7)
    agg = CandleAggregator(250)
    ts = 0
    sealed = []
    for _ in range(500):
        ts += rng.randint(0, 400)
        candle = agg.ingest(_tick(ts, rng.uniform(50, 150), rng.uniform(0, 3)))
        if candle:
            sealed.append(candle)
    last = agg.force_close(ts)
    if last:
        sealed.append(last)

    assert sealed
    for candle in sealed:
        assert candle.open_time % 250 == 0
        assert candle.high >= max(candle.open, candle.close)
        assert min(candle.open, candle.close) >= candle.low
    open_times = [c.open_time for c in sealed]
    assert open_times == sorted(set(open_times))


def test_invalid_bucket_length():
    with pytest.raises(ConfigurationError):
        CandleAggregator(0)


def test_tick_validation():
    with pytest.raises(ValueError):
        _tick(0, 0)
    with pytest.raises(ValueError):
        _tick(0, 10, -1)


def test_nan_tick_fields_are_refused():
    with pytest.raises(ValueError):
        _tick(0, math.nan)
    with pytest.raises(ValueError):
        _tick(0, 10, math.nan)


def test_seal_due_leaves_the_tick_unabsorbed():
    agg = CandleAggregator(1000)
    agg.ingest(_tick(0, 10))
    sealed = agg.seal_due(_tick(1000, 12))
    assert sealed.open_time == 0
    assert agg.current_candle is None
    agg.absorb(_tick(1000, 12))
    assert agg.current_candle.open == 12
    assert agg.sealed_count == 1


def test_absorb_refuses_a_later_bucket_while_a_candle_is_open():
    agg = CandleAggregator(1000)
    agg.absorb(_tick(0, 10))
    with pytest.raises(ValueError):
        agg.absorb(_tick(1000, 11))
    assert agg.current_candle.close == 10
