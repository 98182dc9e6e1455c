from __future__ import annotations

import pytest

from trade_review.pricing.candles import (
    CONTEXT_CANDLES_AFTER,
    CONTEXT_CANDLES_BEFORE,
    INTERVAL_MS,
    CachedCandleSource,
    Candle,
    CandleCache,
    candle_window,
    dedupe_candles,
    interval_ms,
    parse_candles,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class CountingSource:
    def __init__(self, candles: list[Candle]) -> None:
        self.candles = candles
        self.calls = 0

    def fetch_candles(self, symbol: str, start_ms: int, end_ms: int, interval: str) -> list[Candle]:
        self.calls += 1
        return list(self.candles)


def _candle(time_s: int, close: float = 1.0) -> Candle:
    return Candle(time=time_s, open=close, high=close, low=close, close=close, volume=0.0)


def test_cache_expires_after_ttl() -> None:
    clock = FakeClock()
    cache = CandleCache(60, clock=clock)
    cache.put("key", [_candle(1)])

    clock.now += 59
    assert cache.get("key") == [_candle(1)]
    clock.now += 1
    assert cache.get("key") is None
    assert len(cache) == 0


def test_cache_invalidate_single_key_and_all() -> None:
    cache = CandleCache(60, clock=FakeClock())
    cache.put("a", [_candle(1)])
    cache.put("b", [_candle(2)])

    cache.invalidate("a")
    assert cache.get("a") is None
    assert cache.get("b") is not None
    cache.invalidate()
    assert len(cache) == 0


def test_cached_source_memoizes_non_empty_results() -> None:
    source = CountingSource([_candle(1)])
    cached = CachedCandleSource(source, CandleCache(60, clock=FakeClock()))

    first = cached.fetch_candles("btc", 0, 1000, "1h")
    second = cached.fetch_candles("BTC", 0, 1000, "1h")
    assert first == second
    assert source.calls == 1

    cached.cache.invalidate()
    cached.fetch_candles("BTC", 0, 1000, "1h")
    assert source.calls == 2


def test_cached_source_does_not_store_empty_results() -> None:
    source = CountingSource([])
    cached = CachedCandleSource(source, CandleCache(60, clock=FakeClock()))
    cached.fetch_candles("BTC", 0, 1000, "1h")
    cached.fetch_candles("BTC", 0, 1000, "1h")
    assert source.calls == 2


def test_candle_window_pads_around_trade() -> None:
    step = INTERVAL_MS["1h"]
    assert candle_window(10 * step, 20 * step, "1h") == (
        10 * step - CONTEXT_CANDLES_BEFORE * step,
        20 * step + CONTEXT_CANDLES_AFTER * step,
    )
    assert candle_window(10 * step, 20 * step, "1h", context_ms=5000)[0] == 10 * step - 5000


def test_unknown_interval_is_rejected() -> None:
    with pytest.raises(ValueError, match="Invalid interval: 3m"):
        interval_ms("3m")


def test_parse_candles_accepts_hyperliquid_records() -> None:
    payload = [
        {"t": 1705312800000, "o": "1.0", "h": "2.0", "l": "0.5", "c": "1.5", "v": "10"},
        {"t": 1705309200000, "o": "1.0", "h": "1.0", "l": "1.0", "c": "1.0"},
        {"o": "1.0"},
        "junk",
    ]
    candles = parse_candles(payload)
    assert [candle.time for candle in candles] == [1705312800, 1705309200]
    assert candles[0].close == 1.5
    assert candles[1].volume == 0.0
    assert parse_candles({"data": payload[:1]}) == candles[:1]


def test_dedupe_candles_sorts_and_keeps_first() -> None:
    candles = dedupe_candles([_candle(2, 1.0), _candle(1), _candle(2, 9.0)])
    assert [(candle.time, candle.close) for candle in candles] == [(1, 1.0), (2, 1.0)]
