from __future__ import annotations

import http.client
import json
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, Mapping, Protocol

from trade_review.config.app_config import MarketDataSettings

DEFAULT_INFO_URL = "https://api.hyperliquid.xyz/info"
CHUNK_CANDLES = 500
CONTEXT_CANDLES_BEFORE = 100
CONTEXT_CANDLES_AFTER = 20

INTERVAL_MS = {
    "15m": 15 * 60_000,
    "1h": 60 * 60_000,
    "4h": 4 * 60 * 60_000,
    "1d": 24 * 60 * 60_000,
}

_RETRYABLE_ERRORS = (
    urllib.error.URLError,
    http.client.HTTPException,
    OSError,
    json.JSONDecodeError,
    UnicodeDecodeError,
    RuntimeError,
)


@dataclass(frozen=True)
class Candle:
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_payload(self) -> dict[str, float | int]:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


class CandleSource(Protocol):
    def fetch_candles(self, symbol: str, start_ms: int, end_ms: int, interval: str) -> list[Candle]:
        ...


class CandleCache:
    """In-memory TTL cache handed to whatever needs memoized market-data reads."""

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, list[Candle]]] = {}

    def get(self, key: Hashable) -> list[Candle] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, candles = entry
        if self._clock() - stored_at >= self._ttl_seconds:
            del self._entries[key]
            return None
        return candles

    def put(self, key: Hashable, candles: list[Candle]) -> None:
        self._entries[key] = (self._clock(), candles)

    def invalidate(self, key: Hashable | None = None) -> None:
        if key is None:
            self._entries.clear()
            return
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class HyperliquidCandleConfig:
    info_url: str = DEFAULT_INFO_URL
    timeout_seconds: float = 30.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.75

    @classmethod
    def from_settings(cls, settings: MarketDataSettings) -> "HyperliquidCandleConfig":
        return cls(
            info_url=settings.info_url,
            timeout_seconds=settings.timeout_seconds,
            retry_attempts=settings.retry_attempts,
            retry_backoff_seconds=settings.retry_backoff_seconds,
        )


class HyperliquidCandleClient:
    def __init__(self, config: HyperliquidCandleConfig) -> None:
        self._config = config

    def fetch_candles(self, symbol: str, start_ms: int, end_ms: int, interval: str) -> list[Candle]:
        step_ms = interval_ms(interval)
        coin = str(symbol).strip().upper()
        candles: list[Candle] = []
        chunk_start = start_ms
        while chunk_start < end_ms:
            chunk_end = min(chunk_start + CHUNK_CANDLES * step_ms, end_ms)
            payload = {
                "type": "candleSnapshot",
                "req": {
                    "coin": coin,
                    "interval": interval,
                    "startTime": int(chunk_start),
                    "endTime": int(chunk_end),
                },
            }
            candles.extend(parse_candles(self._post_info(payload)))
            chunk_start = chunk_end
        return dedupe_candles(candles)

    def _post_info(self, payload: Mapping[str, Any]) -> Any:
        body = json.dumps(payload).encode("utf-8")
        last_error: Exception | None = None
        attempts = max(1, self._config.retry_attempts)
        for attempt in range(attempts):
            try:
                request = urllib.request.Request(
                    self._config.info_url,
                    method="POST",
                    data=body,
                    headers={"Content-Type": "application/json", "Accept": "application/json"},
                )
                with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
                    raw = response.read()
                if not raw:
                    raise RuntimeError("Empty response body from Hyperliquid /info")
                return json.loads(raw.decode("utf-8"))
            except _RETRYABLE_ERRORS as exc:
                last_error = exc
                if attempt >= attempts - 1:
                    break
                time.sleep(self._config.retry_backoff_seconds * (2**attempt))
        raise RuntimeError(f"Hyperliquid /info request failed: {last_error}") from last_error


class CachedCandleSource:
    def __init__(self, source: CandleSource, cache: CandleCache) -> None:
        self._source = source
        self._cache = cache

    @property
    def cache(self) -> CandleCache:
        return self._cache

    def fetch_candles(self, symbol: str, start_ms: int, end_ms: int, interval: str) -> list[Candle]:
        key = (symbol.upper(), int(start_ms), int(end_ms), interval)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        candles = self._source.fetch_candles(symbol, start_ms, end_ms, interval)
        if candles:
            self._cache.put(key, candles)
        return candles


def candle_window(start_ms: int, end_ms: int, interval: str, context_ms: int = 0) -> tuple[int, int]:
    """Pad a trade's time range for charting: context before the entry, a little after the exit."""
    step_ms = interval_ms(interval)
    before = context_ms if context_ms > 0 else step_ms * CONTEXT_CANDLES_BEFORE
    return start_ms - before, end_ms + step_ms * CONTEXT_CANDLES_AFTER


def interval_ms(interval: str) -> int:
    try:
        return INTERVAL_MS[interval]
    except KeyError:
        raise ValueError(
            f"Invalid interval: {interval}. Use {', '.join(INTERVAL_MS)}"
        ) from None


def parse_candles(payload: Any) -> list[Candle]:
    records: Iterable[Any] = []
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, Mapping):
        for key in ("data", "candles", "result"):
            value = payload.get(key)
            if isinstance(value, list):
                records = value
                break

    candles: list[Candle] = []
    for item in records:
        candle = _parse_candle(item)
        if candle is not None:
            candles.append(candle)
    return candles


def dedupe_candles(candles: Iterable[Candle]) -> list[Candle]:
    seen: dict[int, Candle] = {}
    for candle in candles:
        seen.setdefault(candle.time, candle)
    return sorted(seen.values(), key=lambda candle: candle.time)


def _parse_candle(item: Any) -> Candle | None:
    if not isinstance(item, Mapping):
        return None
    start_raw = _pick(item, "t", "time", "startTime")
    if start_raw is None:
        return None
    try:
        start_ms = float(start_raw)
        return Candle(
            time=int(start_ms // 1000) if start_ms > 1e12 else int(start_ms),
            open=float(_pick(item, "o", "open")),
            high=float(_pick(item, "h", "high")),
            low=float(_pick(item, "l", "low")),
            close=float(_pick(item, "c", "close")),
            volume=float(_pick(item, "v", "volume") or 0.0),
        )
    except (TypeError, ValueError):
        return None


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] not in (None, ""):
            return data[key]
    return None
