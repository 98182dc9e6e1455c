from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from trade_review.ingest.formats import BINANCE_FORMATS, BYBIT_FORMATS, ExchangeFormat
from trade_review.models import SIDE_BUY, SIDE_SELL

BINANCE_QUOTES = (
    "USDT",
    "USDC",
    "BUSD",
    "FDUSD",
    "TUSD",
    "USD",
    "AUD",
    "EUR",
    "GBP",
    "BRL",
    "TRY",
    "JPY",
    "BTC",
    "ETH",
    "BNB",
)
BYBIT_QUOTES = ("USDT", "USDC", "PERP", "USD")
GENERIC_QUOTE_PATTERN = re.compile(r"USDT|USDC|USD|BUSD|PERP", re.IGNORECASE)

_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_HYPERLIQUID_TIME = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})\s*-\s*(\d{1,2}):(\d{2}):(\d{2})$")
_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})[\s,]*(?:(\d{1,2}):(\d{2}):(\d{2}))?$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_SLASH_ISO = re.compile(r"^(\d{4})/(\d{2})/(\d{2})\s*(?:(\d{1,2}):(\d{2})(?::(\d{2}))?)?")
_ISO_ZONE_NAME = re.compile(r"\s*(?:Z|UTC|GMT)$", re.IGNORECASE)
_ISO_OFFSET = re.compile(r"\s*([+-])(\d{2}):?(\d{2})?$")
_ISO_FRACTION = re.compile(r"\.(\d+)")
_FALLBACK_FORMATS = (
    "%d %b %Y %H:%M:%S",
    "%d %b %Y",
    "%b %d, %Y %H:%M:%S",
    "%b %d, %Y",
    "%B %d, %Y %H:%M:%S",
    "%B %d, %Y",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y",
)

_BUY_WORDS = {"buy", "long", "bid", "open long", "close short"}
_SELL_WORDS = {"sell", "short", "ask", "open short", "close long"}


def parse_number(value: str | None) -> float:
    """Parse an exported numeric cell such as ``"$1,234.56ETH"``; 0.0 when unparsable."""
    if not value:
        return 0.0
    cleaned = re.sub(r"[$€£,\s]", "", str(value))
    cleaned = re.sub(r"[A-Za-z]+$", "", cleaned)
    match = _NUMBER_PREFIX.match(cleaned)
    if not match:
        return 0.0
    number = float(match.group(0))
    if not math.isfinite(number):
        return 0.0
    return number


def parse_timestamp(value: str | None) -> int:
    """Parse an exported time cell into epoch milliseconds.

    Returns 0 when no supported grammar matches; callers decide the substitute.
    """
    if not value:
        return 0
    text = str(value).strip().replace('"', "").replace("'", "")
    if not text:
        return 0

    match = _HYPERLIQUID_TIME.match(text)
    if match:
        month, day, year, hour, minute, second = (int(part) for part in match.groups())
        return _utc_ms(year, month, day, hour, minute, second)

    match = _SLASH_DATE.match(text)
    if match:
        first, second_part, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
        if first > 12:
            day, month = first, second_part
        else:
            month, day = first, second_part
        hour, minute, second = (int(part) if part else 0 for part in match.groups()[3:])
        return _utc_ms(year, month, day, hour, minute, second)

    if _ISO_DATE.match(text):
        parsed = _parse_iso(text)
        if parsed:
            return parsed

    match = _SLASH_ISO.match(text)
    if match:
        year, month, day = int(match.group(1)), int(match.group(2)), int(match.group(3))
        hour, minute, second = (int(part) if part else 0 for part in match.groups()[3:])
        return _utc_ms(year, month, day, hour, minute, second)

    try:
        numeric = float(text)
    except ValueError:
        numeric = 0.0
    if math.isfinite(numeric) and numeric > 0:
        if numeric > 1e15:
            return int(numeric // 1000)
        if numeric > 1e12:
            return int(numeric)
        if numeric > 1e9:
            return int(numeric * 1000)

    return _parse_fallback(text)


def parse_side(value: str | None) -> str:
    text = str(value or "").strip().lower()
    if text in _BUY_WORDS:
        return SIDE_BUY
    if text in _SELL_WORDS:
        return SIDE_SELL
    if "buy" in text:
        return SIDE_BUY
    if "sell" in text:
        return SIDE_SELL
    return ""


def clean_symbol(value: str | None, fmt: ExchangeFormat) -> str:
    text = str(value or "").strip().replace('"', "").replace("'", "")
    if not text:
        return ""
    upper = text.upper()

    if fmt == ExchangeFormat.HYPERLIQUID:
        return upper.strip()
    if fmt in BINANCE_FORMATS:
        return _strip_quote_suffix(upper, BINANCE_QUOTES)
    if fmt in BYBIT_FORMATS:
        return _strip_quote_suffix(upper, BYBIT_QUOTES)
    if fmt == ExchangeFormat.OKX:
        return upper.split("-")[0] or upper

    upper = re.sub(r"[-_/]", "", upper)
    return GENERIC_QUOTE_PATTERN.sub("", upper).strip()


def _strip_quote_suffix(symbol: str, quotes: tuple[str, ...]) -> str:
    for quote in quotes:
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)]
    return symbol


def _utc_ms(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> int:
    try:
        parsed = datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
    except ValueError:
        return 0
    return int(parsed.timestamp() * 1000)


def _parse_iso(text: str) -> int:
    # fromisoformat before 3.11 only takes HH:MM offsets and 3 or 6 fraction digits.
    candidate = text
    zone = _ISO_ZONE_NAME.search(candidate)
    if zone:
        candidate = candidate[: zone.start()] + "+00:00"
    candidate = candidate.replace(" ", "T", 1)
    if "T" in candidate:
        date_part, time_part = candidate.split("T", 1)
        time_part = _ISO_FRACTION.sub(_six_digit_fraction, time_part, count=1)
        time_part = _ISO_OFFSET.sub(_colon_offset, time_part, count=1)
        candidate = f"{date_part}T{time_part}"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def _parse_fallback(text: str) -> int:
    for pattern in _FALLBACK_FORMATS:
        try:
            parsed = datetime.strptime(text, pattern)
        except ValueError:
            continue
        return int(parsed.replace(tzinfo=timezone.utc).timestamp() * 1000)
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return 0
    if parsed is None:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def _six_digit_fraction(match: re.Match[str]) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def _colon_offset(match: re.Match[str]) -> str:
    return f"{match.group(1)}{match.group(2)}:{match.group(3) or '00'}"
