from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping

from trade_review.errors import UnsupportedFormatError


class ExchangeFormat(str, Enum):
    HYPERLIQUID = "hyperliquid"
    BINANCE_SPOT = "binance-spot"
    BINANCE_FUTURES = "binance-futures"
    BYBIT_SPOT = "bybit-spot"
    BYBIT_DERIVS = "bybit-derivs"
    BYBIT_CLOSED_PNL = "bybit-closed-pnl"
    OKX = "okx"
    GENERIC = "generic"


BINANCE_FORMATS = frozenset({ExchangeFormat.BINANCE_SPOT, ExchangeFormat.BINANCE_FUTURES})
BYBIT_FORMATS = frozenset(
    {ExchangeFormat.BYBIT_SPOT, ExchangeFormat.BYBIT_DERIVS, ExchangeFormat.BYBIT_CLOSED_PNL}
)

SUPPORTED_FORMAT_HINTS = (
    "Hyperliquid: Export from Portfolio -> Trade History -> Export CSV",
    "Binance: Orders -> Spot Order -> Trade History -> Export",
    "Binance Futures: Orders -> Futures -> Trade History -> Export",
    "Bybit: Orders -> Spot/Derivatives -> Trade History (or Closed P&L) -> Export",
    "OKX: Assets -> Order History -> Trade History -> Export",
    "Custom: Any CSV with columns: symbol, side, price (+ optional: qty, time, fee, pnl)",
)

COLUMNS = (
    "time",
    "symbol",
    "side",
    "price",
    "size",
    "fee",
    "pnl",
    "volume",
    "entry_price",
    "exit_price",
    "closing_direction",
)

# Candidate header names per format, most specific first. Missing columns are not mapped.
COLUMN_CANDIDATES: dict[ExchangeFormat, dict[str, tuple[str, ...]]] = {
    ExchangeFormat.HYPERLIQUID: {
        "time": ("time", "date"),
        "symbol": ("coin", "symbol"),
        "side": ("direction", "dir", "side"),
        "price": ("price", "px"),
        "size": ("size", "sz", "quantity", "qty"),
        "fee": ("fee",),
        "pnl": ("closedpnl", "closed pnl"),
        "volume": ("trade volume", "ntl", "volume"),
    },
    ExchangeFormat.BINANCE_SPOT: {
        "time": ("date(utc)", "date", "time"),
        "symbol": ("pair", "market", "symbol"),
        "side": ("side", "type"),
        "price": ("price",),
        "size": ("executed", "amount", "quantity", "qty"),
        "fee": ("fee", "commission"),
        "volume": ("total", "amount"),
    },
    ExchangeFormat.BINANCE_FUTURES: {
        "time": ("date(utc)", "date", "time"),
        "symbol": ("symbol", "pair"),
        "side": ("side", "type"),
        "price": ("price",),
        "size": ("quantity", "qty", "filled qty"),
        "fee": ("commission", "fee"),
        "pnl": ("realized profit", "realised profit", "pnl"),
        "volume": ("quote quantity", "total"),
    },
    ExchangeFormat.BYBIT_SPOT: {
        "time": ("time(utc)", "time", "date", "created time"),
        "symbol": ("symbol", "trading pair"),
        "side": ("side", "direction"),
        "price": ("avg. filled price", "avg filled price", "price", "exec price"),
        "size": ("filled qty", "qty", "quantity", "size"),
        "fee": ("fee", "commission"),
        "pnl": ("closed p&l", "closed pnl", "pnl"),
        "volume": ("total", "volume"),
    },
    ExchangeFormat.BYBIT_CLOSED_PNL: {
        "time": ("trade time", "time", "date"),
        "symbol": ("contracts", "symbol"),
        "closing_direction": ("closing direction",),
        "side": ("closing direction", "side"),
        "size": ("qty", "quantity", "size"),
        "entry_price": ("entry price",),
        "exit_price": ("exit price",),
        "price": ("entry price", "price"),
        "pnl": ("closed p&l", "closed pnl", "pnl"),
        "fee": ("fee",),
    },
    ExchangeFormat.BYBIT_DERIVS: {
        "time": ("time", "date", "created time", "trade time"),
        "symbol": ("symbol", "contracts"),
        "side": ("side", "direction"),
        "price": ("exec price", "price", "avg. filled price"),
        "size": ("qty", "quantity", "size", "filled qty"),
        "fee": ("fee", "commission"),
        "pnl": ("closed p&l", "closed pnl", "pnl"),
        "volume": ("exec value", "volume", "total"),
    },
    ExchangeFormat.OKX: {
        "time": ("order time", "time", "date", "created time", "timestamp"),
        "symbol": ("instrument id", "instrument", "instid", "inst id", "underlying", "symbol"),
        "side": ("side", "direction"),
        "price": ("filled price", "fill price", "fillpx", "price", "avg price"),
        "size": ("filled qty", "fillsz", "qty", "quantity", "size", "amount"),
        "fee": ("fee", "commission"),
        "pnl": ("pnl", "realized pnl", "profit"),
        "volume": ("volume", "total"),
    },
    ExchangeFormat.GENERIC: {
        "time": (
            "time",
            "date",
            "timestamp",
            "created",
            "datetime",
            "order time",
            "trade time",
            "execution time",
        ),
        "symbol": (
            "coin",
            "symbol",
            "pair",
            "market",
            "asset",
            "instrument",
            "instid",
            "contracts",
            "trading pair",
            "instrument id",
            "ticker",
        ),
        "side": ("direction", "dir", "side", "type", "order type", "closing direction", "action"),
        "price": (
            "price",
            "px",
            "avg filled price",
            "avg. filled price",
            "exec price",
            "filled price",
            "fill price",
            "fillpx",
            "deal price",
            "execution price",
            "trade price",
        ),
        "size": (
            "size",
            "sz",
            "quantity",
            "qty",
            "amount",
            "filled",
            "executed",
            "filled qty",
            "fillsz",
            "contracts",
        ),
        "fee": ("fee", "commission", "trading fee"),
        "pnl": (
            "closedpnl",
            "closed pnl",
            "closed p&l",
            "realized profit",
            "realised pnl",
            "realised profit",
            "realized pnl",
            "pnl",
            "profit",
        ),
        "volume": (
            "trade volume",
            "ntl",
            "volume",
            "total",
            "filled value",
            "quote quantity",
            "exec value",
            "notional",
        ),
        "entry_price": ("entry price",),
        "exit_price": ("exit price",),
        "closing_direction": ("closing direction",),
    },
}


@dataclass(frozen=True)
class ColumnMap:
    time: int = -1
    symbol: int = -1
    side: int = -1
    price: int = -1
    size: int = -1
    fee: int = -1
    pnl: int = -1
    volume: int = -1
    entry_price: int = -1
    exit_price: int = -1
    closing_direction: int = -1

    def has(self, column: str) -> bool:
        return getattr(self, column) != -1


def normalize_headers(raw_headers: Iterable[str]) -> list[str]:
    return [re.sub(r"\s+", " ", header.replace('"', "").replace("'", "").strip().lower()) for header in raw_headers]


def detect_format(headers: list[str]) -> ExchangeFormat:
    joined = "|".join(headers)
    names = set(headers)

    if "coin" in joined and ("closedpnl" in joined or "trade volume" in joined):
        return ExchangeFormat.HYPERLIQUID
    if "coin" in joined and (
        any(header.startswith("dir") for header in headers) or "px" in names or "ntl" in names
    ):
        return ExchangeFormat.HYPERLIQUID

    if "date(utc)" in joined and ("pair" in joined or "market" in joined):
        return ExchangeFormat.BINANCE_SPOT

    if "realized profit" in joined or "realised profit" in joined:
        return ExchangeFormat.BINANCE_FUTURES
    if "quote quantity" in joined and "commission" in joined:
        return ExchangeFormat.BINANCE_FUTURES

    if "closing direction" in joined and "entry price" in joined and "exit price" in joined:
        return ExchangeFormat.BYBIT_CLOSED_PNL
    if "contracts" in joined and "closing direction" in joined:
        return ExchangeFormat.BYBIT_CLOSED_PNL

    if "fee currency" in joined and "closing direction" not in joined:
        return ExchangeFormat.BYBIT_SPOT
    if "avg. filled" in joined or "avg filled" in joined:
        return ExchangeFormat.BYBIT_SPOT

    if "exec price" in joined or "exec type" in joined:
        return ExchangeFormat.BYBIT_DERIVS

    if "instrument" in joined or "instid" in joined or "inst id" in joined:
        return ExchangeFormat.OKX
    if "fillpx" in joined or "filled price" in joined or "fill price" in joined:
        return ExchangeFormat.OKX

    return ExchangeFormat.GENERIC


def find_column(headers: list[str], *candidates: str) -> int:
    for candidate in candidates:
        if candidate in headers:
            return headers.index(candidate)
    for candidate in candidates:
        for idx, header in enumerate(headers):
            if candidate in header:
                return idx
    return -1


def map_columns(fmt: ExchangeFormat, headers: list[str]) -> ColumnMap:
    candidates: Mapping[str, tuple[str, ...]] = COLUMN_CANDIDATES[fmt]
    indexes = {
        column: find_column(headers, *candidates[column])
        for column in COLUMNS
        if column in candidates
    }
    return ColumnMap(**indexes)


def require_columns(column_map: ColumnMap, raw_headers: list[str]) -> None:
    if column_map.has("symbol") and (column_map.has("price") or column_map.has("entry_price")):
        return
    hints = "\n".join(f"- {hint}" for hint in SUPPORTED_FORMAT_HINTS)
    message = (
        "Cannot detect required columns.\n\n"
        f"Headers found: {', '.join(raw_headers)}\n\n"
        f"Supported formats:\n{hints}"
    )
    raise UnsupportedFormatError(message, headers=list(raw_headers))
