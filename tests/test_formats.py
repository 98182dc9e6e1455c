from __future__ import annotations

import pytest

from trade_review.errors import UnsupportedFormatError
from trade_review.ingest.formats import (
    SUPPORTED_FORMAT_HINTS,
    ExchangeFormat,
    detect_format,
    find_column,
    map_columns,
    normalize_headers,
    require_columns,
)


@pytest.mark.parametrize(
    ("raw_headers", "expected"),
    [
        (["time", "coin", "dir", "px", "sz", "ntl", "fee", "closedPnl"], ExchangeFormat.HYPERLIQUID),
        (["Date(UTC)", "Pair", "Side", "Price", "Executed", "Amount", "Fee"], ExchangeFormat.BINANCE_SPOT),
        (
            ["Date(UTC)", "Symbol", "Side", "Price", "Quantity", "Commission", "Realized Profit"],
            ExchangeFormat.BINANCE_FUTURES,
        ),
        (
            ["Contracts", "Closing Direction", "Qty", "Entry Price", "Exit Price", "Closed P&L"],
            ExchangeFormat.BYBIT_CLOSED_PNL,
        ),
        (["Symbol", "Side", "Avg. Filled Price", "Filled Qty", "Fee"], ExchangeFormat.BYBIT_SPOT),
        (["Symbol", "Side", "Exec Price", "Qty", "Exec Type", "Fee"], ExchangeFormat.BYBIT_DERIVS),
        (["Order Time", "Instrument ID", "Side", "Filled Price", "Filled Qty"], ExchangeFormat.OKX),
        (["ticker", "action", "price"], ExchangeFormat.GENERIC),
    ],
)
def test_detect_format(raw_headers: list[str], expected: ExchangeFormat) -> None:
    headers = normalize_headers(raw_headers)
    assert detect_format(headers) is expected
    assert detect_format(list(headers)) is detect_format(headers)


def test_normalize_headers_collapses_case_quotes_and_spaces() -> None:
    assert normalize_headers(['"Closed  P&L"', " Trade Time ", "'Coin'"]) == ["closed p&l", "trade time", "coin"]


def test_find_column_prefers_exact_match_over_substring() -> None:
    headers = ["closed pnl", "pnl"]
    assert find_column(headers, "pnl") == 1
    assert find_column(headers, "closed") == 0
    assert find_column(headers, "missing") == -1


def test_map_columns_uses_format_candidates() -> None:
    headers = normalize_headers(["time", "coin", "dir", "price", "size", "fee", "closedpnl"])
    column_map = map_columns(ExchangeFormat.HYPERLIQUID, headers)
    assert (column_map.time, column_map.symbol, column_map.side, column_map.price) == (0, 1, 2, 3)
    assert column_map.pnl == 6
    assert not column_map.has("volume")
    assert not column_map.has("entry_price")


def test_unrecognized_headers_report_raw_names_and_hints() -> None:
    raw_headers = ["Foo Column", "BAR"]
    column_map = map_columns(ExchangeFormat.GENERIC, normalize_headers(raw_headers))
    with pytest.raises(UnsupportedFormatError) as excinfo:
        require_columns(column_map, raw_headers)
    message = str(excinfo.value)
    assert "Headers found: Foo Column, BAR" in message
    for hint in SUPPORTED_FORMAT_HINTS:
        assert hint in message
    assert excinfo.value.headers == raw_headers


def test_entry_price_satisfies_price_requirement() -> None:
    raw_headers = ["Contracts", "Closing Direction", "Entry Price", "Exit Price"]
    column_map = map_columns(ExchangeFormat.BYBIT_CLOSED_PNL, normalize_headers(raw_headers))
    require_columns(column_map, raw_headers)
