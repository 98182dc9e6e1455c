from __future__ import annotations

import pytest

from conftest import utc_ms
from trade_review.errors import EmptyInputError, UnsupportedFormatError
from trade_review.ingest.builder import SYNTHETIC_ENTRY_OFFSET_MS, load_executions
from trade_review.ingest.formats import ExchangeFormat

NOW_MS = utc_ms(2024, 6, 1)


def test_blank_input_is_rejected() -> None:
    with pytest.raises(EmptyInputError, match="No data provided"):
        load_executions("   \n ")


def test_header_only_is_rejected() -> None:
    with pytest.raises(EmptyInputError, match="header row"):
        load_executions("symbol,side,price\n")


def test_unknown_columns_raise_unsupported_format() -> None:
    with pytest.raises(UnsupportedFormatError, match="Headers found: Alpha, Beta"):
        load_executions("Alpha,Beta\n1,2\n")


def test_hyperliquid_rows_become_sorted_executions(hyperliquid_export: str) -> None:
    shuffled = "\n".join([hyperliquid_export.splitlines()[0], *reversed(hyperliquid_export.splitlines()[1:])])
    result = load_executions(shuffled, now_ms=NOW_MS)

    assert result.format is ExchangeFormat.HYPERLIQUID
    assert result.skipped == 0
    assert [item.timestamp for item in result.executions] == sorted(item.timestamp for item in result.executions)
    first = result.executions[0]
    assert (first.symbol, first.side, first.price, first.quantity) == ("BTC", "buy", 10000.0, 1.0)
    assert first.volume == pytest.approx(10000.0)
    assert result.executions[1].closed_pnl == pytest.approx(200.0)


def test_invalid_rows_are_skipped() -> None:
    text = "\n".join(
        [
            "symbol,side,price,qty,time",
            "BTC,buy,100,1,2024-01-15 10:00:00",
            "BTC,buy,0,1,2024-01-15 10:01:00",
            "BTC,hold,100,1,2024-01-15 10:02:00",
            ",sell,100,1,2024-01-15 10:03:00",
            "BTC,sell,-5,1,2024-01-15 10:04:00",
        ]
    )
    result = load_executions(text, now_ms=NOW_MS)
    assert result.format is ExchangeFormat.GENERIC
    assert len(result.executions) == 1
    assert result.skipped == 4


def test_missing_size_defaults_to_one_unit() -> None:
    result = load_executions("symbol,side,price\nETH,buy,2500\n", now_ms=NOW_MS)
    assert result.executions[0].quantity == 1.0


def test_unparsable_time_falls_back_to_ingestion_time_in_row_order() -> None:
    text = "\n".join(
        [
            "symbol,side,price,qty,time",
            "BTC,buy,100,1,whenever",
            "BTC,sell,110,1,someday",
        ]
    )
    result = load_executions(text, now_ms=NOW_MS)
    assert result.undated == 2
    assert [item.timestamp for item in result.executions] == [NOW_MS, NOW_MS]
    assert [item.side for item in result.executions] == ["buy", "sell"]


def test_closed_pnl_row_synthesizes_entry_and_exit(bybit_closed_pnl_export: str) -> None:
    result = load_executions(bybit_closed_pnl_export, now_ms=NOW_MS)

    assert result.format is ExchangeFormat.BYBIT_CLOSED_PNL
    entry, exit_ = result.executions
    assert entry.symbol == exit_.symbol == "BTC"
    assert (entry.side, exit_.side) == ("buy", "sell")
    assert (entry.price, exit_.price) == (100.0, 90.0)
    assert entry.quantity == exit_.quantity == 5.0
    assert exit_.timestamp == utc_ms(2024, 1, 15, 10)
    assert entry.timestamp == exit_.timestamp - SYNTHETIC_ENTRY_OFFSET_MS
    assert entry.closed_pnl == 0.0
    assert exit_.closed_pnl == pytest.approx(-50.0)
    assert entry.fee == exit_.fee == pytest.approx(1.0)


def test_closed_pnl_buy_to_close_means_short() -> None:
    text = "\n".join(
        [
            "Contracts,Closing Direction,Qty,Entry Price,Exit Price,Closed P&L,Trade Time",
            "ETHUSDT,Buy,2,2000,1900,200,2024-01-15 10:00:00",
        ]
    )
    entry, exit_ = load_executions(text, now_ms=NOW_MS).executions
    assert (entry.side, exit_.side) == ("sell", "buy")


def test_closed_pnl_pairs_stay_adjacent() -> None:
    text = "\n".join(
        [
            "Contracts,Closing Direction,Qty,Entry Price,Exit Price,Closed P&L,Trade Time",
            "BTCUSDT,Sell,1,100,110,10,2024-01-15 10:00:00.500",
            "BTCUSDT,Sell,1,100,120,20,2024-01-15 10:00:01",
        ]
    )
    executions = load_executions(text, now_ms=NOW_MS).executions
    assert [item.row_index for item in executions] == [0, 0, 1, 1]


def test_closed_pnl_row_without_direction_is_skipped() -> None:
    text = "\n".join(
        [
            "Contracts,Closing Direction,Qty,Entry Price,Exit Price,Closed P&L,Trade Time",
            "BTCUSDT,,1,100,110,10,2024-01-15 10:00:00",
            "BTCUSDT,Sell,1,0,110,10,2024-01-15 10:00:00",
        ]
    )
    result = load_executions(text, now_ms=NOW_MS)
    assert result.executions == []
    assert result.skipped == 2
