from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Sequence

from trade_review.errors import EmptyInputError
from trade_review.ingest.formats import (
    ColumnMap,
    ExchangeFormat,
    detect_format,
    map_columns,
    normalize_headers,
    require_columns,
)
from trade_review.ingest.normalize import clean_symbol, parse_number, parse_side, parse_timestamp
from trade_review.ingest.tokenizer import split_rows
from trade_review.models import SIDE_BUY, SIDE_SELL, Execution

SYNTHETIC_ENTRY_OFFSET_MS = 1000


@dataclass(frozen=True)
class IngestResult:
    executions: list[Execution]
    format: ExchangeFormat
    skipped: int = 0
    undated: int = 0


def load_executions(raw_text: str, *, now_ms: int | None = None) -> IngestResult:
    if not raw_text or not raw_text.strip():
        raise EmptyInputError("No data provided")
    rows = split_rows(raw_text)
    if not rows:
        raise EmptyInputError("Need a header row and at least one trade row.")

    raw_headers = [cell.replace("'", "").strip() for cell in rows[0]]
    headers = normalize_headers(raw_headers)
    fmt = detect_format(headers)
    column_map = map_columns(fmt, headers)
    require_columns(column_map, raw_headers)
    return build_executions(rows[1:], column_map, fmt, now_ms=now_ms)


def build_executions(
    rows: Sequence[Sequence[str]],
    column_map: ColumnMap,
    fmt: ExchangeFormat,
    *,
    now_ms: int | None = None,
) -> IngestResult:
    ingested_at = now_ms if now_ms is not None else int(time.time() * 1000)
    batches: list[list[Execution]] = []
    skipped = 0
    undated = 0

    closed_rows = _is_closed_pnl_layout(column_map, fmt)
    for row_index, cells in enumerate(rows):
        timestamp = _cell_timestamp(cells, column_map)
        if timestamp == 0:
            timestamp = ingested_at
            undated += 1
        if closed_rows:
            built = _closed_pnl_executions(cells, column_map, fmt, timestamp, row_index)
        else:
            single = _row_execution(cells, column_map, fmt, timestamp, row_index)
            built = [single] if single is not None else []
        if not built:
            skipped += 1
            continue
        batches.append(built)

    # A synthesized entry/exit pair stays adjacent so each closed row stays one round trip.
    batches.sort(key=lambda batch: (batch[-1].timestamp, batch[-1].row_index))
    executions = [item for batch in batches for item in batch]
    return IngestResult(executions=executions, format=fmt, skipped=skipped, undated=undated)


def _is_closed_pnl_layout(column_map: ColumnMap, fmt: ExchangeFormat) -> bool:
    if not (column_map.has("entry_price") and column_map.has("exit_price")):
        return False
    return fmt == ExchangeFormat.BYBIT_CLOSED_PNL or column_map.has("closing_direction")


def _row_execution(
    cells: Sequence[str],
    column_map: ColumnMap,
    fmt: ExchangeFormat,
    timestamp: int,
    row_index: int,
) -> Execution | None:
    price = parse_number(_cell(cells, column_map.price))
    if price <= 0:
        return None
    symbol = clean_symbol(_cell(cells, column_map.symbol), fmt)
    if not symbol:
        return None
    side = parse_side(_cell(cells, column_map.side))
    if not side:
        return None

    quantity = _quantity(cells, column_map)
    volume = parse_number(_cell(cells, column_map.volume)) if column_map.has("volume") else 0.0
    return Execution(
        symbol=symbol,
        side=side,
        price=price,
        quantity=quantity,
        timestamp=timestamp,
        fee=abs(parse_number(_cell(cells, column_map.fee))),
        closed_pnl=parse_number(_cell(cells, column_map.pnl)),
        volume=volume or price * quantity,
        row_index=row_index,
    )


def _closed_pnl_executions(
    cells: Sequence[str],
    column_map: ColumnMap,
    fmt: ExchangeFormat,
    timestamp: int,
    row_index: int,
) -> list[Execution]:
    entry_price = parse_number(_cell(cells, column_map.entry_price))
    exit_price = parse_number(_cell(cells, column_map.exit_price))
    if entry_price <= 0 or exit_price <= 0:
        return []
    symbol = clean_symbol(_cell(cells, column_map.symbol), fmt)
    if not symbol:
        return []

    # Closing with a sell means the position was long.
    closing_side = parse_side(_cell(cells, column_map.closing_direction))
    if closing_side == SIDE_SELL:
        entry_side, exit_side = SIDE_BUY, SIDE_SELL
    elif closing_side == SIDE_BUY:
        entry_side, exit_side = SIDE_SELL, SIDE_BUY
    else:
        return []

    quantity = _quantity(cells, column_map)
    half_fee = abs(parse_number(_cell(cells, column_map.fee))) / 2
    closed_pnl = parse_number(_cell(cells, column_map.pnl))
    entry = Execution(
        symbol=symbol,
        side=entry_side,
        price=entry_price,
        quantity=quantity,
        timestamp=timestamp - SYNTHETIC_ENTRY_OFFSET_MS,
        fee=half_fee,
        closed_pnl=0.0,
        volume=entry_price * quantity,
        row_index=row_index,
    )
    exit_ = Execution(
        symbol=symbol,
        side=exit_side,
        price=exit_price,
        quantity=quantity,
        timestamp=timestamp,
        fee=half_fee,
        closed_pnl=closed_pnl,
        volume=exit_price * quantity,
        row_index=row_index,
    )
    return [entry, exit_]


def _quantity(cells: Sequence[str], column_map: ColumnMap) -> float:
    if not column_map.has("size"):
        return 1.0
    return abs(parse_number(_cell(cells, column_map.size))) or 1.0


def _cell_timestamp(cells: Sequence[str], column_map: ColumnMap) -> int:
    if not column_map.has("time"):
        return 0
    return parse_timestamp(_cell(cells, column_map.time))


def _cell(cells: Sequence[str], index: int) -> str:
    if index < 0 or index >= len(cells):
        return ""
    return cells[index]
