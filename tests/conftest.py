from __future__ import annotations

from datetime import datetime, timezone

import pytest

from trade_review.models import DIRECTION_LONG, SIDE_BUY, SIDE_SELL, Execution, PositionGroup
from trade_review.reconstruct.round_trips import build_group

BASE_MS = int(datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc).timestamp() * 1000)


def utc_ms(*parts: int) -> int:
    return int(datetime(*parts, tzinfo=timezone.utc).timestamp() * 1000)


def make_execution(
    side: str,
    price: float,
    quantity: float = 1.0,
    timestamp: int = BASE_MS,
    *,
    symbol: str = "BTC",
    fee: float = 0.0,
    closed_pnl: float = 0.0,
) -> Execution:
    return Execution(
        symbol=symbol,
        side=side,
        price=price,
        quantity=quantity,
        timestamp=timestamp,
        fee=fee,
        closed_pnl=closed_pnl,
        volume=price * quantity,
    )


def make_group(
    pnl: float,
    opened_at: int = BASE_MS,
    holding_ms: int = 60_000,
    *,
    symbol: str = "BTC",
    direction: str = DIRECTION_LONG,
) -> PositionGroup:
    entry_side, exit_side = (SIDE_BUY, SIDE_SELL) if direction == DIRECTION_LONG else (SIDE_SELL, SIDE_BUY)
    entry = make_execution(entry_side, 100.0, timestamp=opened_at, symbol=symbol)
    exit_ = make_execution(
        exit_side,
        100.0 + (pnl if direction == DIRECTION_LONG else -pnl),
        timestamp=opened_at + holding_ms,
        symbol=symbol,
        closed_pnl=pnl,
    )
    return build_group(symbol, [entry], [exit_], direction)


@pytest.fixture
def hyperliquid_export() -> str:
    return "\n".join(
        [
            "time,coin,dir,price,size,fee,closedpnl",
            f"{BASE_MS},BTC,Open Long,10000,1,1.5,0",
            f"{BASE_MS + 1000},BTC,Close Long,10200,1,1.5,200",
            f"{BASE_MS + 60_000},ETH,Open Short,2500,2,0.5,0",
            f"{BASE_MS + 120_000},ETH,Close Short,2450,2,0.5,100",
        ]
    )


@pytest.fixture
def bybit_closed_pnl_export() -> str:
    return "\n".join(
        [
            "Contracts,Closing Direction,Qty,Entry Price,Exit Price,Closed P&L,Fee,Trade Time",
            "BTCUSDT,Sell,5,100,90,-50,2,2024-01-15 10:00:00",
        ]
    )
