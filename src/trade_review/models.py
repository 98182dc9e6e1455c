from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SIDE_BUY = "buy"
SIDE_SELL = "sell"

DIRECTION_LONG = "long"
DIRECTION_SHORT = "short"


@dataclass
class Execution:
    symbol: str
    side: str
    price: float
    quantity: float
    timestamp: int
    fee: float = 0.0
    closed_pnl: float = 0.0
    volume: float = 0.0
    row_index: int = 0

    @property
    def is_buy(self) -> bool:
        return self.side == SIDE_BUY

    @property
    def signed_quantity(self) -> float:
        return self.quantity if self.is_buy else -self.quantity

    def to_payload(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side,
            "price": self.price,
            "quantity": self.quantity,
            "timestamp": self.timestamp,
            "fee": self.fee,
            "closedPnl": self.closed_pnl,
            "volume": self.volume,
        }


@dataclass
class PositionGroup:
    symbol: str
    direction: str
    entries: list[Execution]
    exits: list[Execution]
    entry_avg: float
    exit_avg: float
    entry_qty: float
    pnl: float
    pnl_percent: float
    holding_time: int

    @property
    def opened_at(self) -> int:
        return self.entries[0].timestamp if self.entries else 0

    @property
    def closed_at(self) -> int:
        return self.exits[-1].timestamp if self.exits else 0

    @property
    def fees(self) -> float:
        return sum(item.fee for item in self.entries) + sum(item.fee for item in self.exits)

    @property
    def is_win(self) -> bool:
        return self.pnl > 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "direction": self.direction,
            "entries": [item.to_payload() for item in self.entries],
            "exits": [item.to_payload() for item in self.exits],
            "entryAvg": self.entry_avg,
            "exitAvg": self.exit_avg,
            "entryQty": self.entry_qty,
            "pnl": self.pnl,
            "pnlPercent": self.pnl_percent,
            "holdingTime": self.holding_time,
        }


@dataclass
class OpenPosition:
    symbol: str
    direction: str
    quantity: float
    entries: list[Execution] = field(default_factory=list)

    @property
    def opened_at(self) -> int:
        return self.entries[0].timestamp if self.entries else 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "direction": self.direction,
            "quantity": self.quantity,
            "openedAt": self.opened_at,
            "entries": len(self.entries),
        }
