from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from trade_review.models import PositionGroup

DEFAULT_CURVE_MAX_POINTS = 100


@dataclass(frozen=True)
class MonthlyPoint:
    month: str
    pnl: float

    def to_payload(self) -> dict[str, float | str]:
        return {"month": self.month, "pnl": round(self.pnl, 2)}


@dataclass(frozen=True)
class CurvePoint:
    trade: int
    pnl: float

    def to_payload(self) -> dict[str, float | int]:
        return {"trade": self.trade, "pnl": round(self.pnl, 2)}


def compute_monthly_curve(groups: Iterable[PositionGroup]) -> list[MonthlyPoint]:
    buckets: dict[str, float] = {}
    for group in chronological(groups):
        timestamp = group.closed_at or group.opened_at
        if timestamp <= 0:
            continue
        key = month_key(timestamp)
        buckets[key] = buckets.get(key, 0.0) + group.pnl
    return [MonthlyPoint(month=key, pnl=value) for key, value in sorted(buckets.items())]


def compute_cumulative_curve(
    groups: Iterable[PositionGroup],
    max_points: int | None = DEFAULT_CURVE_MAX_POINTS,
) -> list[CurvePoint]:
    running = 0.0
    points: list[CurvePoint] = []
    for idx, group in enumerate(chronological(groups)):
        running += group.pnl
        points.append(CurvePoint(trade=idx + 1, pnl=running))
    return downsample_series(points, max_points)


def downsample_series(points: list[CurvePoint], max_points: int | None) -> list[CurvePoint]:
    if max_points is None or max_points <= 0 or len(points) <= max_points:
        return points
    stride = max(1, math.ceil(len(points) / max_points))
    sampled = points[::stride]
    if sampled and sampled[-1].trade != points[-1].trade:
        sampled.append(points[-1])
    return sampled


def chronological(groups: Iterable[PositionGroup]) -> list[PositionGroup]:
    return sorted(groups, key=lambda group: group.opened_at)


def month_key(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m")
