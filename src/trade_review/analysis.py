from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from trade_review.errors import InputTooLargeError, NoTradesError
from trade_review.ingest.builder import load_executions
from trade_review.ingest.formats import ExchangeFormat
from trade_review.metrics.series import DEFAULT_CURVE_MAX_POINTS
from trade_review.metrics.summary import StatisticsSnapshot, compute_statistics
from trade_review.models import OpenPosition, PositionGroup
from trade_review.reconstruct.round_trips import group_round_trips


@dataclass(frozen=True)
class AnalysisResult:
    stats: StatisticsSnapshot
    groups: list[PositionGroup]
    open_positions: list[OpenPosition]
    format: ExchangeFormat
    skipped_rows: int = 0
    undated_rows: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "stats": self.stats.to_payload(),
            "groups": [group.to_payload() for group in self.groups],
            "openPositions": [position.to_payload() for position in self.open_positions],
            "meta": {
                "format": self.format.value,
                "skippedRows": self.skipped_rows,
                "undatedRows": self.undated_rows,
            },
        }


def analyze_text(
    raw_text: str,
    *,
    now_ms: int | None = None,
    max_bytes: int | None = None,
    curve_max_points: int | None = DEFAULT_CURVE_MAX_POINTS,
) -> AnalysisResult:
    if max_bytes is not None and raw_text and len(raw_text.encode("utf-8")) > max_bytes:
        raise InputTooLargeError(f"Export is larger than the {max_bytes} byte limit.")

    ingest = load_executions(raw_text, now_ms=now_ms)
    if not ingest.executions:
        raise NoTradesError("No valid trades found. Check file format.")

    grouping = group_round_trips(ingest.executions)
    stats = compute_statistics(grouping.groups, ingest.executions, curve_max_points=curve_max_points)
    return AnalysisResult(
        stats=stats,
        groups=grouping.groups,
        open_positions=grouping.open_positions,
        format=ingest.format,
        skipped_rows=ingest.skipped,
        undated_rows=ingest.undated,
    )
