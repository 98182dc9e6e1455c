from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from trade_review.metrics.series import (
    DEFAULT_CURVE_MAX_POINTS,
    CurvePoint,
    MonthlyPoint,
    chronological,
    compute_cumulative_curve,
    compute_monthly_curve,
)
from trade_review.models import DIRECTION_LONG, DIRECTION_SHORT, Execution, PositionGroup

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

TILT_STREAK_THRESHOLD = 3

HOLDING_TIME_BUCKETS = (
    ("Scalps (<10m)", 0, 10 * MINUTE_MS),
    ("Intraday (10m-4h)", 10 * MINUTE_MS, 4 * HOUR_MS),
    ("Day (4h-1d)", 4 * HOUR_MS, DAY_MS),
    ("Swing (1d-7d)", DAY_MS, 7 * DAY_MS),
    ("Position (>7d)", 7 * DAY_MS, None),
)
SESSION_BUCKETS = (
    ("Asia (00-08 UTC)", 0, 8),
    ("Europe (08-16 UTC)", 8, 16),
    ("US (16-24 UTC)", 16, 24),
)
# Sunday first; datetime.weekday() is Monday=0.
DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


@dataclass(frozen=True)
class BucketSummary:
    trades: int
    pnl: float
    win_rate: float
    avg_pnl: float

    def to_payload(self) -> dict[str, float | int]:
        return {
            "trades": self.trades,
            "pnl": round(self.pnl, 2),
            "winRate": round(self.win_rate, 1),
            "avgPnl": round(self.avg_pnl, 2),
        }


@dataclass(frozen=True)
class SymbolSummary:
    symbol: str
    trades: int
    pnl: float
    win_rate: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "trades": self.trades,
            "pnl": round(self.pnl, 2),
            "winRate": round(self.win_rate),
        }


@dataclass(frozen=True)
class TradeHighlight:
    symbol: str
    pnl: float
    pct: float

    def to_payload(self) -> dict[str, Any]:
        return {"symbol": self.symbol, "pnl": round(self.pnl, 2), "pct": round(self.pct, 2)}


@dataclass(frozen=True)
class TiltSummary:
    trades: int
    pnl: float
    win_rate: float

    def to_payload(self) -> dict[str, float | int]:
        return {
            "tradesAfterLossStreak": self.trades,
            "pnl": round(self.pnl, 2),
            "winRate": round(self.win_rate, 1),
        }


@dataclass(frozen=True)
class StatisticsSnapshot:
    total_trades: int
    total_raw_trades: int
    winners: int
    losers: int
    win_rate: float
    total_pnl: float
    total_fees: float
    avg_win: float
    avg_loss: float
    avg_loss_amount: float
    risk_reward: float
    profit_factor: float | None
    expectancy: float | None
    avg_holding_ms: float
    avg_holding_time: str
    biggest_win: TradeHighlight | None
    biggest_loss: TradeHighlight | None
    unique_symbols: int
    symbol_stats: list[SymbolSummary]
    holding_time_buckets: dict[str, BucketSummary]
    session_buckets: dict[str, BucketSummary]
    day_buckets: dict[str, BucketSummary]
    direction_buckets: dict[str, BucketSummary]
    max_win_streak: int
    max_loss_streak: int
    tilt: TiltSummary
    monthly_curve: list[MonthlyPoint]
    cumulative_curve: list[CurvePoint]

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalTrades": self.total_trades,
            "totalRawTrades": self.total_raw_trades,
            "winners": self.winners,
            "losers": self.losers,
            "winRate": round(self.win_rate, 1),
            "totalPnl": round(self.total_pnl, 2),
            "totalFees": round(self.total_fees, 2),
            "avgWin": round(self.avg_win, 2),
            "avgLoss": round(self.avg_loss, 2),
            "avgLossDollar": round(self.avg_loss_amount, 2),
            "riskReward": round(self.risk_reward, 2),
            "profitFactor": _round_or_none(self.profit_factor, 2),
            "expectancy": _round_or_none(self.expectancy, 2),
            "avgHoldingTime": self.avg_holding_time,
            "biggestWin": self.biggest_win.to_payload() if self.biggest_win else None,
            "biggestLoss": self.biggest_loss.to_payload() if self.biggest_loss else None,
            "uniqueSymbols": self.unique_symbols,
            "symbolStats": [item.to_payload() for item in self.symbol_stats],
            "holdingTimeBuckets": _buckets_payload(self.holding_time_buckets),
            "sessionPerformance": _buckets_payload(self.session_buckets),
            "dayPerformance": _buckets_payload(self.day_buckets),
            "directionPerformance": _buckets_payload(self.direction_buckets),
            "streaks": {"maxWinStreak": self.max_win_streak, "maxLossStreak": self.max_loss_streak},
            "tilt": self.tilt.to_payload(),
            "monthlyCurve": [point.to_payload() for point in self.monthly_curve],
            "cumCurve": [point.to_payload() for point in self.cumulative_curve],
        }


def compute_statistics(
    groups: Iterable[PositionGroup],
    executions: Iterable[Execution] | None = None,
    *,
    curve_max_points: int | None = DEFAULT_CURVE_MAX_POINTS,
) -> StatisticsSnapshot:
    group_list = list(groups)
    if executions is None:
        execution_list = [item for group in group_list for item in group.entries + group.exits]
    else:
        execution_list = list(executions)

    winners = [group for group in group_list if group.is_win]
    losers = [group for group in group_list if not group.is_win]
    total = len(group_list)

    avg_win = _mean([group.pnl_percent for group in winners]) or 0.0
    avg_loss = _mean([group.pnl_percent for group in losers]) or 0.0
    risk_reward = abs(avg_win / avg_loss) if avg_loss != 0 else 0.0

    total_win = sum(group.pnl for group in winners)
    total_loss = sum(group.pnl for group in losers)
    profit_factor = None
    if total_loss < 0:
        profit_factor = total_win / abs(total_loss)
    expectancy = None
    if total:
        expectancy = sum(group.pnl for group in group_list) / total

    avg_holding_ms = _mean([group.holding_time for group in group_list if group.holding_time > 0]) or 0.0
    max_win_streak, max_loss_streak = _max_streaks(group_list)

    return StatisticsSnapshot(
        total_trades=total,
        total_raw_trades=len(execution_list),
        winners=len(winners),
        losers=len(losers),
        win_rate=len(winners) / total * 100 if total else 0.0,
        total_pnl=sum(group.pnl for group in group_list),
        total_fees=sum(item.fee for item in execution_list),
        avg_win=avg_win,
        avg_loss=avg_loss,
        avg_loss_amount=_mean([group.pnl for group in losers]) or 0.0,
        risk_reward=risk_reward,
        profit_factor=profit_factor,
        expectancy=expectancy,
        avg_holding_ms=avg_holding_ms,
        avg_holding_time=format_duration(avg_holding_ms),
        biggest_win=_highlight(max(winners, key=lambda group: group.pnl, default=None)),
        biggest_loss=_highlight(min(losers, key=lambda group: group.pnl, default=None)),
        unique_symbols=len({group.symbol for group in group_list}),
        symbol_stats=compute_symbol_breakdown(group_list),
        holding_time_buckets=compute_holding_time_buckets(group_list),
        session_buckets=compute_session_buckets(group_list),
        day_buckets=compute_day_buckets(group_list),
        direction_buckets=compute_direction_buckets(group_list),
        max_win_streak=max_win_streak,
        max_loss_streak=max_loss_streak,
        tilt=compute_tilt(group_list),
        monthly_curve=compute_monthly_curve(group_list),
        cumulative_curve=compute_cumulative_curve(group_list, curve_max_points),
    )


def compute_symbol_breakdown(groups: Iterable[PositionGroup]) -> list[SymbolSummary]:
    buckets: dict[str, list[PositionGroup]] = {}
    for group in groups:
        buckets.setdefault(group.symbol, []).append(group)

    rows = [
        SymbolSummary(
            symbol=symbol,
            trades=len(items),
            pnl=sum(item.pnl for item in items),
            win_rate=sum(1 for item in items if item.is_win) / len(items) * 100,
        )
        for symbol, items in buckets.items()
    ]
    # Stable sort keeps first-seen order among symbols with equal counts.
    rows.sort(key=lambda row: row.trades, reverse=True)
    return rows


def compute_holding_time_buckets(groups: Iterable[PositionGroup]) -> dict[str, BucketSummary]:
    group_list = list(groups)
    output: dict[str, BucketSummary] = {}
    for label, low, high in HOLDING_TIME_BUCKETS:
        members = [
            group
            for group in group_list
            if group.holding_time > 0
            and group.holding_time >= low
            and (high is None or group.holding_time < high)
        ]
        output[label] = bucket_summary(members)
    return output


def compute_session_buckets(groups: Iterable[PositionGroup]) -> dict[str, BucketSummary]:
    group_list = list(groups)
    output: dict[str, BucketSummary] = {}
    for label, start_hour, end_hour in SESSION_BUCKETS:
        members = [
            group
            for group in group_list
            if group.opened_at > 0 and start_hour <= _utc(group.opened_at).hour < end_hour
        ]
        output[label] = bucket_summary(members)
    return output


def compute_day_buckets(groups: Iterable[PositionGroup]) -> dict[str, BucketSummary]:
    by_day: dict[str, list[PositionGroup]] = {}
    for group in groups:
        if group.opened_at <= 0:
            continue
        name = DAY_NAMES[(_utc(group.opened_at).weekday() + 1) % 7]
        by_day.setdefault(name, []).append(group)
    return {name: bucket_summary(by_day[name]) for name in DAY_NAMES if name in by_day}


def compute_direction_buckets(groups: Iterable[PositionGroup]) -> dict[str, BucketSummary]:
    group_list = list(groups)
    return {
        direction: bucket_summary([group for group in group_list if group.direction == direction])
        for direction in (DIRECTION_LONG, DIRECTION_SHORT)
    }


def compute_tilt(groups: Iterable[PositionGroup]) -> TiltSummary:
    """Summarize trades taken while on a losing streak of three or more.

    Tagged trades are the fourth loss onward and the trade that ends the streak.
    """
    loss_streak = 0
    tagged: list[float] = []
    for group in chronological(groups):
        if group.is_win:
            if loss_streak >= TILT_STREAK_THRESHOLD:
                tagged.append(group.pnl)
            loss_streak = 0
            continue
        loss_streak += 1
        if loss_streak > TILT_STREAK_THRESHOLD:
            tagged.append(group.pnl)

    win_rate = 0.0
    if tagged:
        win_rate = sum(1 for value in tagged if value > 0) / len(tagged) * 100
    return TiltSummary(trades=len(tagged), pnl=sum(tagged), win_rate=win_rate)


def bucket_summary(groups: list[PositionGroup]) -> BucketSummary:
    if not groups:
        return BucketSummary(trades=0, pnl=0.0, win_rate=0.0, avg_pnl=0.0)
    pnl = sum(group.pnl for group in groups)
    wins = sum(1 for group in groups if group.is_win)
    return BucketSummary(
        trades=len(groups),
        pnl=pnl,
        win_rate=wins / len(groups) * 100,
        avg_pnl=pnl / len(groups),
    )


def format_duration(ms: float) -> str:
    if not ms or ms <= 0:
        return "< 1m"
    if ms < MINUTE_MS:
        return f"{_round_half_up(ms / 1000)}s"
    if ms < HOUR_MS:
        return f"{_round_half_up(ms / MINUTE_MS)}m"
    if ms < DAY_MS:
        return f"{ms / HOUR_MS:.1f}h"
    return f"{ms / DAY_MS:.1f}d"


def _max_streaks(groups: list[PositionGroup]) -> tuple[int, int]:
    max_wins = 0
    max_losses = 0
    current_wins = 0
    current_losses = 0

    for group in chronological(groups):
        if group.is_win:
            current_wins += 1
            current_losses = 0
        else:
            current_losses += 1
            current_wins = 0
        max_wins = max(max_wins, current_wins)
        max_losses = max(max_losses, current_losses)

    return max_wins, max_losses


def _highlight(group: PositionGroup | None) -> TradeHighlight | None:
    if group is None:
        return None
    return TradeHighlight(symbol=group.symbol, pnl=group.pnl, pct=group.pnl_percent)


def _buckets_payload(buckets: dict[str, BucketSummary]) -> dict[str, dict[str, float | int]]:
    return {label: summary.to_payload() for label, summary in buckets.items()}


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def _round_or_none(value: float | None, digits: int) -> float | None:
    if value is None:
        return None
    return round(value, digits)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def _utc(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
