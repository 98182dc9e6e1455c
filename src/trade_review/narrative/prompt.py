from __future__ import annotations

from typing import Sequence

from trade_review.metrics.summary import BucketSummary, StatisticsSnapshot, format_duration
from trade_review.models import PositionGroup

DEFAULT_TOP_SYMBOLS = 12
DEFAULT_RECENT_TRADES = 15

COACH_INSTRUCTIONS = """You are a professional crypto trading coach. Analyze this trader's performance data and return ONLY valid JSON, with no markdown, no backticks and no explanation."""

COACH_SCHEMA = """Return this exact JSON structure:
{
  "grade": "B+",
  "gradeLabel": "Solid but needs discipline",
  "scores": {
    "discipline": { "value": 45, "label": "Overtrading" },
    "riskManagement": { "value": 72, "label": "Good R:R ratio" },
    "execution": { "value": 58, "label": "Entries OK, exits poor" },
    "consistency": { "value": 35, "label": "Erratic sizing" }
  },
  "strengths": [
    { "icon": "trophy", "title": "Good R:R", "detail": "1.42 avg win/loss ratio" },
    { "icon": "target", "title": "Alt selection", "detail": "KAITO +$1,693 profit" }
  ],
  "mistakes": [
    { "icon": "alert", "title": "Overtrading", "detail": "762 trades, $13,959 in fees", "severity": "high" },
    { "icon": "clock", "title": "No patience", "detail": "CAKE held 50s, BNB trades <10min", "severity": "medium" }
  ],
  "actions": [
    "Max 20 trades/month, only A+ setups",
    "24h minimum hold rule for all positions",
    "Focus on KAITO, VIRTUAL, PENGU, drop BTC scalps"
  ],
  "pattern": "Skilled at finding alts but addicted to action."
}

Rules:
- grade: A+ to F, be honest
- scores: 0-100 each. Be harsh if warranted.
- label: max 4 words describing the score
- strengths: exactly 2-3 items, icon must be one of: trophy, target, shield, trending, zap
- mistakes: exactly 2-3 items, icon must be one of: alert, clock, skull, flame, ban. severity: high/medium/low
- actions: exactly 3 items, max 10 words each, very specific
- pattern: max 25 words, the single most important behavioral insight
- detail fields: max 10 words, use actual numbers from their data
- All values must reference actual numbers and coins from the data above
- Return ONLY the JSON object, nothing else"""


def build_stats_prompt(
    stats: StatisticsSnapshot,
    groups: Sequence[PositionGroup],
    *,
    top_symbols: int = DEFAULT_TOP_SYMBOLS,
    recent_trades: int = DEFAULT_RECENT_TRADES,
) -> str:
    lines = [
        "TRADING PERFORMANCE SUMMARY:",
        f"Total round-trip trades: {stats.total_trades} (from {stats.total_raw_trades} raw executions)",
        f"Win rate: {stats.win_rate:.1f}% ({stats.winners}W / {stats.losers}L)",
        f"Total P&L: ${stats.total_pnl:.2f} (Fees: ${stats.total_fees:.2f})",
        f"Average win: +{stats.avg_win:.2f}% | Average loss: {stats.avg_loss:.2f}%",
        f"Risk/Reward: {stats.risk_reward:.2f}",
        f"Average holding time: {stats.avg_holding_time}",
        f"Symbols traded: {stats.unique_symbols}",
        "",
        "TOP SYMBOLS:",
    ]
    for row in stats.symbol_stats[:top_symbols]:
        lines.append(f"  {row.symbol}: {row.trades} trades, ${row.pnl:.2f} P&L, {row.win_rate:.0f}% WR")

    if stats.biggest_win:
        win = stats.biggest_win
        lines.append("")
        lines.append(f"Biggest win: {win.symbol} +{win.pct:.2f}% (${win.pnl:.2f})")
    if stats.biggest_loss:
        loss = stats.biggest_loss
        lines.append(f"Biggest loss: {loss.symbol} {loss.pct:.2f}% (${loss.pnl:.2f})")

    lines.extend(["", "HOLDING TIME ANALYSIS:"])
    lines.extend(_bucket_lines(stats.holding_time_buckets))
    lines.extend(["", "SESSION PERFORMANCE:"])
    lines.extend(_bucket_lines(stats.session_buckets))
    lines.extend(["", "DAY OF WEEK:"])
    lines.extend(_bucket_lines(stats.day_buckets))
    lines.extend(["", "LONG vs SHORT:"])
    for direction, summary in stats.direction_buckets.items():
        lines.append(f"  {direction.capitalize()}: {_bucket_text(summary)}")
    lines.extend(["", "STREAKS & TILT:"])
    lines.append(f"  Max win streak: {stats.max_win_streak} | Max loss streak: {stats.max_loss_streak}")
    lines.append(
        f"  After 3+ loss streak: {stats.tilt.trades} trades, ${stats.tilt.pnl:.2f} P&L, "
        f"{stats.tilt.win_rate:.1f}% WR"
    )

    recent = list(groups)[-recent_trades:] if recent_trades > 0 else []
    lines.extend(["", f"RECENT TRADES (last {recent_trades}):"])
    for group in recent:
        sign = "+" if group.pnl >= 0 else ""
        lines.append(
            f"  {group.symbol} {group.direction.upper()}: {sign}{group.pnl_percent:.2f}% "
            f"(${group.pnl:.2f}) | Held {format_duration(group.holding_time)}"
        )

    return "\n".join(lines)


def build_coach_prompt(stats_text: str) -> str:
    return f"{COACH_INSTRUCTIONS}\n\n{stats_text}\n\n{COACH_SCHEMA}"


def _bucket_lines(buckets: dict[str, BucketSummary]) -> list[str]:
    return [f"  {label}: {_bucket_text(summary)}" for label, summary in buckets.items() if summary.trades > 0]


def _bucket_text(summary: BucketSummary) -> str:
    return f"{summary.trades} trades, ${summary.pnl:.2f} P&L, {summary.win_rate:.1f}% WR"
