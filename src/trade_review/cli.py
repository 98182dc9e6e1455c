from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from trade_review.analysis import AnalysisResult, analyze_text
from trade_review.config.app_config import load_app_config, load_dotenv
from trade_review.errors import TradeAnalysisError
from trade_review.metrics.summary import format_duration
from trade_review.narrative.coach import CoachClient, CoachConfig, Narrative, generate_narrative


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Review trading performance from an exchange trade export.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyze a trade history export (csv/tsv).")
    analyze.add_argument("path", type=Path, help="Path to the exported trade history.")
    analyze.add_argument("--json", action="store_true", help="Print the full analysis as JSON.")
    analyze.add_argument(
        "--coach",
        action="store_true",
        help="Ask the coaching model for a narrative (needs ANTHROPIC_API_KEY).",
    )
    analyze.add_argument("--out", type=Path, default=None, help="Write output to a file instead of stdout.")

    subparsers.add_parser("serve", help="Run the web app.")
    args = parser.parse_args(argv)

    if args.command == "serve":
        from trade_review.web.app import main as serve

        serve()
        return 0
    return _analyze(args)


def _analyze(args: argparse.Namespace) -> int:
    app_config = load_app_config()
    if not args.path.exists():
        print(f"File not found: {args.path}", file=sys.stderr)
        return 1

    raw_text = args.path.read_text(encoding="utf-8", errors="replace")
    try:
        result = analyze_text(
            raw_text,
            max_bytes=app_config.app.max_upload_bytes,
            curve_max_points=app_config.analytics.curve_max_points,
        )
    except TradeAnalysisError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    if result.skipped_rows:
        print(f"Skipped {result.skipped_rows} rows during normalization.", file=sys.stderr)
    if result.undated_rows:
        print(
            f"{result.undated_rows} rows had unreadable timestamps and were dated at ingestion time.",
            file=sys.stderr,
        )
    if result.open_positions:
        print(f"Open positions left out of statistics: {len(result.open_positions)}.", file=sys.stderr)

    narrative = Narrative()
    if args.coach:
        env = {**load_dotenv(app_config.app.env_path), **os.environ}
        coach_config = CoachConfig.from_env(env, app_config.coach)
        if coach_config is None:
            print("Coach disabled or ANTHROPIC_API_KEY not set; skipping narrative.", file=sys.stderr)
        else:
            narrative = generate_narrative(
                result.stats,
                result.groups,
                CoachClient(coach_config),
                top_symbols=app_config.analytics.top_symbols,
                recent_trades=app_config.analytics.recent_trades,
            )

    if args.json or (args.out is not None and args.out.suffix.lower() == ".json"):
        payload = result.to_payload()
        payload.update(narrative.to_payload())
        text = json.dumps(payload, indent=2, sort_keys=True)
    else:
        text = _format_report(result, narrative)

    if args.out is None:
        print(text)
    else:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(text + "\n", encoding="utf-8")
    return 0


def _format_report(result: AnalysisResult, narrative: Narrative) -> str:
    stats = result.stats
    lines = [
        f"format {result.format.value}",
        f"total_trades {stats.total_trades}",
        f"raw_executions {stats.total_raw_trades}",
        f"win_rate {stats.win_rate:.1f}",
        f"total_pnl {stats.total_pnl:.2f}",
        f"total_fees {stats.total_fees:.2f}",
        f"profit_factor {_format_float(stats.profit_factor)}",
        f"expectancy {_format_float(stats.expectancy)}",
        f"risk_reward {stats.risk_reward:.2f}",
        f"avg_holding_time {stats.avg_holding_time}",
        f"max_win_streak {stats.max_win_streak}",
        f"max_loss_streak {stats.max_loss_streak}",
        "",
        "symbol direction entry_qty entry_avg exit_avg pnl pnl_pct held closed_at",
    ]
    for group in result.groups:
        closed_at = datetime.fromtimestamp(group.closed_at / 1000, tz=timezone.utc).isoformat()
        lines.append(
            f"{group.symbol} {group.direction} {group.entry_qty:.6g} {group.entry_avg:.6g} "
            f"{group.exit_avg:.6g} {group.pnl:.2f} {group.pnl_percent:.2f} "
            f"{format_duration(group.holding_time).replace(' ', '')} {closed_at}"
        )

    if narrative.coach is not None:
        report = narrative.coach
        lines.extend(["", f"grade {report.grade} ({report.grade_label})", f"pattern {report.pattern}"])
        lines.extend(f"action {action}" for action in report.actions)
    elif narrative.analysis:
        lines.extend(["", narrative.analysis])
    return "\n".join(lines)


def _format_float(value: float | None) -> str:
    return "na" if value is None else f"{value:.6g}"


if __name__ == "__main__":
    raise SystemExit(main())
