from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from jinja2 import Undefined
from pydantic import BaseModel, ConfigDict, Field

from trade_review.analysis import AnalysisResult, analyze_text
from trade_review.config.app_config import AppConfig, load_app_config, load_dotenv
from trade_review.errors import TradeAnalysisError
from trade_review.ingest.formats import SUPPORTED_FORMAT_HINTS
from trade_review.narrative.coach import CoachClient, CoachConfig, Narrative, generate_narrative
from trade_review.pricing.candles import (
    INTERVAL_MS,
    CachedCandleSource,
    CandleCache,
    CandleSource,
    HyperliquidCandleClient,
    HyperliquidCandleConfig,
    candle_window,
)

APP_ROOT = Path(__file__).resolve().parent
TEMPLATES = Jinja2Templates(directory=str(APP_ROOT / "templates"))

# Extra wall-clock allowance on top of the coach's own HTTP timeout.
_NARRATIVE_GRACE_SECONDS = 5.0


class TradeAnalysisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    raw_text: str = Field(default="", alias="rawText")


def create_app(
    config: AppConfig | None = None,
    *,
    coach_client: CoachClient | None = None,
    candle_source: CandleSource | None = None,
    env: dict[str, str] | None = None,
) -> FastAPI:
    app_config = config or load_app_config()
    if env is None:
        env = {**load_dotenv(app_config.app.env_path), **os.environ}
    if coach_client is None:
        coach_config = CoachConfig.from_env(env, app_config.coach)
        coach_client = CoachClient(coach_config) if coach_config else None
    if candle_source is None:
        candle_source = CachedCandleSource(
            HyperliquidCandleClient(HyperliquidCandleConfig.from_settings(app_config.market_data)),
            CandleCache(app_config.market_data.cache_ttl_seconds),
        )

    app = FastAPI(title="Trade Review")
    app.state.config = app_config
    app.state.coach_client = coach_client
    app.state.candle_source = candle_source

    @app.get("/", response_class=HTMLResponse)
    def upload_page(request: Request) -> HTMLResponse:
        context = {
            "page": "journal",
            "format_hints": SUPPORTED_FORMAT_HINTS,
            "max_upload_bytes": app_config.app.max_upload_bytes,
            "coach_enabled": request.app.state.coach_client is not None,
        }
        return TEMPLATES.TemplateResponse(request, "journal.html", context)

    @app.post("/api/trade-analysis")
    async def trade_analysis_api(request: Request, body: TradeAnalysisRequest) -> dict[str, Any]:
        state = request.app.state
        try:
            result = analyze_text(
                body.raw_text,
                max_bytes=state.config.app.max_upload_bytes,
                curve_max_points=state.config.analytics.curve_max_points,
            )
        except TradeAnalysisError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        if result.skipped_rows:
            print(f"Skipped {result.skipped_rows} rows during normalization.", file=sys.stderr)
        narrative = await _narrative_for(result, state.coach_client, state.config)
        payload = result.to_payload()
        payload.update(narrative.to_payload())
        return payload

    @app.get("/api/candles")
    def candles_api(request: Request) -> dict[str, Any]:
        params = request.query_params
        symbol = (params.get("symbol") or "").strip().upper()
        start = _int_param(params.get("start"))
        end = _int_param(params.get("end"))
        interval = params.get("interval") or request.app.state.config.market_data.default_interval
        context_ms = _int_param(params.get("context"))
        if not symbol or not start or not end:
            raise HTTPException(status_code=400, detail="Missing symbol, start, or end")
        if interval not in INTERVAL_MS:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid interval: {interval}. Use {', '.join(INTERVAL_MS)}",
            )

        padded_start, padded_end = candle_window(start, end, interval, context_ms)
        try:
            candles = request.app.state.candle_source.fetch_candles(symbol, padded_start, padded_end, interval)
        except RuntimeError as exc:
            print(f"Candle fetch failed for {symbol}: {exc}", file=sys.stderr)
            candles = []
        if not candles:
            raise HTTPException(
                status_code=404,
                detail=f"No candle data found for {symbol}. This token may not have historical data available.",
            )
        return {
            "candles": [candle.to_payload() for candle in candles],
            "symbol": symbol,
            "interval": interval,
            "count": len(candles),
        }

    return app


async def _narrative_for(
    result: AnalysisResult,
    client: CoachClient | None,
    config: AppConfig,
) -> Narrative:
    if client is None:
        return Narrative()
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(
                generate_narrative,
                result.stats,
                result.groups,
                client,
                top_symbols=config.analytics.top_symbols,
                recent_trades=config.analytics.recent_trades,
            ),
            timeout=client.timeout_seconds + _NARRATIVE_GRACE_SECONDS,
        )
    except asyncio.TimeoutError:
        print("Coach narrative timed out; returning statistics only.", file=sys.stderr)
        return Narrative()
    except Exception as exc:
        print(f"Coach narrative failed ({exc!r}); returning statistics only.", file=sys.stderr)
        return Narrative()


def _int_param(value: str | None) -> int:
    if value in (None, ""):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def megabytes_filter(value: int | None) -> str:
    if value is None or isinstance(value, Undefined):
        return "n/a"
    return f"{value / (1024 * 1024):.0f} MB"


TEMPLATES.env.filters.update(
    {
        "megabytes": megabytes_filter,
    }
)


app = create_app()


def main() -> None:
    import uvicorn

    app_config = load_app_config()
    uvicorn.run(
        "trade_review.web.app:app",
        host=app_config.app.host,
        port=app_config.app.port,
        reload=app_config.app.reload,
    )


if __name__ == "__main__":
    main()
