from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib


@dataclass(frozen=True)
class AppSettings:
    host: str
    port: int
    reload: bool
    env_path: Path
    max_upload_bytes: int


@dataclass(frozen=True)
class CoachSettings:
    enabled: bool
    api_url: str
    model: str
    api_version: str
    timeout_seconds: float
    max_tokens: int
    retry_attempts: int
    retry_backoff_seconds: float


@dataclass(frozen=True)
class MarketDataSettings:
    info_url: str
    default_interval: str
    timeout_seconds: float
    retry_attempts: int
    retry_backoff_seconds: float
    cache_ttl_seconds: float


@dataclass(frozen=True)
class AnalyticsSettings:
    top_symbols: int
    recent_trades: int
    curve_max_points: int


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    coach: CoachSettings
    market_data: MarketDataSettings
    analytics: AnalyticsSettings


def load_app_config(path: Path | None = None) -> AppConfig:
    config_path = path or Path("config/app.toml")
    raw: Mapping[str, Any] = {}
    if config_path.exists():
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))

    app_raw = _section(raw, "app")
    coach_raw = _section(raw, "coach")
    market_raw = _section(raw, "market_data")
    analytics_raw = _section(raw, "analytics")

    app = AppSettings(
        host=str(app_raw.get("host", "127.0.0.1")),
        port=int(app_raw.get("port", 8000)),
        reload=bool(app_raw.get("reload", False)),
        env_path=Path(app_raw.get("env_path", ".env")),
        max_upload_bytes=_positive_int(app_raw.get("max_upload_bytes"), 10 * 1024 * 1024),
    )

    coach = CoachSettings(
        enabled=bool(coach_raw.get("enabled", True)),
        api_url=str(coach_raw.get("api_url", "https://api.anthropic.com/v1/messages")),
        model=str(coach_raw.get("model", "claude-sonnet-4-20250514")),
        api_version=str(coach_raw.get("api_version", "2023-06-01")),
        timeout_seconds=float(coach_raw.get("timeout_seconds", 25.0)),
        max_tokens=int(coach_raw.get("max_tokens", 1200)),
        retry_attempts=int(coach_raw.get("retry_attempts", 1)),
        retry_backoff_seconds=float(coach_raw.get("retry_backoff_seconds", 0.75)),
    )

    market_data = MarketDataSettings(
        info_url=str(market_raw.get("info_url", "https://api.hyperliquid.xyz/info")),
        default_interval=str(market_raw.get("default_interval", "1h")),
        timeout_seconds=float(market_raw.get("timeout_seconds", 30.0)),
        retry_attempts=int(market_raw.get("retry_attempts", 3)),
        retry_backoff_seconds=float(market_raw.get("retry_backoff_seconds", 0.75)),
        cache_ttl_seconds=float(market_raw.get("cache_ttl_seconds", 60.0)),
    )

    analytics = AnalyticsSettings(
        top_symbols=_positive_int(analytics_raw.get("top_symbols"), 12),
        recent_trades=_positive_int(analytics_raw.get("recent_trades"), 15),
        curve_max_points=_positive_int(analytics_raw.get("curve_max_points"), 100),
    )

    return AppConfig(app=app, coach=coach, market_data=market_data, analytics=analytics)


def load_dotenv(path: Path) -> dict[str, str]:
    env: dict[str, str] = {}
    if not path.exists():
        return env

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export ") :]
        if "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        env[key.strip()] = value.strip().strip('"').strip("'")
    return env


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if isinstance(value, Mapping):
        return value
    return {}


def _positive_int(value: Any, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default
