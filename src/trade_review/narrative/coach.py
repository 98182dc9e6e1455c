from __future__ import annotations

import http.client
import json
import re
import sys
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from trade_review.config.app_config import CoachSettings
from trade_review.metrics.summary import StatisticsSnapshot
from trade_review.models import PositionGroup
from trade_review.narrative.prompt import (
    DEFAULT_RECENT_TRADES,
    DEFAULT_TOP_SYMBOLS,
    build_coach_prompt,
    build_stats_prompt,
)

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_API_VERSION = "2023-06-01"
DEFAULT_TIMEOUT_SECONDS = 25.0
DEFAULT_MAX_TOKENS = 1200
DEFAULT_RETRY_ATTEMPTS = 1
DEFAULT_RETRY_BACKOFF_SECONDS = 0.75

_FENCE = re.compile(r"```(?:json)?\s*")

# Connection drops and short or garbled bodies surface here, not as URLError.
_RETRYABLE_ERRORS = (
    urllib.error.URLError,
    http.client.HTTPException,
    OSError,
    json.JSONDecodeError,
    UnicodeDecodeError,
    RuntimeError,
)


class Score(BaseModel):
    value: int = Field(ge=0, le=100)
    label: str


class Scores(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    discipline: Score
    risk_management: Score = Field(alias="riskManagement")
    execution: Score
    consistency: Score


class Highlight(BaseModel):
    icon: str
    title: str
    detail: str


class Mistake(Highlight):
    severity: Literal["high", "medium", "low"]


class CoachReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    grade: str
    grade_label: str = Field(alias="gradeLabel")
    scores: Scores
    strengths: list[Highlight] = Field(min_length=2, max_length=3)
    mistakes: list[Mistake] = Field(min_length=2, max_length=3)
    actions: list[str] = Field(min_length=3, max_length=3)
    pattern: str


@dataclass(frozen=True)
class CoachConfig:
    api_key: str
    api_url: str
    model: str
    api_version: str
    timeout_seconds: float
    max_tokens: int
    retry_attempts: int
    retry_backoff_seconds: float

    @classmethod
    def from_env(
        cls, env: Mapping[str, str], settings: CoachSettings | None = None
    ) -> "CoachConfig | None":
        api_key = env.get("ANTHROPIC_API_KEY", "").strip()
        if not api_key:
            return None
        if settings is None:
            return cls(
                api_key=api_key,
                api_url=DEFAULT_API_URL,
                model=DEFAULT_MODEL,
                api_version=DEFAULT_API_VERSION,
                timeout_seconds=DEFAULT_TIMEOUT_SECONDS,
                max_tokens=DEFAULT_MAX_TOKENS,
                retry_attempts=DEFAULT_RETRY_ATTEMPTS,
                retry_backoff_seconds=DEFAULT_RETRY_BACKOFF_SECONDS,
            )
        if not settings.enabled:
            return None
        return cls(
            api_key=api_key,
            api_url=settings.api_url,
            model=settings.model,
            api_version=settings.api_version,
            timeout_seconds=settings.timeout_seconds,
            max_tokens=settings.max_tokens,
            retry_attempts=settings.retry_attempts,
            retry_backoff_seconds=settings.retry_backoff_seconds,
        )


@dataclass(frozen=True)
class Narrative:
    analysis: str = ""
    coach: CoachReport | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "analysis": self.analysis,
            "coachData": self.coach.model_dump(by_alias=True) if self.coach else None,
        }


class CoachClient:
    def __init__(self, config: CoachConfig) -> None:
        self._config = config

    @property
    def timeout_seconds(self) -> float:
        return self._config.timeout_seconds

    def complete(self, prompt: str) -> str:
        payload = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        response = self._post(payload)
        content = response.get("content") if isinstance(response, Mapping) else None
        if isinstance(content, list) and content and isinstance(content[0], Mapping):
            return str(content[0].get("text") or "")
        return ""

    def _post(self, payload: Mapping[str, Any]) -> Any:
        body = json.dumps(payload).encode("utf-8")
        last_error: Exception | None = None
        attempts = max(1, self._config.retry_attempts)
        for attempt in range(attempts):
            try:
                request = urllib.request.Request(
                    self._config.api_url,
                    method="POST",
                    data=body,
                    headers={
                        "Content-Type": "application/json",
                        "x-api-key": self._config.api_key,
                        "anthropic-version": self._config.api_version,
                    },
                )
                with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
                    raw = response.read()
                if not raw:
                    raise RuntimeError("Empty response body from coach endpoint")
                return json.loads(raw.decode("utf-8"))
            except _RETRYABLE_ERRORS as exc:
                last_error = exc
                if attempt >= attempts - 1:
                    break
                time.sleep(self._config.retry_backoff_seconds * (2**attempt))
        raise RuntimeError(f"Coach request failed: {last_error}") from last_error


def parse_coach_response(text: str) -> CoachReport | None:
    cleaned = _FENCE.sub("", text or "").strip()
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last > first:
        cleaned = cleaned[first : last + 1]
    try:
        return CoachReport.model_validate_json(cleaned)
    except ValidationError:
        return None


def generate_narrative(
    stats: StatisticsSnapshot,
    groups: Sequence[PositionGroup],
    client: CoachClient | None,
    *,
    top_symbols: int = DEFAULT_TOP_SYMBOLS,
    recent_trades: int = DEFAULT_RECENT_TRADES,
) -> Narrative:
    """Ask the coach for a report; any failure degrades to an empty narrative."""
    if client is None:
        return Narrative()
    stats_text = build_stats_prompt(stats, groups, top_symbols=top_symbols, recent_trades=recent_trades)
    try:
        text = client.complete(build_coach_prompt(stats_text))
    except RuntimeError as exc:
        print(f"Coach narrative unavailable: {exc}", file=sys.stderr)
        return Narrative()
    if not text:
        return Narrative()
    report = parse_coach_response(text)
    if report is None:
        print(f"Coach JSON parse failed, returning raw text: {text[:200]!r}", file=sys.stderr)
        return Narrative(analysis=text)
    return Narrative(coach=report)
