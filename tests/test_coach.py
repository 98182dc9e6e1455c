from __future__ import annotations

import json

import pytest

from conftest import make_group
from trade_review.config.app_config import load_app_config
from trade_review.metrics.summary import compute_statistics
from trade_review.narrative.coach import CoachConfig, Narrative, generate_narrative, parse_coach_response
from trade_review.narrative.prompt import build_coach_prompt, build_stats_prompt

REPORT = {
    "grade": "B",
    "gradeLabel": "Solid but impatient",
    "scores": {
        "discipline": {"value": 45, "label": "Overtrading"},
        "riskManagement": {"value": 72, "label": "Good R:R ratio"},
        "execution": {"value": 58, "label": "Exits too early"},
        "consistency": {"value": 35, "label": "Erratic sizing"},
    },
    "strengths": [
        {"icon": "trophy", "title": "Good R:R", "detail": "1.42 avg win/loss"},
        {"icon": "target", "title": "BTC edge", "detail": "BTC +$200 profit"},
    ],
    "mistakes": [
        {"icon": "alert", "title": "Overtrading", "detail": "40 trades in a day", "severity": "high"},
        {"icon": "clock", "title": "No patience", "detail": "ETH held 50s", "severity": "medium"},
    ],
    "actions": ["Max 20 trades a month", "Hold winners 1h minimum", "Drop ETH scalps"],
    "pattern": "Cuts winners early after losing streaks.",
}


class StubClient:
    timeout_seconds = 1.0

    def __init__(self, reply: str | Exception) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


@pytest.fixture
def stats_and_groups():
    groups = [make_group(-10.0), make_group(25.0, symbol="ETH", direction="short")]
    return compute_statistics(groups), groups


def test_parse_fenced_json_response() -> None:
    text = f"Here you go:\n```json\n{json.dumps(REPORT)}\n```"
    report = parse_coach_response(text)

    assert report is not None
    assert report.grade == "B"
    assert report.scores.risk_management.value == 72
    assert report.model_dump(by_alias=True)["gradeLabel"] == "Solid but impatient"


@pytest.mark.parametrize(
    "text",
    [
        "",
        "Your trading looks fine.",
        json.dumps({**REPORT, "actions": ["only one"]}),
        json.dumps({**REPORT, "scores": {**REPORT["scores"], "discipline": {"value": 140, "label": "x"}}}),
    ],
)
def test_invalid_responses_are_rejected(text: str) -> None:
    assert parse_coach_response(text) is None


def test_stats_prompt_lists_sections_and_recent_trades(stats_and_groups) -> None:
    stats, groups = stats_and_groups
    text = build_stats_prompt(stats, groups, top_symbols=1, recent_trades=1)

    for heading in (
        "TRADING PERFORMANCE SUMMARY:",
        "TOP SYMBOLS:",
        "HOLDING TIME ANALYSIS:",
        "SESSION PERFORMANCE:",
        "DAY OF WEEK:",
        "LONG vs SHORT:",
        "STREAKS & TILT:",
        "RECENT TRADES (last 1):",
    ):
        assert heading in text
    assert "ETH SHORT" in text
    assert "BTC LONG" not in text
    prompt = build_coach_prompt(text)
    assert prompt.startswith("You are a professional crypto trading coach.")
    assert prompt.endswith("Return ONLY the JSON object, nothing else")


def test_generate_narrative_returns_structured_report(stats_and_groups) -> None:
    stats, groups = stats_and_groups
    client = StubClient(json.dumps(REPORT))
    narrative = generate_narrative(stats, groups, client)

    assert narrative.coach is not None
    assert narrative.analysis == ""
    assert narrative.to_payload()["coachData"]["scores"]["riskManagement"]["value"] == 72
    assert "TRADING PERFORMANCE SUMMARY:" in client.prompts[0]


def test_generate_narrative_keeps_free_text(stats_and_groups) -> None:
    stats, groups = stats_and_groups
    narrative = generate_narrative(stats, groups, StubClient("Trade less, hold longer."))
    assert narrative == Narrative(analysis="Trade less, hold longer.")


def test_generate_narrative_degrades_on_client_failure(stats_and_groups, capsys) -> None:
    stats, groups = stats_and_groups
    narrative = generate_narrative(stats, groups, StubClient(RuntimeError("Coach request failed: 529")))

    assert narrative.to_payload() == {"analysis": "", "coachData": None}
    assert "Coach narrative unavailable" in capsys.readouterr().err


def test_generate_narrative_without_client(stats_and_groups) -> None:
    stats, groups = stats_and_groups
    assert generate_narrative(stats, groups, None) == Narrative()


def test_coach_config_needs_api_key(tmp_path) -> None:
    settings = load_app_config(tmp_path / "missing.toml").coach
    assert CoachConfig.from_env({}, settings) is None
    assert CoachConfig.from_env({"ANTHROPIC_API_KEY": "  "}, settings) is None

    config = CoachConfig.from_env({"ANTHROPIC_API_KEY": "sk-test"}, settings)
    assert config is not None
    assert config.model == settings.model
    assert config.timeout_seconds == settings.timeout_seconds


def test_coach_config_respects_disabled_flag(tmp_path) -> None:
    config_path = tmp_path / "app.toml"
    config_path.write_text("[coach]\nenabled = false\n", encoding="utf-8")
    settings = load_app_config(config_path).coach
    assert CoachConfig.from_env({"ANTHROPIC_API_KEY": "sk-test"}, settings) is None
