from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sych_bot.prompts.phrases import failure_phrases, phrase  # noqa: E402
from sych_bot.prompts.sych import prompt, schema_hint  # noqa: E402


def test_json_file_overrides_single_phrases(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "phrases.json").write_text(
        json.dumps({"mute_on": "Shh.", "ai_failure": {"overload": ["Servers are toast."]}}, ensure_ascii=False),
        encoding="utf-8",
    )
    monkeypatch.setenv("SYCH_PROMPTS_DIR", str(tmp_path))

    assert phrase("mute_on") == "Shh."
    assert phrase("mute_off") == "🦉 I'm back"
    assert failure_phrases("overload") == ["Servers are toast."]
    assert len(failure_phrases("rate_limit")) == 3


def test_broken_override_falls_back_to_defaults(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    (tmp_path / "sych.json").write_text("{oops", encoding="utf-8")
    monkeypatch.setenv("SYCH_PROMPTS_DIR", str(tmp_path))

    with caplog.at_level(logging.WARNING, logger="sych_bot.prompts"):
        text = prompt("flavor_user_template")

    assert text == "Task: {task}\nResult: {result}"
    assert json.loads(schema_hint("engage_schema_hint")) == {"engage": "boolean"}
    assert "Failed to parse prompt JSON" in caplog.text


def test_phrase_values_are_substituted() -> None:
    text = phrase("reminder_message", username="@petya", text="stretch")
    assert text == "⏰ @petya, reminder!\n\nstretch"
