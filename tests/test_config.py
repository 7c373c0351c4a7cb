from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sych_bot.config import Settings  # noqa: E402

_KEY_VARS = (
    "GOOGLE_GEMINI_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_GEMINI_API_KEY_2",
    "GOOGLE_GEMINI_API_KEY_3",
    "GOOGLE_GEMINI_API_KEY_4",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in (*_KEY_VARS, "DISCORD_TOKEN", "ADMIN_USER_ID", "REPLY_CHUNK_CHARS", "TRIGGER_WORDS", "DATA_DIR"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_gemini_keys_are_collected_until_the_first_gap(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("GOOGLE_GEMINI_API_KEY", "first")
    clean_env.setenv("GOOGLE_GEMINI_API_KEY_2", "second")
    clean_env.setenv("GOOGLE_GEMINI_API_KEY_4", "orphan")

    settings = Settings.from_env()

    assert settings.gemini_api_keys == ("first", "second")


def test_defaults_follow_the_documented_constants(clean_env: pytest.MonkeyPatch) -> None:
    settings = Settings.from_env()

    assert settings.context_size == 30
    assert settings.analysis_buffer_size == 20
    assert settings.ambient_engage_probability == 0.01
    assert settings.reaction_probability == 0.07
    assert settings.max_reply_chars == 8500
    assert settings.reply_chunk_chars == 1900
    assert settings.max_media_bytes == 20 * 1024 * 1024
    assert settings.trigger_words == ("сыч", "sych")


def test_token_is_cleaned_and_lists_are_parsed(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("DISCORD_TOKEN", ' Bot "abc.def" ')
    clean_env.setenv("TRIGGER_WORDS", "owl, филин ,")

    settings = Settings.from_env()

    assert settings.discord_token == "abc.def"
    assert settings.trigger_words == ("owl", "филин")


def test_validate_accepts_a_complete_configuration(tmp_path: Path) -> None:
    Settings(discord_token="abc", admin_user_id="123", gemini_api_keys=("k",), data_dir=tmp_path).validate()


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"discord_token": ""}, "DISCORD_TOKEN is required"),
        ({"admin_user_id": "boss"}, "ADMIN_USER_ID"),
        ({"gemini_api_keys": ()}, "GOOGLE_GEMINI_API_KEY is required"),
        ({"reply_chunk_chars": 2500}, "REPLY_CHUNK_CHARS"),
        ({"reaction_probability": 1.5}, "REACTION_PROBABILITY"),
        ({"trigger_words": ()}, "TRIGGER_WORDS"),
    ],
)
def test_validate_rejects_broken_values(tmp_path: Path, overrides: dict, message: str) -> None:
    options = {"discord_token": "abc", "admin_user_id": "123", "gemini_api_keys": ("k",), "data_dir": tmp_path}
    options.update(overrides)

    with pytest.raises(ValueError, match=message):
        Settings(**options).validate()
