from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()

_PLACEHOLDERS = {"put_your_discord_bot_token_here", "put_your_gemini_api_key_here", "changeme"}


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = (_env_lookup(name) or "").strip()
    if not raw:
        return default
    items = tuple(chunk.strip() for chunk in raw.split(",") if chunk.strip())
    return items or default


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _collect_gemini_keys() -> tuple[str, ...]:
    """GOOGLE_GEMINI_API_KEY, then GOOGLE_GEMINI_API_KEY_2, _3, ... until the first gap."""
    keys: list[str] = []
    primary = _env_str("GOOGLE_GEMINI_API_KEY", "", aliases=("GEMINI_API_KEY",))
    if primary:
        keys.append(primary)
    index = 2
    while True:
        extra = _env_str(f"GOOGLE_GEMINI_API_KEY_{index}", "")
        if not extra:
            break
        keys.append(extra)
        index += 1
    return tuple(keys)


@dataclass(slots=True)
class Settings:
    discord_token: str
    admin_user_id: str
    gemini_api_keys: tuple[str, ...]

    command_prefix: str = "/"
    discord_message_content_intent: bool = True
    discord_members_intent: bool = True

    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    gemini_model: str = "gemini-2.5-flash"
    gemini_fallback_model: str = "gemini-2.5-flash-lite"
    gemini_logic_model: str = "gemma-3-27b-it"
    gemini_timeout_seconds: int = 90
    gemini_temperature: float = 0.9
    gemini_search_enabled: bool = True

    data_dir: Path = field(default_factory=lambda: Path("./data"))
    context_size: int = 30
    analysis_buffer_size: int = 20
    trigger_words: tuple[str, ...] = ("сыч", "sych")
    ambient_engage_probability: float = 0.01
    reaction_probability: float = 0.07
    ambient_min_length: int = 10
    presence_interval_seconds: float = 4.0
    presence_timeout_seconds: float = 20.0
    reminder_poll_seconds: float = 60.0
    store_debounce_seconds: float = 5.0
    max_reply_chars: int = 8500
    # Discord rejects messages above 2000 characters.
    reply_chunk_chars: int = 1900
    max_media_bytes: int = 20 * 1024 * 1024
    max_message_age_seconds: int = 120
    bot_timezone: str = "Europe/Moscow"
    restart_command: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            discord_token=_clean_token(_env_lookup("DISCORD_TOKEN") or ""),
            admin_user_id=_env_str("ADMIN_USER_ID", ""),
            gemini_api_keys=_collect_gemini_keys(),
            command_prefix=_env_str("DISCORD_COMMAND_PREFIX", "/"),
            discord_message_content_intent=_env_bool("DISCORD_MESSAGE_CONTENT_INTENT", True),
            discord_members_intent=_env_bool("DISCORD_MEMBERS_INTENT", True),
            gemini_base_url=_env_str("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"),
            gemini_model=_env_str("GEMINI_MODEL", "gemini-2.5-flash"),
            gemini_fallback_model=_env_str("GEMINI_FALLBACK_MODEL", "gemini-2.5-flash-lite"),
            gemini_logic_model=_env_str("GEMINI_LOGIC_MODEL", "gemma-3-27b-it"),
            gemini_timeout_seconds=_env_int("GEMINI_TIMEOUT_SECONDS", 90),
            gemini_temperature=_env_float("GEMINI_TEMPERATURE", 0.9),
            gemini_search_enabled=_env_bool("GEMINI_SEARCH_ENABLED", True),
            data_dir=Path(_env_str("DATA_DIR", "./data")).expanduser(),
            context_size=_env_int("CONTEXT_SIZE", 30),
            analysis_buffer_size=_env_int("ANALYSIS_BUFFER_SIZE", 20),
            trigger_words=_env_list("TRIGGER_WORDS", ("сыч", "sych")),
            ambient_engage_probability=_env_float("AMBIENT_ENGAGE_PROBABILITY", 0.01),
            reaction_probability=_env_float("REACTION_PROBABILITY", 0.07),
            ambient_min_length=_env_int("AMBIENT_MIN_LENGTH", 10),
            presence_interval_seconds=_env_float("PRESENCE_INTERVAL_SECONDS", 4.0),
            presence_timeout_seconds=_env_float("PRESENCE_TIMEOUT_SECONDS", 20.0),
            reminder_poll_seconds=_env_float("REMINDER_POLL_SECONDS", 60.0),
            store_debounce_seconds=_env_float("STORE_DEBOUNCE_SECONDS", 5.0),
            max_reply_chars=_env_int("MAX_REPLY_CHARS", 8500),
            reply_chunk_chars=_env_int("REPLY_CHUNK_CHARS", 1900),
            max_media_bytes=_env_int("MAX_MEDIA_BYTES", 20 * 1024 * 1024),
            max_message_age_seconds=_env_int("MAX_MESSAGE_AGE_SECONDS", 120),
            bot_timezone=_env_str("BOT_TIMEZONE", "Europe/Moscow"),
            restart_command=_env_str("RESTART_COMMAND", ""),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required")
        if self.discord_token in _PLACEHOLDERS:
            raise ValueError("DISCORD_TOKEN is still placeholder")
        if not self.command_prefix.strip():
            raise ValueError("DISCORD_COMMAND_PREFIX cannot be empty")
        if not self.admin_user_id.isdigit():
            raise ValueError("ADMIN_USER_ID must be a numeric Discord user id")

        if not self.gemini_api_keys:
            raise ValueError("GOOGLE_GEMINI_API_KEY is required")
        if any(key in _PLACEHOLDERS for key in self.gemini_api_keys):
            raise ValueError("GOOGLE_GEMINI_API_KEY is still placeholder")
        if self.gemini_timeout_seconds < 10:
            raise ValueError("GEMINI_TIMEOUT_SECONDS must be >= 10")
        if not self.gemini_model.strip():
            raise ValueError("GEMINI_MODEL cannot be empty")

        if self.context_size < 1:
            raise ValueError("CONTEXT_SIZE must be >= 1")
        if self.analysis_buffer_size < 1:
            raise ValueError("ANALYSIS_BUFFER_SIZE must be >= 1")
        if not self.trigger_words:
            raise ValueError("TRIGGER_WORDS cannot be empty")
        for name, value in (
            ("AMBIENT_ENGAGE_PROBABILITY", self.ambient_engage_probability),
            ("REACTION_PROBABILITY", self.reaction_probability),
        ):
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must be in [0, 1]")
        if self.presence_interval_seconds <= 0 or self.presence_timeout_seconds <= 0:
            raise ValueError("PRESENCE_INTERVAL_SECONDS and PRESENCE_TIMEOUT_SECONDS must be > 0")
        if self.reminder_poll_seconds < 1:
            raise ValueError("REMINDER_POLL_SECONDS must be >= 1")
        if self.store_debounce_seconds < 0:
            raise ValueError("STORE_DEBOUNCE_SECONDS must be >= 0")
        if self.max_reply_chars < 100:
            raise ValueError("MAX_REPLY_CHARS must be >= 100")
        if not (1 <= self.reply_chunk_chars <= 2000):
            raise ValueError("REPLY_CHUNK_CHARS must be in [1, 2000]")
        if self.max_media_bytes < 1:
            raise ValueError("MAX_MEDIA_BYTES must be >= 1")
        if self.max_message_age_seconds < 1:
            raise ValueError("MAX_MESSAGE_AGE_SECONDS must be >= 1")
