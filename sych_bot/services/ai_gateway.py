from __future__ import annotations

import json
import logging
from datetime import datetime, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..engine.common import BufferEntry, CurrentTurn, ParsedReminder, Transcription, Utterance, truncate
from ..memory.storage.reminders import parse_reminder_time
from ..prompts.sych import build_respond_system_prompt, build_respond_user_prompt, prompt, schema_hint
from .gemini_client import GeminiClient

logger = logging.getLogger("sych_bot")


def resolve_timezone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown BOT_TIMEZONE %r, using UTC", name)
        return timezone.utc


class GeminiAIGateway:
    """Gemini-backed implementation of every model call the engine makes.

    Replies go to the main model (with the fallback model behind it); the
    classifiers and profile analyzers use the cheaper logic model. Structured
    answers are requested as JSON and anything unparseable becomes ``None``.
    """

    def __init__(
        self,
        client: GeminiClient,
        *,
        logic_model: str = "",
        tz: tzinfo = timezone.utc,
        search_enabled: bool = False,
    ) -> None:
        self.client = client
        self.logic_model = logic_model or client.model
        self.tz = tz
        self.search_enabled = search_enabled

    def _now(self) -> datetime:
        return datetime.now(self.tz)

    async def respond(
        self,
        history: list[Utterance],
        current_turn: CurrentTurn,
        attachment: bytes | None,
        mime_type: str | None,
        instruction: str,
        profile: dict[str, Any],
        is_ambient: bool,
    ) -> str:
        window = list(history)
        if window and window[-1].role == current_turn.sender and window[-1].text == current_turn.text:
            window = window[:-1]
        system = build_respond_system_prompt(
            now=self._now(),
            is_ambient=is_ambient,
            instruction=instruction,
            sender=current_turn.sender,
            profile=profile,
        )
        user = build_respond_user_prompt(
            (f"{item.role}: {item.text}" for item in window),
            sender=current_turn.sender,
            text=current_turn.text,
            reply_text=current_turn.reply_text,
            has_attachment=attachment is not None,
        )
        try:
            return await self.client.chat_with_fallback(
                [{"role": "system", "content": system}, {"role": "user", "content": user}],
                attachment=attachment,
                mime_type=mime_type,
                use_search=self.search_enabled,
            )
        except RuntimeError as exc:
            if "empty response" not in str(exc).lower():
                raise
            logger.warning("Gemini returned no text: %s", exc)
            return ""

    async def _logic_json(self, system: str, user: str, hint_key: str, **kwargs: Any) -> dict[str, Any] | None:
        return await self.client.json_chat(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            schema_hint(hint_key),
            model=kwargs.pop("model", self.logic_model),
            **kwargs,
        )

    async def classify_engage(self, history_text: str) -> bool:
        result = await self._logic_json(
            prompt("engage_system_prompt"),
            prompt("engage_user_template").format(history=history_text),
            "engage_schema_hint",
        )
        return bool(result and result.get("engage") is True)

    async def classify_reaction(self, context: str) -> str | None:
        result = await self._logic_json(
            prompt("reaction_system_prompt"),
            prompt("reaction_user_template").format(context=context),
            "reaction_schema_hint",
        )
        if not result:
            return None
        emoji = result.get("emoji")
        if not isinstance(emoji, str) or not emoji.strip() or emoji.strip().lower() == "null":
            return None
        return emoji.strip()

    async def parse_reminder(self, text: str, reply_context: str) -> ParsedReminder | None:
        now = self._now()
        result = await self._logic_json(
            prompt("reminder_system_prompt").format(now=now.isoformat(timespec="minutes"), timezone=str(self.tz)),
            prompt("reminder_user_template").format(text=text, reply_context=reply_context or "-"),
            "reminder_schema_hint",
        )
        if not result:
            return None
        fire_at = parse_reminder_time(result.get("target_time"))
        if fire_at is None:
            return None
        reminder_text = str(result.get("reminder_text") or text).strip()
        confirmation = str(result.get("confirmation") or "").strip()
        if not confirmation:
            confirmation = f"⏰ {fire_at.astimezone(self.tz).strftime('%Y-%m-%d %H:%M')}: {reminder_text}"
        return ParsedReminder(fire_at=fire_at, confirmation=confirmation, text=reminder_text)

    async def transcribe(self, data: bytes, speaker_label: str, mime_type: str) -> Transcription | None:
        result = await self._logic_json(
            prompt("transcribe_system_prompt").format(speaker=speaker_label),
            prompt("transcribe_user_template"),
            "transcribe_schema_hint",
            model=self.client.model,
            attachment=data,
            mime_type=mime_type,
            max_output_tokens=4000,
        )
        if not result:
            return None
        text = str(result.get("text") or "").strip()
        if not text:
            return None
        return Transcription(text=text, summary=str(result.get("summary") or "").strip())

    async def batch_analyze(
        self,
        buffer: list[BufferEntry],
        current_profiles: dict[str, dict[str, Any]],
    ) -> dict[str, dict[str, Any]] | None:
        messages = "\n".join(f"[{entry.user_id}] {entry.name}: {entry.text}" for entry in buffer)
        result = await self._logic_json(
            prompt("batch_system_prompt"),
            prompt("batch_user_template").format(
                profiles=json.dumps(current_profiles, ensure_ascii=False),
                messages=messages,
            ),
            "batch_schema_hint",
            max_output_tokens=2000,
        )
        if not result:
            return None
        updates = {str(user_id): delta for user_id, delta in result.items() if isinstance(delta, dict)}
        return updates or None

    async def analyze_immediate(self, recent_context: str, profile: dict[str, Any]) -> dict[str, Any] | None:
        return await self._logic_json(
            prompt("immediate_system_prompt"),
            prompt("immediate_user_template").format(
                profile=json.dumps(profile, ensure_ascii=False),
                context=recent_context,
            ),
            "immediate_schema_hint",
        )

    async def flavor_text(self, task: str, result: str) -> str:
        return await self.client.chat_with_fallback(
            [
                {"role": "system", "content": prompt("flavor_system_prompt")},
                {"role": "user", "content": prompt("flavor_user_template").format(task=task, result=result)},
            ],
            temperature=1.0,
            max_output_tokens=300,
        )

    async def describe_profile(self, profile: dict[str, Any], target_name: str) -> str:
        notes = json.dumps(profile, ensure_ascii=False, indent=2)
        return await self.client.chat_with_fallback(
            [
                {"role": "system", "content": prompt("describe_system_prompt")},
                {
                    "role": "user",
                    "content": prompt("describe_user_template").format(target=target_name, profile=truncate(notes, 3000)),
                },
            ],
        )
