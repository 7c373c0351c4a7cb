from __future__ import annotations

import asyncio
import logging
import random
import re
from typing import Awaitable, Callable

from ..prompts.phrases import failure_phrases, phrase
from .ports import ChatGateway

logger = logging.getLogger("sych_bot")

MAX_REPLY_CHARS = 8500
REPLY_CHUNK_CHARS = 4000

# First match wins, so a message mentioning both "safety" and "429" is a policy failure.
FAILURE_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("content_policy", ("prohibited", "safety", "blocked", "policy")),
    ("overload", ("503", "overloaded", "unavailable", "timeout")),
    ("rate_limit", ("429", "quota", "exhausted", "лимит")),
    ("payload_too_large", ("400", "too large", "invalid argument")),
)
UNKNOWN_FAILURE = "unknown"

_HEADING_RE = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*|__(.+?)__", re.DOTALL)
_BULLET_RE = re.compile(r"^([ \t]*)[*-][ \t]+", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")

AlertSink = Callable[[str], Awaitable[object]]


def classify_failure(error_text: str) -> str:
    lowered = (error_text or "").lower()
    for category, needles in FAILURE_RULES:
        if any(needle in lowered for needle in needles):
            return category
    return UNKNOWN_FAILURE


def failure_reply(error_text: str, rng: random.Random | None = None) -> str:
    category = classify_failure(error_text)
    options = failure_phrases(category)
    if not options:
        return "..."
    return (rng or random).choice(options)


def format_reply(text: str) -> str:
    """Structural normalization into the chat's light markdown dialect."""
    out = _HEADING_RE.sub(lambda m: f"\n*{m.group(1).upper()}*", text)
    out = _BOLD_RE.sub(lambda m: f"*{m.group(1) or m.group(2)}*", out)
    out = _BULLET_RE.sub(r"\1• ", out)
    out = _BLANK_RUN_RE.sub("\n\n", out)
    return out.strip()


def limit_reply(text: str, max_chars: int = MAX_REPLY_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + phrase("truncation_notice")


def split_chunks(text: str, size: int = REPLY_CHUNK_CHARS) -> list[str]:
    size = max(1, int(size))
    if not text:
        return []
    return [text[index : index + size] for index in range(0, len(text), size)]


class ResponseDispatcher:
    """Sends a reply in ordered chunks and falls back to the raw text when formatting is rejected."""

    def __init__(
        self,
        chat: ChatGateway,
        *,
        alert: AlertSink | None = None,
        max_chars: int = MAX_REPLY_CHARS,
        chunk_chars: int = REPLY_CHUNK_CHARS,
    ) -> None:
        self.chat = chat
        self.alert = alert
        self.max_chars = max_chars
        self.chunk_chars = chunk_chars
        self._alert_tasks: set[asyncio.Task[None]] = set()

    async def _send_chunks(
        self,
        chat_id: str,
        chunks: list[str],
        *,
        thread_id: str | None,
        reply_to: str | None,
        markdown: bool,
    ) -> None:
        for chunk in chunks:
            await self.chat.send_text(chat_id, chunk, thread_id=thread_id, reply_to=reply_to, markdown=markdown)

    async def send(
        self,
        chat_id: str,
        text: str,
        *,
        thread_id: str | None = None,
        reply_to: str | None = None,
        chat_title: str = "",
    ) -> bool:
        if not text:
            return False
        formatted = limit_reply(format_reply(text), self.max_chars)
        try:
            await self._send_chunks(
                chat_id,
                split_chunks(formatted, self.chunk_chars),
                thread_id=thread_id,
                reply_to=reply_to,
                markdown=True,
            )
            return True
        except Exception as exc:
            logger.warning("[send] formatted reply failed in %s: %s", chat_id, exc)
            self.emit_alert(phrase("alert_send_failure", error=exc, chat_title=chat_title or chat_id, chat_id=chat_id))

        try:
            await self._send_chunks(
                chat_id,
                split_chunks(text, self.chunk_chars),
                thread_id=thread_id,
                reply_to=reply_to,
                markdown=False,
            )
            return True
        except Exception as exc:
            logger.error("[send] plain fallback failed in %s, dropping reply: %s", chat_id, exc)
            return False

    def emit_alert(self, text: str) -> asyncio.Task[None] | None:
        if self.alert is None or not text:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        task = loop.create_task(self._deliver_alert(text), name="operator-alert")
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)
        return task

    async def _deliver_alert(self, text: str) -> None:
        try:
            await self.alert(text)  # type: ignore[misc]
        except Exception as exc:
            logger.debug("[send] operator alert failed: %s", exc)
