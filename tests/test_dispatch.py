from __future__ import annotations

import asyncio
import logging
import random
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sych_bot.engine.dispatch import (  # noqa: E402
    ResponseDispatcher,
    classify_failure,
    failure_reply,
    format_reply,
    limit_reply,
    split_chunks,
)
from sych_bot.prompts.phrases import failure_phrases, phrase  # noqa: E402


class _FakeChat:
    def __init__(self, *, reject_markdown: bool = False, reject_plain: bool = False) -> None:
        self.reject_markdown = reject_markdown
        self.reject_plain = reject_plain
        self.sent: list[dict[str, object]] = []

    async def send_text(self, chat_id, text, *, thread_id=None, reply_to=None, markdown=True):  # type: ignore[no-untyped-def]
        if markdown and self.reject_markdown:
            raise RuntimeError("Bad Request: can't parse entities")
        if not markdown and self.reject_plain:
            raise RuntimeError("Forbidden: bot was kicked")
        self.sent.append({"chat_id": chat_id, "text": text, "reply_to": reply_to, "markdown": markdown})


def test_failure_classification_is_ordered() -> None:
    assert classify_failure("SAFETY block, also 429") == "content_policy"
    assert classify_failure("503 quota exceeded") == "overload"
    assert classify_failure("Gemini error 429: RESOURCE_EXHAUSTED") == "rate_limit"
    assert classify_failure("Gemini error 400: request payload too large") == "payload_too_large"
    assert classify_failure("socket closed") == "unknown"
    assert classify_failure("") == "unknown"


def test_failure_reply_comes_from_the_category_pool() -> None:
    reply = failure_reply("Request timeout", random.Random(3))
    assert reply in failure_phrases("overload")
    assert failure_phrases("no-such-category") == failure_phrases("unknown")


def test_format_reply_normalizes_structure() -> None:
    raw = "## Plan\n**Step one** first\n- apples\n* pears\n\n\n\nDone"

    assert format_reply(raw) == "*PLAN*\n*Step one* first\n• apples\n• pears\n\nDone"


def test_limit_reply_appends_notice() -> None:
    text = "x" * 9000
    limited = limit_reply(text, 8500)

    assert limited.startswith("x" * 8500)
    assert limited.endswith(phrase("truncation_notice"))
    assert limit_reply("short", 8500) == "short"


def test_split_chunks_keeps_order() -> None:
    text = "a" * 4000 + "b" * 4000 + "c" * 1000
    chunks = split_chunks(text, 4000)

    assert [len(chunk) for chunk in chunks] == [4000, 4000, 1000]
    assert "".join(chunks) == text
    assert split_chunks("", 10) == []


def test_long_reply_is_sent_in_ordered_chunks() -> None:
    chat = _FakeChat()
    dispatcher = ResponseDispatcher(chat, chunk_chars=100)

    sent = asyncio.run(dispatcher.send("100", "1234567890" * 25, reply_to="m1"))

    assert sent is True
    assert [len(item["text"]) for item in chat.sent] == [100, 100, 50]
    assert all(item["markdown"] is True for item in chat.sent)


def test_rejected_markdown_falls_back_to_plain_raw_text() -> None:
    chat = _FakeChat(reject_markdown=True)
    alerts: list[str] = []

    async def alert(text: str) -> None:
        alerts.append(text)

    async def scenario() -> bool:
        dispatcher = ResponseDispatcher(chat, alert=alert)
        result = await dispatcher.send("100", "## Title\n**bold**", reply_to="m1", chat_title="Owls")
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        return result

    assert asyncio.run(scenario()) is True
    assert chat.sent == [{"chat_id": "100", "text": "## Title\n**bold**", "reply_to": "m1", "markdown": False}]
    assert len(alerts) == 1
    assert "Owls" in alerts[0]


def test_plain_failure_drops_the_reply(caplog: pytest.LogCaptureFixture) -> None:
    chat = _FakeChat(reject_markdown=True, reject_plain=True)
    dispatcher = ResponseDispatcher(chat)

    with caplog.at_level(logging.ERROR, logger="sych_bot"):
        assert asyncio.run(dispatcher.send("100", "hello")) is False

    assert chat.sent == []
    assert "plain fallback failed" in caplog.text


def test_failing_alert_sink_is_ignored() -> None:
    chat = _FakeChat(reject_markdown=True)

    async def alert(text: str) -> None:
        raise RuntimeError("operator DM closed")

    async def scenario() -> bool:
        dispatcher = ResponseDispatcher(chat, alert=alert)
        result = await dispatcher.send("100", "hello")
        await asyncio.sleep(0.01)
        return result

    assert asyncio.run(scenario()) is True
    assert len(chat.sent) == 1
