from __future__ import annotations

import asyncio
import base64
import json
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sych_bot.services.gemini_client import GeminiClient  # noqa: E402


class _FakeResponse:
    def __init__(self, status: int, body: object) -> None:
        self.status = status
        self.body = body if isinstance(body, str) else json.dumps(body)

    async def text(self) -> str:
        return self.body

    async def __aenter__(self) -> "_FakeResponse":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None


class _FakeSession:
    def __init__(self, responses: list[_FakeResponse]) -> None:
        self.responses = list(responses)
        self.closed = False
        self.calls: list[tuple[str, dict]] = []

    def post(self, url, json):  # type: ignore[no-untyped-def]
        self.calls.append((url, json))
        return self.responses.pop(0)


def _answer(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


def _client(keys: list[str], session: _FakeSession, **kwargs) -> GeminiClient:  # type: ignore[no-untyped-def]
    client = GeminiClient(keys, "gemini-2.5-flash", 30, 0.7, **kwargs)
    client._session = session  # type: ignore[assignment]
    return client


def test_rate_limited_key_is_rotated_and_request_retried() -> None:
    session = _FakeSession([_FakeResponse(429, "quota"), _FakeResponse(200, _answer("hoot"))])
    client = _client(["key-one", "key-two"], session)

    result = asyncio.run(client.chat([{"role": "user", "content": "hi"}]))

    assert result == "hoot"
    assert session.calls[0][0].endswith("key=key-one")
    assert session.calls[1][0].endswith("key=key-two")
    assert client.current_key == "key-two"


def test_non_retriable_status_raises_immediately() -> None:
    session = _FakeSession([_FakeResponse(400, "Invalid argument")])
    client = _client(["key-one"], session)

    with pytest.raises(RuntimeError, match="Gemini error 400"):
        asyncio.run(client.chat([{"role": "user", "content": "hi"}]))
    assert len(session.calls) == 1


def test_blocked_prompt_is_reported() -> None:
    session = _FakeSession([_FakeResponse(200, {"promptFeedback": {"blockReason": "SAFETY"}})])
    client = _client(["key-one"], session)

    with pytest.raises(RuntimeError, match="blocked"):
        asyncio.run(client.chat([{"role": "user", "content": "hi"}]))


def test_fallback_model_handles_primary_failure_but_not_blocks() -> None:
    client = GeminiClient(["key"], "gemini-2.5-flash", 30, 0.7, fallback_model="gemini-2.5-flash-lite")
    models: list[str | None] = []

    async def fake_chat(messages, **kwargs):  # type: ignore[no-untyped-def]
        models.append(kwargs.get("model"))
        if kwargs.get("model") is None:
            raise RuntimeError(failure)
        return "from fallback"

    client.chat = fake_chat  # type: ignore[method-assign]

    failure = "Gemini request failed after retries: 503"
    assert asyncio.run(client.chat_with_fallback([{"role": "user", "content": "hi"}])) == "from fallback"
    assert models == [None, "gemini-2.5-flash-lite"]

    models.clear()
    failure = "Gemini blocked response: SAFETY"
    with pytest.raises(RuntimeError, match="blocked"):
        asyncio.run(client.chat_with_fallback([{"role": "user", "content": "hi"}]))
    assert models == [None]


def test_payload_uses_system_instruction_search_and_inline_data() -> None:
    session = _FakeSession([_FakeResponse(200, _answer("ok"))])
    client = _client(["key"], session)

    asyncio.run(
        client.chat(
            [{"role": "system", "content": "be an owl"}, {"role": "user", "content": "what is this?"}],
            attachment=b"\x89PNG",
            mime_type="image/png",
            use_search=True,
        )
    )

    payload = session.calls[0][1]
    assert payload["systemInstruction"] == {"parts": [{"text": "be an owl"}]}
    assert payload["tools"] == [{"google_search": {}}]
    parts = payload["contents"][-1]["parts"]
    assert parts[0] == {"text": "what is this?"}
    assert parts[1]["inline_data"]["mime_type"] == "image/png"
    assert base64.b64decode(parts[1]["inline_data"]["data"]) == b"\x89PNG"


def test_gemma_models_get_system_text_inline_and_no_search() -> None:
    session = _FakeSession([_FakeResponse(200, _answer("{}"))])
    client = _client(["key"], session)

    asyncio.run(
        client.chat(
            [{"role": "system", "content": "classify"}, {"role": "user", "content": "text"}],
            model="gemma-3-27b-it",
            use_search=True,
        )
    )

    url, payload = session.calls[0]
    assert "/models/gemma-3-27b-it:generateContent" in url
    assert "systemInstruction" not in payload
    assert "tools" not in payload
    assert payload["contents"][0]["parts"][0] == {"text": "classify"}


def test_json_chat_parses_fenced_payload() -> None:
    session = _FakeSession([_FakeResponse(200, _answer('```json\n{"engage": true}\n```'))])
    client = _client(["key"], session)

    result = asyncio.run(client.json_chat([{"role": "user", "content": "decide"}], '{"engage": "boolean"}'))

    assert result == {"engage": True}
    assert session.calls[0][1]["generationConfig"]["maxOutputTokens"] == 900


def test_parse_json_payload_tolerates_chatter() -> None:
    assert GeminiClient.parse_json_payload('Sure! {"emoji": "🔥"} hope that helps') == {"emoji": "🔥"}
    assert GeminiClient.parse_json_payload("no json at all") is None
    assert GeminiClient.parse_json_payload("[1, 2]") == [1, 2]
