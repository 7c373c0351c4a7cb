from __future__ import annotations

import asyncio
import base64
import json
import logging
import random
import re
from typing import Any, Dict, List, Sequence

import aiohttp

logger = logging.getLogger("sych_bot")

# Statuses that point at the key itself rather than at the request.
_KEY_ROTATION_STATUSES = {401, 403, 429}
_RETRIABLE_STATUSES = {408, 409, 429, 500, 502, 503, 504}


class GeminiClient:
    def __init__(
        self,
        api_keys: Sequence[str],
        model: str,
        timeout_seconds: int,
        temperature: float,
        max_output_tokens: int = 0,
        base_url: str = "https://generativelanguage.googleapis.com",
        fallback_model: str = "",
    ) -> None:
        self.api_keys = [key for key in api_keys if key]
        if not self.api_keys:
            raise ValueError("At least one Gemini API key is required")
        self.model = model
        self.fallback_model = fallback_model.strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.temperature = temperature
        self.max_output_tokens: int | None = int(max_output_tokens) if int(max_output_tokens) > 0 else None
        self._key_index = 0
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    @property
    def current_key(self) -> str:
        return self.api_keys[self._key_index % len(self.api_keys)]

    def rotate_key(self) -> None:
        if len(self.api_keys) > 1:
            self._key_index = (self._key_index + 1) % len(self.api_keys)
            logger.warning("Switched to Gemini API key #%d", self._key_index + 1)

    def _endpoint(self, model: str) -> str:
        return f"{self.base_url}/v1beta/models/{model}:generateContent?key={self.current_key}"

    @staticmethod
    def _supports_system_instruction(model: str) -> bool:
        return not model.lower().startswith("gemma")

    @classmethod
    def _map_messages(
        cls,
        messages: List[Dict[str, str]],
        model: str,
        attachment: bytes | None = None,
        mime_type: str | None = None,
    ) -> Dict[str, Any]:
        system_lines: List[str] = []
        contents: List[Dict[str, Any]] = []

        for message in messages:
            role = str(message.get("role", "")).strip().lower()
            content = str(message.get("content", "")).strip()
            if not content:
                continue
            if role == "system":
                system_lines.append(content)
                continue
            mapped_role = "model" if role == "assistant" else "user"
            contents.append({"role": mapped_role, "parts": [{"text": content}]})

        if attachment is not None:
            inline = {
                "inline_data": {
                    "mime_type": mime_type or "application/octet-stream",
                    "data": base64.b64encode(attachment).decode("ascii"),
                }
            }
            if contents and contents[-1]["role"] == "user":
                contents[-1]["parts"].append(inline)
            else:
                contents.append({"role": "user", "parts": [inline]})

        payload: Dict[str, Any] = {"contents": contents}
        if system_lines:
            system_text = "\n\n".join(system_lines)
            if cls._supports_system_instruction(model):
                payload["systemInstruction"] = {"parts": [{"text": system_text}]}
            elif contents and contents[0]["role"] == "user":
                contents[0]["parts"].insert(0, {"text": system_text})
            else:
                contents.insert(0, {"role": "user", "parts": [{"text": system_text}]})
        return payload

    async def _request(self, model: str, payload: Dict[str, Any], retries: int = 3) -> Dict[str, Any]:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None

        last_error: Exception | None = None
        attempts = retries + len(self.api_keys) - 1

        for attempt in range(1, attempts + 1):
            rotated = False
            try:
                async with self._session.post(self._endpoint(model), json=payload) as response:
                    text = await response.text()
                    if response.status == 200:
                        return json.loads(text)

                    if response.status in _KEY_ROTATION_STATUSES and len(self.api_keys) > 1:
                        self.rotate_key()
                        rotated = True
                    elif response.status not in _RETRIABLE_STATUSES:
                        raise RuntimeError(f"Gemini error {response.status}: {text}")
                    last_error = RuntimeError(f"Gemini retriable error {response.status}: {text}")
            except asyncio.CancelledError:
                raise
            except RuntimeError:
                raise
            except Exception as exc:
                last_error = exc

            if attempt < attempts and not rotated:
                await asyncio.sleep(min(4.0, 0.35 * attempt + random.random() * 0.2))

        if last_error is not None:
            raise RuntimeError(f"Gemini request failed after retries: {last_error}")
        raise RuntimeError("Gemini request failed without explicit error")

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            prompt_feedback = data.get("promptFeedback") or {}
            block_reason = prompt_feedback.get("blockReason")
            if block_reason:
                raise RuntimeError(f"Gemini blocked response: {block_reason}")
            raise RuntimeError("Gemini returned no candidates")

        first = candidates[0]
        content = first.get("content") or {}
        parts = content.get("parts") or []
        chunks: List[str] = []

        for part in parts:
            text = part.get("text")
            if isinstance(text, str) and text.strip():
                chunks.append(text.strip())

        joined = "\n".join(chunks).strip()
        if joined:
            return joined

        finish_reason = first.get("finishReason")
        if finish_reason:
            raise RuntimeError(f"Gemini empty response (finishReason={finish_reason})")
        raise RuntimeError("Gemini empty response")

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        *,
        model: str | None = None,
        attachment: bytes | None = None,
        mime_type: str | None = None,
        use_search: bool = False,
    ) -> str:
        selected_model = model or self.model
        payload = self._map_messages(messages, selected_model, attachment, mime_type)
        generation_config: Dict[str, Any] = {
            "temperature": self.temperature if temperature is None else temperature,
        }
        selected_tokens = self.max_output_tokens if max_output_tokens is None else max_output_tokens
        if selected_tokens is not None and int(selected_tokens) > 0:
            generation_config["maxOutputTokens"] = int(selected_tokens)
        payload["generationConfig"] = generation_config
        if use_search and self._supports_system_instruction(selected_model):
            payload["tools"] = [{"google_search": {}}]
        data = await self._request(selected_model, payload)
        return self._extract_text(data)

    async def chat_with_fallback(self, messages: List[Dict[str, str]], **kwargs: Any) -> str:
        """Primary model first; the fallback model gets one chance unless the prompt itself was blocked."""
        try:
            return await self.chat(messages, **kwargs)
        except RuntimeError as exc:
            if not self.fallback_model or "blocked" in str(exc).lower():
                raise
            logger.warning("Primary Gemini model failed (%s), trying %s", exc, self.fallback_model)
            kwargs["model"] = self.fallback_model
            return await self.chat(messages, **kwargs)

    @staticmethod
    def _strip_json_fences(text: str) -> str:
        cleaned = text.strip()
        if cleaned.startswith("```"):
            cleaned = re.sub(r"^```(?:json)?", "", cleaned, flags=re.IGNORECASE).strip()
            cleaned = re.sub(r"```$", "", cleaned).strip()
        return cleaned

    @classmethod
    def parse_json_payload(cls, raw: str) -> Any:
        cleaned = cls._strip_json_fences(raw)
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError:
            pass
        match = re.search(r"\{.*\}", cleaned, flags=re.DOTALL)
        if not match:
            return None
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            return None

    async def json_chat(
        self,
        messages: List[Dict[str, str]],
        schema_hint: str,
        temperature: float = 0.1,
        max_output_tokens: int = 900,
        *,
        model: str | None = None,
        attachment: bytes | None = None,
        mime_type: str | None = None,
    ) -> Dict[str, Any] | None:
        strict_messages = list(messages)
        strict_messages.append(
            {
                "role": "system",
                "content": (
                    "Return only valid JSON object with no markdown and no additional commentary. "
                    f"Schema hint: {schema_hint}"
                ),
            }
        )
        raw = await self.chat(
            strict_messages,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            model=model,
            attachment=attachment,
            mime_type=mime_type,
        )
        parsed = self.parse_json_payload(raw)
        if not isinstance(parsed, dict):
            return None
        return parsed
