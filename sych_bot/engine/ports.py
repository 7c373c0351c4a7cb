from __future__ import annotations

from typing import Any, Protocol

from .common import BufferEntry, CurrentTurn, FileRef, ParsedReminder, Transcription, Utterance

MEMBER_STATUSES = {"creator", "administrator", "member"}


class ChatGateway(Protocol):
    """Remote chat platform. Every call may raise."""

    async def send_text(
        self,
        chat_id: str,
        text: str,
        *,
        thread_id: str | None = None,
        reply_to: str | None = None,
        markdown: bool = True,
    ) -> None: ...

    async def send_action(self, chat_id: str, action: str = "typing", *, thread_id: str | None = None) -> None: ...

    async def fetch_file(self, ref: FileRef) -> bytes: ...

    async def fetch_url(self, url: str) -> bytes: ...

    async def get_member_status(self, chat_id: str, user_id: str) -> str: ...

    async def leave_chat(self, chat_id: str) -> None: ...

    async def set_reaction(
        self, chat_id: str, message_id: str, emoji: str, *, thread_id: str | None = None
    ) -> None: ...


class AIGateway(Protocol):
    async def respond(
        self,
        history: list[Utterance],
        current_turn: CurrentTurn,
        attachment: bytes | None,
        mime_type: str | None,
        instruction: str,
        profile: dict[str, Any],
        is_ambient: bool,
    ) -> str: ...

    async def classify_engage(self, history_text: str) -> bool: ...

    async def classify_reaction(self, context: str) -> str | None: ...

    async def parse_reminder(self, text: str, reply_context: str) -> ParsedReminder | None: ...

    async def transcribe(self, data: bytes, speaker_label: str, mime_type: str) -> Transcription | None: ...

    async def batch_analyze(
        self,
        buffer: list[BufferEntry],
        current_profiles: dict[str, dict[str, Any]],
    ) -> dict[str, dict[str, Any]] | None: ...

    async def analyze_immediate(self, recent_context: str, profile: dict[str, Any]) -> dict[str, Any] | None: ...

    async def flavor_text(self, task: str, result: str) -> str: ...

    async def describe_profile(self, profile: dict[str, Any], target_name: str) -> str: ...
