from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from .common import BufferEntry, Utterance, format_history_lines


@dataclass(slots=True)
class ChatContext:
    history: deque[Utterance]
    buffer: list[BufferEntry] = field(default_factory=list)


class ConversationContext:
    """Per-chat rolling history plus the unlabeled sample buffer for profile analysis.

    All operations are synchronous so each one completes between two suspension
    points of the calling coroutine. ``append_buffer`` swaps the full buffer out
    before returning it, so a batch is handed out exactly once even when several
    handlers of the same chat run concurrently.
    """

    def __init__(self, history_limit: int = 30, buffer_threshold: int = 20, command_prefix: str = "/") -> None:
        self.history_limit = max(1, int(history_limit))
        self.buffer_threshold = max(1, int(buffer_threshold))
        self.command_prefix = command_prefix
        self._chats: dict[str, ChatContext] = {}

    def _chat(self, chat_id: str) -> ChatContext:
        key = str(chat_id)
        state = self._chats.get(key)
        if state is None:
            state = ChatContext(history=deque(maxlen=self.history_limit))
            self._chats[key] = state
        return state

    def append_history(self, chat_id: str, role: str, text: str) -> None:
        self._chat(chat_id).history.append(Utterance(role=role, text=text))

    def history(self, chat_id: str) -> list[Utterance]:
        return list(self._chat(chat_id).history)

    def history_text(self, chat_id: str, last: int) -> str:
        return format_history_lines(self.history(chat_id), last)

    def append_buffer(self, chat_id: str, user_id: str, name: str, text: str) -> list[BufferEntry] | None:
        """Buffers a sample; returns the detached batch when the threshold is reached."""
        state = self._chat(chat_id)
        if self.command_prefix and text.startswith(self.command_prefix):
            return None
        state.buffer.append(BufferEntry(user_id=str(user_id), name=name, text=text))
        if len(state.buffer) < self.buffer_threshold:
            return None
        batch, state.buffer = state.buffer, []
        return batch

    def pending_buffer(self, chat_id: str) -> list[BufferEntry]:
        return list(self._chat(chat_id).buffer)

    def reset(self, chat_id: str) -> None:
        state = self._chat(chat_id)
        state.history.clear()
        state.buffer = []
