from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

GENERAL_TOPIC = "general"


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return (text[: limit - 3].rstrip() + "...").strip()


def normalize_topic_id(thread_id: object) -> str:
    """Maps a platform thread id onto the topic key used by mute flags."""
    if thread_id is None or isinstance(thread_id, bool):
        return GENERAL_TOPIC
    if isinstance(thread_id, (int, float)) and thread_id == 0:
        return GENERAL_TOPIC
    text = str(thread_id).strip()
    if not text or text == "0":
        return GENERAL_TOPIC
    return text


def format_history_lines(history: list["Utterance"], last: int) -> str:
    window = history[-last:] if last > 0 else history
    return "\n".join(f"{item.role}: {item.text}" for item in window)


@dataclass(slots=True)
class FileRef:
    file_id: str
    url: str = ""
    size: int = 0
    mime_type: str = ""


@dataclass(slots=True)
class StickerRef:
    file: FileRef
    emoji: str = ""
    is_animated: bool = False
    is_video: bool = False


@dataclass(slots=True)
class ChatUser:
    id: str
    first_name: str = ""
    username: str = ""
    is_bot: bool = False

    @property
    def handle(self) -> str:
        if self.username:
            return f"@{self.username}"
        return self.first_name or "Anon"

    @property
    def display_name(self) -> str:
        name = self.first_name or "User"
        if self.username:
            return f"{name} (@{self.username})"
        return name


@dataclass(slots=True)
class IncomingMessage:
    message_id: str
    chat_id: str
    chat_type: str
    sender: ChatUser
    date: float
    text: str = ""
    caption: str = ""
    chat_title: str = ""
    thread_id: str | None = None
    reply_to: "IncomingMessage | None" = None
    photos: list[FileRef] = field(default_factory=list)
    sticker: StickerRef | None = None
    video: FileRef | None = None
    document: FileRef | None = None
    voice: FileRef | None = None
    audio: FileRef | None = None
    new_members: list[ChatUser] = field(default_factory=list)
    left_member: ChatUser | None = None

    @property
    def body(self) -> str:
        return self.text or self.caption or ""

    @property
    def is_private(self) -> bool:
        return self.chat_type == "private"

    @property
    def has_attachment(self) -> bool:
        return bool(
            self.photos
            or self.sticker is not None
            or self.video is not None
            or self.document is not None
            or self.voice is not None
            or self.audio is not None
        )


@dataclass(slots=True)
class Utterance:
    role: str
    text: str


@dataclass(slots=True)
class BufferEntry:
    user_id: str
    name: str
    text: str


@dataclass(slots=True)
class CurrentTurn:
    sender: str
    text: str
    reply_text: str = ""


@dataclass(slots=True)
class MediaPayload:
    data: bytes
    mime_type: str


@dataclass(slots=True)
class ParsedReminder:
    fire_at: datetime
    confirmation: str
    text: str


@dataclass(slots=True)
class Transcription:
    text: str
    summary: str = ""
