from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..prompts.phrases import phrase
from .common import FileRef, IncomingMessage, MediaPayload
from .ports import ChatGateway

logger = logging.getLogger("sych_bot")

MAX_MEDIA_BYTES = 20 * 1024 * 1024

DOCUMENT_MIME_ALLOWLIST = frozenset(
    {
        "application/pdf",
        "application/x-javascript",
        "text/javascript",
        "application/x-python",
        "text/x-python",
        "text/plain",
        "text/html",
        "text/css",
        "text/md",
        "text/csv",
        "text/xml",
        "text/rtf",
    }
)

IMAGE_URL_RE = re.compile(r"https?://[^\s]+?\.(jpg|jpeg|png|webp|gif|bmp)", re.IGNORECASE)


@dataclass(slots=True)
class MediaResolution:
    payload: MediaPayload | None = None
    refusal: str = ""
    note: str = ""

    @property
    def refused(self) -> bool:
        return bool(self.refusal)


def is_document_allowed(mime_type: str) -> bool:
    mime = (mime_type or "").lower()
    return mime in DOCUMENT_MIME_ALLOWLIST or mime.startswith("image/")


def find_image_url(*texts: str) -> str | None:
    for text in texts:
        if not text:
            continue
        match = IMAGE_URL_RE.search(text)
        if match:
            return match.group(0)
    return None


class MediaResolver:
    """Picks the single attachment the model gets to see for a message.

    Sources are checked in a fixed order (sticker, photo, video, document,
    image link) and the first one present decides the outcome. Oversized or
    unsupported files are refused before anything is downloaded, and a failed
    download simply means the reply goes out without an attachment.
    """

    def __init__(self, chat: ChatGateway, *, max_bytes: int = MAX_MEDIA_BYTES) -> None:
        self.chat = chat
        self.max_bytes = max_bytes

    async def resolve(self, message: IncomingMessage) -> MediaResolution:
        reply = message.reply_to

        if message.sticker is not None:
            sticker = message.sticker
            note = phrase("sticker_note", emoji=sticker.emoji) if sticker.emoji else ""
            if sticker.is_animated or sticker.is_video:
                return MediaResolution(note=note)
            data = await self._download(sticker.file, "sticker")
            mime = sticker.file.mime_type or "image/webp"
            payload = MediaPayload(data=data, mime_type=mime) if data is not None else None
            return MediaResolution(payload=payload, note=note)

        photos = message.photos or (reply.photos if reply is not None else [])
        if photos:
            largest = max(photos, key=lambda item: item.size)
            data = await self._download(largest, "photo")
            mime = largest.mime_type or "image/jpeg"
            return MediaResolution(payload=MediaPayload(data, mime) if data is not None else None)

        video = message.video or (reply.video if reply is not None else None)
        if video is not None:
            if video.size > self.max_bytes:
                return MediaResolution(refusal=phrase("video_too_large"))
            await self._signal(message, "upload_video")
            data = await self._download(video, "video")
            mime = video.mime_type or "video/mp4"
            return MediaResolution(payload=MediaPayload(data, mime) if data is not None else None)

        document = message.document or (reply.document if reply is not None else None)
        if document is not None:
            if document.size > self.max_bytes:
                return MediaResolution(refusal=phrase("document_too_large"))
            if not is_document_allowed(document.mime_type):
                return MediaResolution(refusal=phrase("document_unsupported"))
            await self._signal(message, "upload_document")
            data = await self._download(document, "document")
            return MediaResolution(payload=MediaPayload(data, document.mime_type) if data is not None else None)

        url = find_image_url(message.body, reply.body if reply is not None else "")
        if url:
            try:
                data = await self.chat.fetch_url(url)
            except Exception as exc:
                logger.warning("[media] image link download failed (%s): %s", url, exc)
                return MediaResolution()
            mime = "image/webp" if url.lower().endswith(".webp") else "image/jpeg"
            return MediaResolution(payload=MediaPayload(data, mime))

        return MediaResolution()

    async def _download(self, ref: FileRef, kind: str) -> bytes | None:
        try:
            data = await self.chat.fetch_file(ref)
        except Exception as exc:
            logger.warning("[media] %s download failed: %s", kind, exc)
            return None
        logger.info("[media] %s downloaded (%d bytes)", kind, len(data))
        return data

    async def _signal(self, message: IncomingMessage, action: str) -> None:
        try:
            await self.chat.send_action(message.chat_id, action, thread_id=message.thread_id)
        except Exception as exc:
            logger.debug("[media] %s action failed: %s", action, exc)
