from __future__ import annotations

import logging
import re
from typing import Any

import aiohttp
import discord

from ..engine.common import ChatUser, FileRef, IncomingMessage, StickerRef

logger = logging.getLogger("sych_bot")

# Single-asterisk emphasis is bold in the bot's reply dialect but italic on Discord.
_EMPHASIS_RE = re.compile(r"(?<![*\w])\*(?![\s*])([^*\n]+?)(?<!\s)\*(?![*\w])")
DISCORD_MESSAGE_LIMIT = 2000


def to_discord_markdown(text: str) -> str:
    return _EMPHASIS_RE.sub(r"**\1**", text)


def split_for_discord(content: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """Splits converted content so every piece fits one Discord message."""
    pieces: list[str] = []
    rest = content
    while len(rest) > limit:
        cut = rest.rfind("\n", 0, limit) + 1 or limit
        # Never separate an escape backslash from the character it escapes.
        while cut > 1 and rest[cut - 1] == "\\":
            cut -= 1
        pieces.append(rest[:cut])
        rest = rest[cut:]
    if rest or not pieces:
        pieces.append(rest)
    return pieces


def chat_user_from(author: discord.abc.User) -> ChatUser:
    return ChatUser(
        id=str(author.id),
        first_name=getattr(author, "display_name", "") or author.name,
        username=author.name,
        is_bot=bool(author.bot),
    )


def _file_ref(attachment: discord.Attachment) -> FileRef:
    content_type = (attachment.content_type or "").split(";", 1)[0].strip().lower()
    return FileRef(file_id=str(attachment.id), url=attachment.url, size=int(attachment.size or 0), mime_type=content_type)


def _sticker_ref(item: discord.StickerItem) -> StickerRef:
    animated = item.format in {discord.StickerFormatType.apng, discord.StickerFormatType.gif}
    is_lottie = item.format is discord.StickerFormatType.lottie
    mime = "image/gif" if item.format is discord.StickerFormatType.gif else "image/png"
    return StickerRef(
        file=FileRef(file_id=str(item.id), url=item.url, mime_type=mime),
        emoji=item.name,
        is_animated=animated,
        is_video=is_lottie,
    )


def _chat_coordinates(message: discord.Message) -> tuple[str, str, str | None, str]:
    """(chat_id, chat_type, thread_id, title) for a Discord message."""
    channel = message.channel
    if isinstance(channel, discord.DMChannel):
        # Private chats are keyed by the user id so the operator's DM doubles as the alert channel.
        return str(message.author.id), "private", None, message.author.name
    guild_name = message.guild.name if message.guild is not None else ""
    if isinstance(channel, discord.Thread):
        parent = channel.parent
        parent_name = parent.name if parent is not None else channel.name
        return str(channel.parent_id), "group", str(channel.id), f"{guild_name} #{parent_name}".strip()
    return str(channel.id), "group", None, f"{guild_name} #{getattr(channel, 'name', '')}".strip()


def to_incoming(message: discord.Message, *, with_reply: bool = True) -> IncomingMessage:
    chat_id, chat_type, thread_id, title = _chat_coordinates(message)
    incoming = IncomingMessage(
        message_id=str(message.id),
        chat_id=chat_id,
        chat_type=chat_type,
        sender=chat_user_from(message.author),
        date=message.created_at.timestamp(),
        text=message.content or "",
        chat_title=title,
        thread_id=thread_id,
    )

    is_voice_message = bool(getattr(message.flags, "voice", False))
    for attachment in message.attachments:
        ref = _file_ref(attachment)
        mime = ref.mime_type
        if is_voice_message and incoming.voice is None:
            incoming.voice = ref
        elif mime.startswith("image/"):
            incoming.photos.append(ref)
        elif mime.startswith("video/") and incoming.video is None:
            incoming.video = ref
        elif mime.startswith("audio/") and incoming.audio is None:
            incoming.audio = ref
        elif incoming.document is None:
            incoming.document = ref

    if message.stickers:
        incoming.sticker = _sticker_ref(message.stickers[0])

    if message.type is discord.MessageType.new_member:
        incoming.new_members.append(chat_user_from(message.author))

    if with_reply and message.reference is not None:
        resolved = message.reference.resolved
        if isinstance(resolved, discord.Message):
            incoming.reply_to = to_incoming(resolved, with_reply=False)
    return incoming


class DiscordChatGateway:
    """ChatGateway on top of a connected discord.py client."""

    def __init__(self, client: discord.Client, timeout_seconds: float = 60.0) -> None:
        self.client = client
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _channel(self, chat_id: str, thread_id: str | None = None) -> Any:
        target = int(thread_id or chat_id)
        channel = self.client.get_channel(target)
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(target)
        except discord.NotFound:
            if thread_id:
                raise RuntimeError(f"chat not found: thread {thread_id}") from None
        except discord.Forbidden as exc:
            raise RuntimeError(f"forbidden: {exc}") from exc

        # Not a channel id, so it is a private chat keyed by user id.
        try:
            user = self.client.get_user(target) or await self.client.fetch_user(target)
        except discord.NotFound:
            raise RuntimeError(f"chat not found: {chat_id}") from None
        return user.dm_channel or await user.create_dm()

    async def send_text(
        self,
        chat_id: str,
        text: str,
        *,
        thread_id: str | None = None,
        reply_to: str | None = None,
        markdown: bool = True,
    ) -> None:
        channel = await self._channel(chat_id, thread_id)
        content = to_discord_markdown(text) if markdown else discord.utils.escape_markdown(text)
        kwargs: dict[str, Any] = {"suppress_embeds": True}
        if reply_to:
            kwargs["reference"] = discord.MessageReference(
                message_id=int(reply_to),
                channel_id=channel.id,
                fail_if_not_exists=False,
            )
            kwargs["mention_author"] = False
        for piece in split_for_discord(content):
            await channel.send(piece, **kwargs)

    async def send_action(self, chat_id: str, action: str = "typing", *, thread_id: str | None = None) -> None:
        # Discord only has one activity indicator; upload actions map onto it.
        channel = await self._channel(chat_id, thread_id)
        await channel.typing()

    async def fetch_file(self, ref: FileRef) -> bytes:
        return await self.fetch_url(ref.url)

    async def fetch_url(self, url: str) -> bytes:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None
        async with self._session.get(url) as response:
            response.raise_for_status()
            return await response.read()

    async def get_member_status(self, chat_id: str, user_id: str) -> str:
        channel = await self._channel(chat_id)
        guild = getattr(channel, "guild", None)
        if guild is None:
            return "member"
        member_id = int(user_id)
        if guild.owner_id == member_id:
            return "creator"
        member = guild.get_member(member_id)
        if member is None:
            try:
                member = await guild.fetch_member(member_id)
            except discord.NotFound:
                return "left"
            except discord.Forbidden as exc:
                raise RuntimeError(f"forbidden: {exc}") from exc
        if member.guild_permissions.administrator:
            return "administrator"
        return "member"

    async def leave_chat(self, chat_id: str) -> None:
        channel = await self._channel(chat_id)
        guild = getattr(channel, "guild", None)
        if guild is None:
            return
        logger.warning("[security] leaving guild %s (%s)", guild.name, guild.id)
        await guild.leave()

    async def set_reaction(
        self, chat_id: str, message_id: str, emoji: str, *, thread_id: str | None = None
    ) -> None:
        channel = await self._channel(chat_id, thread_id)
        await channel.get_partial_message(int(message_id)).add_reaction(emoji)
