from __future__ import annotations

import asyncio
import logging
import time

import discord

from ..config import Settings
from ..engine import SychEngine
from ..engine.common import IncomingMessage
from ..memory.store import StateStore
from ..services.ai_gateway import GeminiAIGateway
from ..services.gemini_client import GeminiClient
from .gateway import DiscordChatGateway, chat_user_from, to_incoming

logger = logging.getLogger("sych_bot")


class SychDiscordBot(discord.Client):
    def __init__(
        self,
        settings: Settings,
        store: StateStore,
        llm: GeminiClient,
        ai: GeminiAIGateway,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = settings.discord_message_content_intent
        intents.members = settings.discord_members_intent

        super().__init__(intents=intents)

        self.settings = settings
        self.store = store
        self.llm = llm
        self.gateway = DiscordChatGateway(self, timeout_seconds=settings.gemini_timeout_seconds)
        self.engine = SychEngine(settings, store, ai, self.gateway)

    async def setup_hook(self) -> None:
        await self.llm.start()
        await self.gateway.start()
        self.engine.start()

    async def close(self) -> None:
        await self._run_shutdown_step("engine.close", self.engine.close(), timeout=12.0)
        await self._run_shutdown_step("gateway.close", self.gateway.close(), timeout=4.0)
        await self._run_shutdown_step("llm.close", self.llm.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def on_ready(self) -> None:
        if self.user:
            self.engine.bot_user_id = str(self.user.id)
            logger.info("Connected as %s (%s)", self.user, self.user.id)
        logger.info("Sych is up. Operator id: %s", self.settings.admin_user_id)

    async def on_message(self, message: discord.Message) -> None:
        if self.user is not None and message.author.id == self.user.id:
            return
        if message.type not in {discord.MessageType.default, discord.MessageType.reply, discord.MessageType.new_member}:
            return
        try:
            incoming = to_incoming(message)
        except Exception:
            logger.exception("Failed to convert Discord message %s", message.id)
            return
        await self.engine.handle_message(incoming)

    async def on_member_remove(self, member: discord.Member) -> None:
        if str(member.id) != self.settings.admin_user_id:
            return
        channel = member.guild.system_channel or next(
            (item for item in member.guild.text_channels if item.permissions_for(member.guild.me).send_messages),
            None,
        )
        if channel is None:
            logger.warning("[security] operator left %s, leaving without a farewell", member.guild.name)
            await member.guild.leave()
            return
        notice = IncomingMessage(
            message_id="0",
            chat_id=str(channel.id),
            chat_type="group",
            sender=chat_user_from(member),
            date=time.time(),
            chat_title=member.guild.name,
            left_member=chat_user_from(member),
        )
        await self.engine.handle_admin_left(notice)
