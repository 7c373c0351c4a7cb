from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from typing import TYPE_CHECKING, Any, Callable

from .activation import FULL_REPLY, REACTION_ONLY, ActivationDecider
from .common import IncomingMessage
from .context import ConversationContext
from .dispatch import ResponseDispatcher
from .media import MediaResolver
from .mixins.command_mixin import CommandMixin
from .mixins.feature_mixin import FeatureMixin
from .mixins.reply_mixin import ReplyMixin
from .mixins.security_mixin import SecurityMixin
from .mixins.workers_mixin import WorkersMixin
from .ports import AIGateway, ChatGateway
from .reminders import ReminderScheduler

if TYPE_CHECKING:
    from ..config import Settings
    from ..memory.store import StateStore

logger = logging.getLogger("sych_bot")


class SychEngine(
    SecurityMixin,
    CommandMixin,
    FeatureMixin,
    ReplyMixin,
    WorkersMixin,
):
    """Platform-neutral message pipeline.

    Every inbound message runs through ``handle_message`` in its own task.
    Shared per-chat state lives in ``context`` (history and analysis buffer)
    and ``store`` (mute flags, users, profiles, reminders); both are only
    mutated in synchronous steps, so concurrent handlers of one chat never
    interleave inside an update.
    """

    def __init__(
        self,
        settings: "Settings",
        store: "StateStore",
        ai: AIGateway,
        chat: ChatGateway,
        *,
        bot_user_id: str = "",
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.store = store
        self.ai = ai
        self.chat = chat
        self.bot_user_id = str(bot_user_id or "")
        self.admin_user_id = str(settings.admin_user_id or "")
        self.rng = rng or random.Random()
        self.clock = clock
        self.private_reply_delay = 1.5

        self.context = ConversationContext(
            history_limit=settings.context_size,
            buffer_threshold=settings.analysis_buffer_size,
            command_prefix=settings.command_prefix,
        )
        self.decider = ActivationDecider(
            ai,
            trigger_words=settings.trigger_words,
            engage_probability=settings.ambient_engage_probability,
            reaction_probability=settings.reaction_probability,
            min_length=settings.ambient_min_length,
            rng=self.rng,
        )
        self.media = MediaResolver(chat, max_bytes=settings.max_media_bytes)
        self.dispatcher = ResponseDispatcher(
            chat,
            alert=self.alert_operator,
            max_chars=settings.max_reply_chars,
            chunk_chars=settings.reply_chunk_chars,
        )
        self.scheduler = ReminderScheduler(store, ai, chat, poll_seconds=settings.reminder_poll_seconds)
        words = "|".join(re.escape(word) for word in settings.trigger_words if word.strip())
        self.who_tail_pattern = re.compile(rf"(?:{words})\W+(?:кто|who)\??$")
        self._background: set[asyncio.Task[Any]] = set()

    def start(self) -> None:
        self.scheduler.start()

    async def handle_message(self, message: IncomingMessage) -> None:
        if self.bot_user_id and message.sender.id == self.bot_user_id:
            return
        if self._is_stale(message):
            return

        chat_id = message.chat_id
        if not message.is_private:
            if not await self._ensure_admin_present(message):
                return
            if await self.handle_admin_left(message):
                return

        self._note_contact(message)
        command = self._parse_command(message.body)

        if message.is_private and not self._is_admin(message.sender.id):
            await self._handle_private_stranger(message, command)
            return

        text: str | None = message.body
        if message.voice is not None or message.audio is not None:
            text = await self._handle_voice(message)
            if text is None:
                return

        if not text and not message.has_attachment:
            return
        if not message.is_private:
            self.store.track_user(chat_id, message.sender)

        self._buffer_sample(chat_id, message.sender.id, message.sender.display_name, text)

        if await self._handle_command(message, command):
            return
        if self.store.is_topic_muted(chat_id, message.thread_id):
            return

        replied_to_bot = (
            bool(self.bot_user_id) and message.reply_to is not None and message.reply_to.sender.id == self.bot_user_id
        )
        directly_addressed = self.decider.is_directly_addressed(text, replied_to_bot)

        presence = self._presence(message)
        if directly_addressed:
            presence.start()
        try:
            self.context.append_history(chat_id, message.sender.first_name or "User", text)

            if directly_addressed and await self._handle_reminder_request(message, text):
                return
            if self.decider.has_trigger(text) and await self._handle_trigger_features(message, text):
                return

            decision = await self.decider.decide(
                text,
                directly_addressed=directly_addressed,
                replied_to_bot=replied_to_bot,
                history_text=self.context.history_text(chat_id, 15),
            )
            if decision == REACTION_ONLY:
                self.spawn(self._react(message, text), f"reaction:{chat_id}:{message.message_id}")
                return
            if decision != FULL_REPLY:
                return

            presence.start()
            await self._full_reply(message, text, directly_addressed=directly_addressed)
        finally:
            presence.stop()
