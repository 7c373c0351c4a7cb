from __future__ import annotations

import logging

from ...prompts.phrases import phrase
from ..common import CurrentTurn, IncomingMessage
from ..dispatch import failure_reply
from ..presence import PresenceController

logger = logging.getLogger("sych_bot")


class ReplyMixin:
    def _presence(self, message: IncomingMessage) -> PresenceController:
        chat_id, thread_id = message.chat_id, message.thread_id

        async def _signal() -> None:
            await self.chat.send_action(chat_id, "typing", thread_id=thread_id)

        return PresenceController(
            _signal,
            interval=self.settings.presence_interval_seconds,
            timeout=self.settings.presence_timeout_seconds,
            label=f"{chat_id}:{message.message_id}",
        )

    async def _signal_typing(self, message: IncomingMessage) -> None:
        try:
            await self.chat.send_action(message.chat_id, "typing", thread_id=message.thread_id)
        except Exception as exc:
            logger.debug("Typing signal failed in %s: %s", message.chat_id, exc)

    async def _reply(self, message: IncomingMessage, text: str) -> bool:
        try:
            await self.chat.send_text(
                message.chat_id,
                text,
                thread_id=message.thread_id,
                reply_to=message.message_id,
            )
        except Exception as exc:
            logger.warning("[send] reply failed in %s: %s", message.chat_id, exc)
            return False
        return True

    async def _say(self, message: IncomingMessage, text: str) -> bool:
        try:
            await self.chat.send_text(message.chat_id, text, thread_id=message.thread_id)
        except Exception as exc:
            logger.warning("[send] message failed in %s: %s", message.chat_id, exc)
            return False
        return True

    def _failure_text(self, error_text: str) -> str:
        return failure_reply(error_text, self.rng)

    async def _react(self, message: IncomingMessage, text: str) -> None:
        context = self.context.history_text(message.chat_id, 15) + f"\nMessage to react to: {text}"
        try:
            emoji = await self.ai.classify_reaction(context)
            if emoji:
                await self.chat.set_reaction(message.chat_id, message.message_id, emoji, thread_id=message.thread_id)
        except Exception as exc:
            logger.debug("Reaction skipped in %s: %s", message.chat_id, exc)

    async def _full_reply(self, message: IncomingMessage, text: str, *, directly_addressed: bool) -> None:
        title = message.chat_title or message.chat_id
        resolution = await self.media.resolve(message)
        if resolution.refused:
            await self._reply(message, resolution.refusal)
            return
        if resolution.note:
            text = text + resolution.note

        sender = message.sender
        instruction = self.store.get_user_instruction(sender.username) if sender.username else ""
        profile = self.store.get_profile(message.chat_id, sender.id)
        payload = resolution.payload
        turn = CurrentTurn(
            sender=sender.first_name or "User",
            text=text,
            reply_text=message.reply_to.body if message.reply_to is not None else "",
        )

        try:
            answer = await self.ai.respond(
                self.context.history(message.chat_id),
                turn,
                payload.data if payload is not None else None,
                payload.mime_type if payload is not None else None,
                instruction,
                profile,
                not directly_addressed,
            )
        except Exception as exc:
            logger.error("AI response failed in %s: %s", title, exc)
            self.notify_operator(phrase("alert_ai_failure", chat_title=title, error=exc))
            answer = self._failure_text(str(exc))
        else:
            if not answer or not answer.strip():
                logger.error("AI returned an empty response in %s", title)
                self.notify_operator(phrase("alert_ai_empty", chat_title=title))
                answer = self._failure_text("")

        sent = await self.dispatcher.send(
            message.chat_id,
            answer,
            thread_id=message.thread_id,
            reply_to=message.message_id,
            chat_title=title,
        )
        if sent:
            self.context.append_history(message.chat_id, phrase("bot_name"), answer)

        self.spawn(
            self._update_profile_immediate(message.chat_id, sender.id, turn.sender),
            f"relationship:{message.chat_id}:{sender.id}",
        )
