from __future__ import annotations

import asyncio
import contextlib
import logging

from ...prompts.phrases import phrase, pick_phrase
from ..common import IncomingMessage
from ..ports import MEMBER_STATUSES

logger = logging.getLogger("sych_bot")

_LEAVE_ON_ERROR_MARKERS = ("chat not found", "kicked", "forbidden")


class SecurityMixin:
    def _is_stale(self, message: IncomingMessage) -> bool:
        return message.date < self.clock() - self.settings.max_message_age_seconds

    def _is_admin(self, user_id: str) -> bool:
        return bool(self.admin_user_id) and str(user_id) == self.admin_user_id

    async def _ensure_admin_present(self, message: IncomingMessage) -> bool:
        """False when the bot has left (or is leaving) a group the operator is not part of."""
        title = message.chat_title or message.chat_id
        try:
            status = await self.chat.get_member_status(message.chat_id, self.admin_user_id)
        except Exception as exc:
            logger.error("[security] membership check failed in %s: %s", title, exc)
            lowered = str(exc).lower()
            if any(marker in lowered for marker in _LEAVE_ON_ERROR_MARKERS):
                with contextlib.suppress(Exception):
                    await self.chat.leave_chat(message.chat_id)
                return False
            return True

        if status in MEMBER_STATUSES:
            return True

        logger.warning("[security] operator is not a member of %s (status=%s), leaving", title, status)
        with contextlib.suppress(Exception):
            await self.chat.send_text(message.chat_id, pick_phrase("admin_missing_farewell", self.rng))
        with contextlib.suppress(Exception):
            await self.chat.leave_chat(message.chat_id)
        return False

    async def handle_admin_left(self, message: IncomingMessage) -> bool:
        left = message.left_member
        if left is None or not self._is_admin(left.id):
            return False
        logger.warning("[security] operator left %s, leaving too", message.chat_title or message.chat_id)
        with contextlib.suppress(Exception):
            await self.chat.send_text(message.chat_id, phrase("admin_left_farewell"))
        with contextlib.suppress(Exception):
            await self.chat.leave_chat(message.chat_id)
        return True

    def _note_contact(self, message: IncomingMessage) -> None:
        chat_id = message.chat_id
        title = message.chat_title or message.sender.handle or "Unknown"
        if not self.store.has_chat(chat_id) and chat_id != self.admin_user_id:
            who = message.sender.display_name
            if message.is_private:
                details = phrase("alert_new_contact_private", who=who, text=message.body)
            elif any(str(member.id) == self.bot_user_id for member in message.new_members):
                details = phrase("alert_new_contact_added", who=who)
            else:
                details = phrase("alert_new_contact_activity", who=who, text=message.body)
            self.notify_operator(phrase("alert_new_contact", chat_title=title, chat_id=chat_id, details=details))
        self.store.update_chat_name(chat_id, title)

    async def _handle_private_stranger(self, message: IncomingMessage, command: str) -> None:
        """Forwards a private message from a non-operator and answers with the info text."""
        content = message.body or phrase("alert_private_attachment")
        self.notify_operator(phrase("alert_private_message", who=message.sender.display_name, content=content))

        if command == f"{self.settings.command_prefix}start":
            return
        with contextlib.suppress(Exception):
            await self.chat.send_action(message.chat_id, "typing")
        await asyncio.sleep(self.private_reply_delay)
        with contextlib.suppress(Exception):
            await self.chat.send_text(message.chat_id, phrase("private_info_text"))
