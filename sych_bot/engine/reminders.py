from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ..prompts.phrases import phrase
from .ports import AIGateway, ChatGateway

if TYPE_CHECKING:
    from ..memory.store import StateStore

logger = logging.getLogger("sych_bot")


class ReminderScheduler:
    """Durable reminder queue polled on a fixed period.

    Delivery is at-most-once: every reminder a tick selects is removed after
    its single delivery attempt, whether or not that attempt succeeded.
    """

    def __init__(
        self,
        store: "StateStore",
        ai: AIGateway,
        chat: ChatGateway,
        *,
        poll_seconds: float = 60.0,
    ) -> None:
        self.store = store
        self.ai = ai
        self.chat = chat
        self.poll_seconds = max(0.05, float(poll_seconds))
        self._task: asyncio.Task[None] | None = None

    async def parse_and_schedule(
        self,
        chat_id: str,
        user_id: str,
        username: str,
        raw_text: str,
        reply_context: str = "",
    ) -> str | None:
        parsed = await self.ai.parse_reminder(raw_text, reply_context)
        if parsed is None:
            logger.info("[reminder] could not parse a time from: %s", raw_text[:120])
            return None
        self.store.add_reminder(chat_id, user_id, username, parsed.fire_at, parsed.text)
        logger.info("[reminder] scheduled for %s in chat=%s", parsed.fire_at.isoformat(), chat_id)
        return parsed.confirmation

    async def tick(self, now: datetime | None = None) -> int:
        moment = now or datetime.now(timezone.utc)
        due = self.store.get_pending_reminders(moment)
        if not due:
            return 0
        logger.info("[reminder] %d reminder(s) due", len(due))
        ids = [item.get("id") for item in due]

        await asyncio.gather(*(self._deliver(item) for item in due))

        self.store.remove_reminders(ids)
        return len(ids)

    async def _deliver(self, item: dict) -> None:
        text = phrase("reminder_message", username=item.get("username") or "", text=item.get("text") or "")
        try:
            await self.chat.send_text(str(item.get("chatId")), text)
        except Exception as exc:
            logger.error("[reminder] delivery to chat=%s failed: %s", item.get("chatId"), exc)
        else:
            logger.info("[reminder] delivered id=%s", item.get("id"))

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="reminder-ticker")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.poll_seconds)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[reminder] tick failed")
