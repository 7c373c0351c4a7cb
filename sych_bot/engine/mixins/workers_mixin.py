from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Coroutine

from ..common import BufferEntry

logger = logging.getLogger("sych_bot")


class WorkersMixin:
    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task[Any]:
        """Runs ``coro`` in the background; its failure is logged and never reaches the caller."""
        task = asyncio.create_task(self._guarded(coro, label), name=label)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _guarded(self, coro: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background task failed: %s", label)

    async def alert_operator(self, text: str) -> None:
        if not self.admin_user_id or not text:
            return
        await self.chat.send_text(self.admin_user_id, text, markdown=True)

    def notify_operator(self, text: str) -> None:
        self.dispatcher.emit_alert(text)

    def _buffer_sample(self, chat_id: str, user_id: str, name: str, text: str) -> None:
        if not text:
            return
        batch = self.context.append_buffer(chat_id, user_id, name, text)
        if batch:
            self.spawn(self._flush_analysis_batch(chat_id, batch), f"observer:{chat_id}")

    async def _flush_analysis_batch(self, chat_id: str, batch: list[BufferEntry]) -> None:
        user_ids = list(dict.fromkeys(entry.user_id for entry in batch))
        current = self.store.get_profiles_for_users(chat_id, user_ids)
        updates = await self.ai.batch_analyze(batch, current)
        if not updates:
            logger.info("[observer] no profile updates for chat=%s (%d samples)", chat_id, len(batch))
            return
        changed = self.store.bulk_update_profiles(chat_id, updates)
        logger.info("[observer] updated %d profile(s) in chat=%s", changed, chat_id)

    async def _update_profile_immediate(self, chat_id: str, user_id: str, sender_name: str) -> None:
        recent = self.context.history_text(chat_id, 5)
        profile = self.store.get_profile(chat_id, user_id)
        updated = await self.ai.analyze_immediate(recent, profile)
        if not updated:
            logger.info("[relationship] no profile update for %s", sender_name)
            return
        if "relationship" in updated:
            logger.info("[relationship] %s: relationship now %s/100", sender_name, updated.get("relationship"))
        self.store.bulk_update_profiles(chat_id, {user_id: updated})

    async def close(self, timeout: float = 10.0) -> None:
        await self.scheduler.stop()
        pending = [task for task in self._background if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            for task in still_running:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self.store.flush()
