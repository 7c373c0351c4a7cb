from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

logger = logging.getLogger("sych_bot")


def parse_reminder_time(raw: object) -> datetime | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class StoreRemindersMixin:
    def _reminders(self) -> list[dict[str, Any]]:
        reminders = self.db.data.get("reminders")
        if not isinstance(reminders, list):
            reminders = []
            self.db.data["reminders"] = reminders
        return reminders

    def add_reminder(
        self,
        chat_id: str,
        user_id: str,
        username: str,
        fire_at: datetime,
        text: str,
    ) -> dict[str, Any]:
        if fire_at.tzinfo is None:
            fire_at = fire_at.replace(tzinfo=timezone.utc)
        item = {
            "id": uuid.uuid4().hex,
            "chatId": str(chat_id),
            "userId": str(user_id),
            "username": username,
            "time": fire_at.isoformat(),
            "text": text,
        }
        self._reminders().append(item)
        self.db.mark_dirty()
        return dict(item)

    def list_reminders(self, chat_id: str | None = None) -> list[dict[str, Any]]:
        items = self._reminders()
        if chat_id is None:
            return [dict(item) for item in items]
        return [dict(item) for item in items if str(item.get("chatId")) == str(chat_id)]

    def get_pending_reminders(self, now: datetime | None = None) -> list[dict[str, Any]]:
        """Snapshot of reminders whose fire time is at or before ``now``."""
        moment = now or datetime.now(timezone.utc)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        due: list[dict[str, Any]] = []
        for item in self._reminders():
            if not isinstance(item, dict):
                continue
            fire_at = parse_reminder_time(item.get("time"))
            if fire_at is None:
                # Unreadable entries count as due so the tick that selects them also removes them.
                logger.warning("[reminder] unreadable fire time %r for id=%s", item.get("time"), item.get("id"))
                due.append(dict(item))
                continue
            if fire_at <= moment:
                due.append(dict(item))
        return due

    def remove_reminders(self, ids: Iterable[object]) -> int:
        wanted = {str(item) for item in ids}
        if not wanted:
            return 0
        reminders = self._reminders()
        kept = [item for item in reminders if not (isinstance(item, dict) and str(item.get("id")) in wanted)]
        removed = len(reminders) - len(kept)
        if removed:
            self.db.data["reminders"] = kept
            self.db.mark_dirty()
        return removed
