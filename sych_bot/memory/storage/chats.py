from __future__ import annotations

import random
from typing import Any

from ...engine.common import ChatUser, normalize_topic_id


class StoreChatsMixin:
    def _chats(self) -> dict[str, Any]:
        chats = self.db.data.get("chats")
        if not isinstance(chats, dict):
            chats = {}
            self.db.data["chats"] = chats
        return chats

    def has_chat(self, chat_id: str) -> bool:
        return str(chat_id) in self._chats()

    def get_chat(self, chat_id: str) -> dict[str, Any]:
        chats = self._chats()
        key = str(chat_id)
        chat = chats.get(key)
        if not isinstance(chat, dict):
            chat = {"mutedTopics": [], "users": {}}
            chats[key] = chat
            self.db.mark_dirty()
        if not isinstance(chat.get("mutedTopics"), list):
            chat["mutedTopics"] = []
        if not isinstance(chat.get("users"), dict):
            chat["users"] = {}
        return chat

    def update_chat_name(self, chat_id: str, name: str) -> None:
        if not name:
            return
        chat = self.get_chat(chat_id)
        if chat.get("chatName") != name:
            chat["chatName"] = name
            self.db.mark_dirty()

        # Mirrored as "_chatName" in the profiles document.
        chat_profiles = self._chat_profiles(chat_id)
        if chat_profiles.get("_chatName") != name:
            chat_profiles["_chatName"] = name
            self.profiles.mark_dirty()

    def track_user(self, chat_id: str, user: ChatUser) -> None:
        if user.is_bot:
            return
        chat = self.get_chat(chat_id)
        name = user.handle
        key = str(user.id)
        if chat["users"].get(key) != name:
            chat["users"][key] = name
            self.db.mark_dirty()

    def get_random_user(self, chat_id: str, rng: random.Random | None = None) -> str | None:
        users = self.get_chat(chat_id)["users"]
        if not users:
            return None
        picker = rng or random
        return users[picker.choice(list(users))]

    def is_topic_muted(self, chat_id: str, thread_id: object) -> bool:
        topic = normalize_topic_id(thread_id)
        return any(str(item) == topic for item in self.get_chat(chat_id)["mutedTopics"])

    def set_topic_muted(self, chat_id: str, thread_id: object, muted: bool) -> bool:
        topic = normalize_topic_id(thread_id)
        chat = self.get_chat(chat_id)
        current = [str(item) for item in chat["mutedTopics"]]
        if muted and topic not in current:
            chat["mutedTopics"] = [*current, topic]
            self.db.mark_dirty()
        elif not muted and topic in current:
            chat["mutedTopics"] = [item for item in current if item != topic]
            self.db.mark_dirty()
        return muted

    def toggle_mute(self, chat_id: str, thread_id: object) -> bool:
        """Flips the topic mute flag and returns the new state."""
        return self.set_topic_muted(chat_id, thread_id, not self.is_topic_muted(chat_id, thread_id))
