from __future__ import annotations

from typing import Any, Iterable

from .utils import DEFAULT_RELATIONSHIP, default_profile, merge_profile_state


class StoreProfilesMixin:
    def _chat_profiles(self, chat_id: str) -> dict[str, Any]:
        key = str(chat_id)
        chat_profiles = self.profiles.data.get(key)
        if not isinstance(chat_profiles, dict):
            chat_profiles = {}
            self.profiles.data[key] = chat_profiles
        return chat_profiles

    def get_profile(self, chat_id: str, user_id: str) -> dict[str, Any]:
        stored = self._chat_profiles(chat_id).get(str(user_id))
        if not isinstance(stored, dict):
            return default_profile()
        profile = dict(stored)
        profile.setdefault("relationship", DEFAULT_RELATIONSHIP)
        return profile

    def get_profiles_for_users(self, chat_id: str, user_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        chat_profiles = self._chat_profiles(chat_id)
        result: dict[str, dict[str, Any]] = {}
        for user_id in user_ids:
            stored = chat_profiles.get(str(user_id))
            if isinstance(stored, dict):
                result[str(user_id)] = dict(stored)
        return result

    def bulk_update_profiles(self, chat_id: str, updates: dict[str, Any]) -> int:
        """Merges analyzer deltas into the stored profiles; returns the number of merged users."""
        if not isinstance(updates, dict) or not updates:
            return 0
        chat_profiles = self._chat_profiles(chat_id)
        merged = 0
        for user_id, delta in updates.items():
            key = str(user_id)
            if key.startswith("_") or not isinstance(delta, dict):
                continue
            current = chat_profiles.get(key)
            chat_profiles[key] = merge_profile_state(current if isinstance(current, dict) else None, delta)
            merged += 1
        if merged:
            self.profiles.mark_dirty()
        return merged

    def find_profile_by_query(self, chat_id: str, query: str) -> dict[str, Any] | None:
        needle = query.casefold().replace("@", "").strip()
        if not needle:
            return None
        users = self.get_chat(chat_id)["users"]

        for user_id, handle in users.items():
            if needle in str(handle).casefold():
                return {**self.get_profile(chat_id, user_id), "username": handle}

        for user_id, profile in self._chat_profiles(chat_id).items():
            if user_id.startswith("_") or not isinstance(profile, dict):
                continue
            real_name = profile.get("realName")
            if isinstance(real_name, str) and needle in real_name.casefold():
                return {**profile, "username": users.get(user_id, "Unknown")}
        return None
