from __future__ import annotations

import json
import logging

from .utils import read_text_with_fallback

logger = logging.getLogger("sych_bot")


class StoreInstructionsMixin:
    def get_user_instruction(self, username: str) -> str:
        # Read on every call; the file is edited by hand.
        if not username:
            return ""
        path = self.instructions_path
        if not path.exists():
            return ""
        try:
            payload = json.loads(read_text_with_fallback(path))
        except Exception as exc:
            logger.warning("Failed to read %s: %s", path.name, exc)
            return ""
        if not isinstance(payload, dict):
            return ""
        value = payload.get(username.casefold().lstrip("@"))
        return value.strip() if isinstance(value, str) else ""
