from __future__ import annotations

from pathlib import Path

from .storage.chats import StoreChatsMixin
from .storage.document import DebouncedJsonDocument
from .storage.instructions import StoreInstructionsMixin
from .storage.profiles import StoreProfilesMixin
from .storage.reminders import StoreRemindersMixin


def _empty_db() -> dict:
    return {"chats": {}, "reminders": []}


def _empty_profiles() -> dict:
    return {}


class StateStore(
    StoreChatsMixin,
    StoreRemindersMixin,
    StoreProfilesMixin,
    StoreInstructionsMixin,
):
    """File-backed chat metadata, mute flags, reminders and user profiles."""

    def __init__(self, data_dir: Path, debounce_seconds: float = 5.0) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.db = DebouncedJsonDocument(self.data_dir / "db.json", _empty_db, debounce_seconds)
        self.profiles = DebouncedJsonDocument(self.data_dir / "profiles.json", _empty_profiles, debounce_seconds)
        self.instructions_path = self.data_dir / "instructions.json"
        self.load()

    def load(self) -> None:
        self.db.load()
        self._reminders()
        self._chats()
        self.profiles.load()
        if not self.instructions_path.exists():
            self.instructions_path.write_text("{}", encoding="utf-8")

    def flush(self) -> None:
        self.db.flush()
        self.profiles.flush()
