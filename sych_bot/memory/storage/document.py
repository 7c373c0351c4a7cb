from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable

from .utils import atomic_write_text, read_text_with_fallback

logger = logging.getLogger("sych_bot")


class DebouncedJsonDocument:
    """In-memory JSON document whose writes are coalesced into one trailing write.

    Every mutation calls ``mark_dirty()``, which (re)arms a timer on the running
    loop. The file is written once the document has been quiet for
    ``delay_seconds``. ``flush()`` writes pending changes immediately and is the
    shutdown primitive; without a running loop nothing is written until then.
    """

    def __init__(
        self,
        path: Path,
        default_factory: Callable[[], Any],
        delay_seconds: float = 5.0,
    ) -> None:
        self.path = Path(path)
        self.default_factory = default_factory
        self.delay_seconds = max(0.0, float(delay_seconds))
        self.data: Any = default_factory()
        self.write_count = 0
        self._dirty = False
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._dirty

    def ensure_file(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            atomic_write_text(self.path, json.dumps(self.default_factory(), ensure_ascii=False, indent=2))

    def load(self) -> Any:
        self.ensure_file()
        expected_type = type(self.default_factory())
        try:
            payload = json.loads(read_text_with_fallback(self.path))
        except Exception as exc:
            logger.warning("Failed to read %s (%s); resetting to an empty store.", self.path.name, exc)
            payload = self.default_factory()
        if not isinstance(payload, expected_type):
            logger.warning("Unexpected root in %s; resetting to an empty store.", self.path.name)
            payload = self.default_factory()
        self.data = payload
        return self.data

    def mark_dirty(self) -> None:
        self._dirty = True
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timer = loop.call_later(self.delay_seconds, self._on_quiet_period)

    def _on_quiet_period(self) -> None:
        self._timer = None
        self.flush()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def flush(self) -> bool:
        self._cancel_timer()
        if not self._dirty:
            return False
        try:
            atomic_write_text(self.path, json.dumps(self.data, ensure_ascii=False, indent=2))
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to write %s: %s", self.path.name, exc)
            return False
        self._dirty = False
        self.write_count += 1
        return True
