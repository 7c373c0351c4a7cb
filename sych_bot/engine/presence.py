from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger("sych_bot")


class PresenceController:
    """Keeps a "typing" indicator alive for the duration of one operation.

    ``start()`` sends a signal right away and repeats it every ``interval``
    seconds; a safety timer stops everything after ``timeout`` seconds even if
    the bracketed operation never finishes. Instances share no state, so
    stopping one never touches the timers of another.
    """

    def __init__(
        self,
        send_signal: Callable[[], Awaitable[object]],
        *,
        interval: float = 4.0,
        timeout: float = 20.0,
        label: str = "",
    ) -> None:
        self._send_signal = send_signal
        self.interval = max(0.01, float(interval))
        self.timeout = max(0.01, float(timeout))
        self.label = label
        self._repeat_task: asyncio.Task[None] | None = None
        self._safety_handle: asyncio.TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._repeat_task is not None

    def start(self) -> None:
        if self._repeat_task is not None:
            return
        loop = asyncio.get_running_loop()
        self._repeat_task = loop.create_task(self._repeat(), name=f"presence:{self.label}")
        self._safety_handle = loop.call_later(self.timeout, self._expire)

    def stop(self) -> None:
        if self._safety_handle is not None:
            self._safety_handle.cancel()
            self._safety_handle = None
        if self._repeat_task is not None:
            self._repeat_task.cancel()
            self._repeat_task = None

    def _expire(self) -> None:
        self._safety_handle = None
        if self._repeat_task is not None:
            logger.info("[presence] safety timeout reached for %s", self.label or "operation")
        self.stop()

    async def _repeat(self) -> None:
        while True:
            try:
                await self._send_signal()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.debug("[presence] signal failed for %s: %s", self.label, exc)
            await asyncio.sleep(self.interval)

    async def __aenter__(self) -> "PresenceController":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.stop()
