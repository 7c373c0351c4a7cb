from __future__ import annotations

import asyncio
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sych_bot.engine.presence import PresenceController  # noqa: E402


class _Counter:
    def __init__(self, *, fail: bool = False) -> None:
        self.calls = 0
        self.fail = fail

    async def __call__(self) -> None:
        self.calls += 1
        if self.fail:
            raise RuntimeError("typing rejected")


def test_stop_before_start_is_a_no_op() -> None:
    counter = _Counter()
    presence = PresenceController(counter, interval=0.05, timeout=1.0)

    presence.stop()

    assert not presence.active
    assert counter.calls == 0


def test_second_start_keeps_the_running_indicator() -> None:
    counter = _Counter()

    async def scenario() -> None:
        presence = PresenceController(counter, interval=10.0, timeout=5.0)
        presence.start()
        first = presence._repeat_task
        presence.start()
        assert presence._repeat_task is first
        await asyncio.sleep(0.05)
        presence.stop()
        assert not presence.active

    asyncio.run(scenario())

    assert counter.calls == 1


def test_signal_repeats_until_stopped() -> None:
    counter = _Counter()

    async def scenario() -> None:
        async with PresenceController(counter, interval=0.03, timeout=5.0):
            await asyncio.sleep(0.1)
        stopped_at = counter.calls
        await asyncio.sleep(0.1)
        assert counter.calls == stopped_at

    asyncio.run(scenario())

    assert counter.calls >= 2


def test_safety_timeout_stops_a_forgotten_indicator() -> None:
    counter = _Counter()

    async def scenario() -> PresenceController:
        presence = PresenceController(counter, interval=0.01, timeout=0.05)
        presence.start()
        await asyncio.sleep(0.15)
        assert not presence.active
        frozen = counter.calls
        await asyncio.sleep(0.05)
        assert counter.calls == frozen
        presence.stop()
        return presence

    asyncio.run(scenario())


def test_failing_signal_does_not_stop_the_loop() -> None:
    counter = _Counter(fail=True)

    async def scenario() -> None:
        presence = PresenceController(counter, interval=0.02, timeout=5.0)
        presence.start()
        await asyncio.sleep(0.09)
        assert presence.active
        presence.stop()

    asyncio.run(scenario())

    assert counter.calls >= 2


def test_independent_controllers_do_not_share_timers() -> None:
    first_counter = _Counter()
    second_counter = _Counter()

    async def scenario() -> None:
        first = PresenceController(first_counter, interval=0.02, timeout=5.0)
        second = PresenceController(second_counter, interval=0.02, timeout=5.0)
        first.start()
        second.start()
        first.stop()
        await asyncio.sleep(0.07)
        assert second.active
        assert not first.active
        second.stop()

    asyncio.run(scenario())

    assert second_counter.calls >= 2
