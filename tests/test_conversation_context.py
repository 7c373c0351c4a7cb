from __future__ import annotations

import asyncio
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sych_bot.engine.context import ConversationContext  # noqa: E402


def test_history_is_capped_with_fifo_eviction() -> None:
    context = ConversationContext(history_limit=3)
    for index in range(5):
        context.append_history("100", "User", f"message {index}")

    assert [item.text for item in context.history("100")] == ["message 2", "message 3", "message 4"]
    assert context.history("200") == []


def test_history_text_renders_last_lines() -> None:
    context = ConversationContext(history_limit=10)
    context.append_history("100", "Petya", "hello")
    context.append_history("100", "Sych", "hoot")
    context.append_history("100", "Petya", "bye")

    assert context.history_text("100", 2) == "Sych: hoot\nPetya: bye"


def test_buffer_batch_is_handed_out_once_and_skips_commands() -> None:
    context = ConversationContext(buffer_threshold=3, command_prefix="/")

    assert context.append_buffer("100", "1", "A", "one") is None
    assert context.append_buffer("100", "1", "A", "/mute") is None
    assert context.append_buffer("100", "2", "B", "two") is None
    batch = context.append_buffer("100", "1", "A", "three")

    assert batch is not None
    assert [entry.text for entry in batch] == ["one", "two", "three"]
    assert context.pending_buffer("100") == []
    assert context.append_buffer("100", "1", "A", "four") is None


def test_concurrent_buffer_appends_never_duplicate_a_sample() -> None:
    context = ConversationContext(buffer_threshold=5)

    async def producer(index: int) -> list | None:
        await asyncio.sleep(0)
        return context.append_buffer("100", str(index % 3), "U", f"sample {index}")

    async def scenario() -> list:
        return await asyncio.gather(*(producer(index) for index in range(23)))

    results = asyncio.run(scenario())
    batches = [batch for batch in results if batch]

    assert len(batches) == 4
    flushed = [entry.text for batch in batches for entry in batch]
    pending = [entry.text for entry in context.pending_buffer("100")]
    assert len(flushed) == 20
    assert len(set(flushed + pending)) == 23


def test_reset_clears_history_and_buffer() -> None:
    context = ConversationContext(buffer_threshold=10)
    context.append_history("100", "User", "hello")
    context.append_buffer("100", "1", "User", "hello")

    context.reset("100")

    assert context.history("100") == []
    assert context.pending_buffer("100") == []
