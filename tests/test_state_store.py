from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sych_bot.engine.common import ChatUser, normalize_topic_id  # noqa: E402
from sych_bot.memory.storage.utils import coerce_relationship, merge_profile_state  # noqa: E402
from sych_bot.memory.store import StateStore  # noqa: E402


def test_none_and_zero_thread_ids_share_the_general_topic(tmp_path: Path) -> None:
    store = StateStore(tmp_path)

    assert store.toggle_mute("100", None) is True

    assert store.is_topic_muted("100", 0)
    assert store.is_topic_muted("100", "0")
    assert store.is_topic_muted("100", "")
    assert not store.is_topic_muted("100", 7)
    assert not store.is_topic_muted("200", None)

    assert store.toggle_mute("100", 0) is False
    assert not store.is_topic_muted("100", None)


def test_numeric_thread_ids_compare_as_strings(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.set_topic_muted("100", 555, True)

    assert store.is_topic_muted("100", "555")
    assert normalize_topic_id(555) == "555"
    assert normalize_topic_id(None) == normalize_topic_id(0) == "general"


def test_profile_merge_accepts_numeric_strings_and_clamps() -> None:
    assert coerce_relationship("75") == 75
    assert coerce_relationship(" 12.9 ") == 12
    assert coerce_relationship(250) == 100
    assert coerce_relationship("abc") is None
    assert coerce_relationship(True) is None

    merged = merge_profile_state({"relationship": "80", "facts": "likes owls"}, {"relationship": "nope"})
    assert merged["relationship"] == 80
    assert merged["facts"] == "likes owls"


def test_bulk_update_profiles_merges_deltas(tmp_path: Path) -> None:
    store = StateStore(tmp_path)

    changed = store.bulk_update_profiles(
        "100",
        {
            "42": {"relationship": "75", "facts": "plays guitar", "realName": "Unknown"},
            "43": "not a delta",
        },
    )

    assert changed == 1
    profile = store.get_profile("100", "42")
    assert profile["relationship"] == 75
    assert profile["facts"] == "plays guitar"
    assert profile["realName"] is None

    store.bulk_update_profiles("100", {"42": {"realName": "Vasya", "relationship": 400}})
    profile = store.get_profile("100", "42")
    assert profile["realName"] == "Vasya"
    assert profile["relationship"] == 100
    assert profile["facts"] == "plays guitar"


def test_unknown_profile_has_defaults(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    profile = store.get_profile("100", "nobody")
    assert profile["relationship"] == 50
    assert profile["attitude"] == "Neutral"


def test_reading_a_profile_does_not_mutate_the_stored_document(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.profiles.data["100"] = {"42": {"facts": "likes owls"}}

    profile = store.get_profile("100", "42")
    profile["facts"] = "edited copy"

    assert profile["relationship"] == 50
    assert store.profiles.data["100"]["42"] == {"facts": "likes owls"}


def test_find_profile_by_query_matches_handle_then_real_name(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.track_user("100", ChatUser(id="42", first_name="Vasily", username="vasya_b"))
    store.track_user("100", ChatUser(id="43", first_name="Olga"))
    store.bulk_update_profiles("100", {"43": {"realName": "Olga Petrova", "facts": "cat person"}})

    by_handle = store.find_profile_by_query("100", "@Vasya_B")
    assert by_handle is not None
    assert by_handle["username"] == "@vasya_b"

    by_name = store.find_profile_by_query("100", "petrova")
    assert by_name is not None
    assert by_name["facts"] == "cat person"

    assert store.find_profile_by_query("100", "ghost") is None


def test_bot_accounts_are_not_tracked(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.track_user("100", ChatUser(id="9", first_name="OtherBot", is_bot=True))
    assert store.get_random_user("100") is None


def test_mutations_are_coalesced_into_one_write(tmp_path: Path) -> None:
    async def scenario() -> StateStore:
        store = StateStore(tmp_path, debounce_seconds=0.05)
        for index in range(5):
            store.track_user("100", ChatUser(id=str(index), first_name=f"User{index}"))
        assert store.db.write_count == 0
        assert store.db.pending
        await asyncio.sleep(0.2)
        return store

    store = asyncio.run(scenario())

    assert store.db.write_count == 1
    assert not store.db.pending
    payload = json.loads((tmp_path / "db.json").read_text(encoding="utf-8"))
    assert len(payload["chats"]["100"]["users"]) == 5


def test_flush_persists_reminders_across_restart(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.add_reminder("100", "42", "@vasya", datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc), "buy milk")
    store.set_topic_muted("100", None, True)
    store.flush()

    reopened = StateStore(tmp_path)
    reminders = reopened.list_reminders("100")
    assert [item["text"] for item in reminders] == ["buy milk"]
    assert reopened.is_topic_muted("100", 0)


def test_corrupt_document_resets_to_empty(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    (tmp_path / "db.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "profiles.json").write_text("[1, 2, 3]", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="sych_bot"):
        store = StateStore(tmp_path)

    assert store.list_reminders() == []
    assert not store.has_chat("100")
    assert store.get_profile("100", "42")["relationship"] == 50
    assert "resetting to an empty store" in caplog.text


def test_user_instruction_is_read_from_disk_on_each_call(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    assert store.get_user_instruction("vasya") == ""

    store.instructions_path.write_text(json.dumps({"vasya": "Always answer in rhymes."}), encoding="utf-8")
    assert store.get_user_instruction("@Vasya") == "Always answer in rhymes."
