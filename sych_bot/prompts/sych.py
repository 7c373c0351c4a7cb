from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterable

from .json_loader import load_prompt_json

_DEFAULTS: dict[str, Any] = {
    "system_prompt": (
        "You are Sych, a sarcastic but good-natured owl who lives in a group chat. "
        "You talk like a regular member of the chat: short, lively, ironic, no corporate politeness. "
        "You never call yourself an AI or a language model. "
        "Answer in the language of the last message. "
        "Use light markdown only: *bold*, bullet lists, no tables."
    ),
    "ambient_rule": (
        "Nobody called you. You decided to butt into the conversation on your own, "
        "so keep it to one or two sentences and make it count."
    ),
    "direct_rule": "You were addressed directly. Answer the question properly, then add some character.",
    "time_line_template": "Current time: {now}",
    "instruction_template": "Special instruction for this user (highest priority): {instruction}",
    "profile_template": (
        "What you know about {sender}: real name: {real_name}; facts: {facts}; "
        "your attitude: {attitude}; relationship score (0 hate, 100 love): {relationship}."
    ),
    "history_header": "Recent chat (oldest first):",
    "reply_context_template": "{sender} is replying to this message: \"{reply_text}\"",
    "current_turn_template": "{sender}: {text}",
    "attachment_note": "The user attached a file; look at it before answering.",
    "engage_system_prompt": (
        "You decide whether a chat bot named Sych should join a conversation uninvited. "
        "Say yes only if the last messages are a question to the room, an argument Sych can settle "
        "or something genuinely funny to comment on. Otherwise say no."
    ),
    "engage_user_template": "Conversation:\n{history}\n\nShould Sych reply? Return JSON.",
    "engage_schema_hint": {"engage": "boolean"},
    "reaction_system_prompt": (
        "Pick one Discord reaction emoji for the last message, or null if no reaction fits. "
        "Prefer common emoji: 👍 👎 😂 🔥 🤔 😢 ❤️ 🤡 💩 🗿 🦉."
    ),
    "reaction_user_template": "{context}\n\nReturn JSON.",
    "reaction_schema_hint": {"emoji": "string or null"},
    "reminder_system_prompt": (
        "Extract a reminder from the user's request. Current time is {now} ({timezone}). "
        "Resolve relative dates like 'tomorrow at 10' or 'in 5 minutes' against the current time. "
        "If the request replies to another message, take the event and date from that message when the request itself has none. "
        "Return target_time as ISO 8601 with a UTC offset, reminder_text as what to remind about, "
        "and confirmation as a short in-character reply confirming the reminder with the date and time. "
        "If no time can be determined, return target_time null."
    ),
    "reminder_user_template": "Request: {text}\nReplied message: {reply_context}\nReturn JSON.",
    "reminder_schema_hint": {"target_time": "ISO 8601 string or null", "reminder_text": "string", "confirmation": "string"},
    "transcribe_system_prompt": (
        "Transcribe the voice message word for word, fixing only obvious recognition errors, "
        "and write a one-sentence summary of its point. The speaker is {speaker}."
    ),
    "transcribe_user_template": "Transcribe the attached audio. Return JSON.",
    "transcribe_schema_hint": {"text": "string", "summary": "string"},
    "batch_system_prompt": (
        "You observe a group chat and maintain short profiles of its members. "
        "For every user id in the messages, update what you learned: realName if they revealed it, "
        "facts as a compact comma-separated list, attitude as a short description of how Sych should treat them, "
        "relationship as an integer 0..100. Omit fields you learned nothing about. Omit users with nothing new."
    ),
    "batch_user_template": "Current profiles:\n{profiles}\n\nMessages:\n{messages}\n\nReturn JSON keyed by user id.",
    "batch_schema_hint": {"<user id>": {"realName": "string", "facts": "string", "attitude": "string", "relationship": 50}},
    "immediate_system_prompt": (
        "Update the profile of the last human speaker after their exchange with Sych. "
        "Raise relationship for kindness or humour, lower it for rudeness, change it by at most 5 points. "
        "Keep existing facts unless contradicted."
    ),
    "immediate_user_template": "Current profile:\n{profile}\n\nRecent exchange:\n{context}\n\nReturn JSON.",
    "immediate_schema_hint": {"realName": "string", "facts": "string", "attitude": "string", "relationship": 50},
    "flavor_system_prompt": (
        "You are Sych. Announce the result of a small chat game in one or two funny sentences. "
        "The result must appear in your answer exactly as given."
    ),
    "flavor_user_template": "Task: {task}\nResult: {result}",
    "describe_system_prompt": (
        "You are Sych. Describe a chat member to the others based on your notes, "
        "honestly and with humour, in three to five sentences. Do not invent facts."
    ),
    "describe_user_template": "Member: {target}\nNotes:\n{profile}",
}


def _cfg() -> dict[str, Any]:
    return load_prompt_json("sych.json", _DEFAULTS)


def prompt(key: str) -> str:
    value = _cfg().get(key, _DEFAULTS.get(key, ""))
    return value if isinstance(value, str) else ""


def schema_hint(key: str) -> str:
    value = _cfg().get(key, _DEFAULTS.get(key))
    return json.dumps(value, ensure_ascii=False)


def build_respond_system_prompt(
    *,
    now: datetime,
    is_ambient: bool,
    instruction: str,
    sender: str,
    profile: dict[str, Any],
) -> str:
    lines = [
        prompt("system_prompt"),
        prompt("time_line_template").format(now=now.strftime("%Y-%m-%d %H:%M %Z").strip()),
        prompt("ambient_rule") if is_ambient else prompt("direct_rule"),
    ]
    if instruction:
        lines.append(prompt("instruction_template").format(instruction=instruction))
    if profile:
        lines.append(
            prompt("profile_template").format(
                sender=sender,
                real_name=profile.get("realName") or "unknown",
                facts=profile.get("facts") or "none",
                attitude=profile.get("attitude") or "Neutral",
                relationship=profile.get("relationship", 50),
            )
        )
    return "\n".join(line for line in lines if line)


def build_respond_user_prompt(
    history_lines: Iterable[str],
    *,
    sender: str,
    text: str,
    reply_text: str,
    has_attachment: bool,
) -> str:
    parts: list[str] = []
    history = "\n".join(history_lines)
    if history:
        parts.append(f"{prompt('history_header')}\n{history}")
    if reply_text:
        parts.append(prompt("reply_context_template").format(sender=sender, reply_text=reply_text))
    parts.append(prompt("current_turn_template").format(sender=sender, text=text))
    if has_attachment:
        parts.append(prompt("attachment_note"))
    return "\n\n".join(parts)
