from __future__ import annotations

import random
from typing import Any

from .json_loader import load_prompt_json

_DEFAULTS: dict[str, Any] = {
    "ai_failure": {
        "content_policy": [
            "🤬 Google switched on the moralist again and censored my answer. Says we're too toxic here. Sorry.",
            "🔞 Nope, that's a ban. The model refused to generate it, something about a safety policy. Too dirty even for me.",
            "👮 Censorship has arrived. Somebody's delicate feelings were at risk. Try asking more gently.",
        ],
        "overload": [
            "🔥 Google's servers are melting. \"Model is overloaded\". Give them a minute to cool down.",
            "🐌 Google is lagging badly. I sent the request and got silence back.",
            "💤 The model is tired and says \"Service Unavailable\". Let it have a smoke break.",
        ],
        "rate_limit": [
            "💸 That's it, folks, we're out of quota. We talk too much. Waiting for the limits to reset.",
            "🛑 Hold on. Too Many Requests. I've been answering too fast and got throttled.",
            "📉 Quota's gone. Google said \"enough chatter\". Try again later.",
        ],
        "payload_too_large": [
            "🐘 Did you just send me the Library of Congress? Too fat, I can't digest that.",
            "📜 Way too many letters. Payload size limit. Cut it down, it doesn't fit.",
            "💾 That file is too heavy for my prompt. Give me something lighter.",
        ],
        "unknown": [
            "🛠 My gears just jammed. Something weird in the code. Admin, wake up, everything's broken!",
            "💥 I fell over. Critical error. Admin, fix me, I can't work like this.",
            "🚑 Houston, we have a problem. I caught a bug and have no idea what to do. Admin, help.",
        ],
    },
    "admin_missing_farewell": [
        "Hold on. I don't see the admin here. No charity today, I'm out!",
        "Where did I end up? The boss isn't around, so I'm out!",
        "Thought you could steal a bot? I don't work in orphanages. I'm out!",
        "⚠️ ERROR: ADMIN NOT FOUND. Self-respect protocol engaged. I'm out!",
    ],
    "bot_name": "Sych",
    "admin_left_farewell": "The boss left, and so do I.",
    "truncation_notice": "\n\n...[this is getting way too long, I'm tired]...",
    "help_text": (
        "*Here's your guide*\n\n"
        "*🦉 I see and hear:*\n"
        "• Send a voice message and I'll transcribe it with a short gist.\n"
        "• Send a photo, video or document and I'll comment on it.\n"
        "• I'll remind you about anything: \"Sych, remind me tomorrow at 10 to ...\", "
        "or reply to a message with a date in it.\n\n"
        "*🎲 Fun:*\n"
        "• \"Sych, flip a coin\" for heads or tails.\n"
        "• \"Sych, number 1-100\" for a random number.\n"
        "• \"Sych, who of us ...\" and I'll pick the lucky one.\n\n"
        "*🕵️ Dossiers:*\n"
        "• \"Sych, tell me about @user\" and I'll share what I know.\n\n"
        "*⚙️ Settings:*\n"
        "• /mute toggles quiet mode for this topic.\n"
        "• /reset wipes my memory of this chat."
    ),
    "private_info_text": (
        "In private I only talk to my admin.\n\n"
        "The bot runs on the admin's own API keys, and the admin answers for everything it says, "
        "so it only works in chats where the admin is present.\n\n"
        "Come find me in one of those chats: just say \"Sych\" or reply to any of my messages."
    ),
    "mute_on": "🦉 Fine, I'll keep quiet",
    "mute_off": "🦉 I'm back",
    "reset_done": "🦉 Okay, forgot everything. It happened, whatever.",
    "restart_started": "🔄 Restarting...",
    "restart_unavailable": "🔄 No restart command is configured.",
    "video_too_large": "🐢 That video is huge (over 20 MB). I'm not a moving company. Compress or trim it.",
    "document_too_large": "🐘 Nope, that file is too heavy (over 20 MB). Pass.",
    "document_unsupported": "🗿 What format is that? I don't read this stuff. Give me a PDF or plain text.",
    "who_game_empty": "I don't know anyone here yet.",
    "reminder_message": "⏰ {username}, reminder!\n\n{text}",
    "voice_with_summary": "📝 *Gist:*\n{summary}\n\n🎤 *Text:*\n{text}",
    "voice_plain": "*{name} said:*\n{text}",
    "sticker_note": " [Sticker sent: {emoji}]",
    "coin_heads": "HEADS",
    "coin_tails": "TAILS",
    "alert_new_contact": "🔔 *NEW CONTACT!*\n\n📂 *Chat:* {chat_title}\n🆔 *ID:* `{chat_id}`\n{details}",
    "alert_new_contact_private": "👤 *Wrote:* {who}\n💬 *Text:* {text}",
    "alert_new_contact_added": "👋 *Added me:* {who}\n👥 *Type:* group",
    "alert_new_contact_activity": "👤 *Activity:* {who}\n💬 *Message:* {text}",
    "alert_private_message": "📩 DM from {who}:\n{content}",
    "alert_private_attachment": "📎 [sent a file or sticker]",
    "alert_ai_failure": "🔥 *Gemini failed!*\n\nChat: {chat_title}\nError: `{error}`",
    "alert_ai_empty": "⚠️ *ALARM:* Gemini returned an empty string!\n📂 *Chat:* {chat_title}",
    "alert_send_failure": "⚠️ *Send failed:* {error}\n📂 *Chat:* {chat_title}\n🆔 *ID:* {chat_id}",
    "alert_restart_failure": "❌ Restart failed: {error}",
}


def load_phrases() -> dict[str, Any]:
    return load_prompt_json("phrases.json", _DEFAULTS)


def phrase(key: str, **values: object) -> str:
    template = load_phrases().get(key, "")
    text = template if isinstance(template, str) else ""
    return text.format(**values) if values else text


def pick_phrase(key: str, rng: random.Random | None = None) -> str:
    options = load_phrases().get(key)
    if isinstance(options, str):
        return options
    if not isinstance(options, list) or not options:
        return ""
    return (rng or random).choice(options)


def failure_phrases(category: str) -> list[str]:
    table = load_phrases().get("ai_failure", {})
    options = table.get(category) if isinstance(table, dict) else None
    if not options and isinstance(table, dict):
        options = table.get("unknown")
    return [str(item) for item in options or []]
