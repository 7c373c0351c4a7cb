from __future__ import annotations

import logging
import re

from ...prompts.phrases import phrase
from ..common import IncomingMessage

logger = logging.getLogger("sych_bot")

REMIND_KEYWORDS = ("напомни", "напоминай", "remind")

ABOUT_RE = re.compile(
    r"(?:расскажи про|кто так(?:ой|ая)|мнение о|поясни за|tell me about|who is|what do you think (?:of|about))\s+(.+)"
)
COIN_RE = re.compile(r"(монетк|кинь|брось|подбрось|подкинь|coin|flip|toss)")
RANGE_RE = re.compile(r"(\d+)-(\d+)")
NUMBER_WORDS = ("число", "рандом", "number", "random")
WHO_RE = re.compile(r"(?:кто|кого)\s+(?:из нас|тут|здесь|в чате|сегодня)|\bwho\s+(?:of us|here|in (?:the )?chat|today)")


def with_outcome(flavor: str, outcome: str) -> str:
    flavor = (flavor or "").strip()
    if not flavor:
        return outcome
    if outcome.casefold() in flavor.casefold():
        return flavor
    return f"*{outcome}*\n{flavor}"


class FeatureMixin:
    async def _handle_voice(self, message: IncomingMessage) -> str | None:
        """Transcribes a voice/audio message; returns the text to keep processing, or None to stop."""
        media = message.voice or message.audio
        if media is None:
            return message.body
        mime_type = "audio/ogg" if message.voice is not None else (media.mime_type or "audio/mpeg")
        speaker = message.sender.first_name or "Anon"

        async with self._presence(message):
            try:
                data = await self.chat.fetch_file(media)
                transcription = await self.ai.transcribe(data, speaker, mime_type)
            except Exception as exc:
                logger.error("Voice transcription failed in %s: %s", message.chat_id, exc)
                return message.body

        if transcription is None or not transcription.text:
            return message.body

        summary = transcription.summary or ""
        if summary and len(summary) < len(transcription.text) * 0.65:
            reply = phrase("voice_with_summary", summary=summary, text=transcription.text)
        else:
            reply = phrase("voice_plain", name=speaker, text=transcription.text)
        await self._reply(message, reply)

        if self.store.is_topic_muted(message.chat_id, message.thread_id):
            return None
        return transcription.text

    async def _handle_reminder_request(self, message: IncomingMessage, text: str) -> bool:
        lowered = text.lower()
        if not any(keyword in lowered for keyword in REMIND_KEYWORDS):
            return False
        await self._signal_typing(message)
        logger.info("[reminder] request detected: %s", text[:120])
        reply_context = message.reply_to.body if message.reply_to is not None else ""
        try:
            confirmation = await self.scheduler.parse_and_schedule(
                message.chat_id,
                message.sender.id,
                message.sender.handle,
                text,
                reply_context,
            )
        except Exception as exc:
            logger.error("[reminder] parsing failed: %s", exc)
            return False
        if not confirmation:
            return False
        await self._reply(message, confirmation)
        return True

    async def _handle_trigger_features(self, message: IncomingMessage, text: str) -> bool:
        lowered = text.lower()

        about = ABOUT_RE.search(lowered)
        if about:
            target = about.group(1).replace("?", "").strip()
            profile = self.store.find_profile_by_query(message.chat_id, target)
            if profile is not None:
                async with self._presence(message):
                    try:
                        description = await self.ai.describe_profile(profile, target)
                    except Exception as exc:
                        logger.error("Profile description failed: %s", exc)
                        description = self._failure_text(str(exc))
                await self._reply(message, description)
                return True

        if COIN_RE.search(lowered):
            await self._signal_typing(message)
            outcome = phrase("coin_heads") if self.rng.random() > 0.5 else phrase("coin_tails")
            flavor = await self._flavor("flip a coin", outcome)
            await self._reply(message, with_outcome(flavor, outcome))
            return True

        numbers = RANGE_RE.search(lowered)
        if numbers and any(word in lowered for word in NUMBER_WORDS):
            await self._signal_typing(message)
            low, high = sorted((int(numbers.group(1)), int(numbers.group(2))))
            outcome = str(self.rng.randint(low, high))
            flavor = await self._flavor(f"pick a number {low}-{high}", outcome)
            await self._reply(message, with_outcome(flavor, outcome))
            return True

        if WHO_RE.search(lowered) or self.who_tail_pattern.search(lowered.strip()):
            await self._signal_typing(message)
            picked = self.store.get_random_user(message.chat_id, self.rng)
            if not picked:
                await self._say(message, phrase("who_game_empty"))
                return True
            flavor = await self._flavor(f'pick a random person from the chat for the question "{text}"', picked)
            await self._reply(message, with_outcome(flavor, picked))
            return True
        return False

    async def _flavor(self, task: str, outcome: str) -> str:
        try:
            return await self.ai.flavor_text(task, outcome)
        except Exception as exc:
            logger.warning("Flavor text failed for %r: %s", task, exc)
            return ""
