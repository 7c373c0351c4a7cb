from __future__ import annotations

import logging
import random
import re
from typing import Iterable

from .ports import AIGateway

logger = logging.getLogger("sych_bot")

FULL_REPLY = "reply"
REACTION_ONLY = "reaction"
SILENCE = "silence"

DEFAULT_TRIGGER_WORDS = ("сыч", "sych")


def build_trigger_pattern(words: Iterable[str]) -> re.Pattern[str]:
    """Whole-word match: the token must not touch a Latin or Cyrillic letter on either side."""
    tokens = [re.escape(word.strip()) for word in words if word and word.strip()]
    if not tokens:
        tokens = [re.escape(word) for word in DEFAULT_TRIGGER_WORDS]
    return re.compile(rf"(?<![а-яёa-z])({'|'.join(tokens)})(?![а-яёa-z])", re.IGNORECASE)


class ActivationDecider:
    def __init__(
        self,
        ai: AIGateway,
        *,
        trigger_words: Iterable[str] = DEFAULT_TRIGGER_WORDS,
        engage_probability: float = 0.01,
        reaction_probability: float = 0.07,
        min_length: int = 10,
        rng: random.Random | None = None,
    ) -> None:
        self.ai = ai
        self.trigger_pattern = build_trigger_pattern(trigger_words)
        self.engage_probability = engage_probability
        self.reaction_probability = reaction_probability
        self.min_length = min_length
        self.rng = rng or random.Random()

    def has_trigger(self, text: str) -> bool:
        return bool(text) and self.trigger_pattern.search(text) is not None

    def is_directly_addressed(self, text: str, replied_to_bot: bool) -> bool:
        return replied_to_bot or self.has_trigger(text)

    async def decide(self, text: str, *, directly_addressed: bool, replied_to_bot: bool, history_text: str) -> str:
        if directly_addressed:
            return FULL_REPLY

        long_enough = len(text) > self.min_length
        if long_enough and self.rng.random() < self.engage_probability:
            try:
                engage = await self.ai.classify_engage(history_text)
            except Exception as exc:
                logger.warning("[activation] engage classifier failed, staying silent: %s", exc)
                engage = False
            if engage:
                return FULL_REPLY

        if long_enough and not replied_to_bot and self.rng.random() < self.reaction_probability:
            return REACTION_ONLY
        return SILENCE
