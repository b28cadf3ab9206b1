# src/task_defender/channels/voice.py

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass

from ..core.ports import SpeechSynthesizer
from ..reminders.models import Reminder
from ..reminders.templates import pick_custom_prompt

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Persona:
    key: str
    rate: float
    pitch: float
    volume: float


PERSONAS: dict[str, Persona] = {
    "default": Persona("default", rate=1.0, pitch=1.0, volume=0.8),
    # urgent / intense
    "coach": Persona("coach", rate=1.2, pitch=0.9, volume=1.0),
    # warm / disappointed
    "mom": Persona("mom", rate=0.9, pitch=1.1, volume=0.8),
    # user-supplied prompt pool, neutral delivery
    "custom": Persona("custom", rate=1.0, pitch=1.0, volume=0.8),
}


def persona_for(character: str | None) -> Persona:
    return PERSONAS.get((character or "default").strip().lower(), PERSONAS["default"])


class VoiceChannel:
    name = "voice"

    def __init__(
            self,
            synthesizer: SpeechSynthesizer,
            *,
            custom_prompts: Sequence[str] = (),
            voice_hint: str | None = None,
            rng: random.Random | None = None,
    ) -> None:
        self._synth = synthesizer
        self._custom_prompts = list(custom_prompts)
        self._voice_hint = voice_hint
        self._rng = rng or random.Random()

    def available(self) -> bool:
        return bool(self._synth.available)

    def set_custom_prompts(self, prompts: Sequence[str]) -> None:
        self._custom_prompts = list(prompts)

    def resolve_text(self, reminder: Reminder, message: str) -> str:
        persona = persona_for(reminder.channels.character)
        if persona.key == "custom":
            custom = pick_custom_prompt(self._custom_prompts, self._rng)
            if custom:
                return custom
        return message

    def deliver(self, reminder: Reminder, message: str, *, continuous: bool = False) -> None:
        persona = persona_for(reminder.channels.character)
        text = self.resolve_text(reminder, message)
        logger.debug("Voice reminder id=%s persona=%s continuous=%s", reminder.id, persona.key, continuous)
        self._synth.speak(
            text,
            rate=persona.rate,
            pitch=persona.pitch,
            volume=persona.volume,
            voice_hint=self._voice_hint,
        )
