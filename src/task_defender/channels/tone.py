# src/task_defender/channels/tone.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..core.ports import Clock, ToneOutput
from ..reminders.models import Reminder

logger = logging.getLogger(__name__)

PULSE_GAP_MS = 200
DEFAULT_VOLUME = 0.3


@dataclass(slots=True, frozen=True)
class ToneSpec:
    id: str
    name: str
    description: str
    frequency: float  # Hz
    duration_ms: int
    pulses: int  # 1..3


TONE_CATALOG: dict[str, ToneSpec] = {
    t.id: t
    for t in (
        ToneSpec("gentle-bell", "Gentle Bell", "Soft, pleasant bell sound", 800, 1000, 1),
        ToneSpec("notification-chime", "Notification Chime", "Modern notification sound", 1000, 500, 2),
        ToneSpec("urgent-beep", "Urgent Beep", "Attention-grabbing beep", 1200, 300, 3),
        ToneSpec("meditation-bowl", "Meditation Bowl", "Calming singing bowl", 600, 2000, 1),
        ToneSpec("digital-alert", "Digital Alert", "Sharp digital alert tone", 1500, 200, 2),
    )
}


def get_tone(tone_id: str) -> ToneSpec | None:
    return TONE_CATALOG.get(tone_id)


class TonePlayer:
    """
    Plays catalog tones on a ToneOutput, one tone at a time.

    Starting a tone cancels the pattern that is still sounding and silences the
    output before the new pattern begins.
    """

    def __init__(self, output: ToneOutput, clock: Clock) -> None:
        self._output = output
        self._clock = clock
        self._current: asyncio.Task[None] | None = None

    @property
    def available(self) -> bool:
        return bool(self._output.available)

    @property
    def playing(self) -> bool:
        return self._current is not None and not self._current.done()

    def stop_all(self) -> None:
        if self._current is not None and not self._current.done():
            self._current.cancel()
        self._current = None
        try:
            self._output.stop()
        except Exception:
            logger.debug("Tone output stop failed", exc_info=True)

    def play(self, tone_id: str, volume: float = DEFAULT_VOLUME) -> bool:
        tone = get_tone(tone_id)
        if tone is None:
            logger.warning("Tone not found: %s", tone_id)
            return False

        self.stop_all()
        self._current = asyncio.get_running_loop().create_task(
            self._play_pattern(tone, volume), name=f"tone:{tone.id}"
        )
        return True

    async def _play_pattern(self, tone: ToneSpec, volume: float) -> None:
        pulses = max(1, min(3, tone.pulses))
        for i in range(pulses):
            self._output.play_tone(tone.frequency, tone.duration_ms, volume)
            wait_ms = tone.duration_ms + (PULSE_GAP_MS if i < pulses - 1 else 0)
            await self._clock.sleep(wait_ms / 1000.0)


class ToneChannel:
    name = "tone"

    def __init__(self, player: TonePlayer, *, volume: float = DEFAULT_VOLUME) -> None:
        self._player = player
        self._volume = volume

    def available(self) -> bool:
        return self._player.available

    def deliver(self, reminder: Reminder, message: str, *, continuous: bool = False) -> None:
        self._player.play(reminder.channels.selected_tone, self._volume)


class SoundDeviceToneOutput:
    """
    Sine oscillator played through sounddevice.

    numpy/sounddevice are imported lazily; if they are missing (or there is no
    audio device / PortAudio), the output reports itself unavailable.
    """

    def __init__(self, enabled: bool = True, sample_rate: int = 44100) -> None:
        self.enabled = bool(enabled)
        self._sample_rate = int(sample_rate)
        self._np: Any = None
        self._sd: Any = None

        if not self.enabled:
            logger.info("Tone output disabled.")
            return

        try:
            import numpy as np  # type: ignore
            import sounddevice as sd  # type: ignore
        except Exception as e:
            self.enabled = False
            logger.warning(
                "Tone output is enabled, but numpy/sounddevice failed to import. "
                "Install numpy + sounddevice (and PortAudio) to enable tones. Error: %s",
                repr(e),
            )
            return

        self._np = np
        self._sd = sd
        logger.info("Tone output ready (sample_rate=%s).", self._sample_rate)

    @property
    def available(self) -> bool:
        return self.enabled and self._sd is not None

    def render(self, frequency: float, duration_ms: int, volume: float) -> Any:
        """Sine wave with a short linear attack and an exponential release."""
        np = self._np
        n = max(1, int(self._sample_rate * duration_ms / 1000))
        t = np.arange(n) / self._sample_rate
        wave = np.sin(2 * np.pi * frequency * t)

        attack = min(n, int(self._sample_rate * 0.1))
        envelope = np.ones(n)
        if attack > 0:
            envelope[:attack] = np.linspace(0.0, 1.0, attack)
        if n > attack:
            envelope[attack:] = np.geomspace(1.0, 0.01, n - attack)
        return (wave * envelope * float(volume)).astype(np.float32)

    def play_tone(self, frequency: float, duration_ms: int, volume: float) -> None:
        if not self.available:
            return
        self._sd.play(self.render(frequency, duration_ms, volume), self._sample_rate)

    def stop(self) -> None:
        if self._sd is not None:
            self._sd.stop()
