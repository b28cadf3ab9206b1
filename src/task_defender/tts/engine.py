# src/task_defender/tts/engine.py

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TTSConfig:
    """Runtime TTS config resolved from Settings."""
    speaker_wav: Optional[str]
    xtts_speaker_name: str
    xtts_language: str


@dataclass(frozen=True, slots=True)
class Utterance:
    text: str
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 0.8
    voice_hint: str | None = None


class XTTSSpeechSynthesizer:
    """
    Best-effort speech synthesizer backed by Coqui XTTS.

    Design goals:
    - Optional dependencies (does not crash if TTS libs are not installed).
    - Does not block the event loop: synthesis and playback happen in a worker thread.
    - Friendly logging and safe shutdown.

    Persona parameters map onto XTTS as:
    - rate   -> XTTS speed
    - volume -> sample amplitude
    - pitch  -> playback sample rate (pitch and tempo shift together)
    - voice_hint -> XTTS speaker name, when set
    """

    def __init__(self, enabled: bool, cfg: TTSConfig):
        self.enabled = bool(enabled)
        self._cfg = cfg

        self._queue: Optional["queue.Queue[Utterance | None]"] = None
        self._worker: Optional[threading.Thread] = None

        self._tts_model: Any = None
        self._sample_rate: Optional[int] = None

        self._np: Any = None
        self._sd: Any = None
        self._stop_requested = False

        if not self.enabled:
            logger.info("Voice disabled.")
            return

        logger.info("Voice enabling: importing dependencies (torch/TTS/sounddevice)... this may take a while.")

        try:
            import numpy as np  # type: ignore
            import sounddevice as sd  # type: ignore
            import torch  # type: ignore
            from TTS.api import TTS  # type: ignore
        except Exception as e:
            self.enabled = False
            logger.warning(
                "Voice is enabled, but dependencies are missing or failed to import. "
                "Install the 'tts' extra (torch + TTS) and sounddevice to enable it. Error: %s",
                repr(e),
            )
            return

        self._np = np
        self._sd = sd

        try:
            device = "cuda" if getattr(torch, "cuda", None) and torch.cuda.is_available() else "cpu"
            logger.info("Initializing XTTS (device=%s). First run may download large model files.", device)

            self._tts_model = TTS("tts_models/multilingual/multi-dataset/xtts_v2").to(device)

            sr = None
            try:
                sr = int(self._tts_model.synthesizer.output_sample_rate)
            except Exception:
                sr = None
            self._sample_rate = sr or 24000

        except Exception as e:
            self.enabled = False
            logger.error("Failed to initialize XTTS model: %s", repr(e))
            return

        self._queue = queue.Queue()
        self._worker = threading.Thread(target=self._audio_worker, name="xtts-worker", daemon=True)
        self._worker.start()

        logger.info("Voice ready (sample_rate=%s).", self._sample_rate)

    @property
    def available(self) -> bool:
        return self.enabled and self._queue is not None and not self._stop_requested

    def _speaker_wav(self) -> str | None:
        wav_path = (self._cfg.speaker_wav or "").strip()
        if not wav_path:
            return None
        p = Path(wav_path)
        if p.exists() and p.is_file():
            return str(p)
        logger.warning("speaker_wav is set but file does not exist: %s. Falling back to speaker name.", wav_path)
        return None

    def _synthesize(self, item: Utterance) -> Any:
        text = " ".join(item.text.split()).strip()
        if not text:
            return None

        kwargs: dict[str, Any] = {"text": text, "language": self._cfg.xtts_language, "speed": float(item.rate)}
        wav_file = None if item.voice_hint else self._speaker_wav()
        if wav_file:
            kwargs["speaker_wav"] = wav_file
        else:
            kwargs["speaker"] = item.voice_hint or self._cfg.xtts_speaker_name
        return self._tts_model.tts(**kwargs)

    def _audio_worker(self) -> None:
        logger.info("Voice worker thread started.")
        assert self._queue is not None

        while True:
            item = self._queue.get()
            try:
                if item is None:
                    logger.info("Voice worker received stop signal.")
                    return

                try:
                    audio = self._synthesize(item)
                except Exception as e:
                    logger.error("Speech synthesis failed: %s", repr(e))
                    continue
                if audio is None:
                    continue

                try:
                    samples = self._np.asarray(audio, dtype=self._np.float32) * float(item.volume)
                    rate = int((self._sample_rate or 24000) * max(0.5, min(2.0, float(item.pitch))))
                    self._sd.play(samples, rate)
                    self._sd.wait()
                except Exception as e:
                    logger.error("Speech playback failed: %s", repr(e))

            finally:
                self._queue.task_done()

    def speak(
            self,
            text: str,
            rate: float = 1.0,
            pitch: float = 1.0,
            volume: float = 0.8,
            voice_hint: str | None = None,
    ) -> None:
        """Queue an utterance for playback (no-op if disabled)."""
        if not self.available:
            return
        assert self._queue is not None
        self._queue.put(Utterance(text, rate, pitch, volume, voice_hint))

    def wait_all(self) -> None:
        """Block until all queued utterances are played (no-op if disabled)."""
        if not self.enabled or self._queue is None:
            return
        self._queue.join()

    def shutdown(self) -> None:
        """Request a clean shutdown of the worker (no-op if disabled)."""
        if not self.enabled or self._queue is None:
            return
        if self._stop_requested:
            return
        self._stop_requested = True

        logger.info("Stopping voice worker...")
        self._queue.put(None)
        self._queue.join()

        if self._worker is not None:
            self._worker.join(timeout=2.0)

        logger.info("Voice stopped.")
