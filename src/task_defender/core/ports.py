# src/task_defender/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The scheduler depends on Protocols instead of concrete implementations.
This keeps the task backend, speech/audio devices and notification transports
swappable and makes testing easier.
"""

from collections.abc import Awaitable
from datetime import datetime
from typing import Any, Protocol

from ..reminders.models import Task


class Clock(Protocol):
    """Time source; the only thing the scheduler reads time from."""

    def now(self) -> datetime: ...
    def sleep(self, seconds: float) -> Awaitable[None]: ...


class TaskSource(Protocol):
    """Read-only query into the task subsystem."""

    def list_open_tasks(self) -> list[Task]: ...


class SpeechSynthesizer(Protocol):
    """
    Platform text-to-speech.

    speak() must return quickly: synthesis/playback happen elsewhere
    (worker thread), the scheduler never waits for audio to finish.
    """

    @property
    def available(self) -> bool: ...

    def speak(
            self,
            text: str,
            rate: float = 1.0,
            pitch: float = 1.0,
            volume: float = 1.0,
            voice_hint: str | None = None,
    ) -> None: ...


class ToneOutput(Protocol):
    """Audio oscillator primitive."""

    @property
    def available(self) -> bool: ...

    def play_tone(self, frequency: float, duration_ms: int, volume: float) -> None: ...
    def stop(self) -> None: ...


class PushNotifier(Protocol):
    """
    Platform push notification.

    permission() returns "granted", "denied" or "default" (not asked yet).
    """

    def permission(self) -> str: ...
    def request_permission(self) -> Awaitable[str]: ...
    def notify(self, title: str, body: str, tag: str) -> Awaitable[None]: ...
    def clear(self, tag: str) -> Awaitable[None]: ...


class UIEventSink(Protocol):
    """Presentation layer: renders ReminderDue / ReminderModalClosed events."""

    def publish(self, event: Any) -> None: ...
