# src/task_defender/core/events.py

"""
UI events emitted by the scheduler.

The scheduler never renders anything: it publishes these to a UIEventSink and the
presentation layer calls back acknowledge/snooze/dismiss.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class ModalAction(StrEnum):
    ACKNOWLEDGE = "acknowledge"
    SNOOZE = "snooze"
    DISMISS = "dismiss"


@dataclass(slots=True, frozen=True)
class ModalOption:
    action: ModalAction
    label: str
    minutes: int | None = None


@dataclass(slots=True, frozen=True)
class ReminderDue:
    reminder_id: str
    title: str
    message: str
    kind: str
    reminder_count: int
    options: tuple[ModalOption, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class ReminderModalClosed:
    reminder_id: str
    reason: str  # "timeout" | "answered" | "replaced"


def build_modal_options(snooze_options: tuple[int, ...]) -> tuple[ModalOption, ...]:
    options = [ModalOption(ModalAction.ACKNOWLEDGE, "Got it! I'll handle this now")]
    options.extend(ModalOption(ModalAction.SNOOZE, f"{m}m", minutes=m) for m in snooze_options)
    options.append(ModalOption(ModalAction.DISMISS, "Dismiss"))
    return tuple(options)


class EventBus:
    """In-process UIEventSink fanning events out to subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[Any], None]] = []

    def subscribe(self, callback: Callable[[Any], None]) -> None:
        self._subscribers.append(callback)

    def publish(self, event: Any) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Event subscriber failed for %r", event)
