# src/task_defender/channels/push.py

from __future__ import annotations

import logging

from ..core.ports import PushNotifier
from ..reminders.models import Reminder
from .base import BackgroundTasks

logger = logging.getLogger(__name__)

GRANTED = "granted"
DENIED = "denied"
DEFAULT = "default"


def push_tag(reminder: Reminder, *, continuous: bool) -> str:
    return f"{reminder.id}-continuous" if continuous else reminder.id


def push_title(reminder: Reminder, *, continuous: bool) -> str:
    if continuous:
        return f"{reminder.title} (Reminder #{reminder.reminder_count})"
    return reminder.title


class PushChannel:
    name = "push"

    def __init__(self, notifier: PushNotifier, background: BackgroundTasks | None = None) -> None:
        self._notifier = notifier
        self._bg = background or BackgroundTasks("push")

    def available(self) -> bool:
        try:
            return self._notifier.permission() == GRANTED
        except Exception:
            logger.debug("Push permission query failed", exc_info=True)
            return False

    def deliver(self, reminder: Reminder, message: str, *, continuous: bool = False) -> None:
        self._bg.spawn(
            self._notifier.notify(
                push_title(reminder, continuous=continuous),
                message,
                push_tag(reminder, continuous=continuous),
            ),
            what=f"notify {reminder.id}",
        )

    def clear(self, reminder: Reminder) -> None:
        for continuous in (False, True):
            self._bg.spawn(
                self._notifier.clear(push_tag(reminder, continuous=continuous)),
                what=f"clear {reminder.id}",
            )


class LogPushNotifier:
    """
    Push notifier that only logs.

    Used when no real transport is configured, so the push path stays exercised
    and visible in the log.
    """

    def __init__(self) -> None:
        self.active_tags: dict[str, tuple[str, str]] = {}

    def permission(self) -> str:
        return GRANTED

    async def request_permission(self) -> str:
        return GRANTED

    async def notify(self, title: str, body: str, tag: str) -> None:
        self.active_tags[tag] = (title, body)
        logger.info("[push] %s: %s", title, body)

    async def clear(self, tag: str) -> None:
        self.active_tags.pop(tag, None)
