# src/task_defender/channels/dispatcher.py

from __future__ import annotations

"""
Channel dispatcher.

Fans a reminder out to every enabled channel. Channels are independent:
- a missing capability (no speech engine, no audio device, no notification
  permission) is logged and skipped, never retried;
- an exception in one channel does not stop the others.
"""

import logging
from dataclasses import dataclass

from ..reminders.models import Reminder
from .base import Channel
from .modal import ModalChannel
from .push import PushChannel

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DispatchResult:
    delivered: tuple[str, ...]
    skipped: tuple[str, ...]
    failed: tuple[str, ...]


class ChannelDispatcher:
    def __init__(
            self,
            *,
            voice: Channel | None = None,
            tone: Channel | None = None,
            push: PushChannel | None = None,
            modal: ModalChannel | None = None,
    ) -> None:
        self.voice = voice
        self.tone = tone
        self.push = push
        self.modal = modal
        self._warned_unavailable: set[str] = set()

    def _enabled_channels(self, reminder: Reminder, *, continuous: bool) -> list[Channel]:
        cfg = reminder.channels
        selected: list[tuple[bool, Channel | None]] = [
            (cfg.voice, self.voice),
            (cfg.tone, self.tone),
            (cfg.push, self.push),
            (cfg.modal and not continuous, self.modal),
        ]
        return [ch for enabled, ch in selected if enabled and ch is not None]

    def dispatch(self, reminder: Reminder, message: str | None = None, *, continuous: bool = False) -> DispatchResult:
        text = message if message is not None else reminder.message
        delivered: list[str] = []
        skipped: list[str] = []
        failed: list[str] = []

        for channel in self._enabled_channels(reminder, continuous=continuous):
            try:
                if not channel.available():
                    skipped.append(channel.name)
                    if channel.name not in self._warned_unavailable:
                        self._warned_unavailable.add(channel.name)
                        logger.warning("Channel %s unavailable; skipping it", channel.name)
                    else:
                        logger.debug("Channel %s unavailable (reminder %s)", channel.name, reminder.id)
                    continue
                channel.deliver(reminder, text, continuous=continuous)
                delivered.append(channel.name)
            except Exception:
                failed.append(channel.name)
                logger.exception("Channel %s failed for reminder %s", channel.name, reminder.id)

        logger.debug(
            "Dispatched reminder %s continuous=%s delivered=%s skipped=%s failed=%s",
            reminder.id,
            continuous,
            delivered,
            skipped,
            failed,
        )
        return DispatchResult(tuple(delivered), tuple(skipped), tuple(failed))

    def close_surfaces(self, reminder: Reminder) -> None:
        """Remove the modal and any push notifications for a reminder the user answered."""
        if self.modal is not None:
            try:
                self.modal.close(reminder.id, reason="answered")
            except Exception:
                logger.exception("Closing modal failed for reminder %s", reminder.id)
        if self.push is not None and self.push.available():
            try:
                self.push.clear(reminder)
            except Exception:
                logger.exception("Clearing push failed for reminder %s", reminder.id)

    def open_from_push(self, reminder: Reminder) -> bool:
        """User clicked the push notification: surface the modal and clear the push."""
        if self.push is not None and self.push.available():
            try:
                self.push.clear(reminder)
            except Exception:
                logger.exception("Clearing push failed for reminder %s", reminder.id)
        if self.modal is None:
            return False
        self.modal.show(reminder, reminder.message)
        return True
