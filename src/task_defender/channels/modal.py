# src/task_defender/channels/modal.py

from __future__ import annotations

import asyncio
import logging

from ..core.events import ReminderDue, ReminderModalClosed, build_modal_options
from ..core.ports import Clock, UIEventSink
from ..reminders.models import Reminder

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0


class ModalChannel:
    """
    Blocking acknowledgement surface, expressed as UI events.

    show() publishes ReminderDue; if nobody answers within timeout_seconds the
    modal is closed with reason="timeout". Closing is UI cleanup only: the
    reminder stays TRIGGERED until the continuous loop or a user action moves it.
    """

    name = "modal"

    def __init__(self, sink: UIEventSink, clock: Clock, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._sink = sink
        self._clock = clock
        self._timeout = float(timeout_seconds)
        self._open: dict[str, asyncio.Task[None] | None] = {}

    def available(self) -> bool:
        return True

    def is_open(self, reminder_id: str) -> bool:
        return reminder_id in self._open

    def open_ids(self) -> list[str]:
        return list(self._open)

    def deliver(self, reminder: Reminder, message: str, *, continuous: bool = False) -> None:
        if continuous:
            # never stack a second blocking modal from the continuous loop
            return
        self.show(reminder, message)

    def show(self, reminder: Reminder, message: str) -> None:
        if reminder.id in self._open:
            self.close(reminder.id, reason="replaced")

        self._sink.publish(
            ReminderDue(
                reminder_id=reminder.id,
                title=reminder.title,
                message=message,
                kind=reminder.kind.value,
                reminder_count=max(1, reminder.reminder_count),
                options=build_modal_options(reminder.snooze_options),
            )
        )

        timer: asyncio.Task[None] | None = None
        if self._timeout > 0:
            try:
                timer = asyncio.get_running_loop().create_task(
                    self._auto_close(reminder.id), name=f"modal-timeout:{reminder.id}"
                )
            except RuntimeError:
                logger.debug("No running loop; modal %s will not auto-close", reminder.id)
        self._open[reminder.id] = timer

    async def _auto_close(self, reminder_id: str) -> None:
        await self._clock.sleep(self._timeout)
        if reminder_id in self._open:
            self._open.pop(reminder_id, None)
            logger.debug("Modal for reminder %s auto-closed after %.0fs", reminder_id, self._timeout)
            self._sink.publish(ReminderModalClosed(reminder_id=reminder_id, reason="timeout"))

    def close(self, reminder_id: str, *, reason: str = "answered") -> bool:
        if reminder_id not in self._open:
            return False
        timer = self._open.pop(reminder_id)
        if timer is not None and not timer.done():
            timer.cancel()
        self._sink.publish(ReminderModalClosed(reminder_id=reminder_id, reason=reason))
        return True
