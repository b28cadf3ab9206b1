# src/task_defender/channels/base.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, Protocol

from ..reminders.models import Reminder

logger = logging.getLogger(__name__)


class Channel(Protocol):
    """
    One output modality.

    deliver() must not block: anything slow is handed to a worker thread or
    spawned as a background task. continuous=True marks a re-fire from the
    continuous loop (lighter-weight delivery, never a second blocking modal).
    """

    name: str

    def available(self) -> bool: ...
    def deliver(self, reminder: Reminder, message: str, *, continuous: bool = False) -> None: ...


class BackgroundTasks:
    """Fire-and-forget asyncio tasks whose failures are logged instead of lost."""

    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], what: str) -> asyncio.Task[Any] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("%s: no running event loop, dropping %s", self._owner, what)
            return None

        task = loop.create_task(coro, name=f"{self._owner}:{what}")
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("%s: %s failed: %r", self._owner, what, exc, exc_info=exc)

        task.add_done_callback(_done)
        return task

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)
