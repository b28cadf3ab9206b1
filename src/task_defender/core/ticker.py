# src/task_defender/core/ticker.py

from __future__ import annotations

"""
Periodic tick driver.

A Ticker calls a synchronous tick function every interval_seconds from an asyncio
task. A failing tick is logged and the ticker keeps going: one bad tick must never
stop time from advancing for the scheduler.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from .ports import Clock

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TickerStatus:
    name: str
    running: bool
    interval_seconds: float
    ticks: int


class Ticker:
    def __init__(
            self,
            name: str,
            interval_seconds: float,
            tick_fn: Callable[[datetime], None],
            clock: Clock,
    ) -> None:
        self.name = name
        self._interval_seconds = max(0.5, float(interval_seconds))
        self._tick_fn = tick_fn
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._ticks = 0

    def tick_once(self) -> None:
        self._ticks += 1
        try:
            self._tick_fn(self._clock.now())
        except Exception:
            logger.exception("Ticker %s: tick failed", self.name)

    async def _run(self) -> None:
        logger.debug("Ticker %s started (interval=%.1fs)", self.name, self._interval_seconds)
        while True:
            self.tick_once()
            await self._clock.sleep(self._interval_seconds)

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"ticker-{self.name}")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug("Ticker %s stopped", self.name)

    def status(self) -> TickerStatus:
        return TickerStatus(
            name=self.name,
            running=bool(self._task and not self._task.done()),
            interval_seconds=self._interval_seconds,
            ticks=self._ticks,
        )
