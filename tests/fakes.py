# tests/fakes.py

from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from task_defender.reminders.models import Reminder, Task


class FakeClock:
    """
    Virtual clock for scheduler tests.

    sleep() parks the caller until advance() moves time past its wake-up point;
    sleepers wake in time order and the event loop is drained between wake-ups,
    so a test can step through minutes of continuous re-fires instantly.
    """

    def __init__(self, start: datetime) -> None:
        self._now = start
        self._sleepers: list[tuple[datetime, int, asyncio.Future[None]]] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self._now + timedelta(seconds=seconds), next(self._seq), fut))
        await fut

    @staticmethod
    async def settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self._now + timedelta(seconds=seconds)
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            wake_at, _, fut = heapq.heappop(self._sleepers)
            if fut.done():
                continue
            self._now = max(self._now, wake_at)
            fut.set_result(None)
            await self.settle()
        self._now = target
        await self.settle()

    def set(self, when: datetime) -> None:
        """Jump without waking anyone (for synchronous tick tests)."""
        self._now = when


class FakeSpeech:
    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.spoken: list[dict] = []

    def speak(self, text, rate=1.0, pitch=1.0, volume=1.0, voice_hint=None) -> None:
        self.spoken.append({"text": text, "rate": rate, "pitch": pitch, "volume": volume, "voice_hint": voice_hint})


class FakeToneOutput:
    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.played: list[tuple[float, int, float]] = []
        self.stops = 0

    def play_tone(self, frequency: float, duration_ms: int, volume: float) -> None:
        self.played.append((frequency, duration_ms, volume))

    def stop(self) -> None:
        self.stops += 1


class FakePushNotifier:
    def __init__(self, permission: str = "granted") -> None:
        self._permission = permission
        self.notified: list[tuple[str, str, str]] = []
        self.cleared: list[str] = []

    def permission(self) -> str:
        return self._permission

    async def request_permission(self) -> str:
        if self._permission == "default":
            self._permission = "granted"
        return self._permission

    async def notify(self, title: str, body: str, tag: str) -> None:
        self.notified.append((title, body, tag))

    async def clear(self, tag: str) -> None:
        self.cleared.append(tag)


@dataclass
class RecordingSink:
    events: list = field(default_factory=list)

    def publish(self, event) -> None:
        self.events.append(event)

    def of_type(self, cls) -> list:
        return [e for e in self.events if isinstance(e, cls)]


@dataclass
class Delivery:
    reminder_id: str
    message: str
    continuous: bool


class FakeChannel:
    """Channel double recording every delivery."""

    def __init__(self, name: str, *, available: bool = True, fail: bool = False) -> None:
        self.name = name
        self.is_available = available
        self.fail = fail
        self.deliveries: list[Delivery] = []

    def available(self) -> bool:
        return self.is_available

    def deliver(self, reminder: Reminder, message: str, *, continuous: bool = False) -> None:
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        self.deliveries.append(Delivery(reminder.id, message, continuous))


class InMemoryTaskSource:
    def __init__(self, tasks: list[Task] | None = None) -> None:
        self.tasks: dict[str, Task] = {t.id: t for t in tasks or []}

    def put(self, task: Task) -> None:
        self.tasks[task.id] = task

    def update(self, task_id: str, **changes) -> Task:
        self.tasks[task_id] = replace(self.tasks[task_id], **changes)
        return self.tasks[task_id]

    def remove(self, task_id: str) -> None:
        self.tasks.pop(task_id, None)

    def list_open_tasks(self) -> list[Task]:
        return [t for t in self.tasks.values() if t.is_open]
