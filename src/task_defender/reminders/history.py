# src/task_defender/reminders/history.py

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta

from .models import InterventionRecord
from .store import ReminderStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


@dataclass(slots=True, frozen=True)
class InterventionStats:
    total_interventions: int
    last_24h: int
    average_level: float

    def to_dict(self) -> dict[str, float | int]:
        return {
            "total_interventions": self.total_interventions,
            "last_24h": self.last_24h,
            "average_level": self.average_level,
        }


class HistoryLog:
    """
    Bounded, append-only log of fired interventions.

    Keeps the most recent `limit` records by insertion order; statistics are
    derived from the records on demand.
    """

    def __init__(self, store: ReminderStore | None = None, limit: int = DEFAULT_LIMIT) -> None:
        self._store = store
        self._limit = max(1, int(limit))
        initial = store.history() if store is not None else []
        self._records: deque[InterventionRecord] = deque(initial[-self._limit:], maxlen=self._limit)

    def record(self, intervention: InterventionRecord) -> None:
        self._records.append(intervention)
        logger.debug(
            "Intervention recorded reminder_id=%s task_id=%s level=%s",
            intervention.reminder_id,
            intervention.task_id,
            intervention.level,
        )
        if self._store is not None:
            self._store.set_history(list(self._records))

    def entries(self) -> list[InterventionRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def total(self) -> int:
        return len(self._records)

    def count_since(self, since: datetime) -> int:
        return sum(1 for r in self._records if r.fired_at > since)

    def last_24h(self, now: datetime) -> int:
        return self.count_since(now - timedelta(hours=24))

    def average_level(self) -> float:
        if not self._records:
            return 0.0
        return sum(r.level for r in self._records) / len(self._records)

    def stats(self, now: datetime) -> InterventionStats:
        return InterventionStats(
            total_interventions=self.total(),
            last_24h=self.last_24h(now),
            average_level=self.average_level(),
        )
