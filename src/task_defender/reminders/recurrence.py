# src/task_defender/reminders/recurrence.py

from __future__ import annotations

from datetime import datetime, timedelta

from .models import Recurrence

SATURDAY = 5


def next_occurrence(previous: datetime, recurring: Recurrence) -> datetime | None:
    """
    Next scheduled_for after `previous`.

    Always computed from the previous occurrence rather than from "now", so late
    acknowledgements do not shift the schedule. Returns None for one-shot reminders.
    """
    if recurring == Recurrence.DAILY:
        return previous + timedelta(days=1)
    if recurring == Recurrence.WEEKLY:
        return previous + timedelta(days=7)
    if recurring == Recurrence.WORKDAYS:
        nxt = previous + timedelta(days=1)
        while nxt.weekday() >= SATURDAY:
            nxt += timedelta(days=1)
        return nxt
    return None
