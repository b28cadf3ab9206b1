# src/task_defender/reminders/urgency.py

from __future__ import annotations

"""
Urgency calculator.

Maps a task's timestamps to a discrete escalation level:

    progress  < 0.50  -> 0  (no intervention)
    [0.50, 0.70)      -> 1
    [0.70, 0.85)      -> 2
    [0.85, 0.95)      -> 3
    [0.95, 1.00]      -> 4
"""

from datetime import datetime

from .models import Task, TaskStatus

MAX_LEVEL = 4

# Lower bounds, highest first.
_THRESHOLDS: tuple[tuple[float, int], ...] = (
    (0.95, 4),
    (0.85, 3),
    (0.70, 2),
    (0.50, 1),
)

# Minutes between re-fires of a defense reminder at each level.
REFIRE_MINUTES: dict[int, int] = {1: 60, 2: 30, 3: 15, 4: 5}

PROCRASTINATION_THRESHOLD = 3
PROCRASTINATION_LEVEL = 2

SEVERITY_LEVELS: dict[str, int] = {"low": 1, "medium": 2, "high": 3, "critical": 4}


def time_progress(task: Task, now: datetime) -> float:
    """Fraction of the created_at..due_date span elapsed at `now`, clamped to [0, 1]."""
    if task.due_date is None:
        return 0.0
    total = (task.due_date - task.created_at).total_seconds()
    if total <= 0:
        return 1.0
    elapsed = (now - task.created_at).total_seconds()
    return min(1.0, max(0.0, elapsed / total))


def level_for_progress(progress: float) -> int:
    for bound, level in _THRESHOLDS:
        if progress >= bound:
            return level
    return 0


def calculate_level(task: Task, now: datetime) -> int:
    if task.status == TaskStatus.DONE or task.due_date is None:
        return 0
    return level_for_progress(time_progress(task, now))


def procrastination_floor(task: Task) -> int:
    if task.procrastination_count >= PROCRASTINATION_THRESHOLD:
        return PROCRASTINATION_LEVEL
    return 0


def effective_level(task: Task, now: datetime) -> int:
    """Deadline level, raised to the procrastination floor for open tasks."""
    if task.status == TaskStatus.DONE:
        return 0
    return max(calculate_level(task, now), procrastination_floor(task))


def refire_minutes(level: int) -> int:
    if level <= 0:
        raise ValueError("level 0 has no re-fire frequency")
    return REFIRE_MINUTES[min(level, MAX_LEVEL)]
