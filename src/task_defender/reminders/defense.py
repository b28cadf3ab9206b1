# src/task_defender/reminders/defense.py

from __future__ import annotations

"""
Task defense monitor.

Periodically re-reads the open tasks and keeps one defense reminder per task in
line with its urgency:
- level 0 (or task gone / done): the defense reminder is deactivated, never deleted;
- level >= 1: the reminder exists and re-fires at the level's frequency.

All reminder mutations go through the EscalationScheduler.
"""

import logging
from datetime import datetime

from ..core.ports import TaskSource
from ..errors import ReminderNotFoundError, ReminderValidationError
from .models import Reminder, ReminderKind, Task
from .scheduler import EscalationScheduler
from .urgency import SEVERITY_LEVELS, effective_level

logger = logging.getLogger(__name__)


class TaskDefenseMonitor:
    def __init__(self, tasks: TaskSource, scheduler: EscalationScheduler, *, enabled: bool = True) -> None:
        self.tasks = tasks
        self.scheduler = scheduler
        self.enabled = enabled
        self.last_levels: dict[str, int] = {}

    def reassess(self, now: datetime | None = None) -> dict[str, int]:
        """Recompute every open task's level. Returns {task_id: level}."""
        if not self.enabled:
            return {}
        now = now or self.scheduler.clock.now()

        try:
            open_tasks = self.tasks.list_open_tasks()
        except Exception:
            logger.exception("Task source failed; skipping urgency reassessment")
            return {}

        levels: dict[str, int] = {}
        for task in open_tasks:
            try:
                levels[task.id] = self._reassess_task(task, now)
            except Exception:
                logger.exception("Urgency reassessment failed for task %s", task.id)

        for reminder in self.scheduler.list_reminders(active_only=True):
            if reminder.kind == ReminderKind.DEFENSE and reminder.task_id and reminder.task_id not in levels:
                try:
                    self.scheduler.retire_defense_reminder(reminder.task_id)
                except Exception:
                    logger.exception("Failed to retire defense reminder for task %s", reminder.task_id)

        changed = {tid: lvl for tid, lvl in levels.items() if self.last_levels.get(tid) != lvl}
        if changed:
            logger.info("Urgency levels changed: %s", changed)
        self.last_levels = levels
        return levels

    def _reassess_task(self, task: Task, now: datetime) -> int:
        if not task.is_open:
            self.scheduler.retire_defense_reminder(task.id)
            return 0

        level = effective_level(task, now)
        if level <= 0:
            self.scheduler.retire_defense_reminder(task.id)
        else:
            self.scheduler.ensure_defense_reminder(task, level, now)
        return level

    def trigger_manual_defense(self, task_id: str, severity: str) -> Reminder:
        """Fire a defense intervention for a task right now at the given severity."""
        level = SEVERITY_LEVELS.get((severity or "").strip().lower())
        if level is None:
            raise ReminderValidationError(
                f"unknown severity {severity!r}; expected one of {', '.join(SEVERITY_LEVELS)}"
            )

        task = next((t for t in self.tasks.list_open_tasks() if t.id == task_id), None)
        if task is None:
            raise ReminderNotFoundError(task_id)

        now = self.scheduler.clock.now()
        reminder = self.scheduler.ensure_defense_reminder(task, level, now)
        logger.info("Manual defense triggered task_id=%s severity=%s level=%d", task_id, severity, level)
        return self.scheduler.fire_now(reminder.id)
