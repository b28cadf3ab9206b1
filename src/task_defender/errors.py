# src/task_defender/errors.py

"""Exceptions raised across component boundaries."""

from __future__ import annotations


class ReminderValidationError(ValueError):
    """A reminder spec was rejected at creation time; nothing was stored."""


class ReminderNotFoundError(KeyError):
    def __init__(self, reminder_id: str) -> None:
        super().__init__(reminder_id)
        self.reminder_id = reminder_id

    def __str__(self) -> str:
        return f"Unknown reminder id: {self.reminder_id}"


class DuplicateReminderError(RuntimeError):
    """A second monitor-generated reminder was stored for the same (task_id, kind)."""


class StorePersistenceError(RuntimeError):
    """The reminder store could not be written; in-memory state stays authoritative."""
