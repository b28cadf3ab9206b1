# src/task_defender/reminders/models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        try:
            return cls(raw)
        except ValueError:
            return cls.TODO


class ReminderKind(StrEnum):
    REMINDER = "reminder"
    NUDGE = "nudge"
    DEADLINE = "deadline"
    CELEBRATION = "celebration"
    DEFENSE = "defense"
    EMERGENCY = "emergency"


class Recurrence(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    WORKDAYS = "workdays"


class ReminderState(StrEnum):
    """
    Lifecycle state of a reminder.

    DUE is transient: the scheduler moves a due reminder straight on to TRIGGERED
    within the same tick, so it is only observable if dispatch blows up midway.
    """

    SCHEDULED = "scheduled"
    DUE = "due"
    TRIGGERED = "triggered"
    SNOOZED = "snoozed"
    ACKNOWLEDGED = "acknowledged"
    DISMISSED = "dismissed"


@dataclass(slots=True, frozen=True)
class Task:
    """Read-only view of a task owned by the task subsystem."""

    id: str
    title: str
    created_at: datetime
    due_date: datetime | None = None
    status: TaskStatus = TaskStatus.TODO
    priority: str = "medium"
    procrastination_count: int = 0

    @property
    def is_open(self) -> bool:
        return self.status != TaskStatus.DONE


@dataclass(slots=True)
class ChannelSettings:
    voice: bool = True
    tone: bool = False
    push: bool = True
    modal: bool = True
    selected_tone: str = "gentle-bell"
    character: str = "default"

    def to_dict(self) -> dict[str, Any]:
        return {
            "voice": self.voice,
            "tone": self.tone,
            "push": self.push,
            "modal": self.modal,
            "selected_tone": self.selected_tone,
            "character": self.character,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChannelSettings:
        if not isinstance(data, dict):
            raise TypeError(f"channels is {type(data).__name__}, expected object")
        return cls(
            voice=bool(data.get("voice", True)),
            tone=bool(data.get("tone", False)),
            push=bool(data.get("push", True)),
            modal=bool(data.get("modal", True)),
            selected_tone=str(data.get("selected_tone") or "gentle-bell"),
            character=str(data.get("character") or "default"),
        )


def new_id() -> str:
    return uuid.uuid4().hex


def normalize_snooze_options(options: Any) -> tuple[int, ...]:
    """Sorted, de-duplicated, strictly positive minute values."""
    out = {int(m) for m in (options or ()) if int(m) > 0}
    return tuple(sorted(out))


@dataclass(slots=True)
class Reminder:
    id: str
    title: str
    message: str
    kind: ReminderKind
    scheduled_for: datetime
    created_at: datetime

    task_id: str | None = None
    recurring: Recurrence = Recurrence.NONE
    interval_minutes: int = 30
    snooze_options: tuple[int, ...] = (5, 10, 15)
    channels: ChannelSettings = field(default_factory=ChannelSettings)

    is_active: bool = True
    state: ReminderState = ReminderState.SCHEDULED
    level: int = 0

    last_triggered_at: datetime | None = None
    snoozed_until: datetime | None = None
    reminder_count: int = 0

    @property
    def index_key(self) -> tuple[str, ReminderKind] | None:
        """Composite key for monitor-generated reminders; None for user reminders."""
        if self.kind == ReminderKind.DEFENSE and self.task_id:
            return (self.task_id, self.kind)
        return None

    def is_snoozed_at(self, now: datetime) -> bool:
        return self.snoozed_until is not None and now < self.snoozed_until

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "title": self.title,
            "message": self.message,
            "kind": self.kind.value,
            "scheduled_for": self.scheduled_for.isoformat(),
            "created_at": self.created_at.isoformat(),
            "recurring": self.recurring.value,
            "interval_minutes": self.interval_minutes,
            "snooze_options": list(self.snooze_options),
            "channels": self.channels.to_dict(),
            "is_active": self.is_active,
            "state": self.state.value,
            "level": self.level,
            "last_triggered_at": _iso_or_none(self.last_triggered_at),
            "snoozed_until": _iso_or_none(self.snoozed_until),
            "reminder_count": self.reminder_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Reminder:
        """
        Parse a stored record.

        Raises KeyError/ValueError/TypeError on malformed input; callers loading a
        whole collection are expected to drop the offending record.
        """
        rid = str(data["id"]).strip()
        title = str(data["title"]).strip()
        if not rid or not title:
            raise ValueError("reminder record without id/title")

        scheduled_for = _require_dt(data["scheduled_for"])
        created_at = _parse_dt(data.get("created_at")) or scheduled_for
        count = int(data.get("reminder_count") or 0)
        if count < 0:
            raise ValueError(f"negative reminder_count: {count}")

        return cls(
            id=rid,
            task_id=(str(data["task_id"]) if data.get("task_id") else None),
            title=title,
            message=str(data.get("message") or title),
            kind=ReminderKind(data.get("kind") or "reminder"),
            scheduled_for=scheduled_for,
            created_at=created_at,
            recurring=Recurrence(data.get("recurring") or "none"),
            interval_minutes=max(1, int(data.get("interval_minutes") or 30)),
            snooze_options=normalize_snooze_options(data.get("snooze_options") or (5, 10, 15)),
            channels=ChannelSettings.from_dict(data.get("channels") or {}),
            is_active=bool(data.get("is_active", True)),
            state=ReminderState(data.get("state") or "scheduled"),
            level=int(data.get("level") or 0),
            last_triggered_at=_parse_dt(data.get("last_triggered_at")),
            snoozed_until=_parse_dt(data.get("snoozed_until")),
            reminder_count=count,
        )


@dataclass(slots=True, frozen=True)
class InterventionRecord:
    id: str
    level: int
    message: str
    character: str
    fired_at: datetime
    task_id: str | None = None
    reminder_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "reminder_id": self.reminder_id,
            "level": self.level,
            "message": self.message,
            "character": self.character,
            "fired_at": self.fired_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InterventionRecord:
        level = int(data["level"])
        if not 0 <= level <= 4:
            raise ValueError(f"level out of range: {level}")
        return cls(
            id=str(data["id"]),
            task_id=(str(data["task_id"]) if data.get("task_id") else None),
            reminder_id=(str(data["reminder_id"]) if data.get("reminder_id") else None),
            level=level,
            message=str(data.get("message") or ""),
            character=str(data.get("character") or "default"),
            fired_at=_require_dt(data["fired_at"]),
        )


@dataclass(slots=True)
class ReminderSpec:
    """User input for create_reminder(); unset fields fall back to settings defaults."""

    title: str
    scheduled_for: datetime | None
    message: str = ""
    kind: ReminderKind = ReminderKind.REMINDER
    task_id: str | None = None
    recurring: Recurrence = Recurrence.NONE
    interval_minutes: int | None = None
    snooze_options: tuple[int, ...] | None = None
    channels: ChannelSettings | None = None
    is_active: bool = True


@dataclass(slots=True)
class TaskReminderSettings:
    enabled: bool = True
    interval_minutes: int = 30
    use_voice: bool = True
    use_tone: bool = False
    selected_tone: str = "gentle-bell"
    character: str = "default"
    snooze_options: tuple[int, ...] = (5, 10, 15)


def _iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _require_dt(raw: Any) -> datetime:
    dt = _parse_dt(raw)
    if dt is None:
        raise ValueError("missing timestamp")
    return dt


def _parse_dt(raw: Any) -> datetime | None:
    if not raw:
        return None
    # naive timestamps are read as local time
    dt = datetime.fromisoformat(str(raw))
    return dt if dt.tzinfo is not None else dt.astimezone()
