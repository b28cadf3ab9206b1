# src/task_defender/reminders/scheduler.py

from __future__ import annotations

"""
Escalation scheduler.

Owns the reminder lifecycle:

    SCHEDULED --(now >= scheduled_for)--> DUE --(dispatch)--> TRIGGERED
    TRIGGERED --(every interval, no answer)--> TRIGGERED      (continuous loop)
    TRIGGERED --snooze(m)--> SNOOZED --(now >= snoozed_until)--> DUE
    TRIGGERED --acknowledge--> SCHEDULED (recurring) | ACKNOWLEDGED (inactive)
    TRIGGERED --dismiss--> DISMISSED (inactive)

Time only moves through two tickers (due check, urgency reassessment) and the
per-reminder continuous loops. Every transition for a reminder first cancels that
reminder's loop token, and a loop tick only writes while its token is still the
registered one, so a stale tick can never re-arm cancelled state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..channels.dispatcher import ChannelDispatcher
from ..core.ports import Clock
from ..core.ticker import Ticker
from ..errors import ReminderValidationError
from .history import HistoryLog
from .models import (
    ChannelSettings,
    InterventionRecord,
    Recurrence,
    Reminder,
    ReminderKind,
    ReminderSpec,
    ReminderState,
    Task,
    TaskReminderSettings,
    new_id,
    normalize_snooze_options,
)
from .recurrence import next_occurrence
from .store import ReminderStore
from .templates import (
    TASK_REMINDER_MESSAGE,
    TASK_REMINDER_TITLE,
    level_title,
    pick_level_message,
    style_for_character,
)
from .urgency import refire_minutes

logger = logging.getLogger(__name__)

_ANSWERABLE = (ReminderState.DUE, ReminderState.TRIGGERED, ReminderState.SNOOZED)


@dataclass(slots=True)
class LoopToken:
    """Cancellable handle for one reminder's continuous re-fire loop."""

    reminder_id: str
    interval_minutes: int
    first_delay_seconds: float
    task: asyncio.Task[None] | None = field(default=None, repr=False)
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.task is not None and not self.task.done():
            self.task.cancel()


class EscalationScheduler:
    def __init__(
            self,
            store: ReminderStore,
            dispatcher: ChannelDispatcher,
            history: HistoryLog,
            clock: Clock,
            *,
            check_interval_seconds: float = 30.0,
            reassess_interval_seconds: float = 300.0,
            default_interval_minutes: int = 30,
            default_snooze_options: tuple[int, ...] = (5, 10, 15),
            default_channels: ChannelSettings | None = None,
            defense_channels: ChannelSettings | None = None,
            continuous_max_firings: int = 0,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.history = history
        self.clock = clock

        self._default_interval = max(1, int(default_interval_minutes))
        self._default_snooze = normalize_snooze_options(default_snooze_options) or (5, 10, 15)
        self._default_channels = default_channels or ChannelSettings()
        self._defense_channels = defense_channels or ChannelSettings()
        self._max_firings = max(0, int(continuous_max_firings))

        self._loops: dict[str, LoopToken] = {}
        self._due_ticker = Ticker("due-check", check_interval_seconds, self.check_due, clock)
        self._reassess_ticker: Ticker | None = None
        self._reassess_interval = reassess_interval_seconds

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach_monitor(self, monitor) -> None:
        """Drive monitor.reassess(now) from the coarse ticker."""
        self._reassess_ticker = Ticker("reassess", self._reassess_interval, monitor.reassess, self.clock)

    def start(self) -> None:
        now = self.clock.now()
        for reminder in self.store.active():
            if reminder.state == ReminderState.TRIGGERED:
                self._start_loop(reminder, now)
        if self._reassess_ticker is not None:
            self._reassess_ticker.start()
        self._due_ticker.start()
        logger.info("Escalation scheduler started (reminders=%d, loops=%d)", len(self.store), len(self._loops))

    def stop(self) -> None:
        self._due_ticker.stop()
        if self._reassess_ticker is not None:
            self._reassess_ticker.stop()
        for token in list(self._loops.values()):
            token.cancel()
        self._loops.clear()
        logger.info("Escalation scheduler stopped")

    def ticker_status(self) -> list:
        tickers = [self._due_ticker] + ([self._reassess_ticker] if self._reassess_ticker else [])
        return [t.status() for t in tickers]

    # ------------------------------------------------------------------
    # Continuous loop tokens
    # ------------------------------------------------------------------

    def has_loop(self, reminder_id: str) -> bool:
        return reminder_id in self._loops

    def _cancel_loop(self, reminder_id: str) -> None:
        token = self._loops.pop(reminder_id, None)
        if token is not None:
            token.cancel()

    def _start_loop(self, reminder: Reminder, now: datetime) -> None:
        self._cancel_loop(reminder.id)

        interval_s = reminder.interval_minutes * 60
        first_delay = float(interval_s)
        if reminder.last_triggered_at is not None:
            elapsed = (now - reminder.last_triggered_at).total_seconds()
            first_delay = max(0.0, interval_s - elapsed)

        token = LoopToken(reminder.id, reminder.interval_minutes, first_delay)
        token.task = asyncio.get_running_loop().create_task(
            self._continuous_loop(token), name=f"continuous:{reminder.id}"
        )
        self._loops[reminder.id] = token
        logger.debug(
            "Continuous loop armed id=%s every %d min (first in %.0fs)",
            reminder.id,
            reminder.interval_minutes,
            first_delay,
        )

    async def _continuous_loop(self, token: LoopToken) -> None:
        delay = token.first_delay_seconds
        while True:
            await self.clock.sleep(delay)
            delay = token.interval_minutes * 60
            if token.cancelled or self._loops.get(token.reminder_id) is not token:
                return
            try:
                self._refire(token, self.clock.now())
            except Exception:
                logger.exception("Continuous re-fire failed for reminder %s", token.reminder_id)

    def _refire(self, token: LoopToken, now: datetime) -> None:
        reminder = self.store.get(token.reminder_id)
        if reminder is None or not reminder.is_active or reminder.state != ReminderState.TRIGGERED:
            self._cancel_loop(token.reminder_id)
            return

        reminder.reminder_count += 1
        reminder.last_triggered_at = now
        self.store.put(reminder)

        self.dispatcher.dispatch(reminder, continuous=True)
        self._record(reminder, now)
        logger.info("Reminder %s re-fired (#%d)", reminder.id, reminder.reminder_count)

        if self._max_firings and reminder.reminder_count >= self._max_firings:
            self._exhaust(reminder)

    def _exhaust(self, reminder: Reminder) -> None:
        self._cancel_loop(reminder.id)
        self.dispatcher.close_surfaces(reminder)
        reminder.reminder_count = 0
        nxt = next_occurrence(reminder.scheduled_for, reminder.recurring)
        if nxt is not None:
            reminder.scheduled_for = nxt
            reminder.state = ReminderState.SCHEDULED
        else:
            reminder.is_active = False
            reminder.state = ReminderState.DISMISSED
        self.store.put(reminder)
        logger.info("Reminder %s exhausted after %d firings", reminder.id, self._max_firings)

    # ------------------------------------------------------------------
    # Due check
    # ------------------------------------------------------------------

    def check_due(self, now: datetime | None = None) -> list[str]:
        """Fire every reminder that became due. Returns the ids that were triggered."""
        now = now or self.clock.now()
        fired: list[str] = []
        for reminder in self.store.active():
            try:
                if self._is_due(reminder, now):
                    self._fire(reminder, now)
                    fired.append(reminder.id)
                elif reminder.state == ReminderState.TRIGGERED and reminder.id not in self._loops:
                    self._start_loop(reminder, now)
            except Exception:
                logger.exception("Due check failed for reminder %s", reminder.id)
        return fired

    @staticmethod
    def _is_due(reminder: Reminder, now: datetime) -> bool:
        if reminder.state == ReminderState.SNOOZED:
            return reminder.snoozed_until is None or now >= reminder.snoozed_until
        if reminder.state in (ReminderState.SCHEDULED, ReminderState.DUE):
            return now >= reminder.scheduled_for and not reminder.is_snoozed_at(now)
        return False

    def _fire(self, reminder: Reminder, now: datetime) -> None:
        self._cancel_loop(reminder.id)
        reminder.state = ReminderState.DUE

        reminder.last_triggered_at = now
        reminder.reminder_count += 1
        reminder.snoozed_until = None
        reminder.state = ReminderState.TRIGGERED
        self.store.put(reminder)

        self.dispatcher.dispatch(reminder, continuous=False)
        self._record(reminder, now)
        self._start_loop(reminder, now)
        logger.info("Reminder %s triggered: %s", reminder.id, reminder.title)

    def _record(self, reminder: Reminder, now: datetime) -> None:
        try:
            self.history.record(
                InterventionRecord(
                    id=new_id(),
                    task_id=reminder.task_id,
                    reminder_id=reminder.id,
                    level=reminder.level,
                    message=reminder.message,
                    character=reminder.channels.character,
                    fired_at=now,
                )
            )
        except Exception:
            logger.exception("Failed to record intervention for reminder %s", reminder.id)

    # ------------------------------------------------------------------
    # User responses
    # ------------------------------------------------------------------

    def acknowledge(self, reminder_id: str) -> Reminder:
        reminder = self.store.require(reminder_id)
        self._cancel_loop(reminder_id)
        if reminder.state not in _ANSWERABLE or not reminder.is_active:
            logger.info("Acknowledge ignored for reminder %s (state=%s)", reminder_id, reminder.state.value)
            return reminder

        self.dispatcher.close_surfaces(reminder)
        reminder.reminder_count = 0
        reminder.snoozed_until = None

        nxt = next_occurrence(reminder.scheduled_for, reminder.recurring)
        if nxt is not None:
            reminder.scheduled_for = nxt
            reminder.state = ReminderState.SCHEDULED
            logger.info("Reminder %s acknowledged; next at %s", reminder_id, nxt.isoformat())
        else:
            reminder.state = ReminderState.ACKNOWLEDGED
            reminder.is_active = False
            logger.info("Reminder %s acknowledged and deactivated", reminder_id)

        self.store.put(reminder)
        return reminder

    def snooze(self, reminder_id: str, minutes: int) -> Reminder:
        minutes = int(minutes)
        if minutes <= 0:
            raise ReminderValidationError(f"snooze minutes must be positive, got {minutes}")

        reminder = self.store.require(reminder_id)
        self._cancel_loop(reminder_id)
        if reminder.state not in _ANSWERABLE or not reminder.is_active:
            logger.info("Snooze ignored for reminder %s (state=%s)", reminder_id, reminder.state.value)
            return reminder

        now = self.clock.now()
        self.dispatcher.close_surfaces(reminder)
        reminder.snoozed_until = now + timedelta(minutes=minutes)
        reminder.reminder_count = 0
        reminder.state = ReminderState.SNOOZED
        self.store.put(reminder)
        logger.info("Reminder %s snoozed for %d min (until %s)", reminder_id, minutes, reminder.snoozed_until.isoformat())
        return reminder

    def dismiss(self, reminder_id: str) -> Reminder:
        reminder = self.store.require(reminder_id)
        self._cancel_loop(reminder_id)
        self.dispatcher.close_surfaces(reminder)
        reminder.is_active = False
        reminder.reminder_count = 0
        reminder.state = ReminderState.DISMISSED
        self.store.put(reminder)
        logger.info("Reminder %s dismissed", reminder_id)
        return reminder

    def open_from_push(self, reminder_id: str) -> bool:
        reminder = self.store.require(reminder_id)
        return self.dispatcher.open_from_push(reminder)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def list_reminders(self, *, active_only: bool = False) -> list[Reminder]:
        items = self.store.active() if active_only else self.store.all()
        return sorted(items, key=lambda r: r.scheduled_for)

    def get_reminder(self, reminder_id: str) -> Reminder:
        return self.store.require(reminder_id)

    def create_reminder(self, spec: ReminderSpec) -> str:
        title = (spec.title or "").strip()
        if not title:
            raise ReminderValidationError("title is required")
        if spec.scheduled_for is None:
            raise ReminderValidationError("scheduled_for is required")
        if spec.kind == ReminderKind.DEFENSE and spec.task_id:
            raise ReminderValidationError("task defense reminders are managed by the task defense monitor")

        interval = self._default_interval if spec.interval_minutes is None else int(spec.interval_minutes)
        if interval < 1:
            raise ReminderValidationError(f"interval_minutes must be >= 1, got {interval}")

        snooze = self._default_snooze if spec.snooze_options is None else normalize_snooze_options(spec.snooze_options)
        if not snooze:
            raise ReminderValidationError("at least one positive snooze option is required")

        scheduled_for = spec.scheduled_for
        if scheduled_for.tzinfo is None:
            scheduled_for = scheduled_for.astimezone()

        reminder = Reminder(
            id=new_id(),
            task_id=spec.task_id,
            title=title,
            message=(spec.message or "").strip() or title,
            kind=spec.kind,
            scheduled_for=scheduled_for,
            created_at=self.clock.now(),
            recurring=spec.recurring,
            interval_minutes=interval,
            snooze_options=snooze,
            channels=ChannelSettings.from_dict((spec.channels or self._default_channels).to_dict()),
            is_active=spec.is_active,
        )
        self.store.put(reminder)
        logger.info(
            "Reminder created id=%s kind=%s at=%s recurring=%s",
            reminder.id,
            reminder.kind.value,
            reminder.scheduled_for.isoformat(),
            reminder.recurring.value,
        )
        return reminder.id

    def delete_reminder(self, reminder_id: str) -> None:
        reminder = self.store.require(reminder_id)
        self._cancel_loop(reminder_id)
        self.dispatcher.close_surfaces(reminder)
        self.store.remove(reminder_id)
        logger.info("Reminder %s deleted", reminder_id)

    def toggle_active(self, reminder_id: str) -> bool:
        reminder = self.store.require(reminder_id)
        self._cancel_loop(reminder_id)

        if reminder.is_active:
            self.dispatcher.close_surfaces(reminder)
            reminder.is_active = False
        else:
            reminder.is_active = True
            if reminder.state not in (ReminderState.SCHEDULED, ReminderState.SNOOZED):
                reminder.state = ReminderState.SCHEDULED
                reminder.reminder_count = 0

        self.store.put(reminder)
        logger.info("Reminder %s active=%s", reminder_id, reminder.is_active)
        return reminder.is_active

    # ------------------------------------------------------------------
    # Task-scoped helpers
    # ------------------------------------------------------------------

    def set_task_reminder(self, task_id: str, settings: TaskReminderSettings) -> str:
        """
        Create or retune the user reminder of a task.

        The reminder keeps its id across updates, so push tags and an open dialog
        still point at it; the next firing moves to now + settings.interval_minutes.
        """
        interval = max(1, int(settings.interval_minutes))
        snooze = normalize_snooze_options(settings.snooze_options)
        if not snooze:
            raise ReminderValidationError("at least one positive snooze option is required")
        channels = ChannelSettings(
            voice=settings.use_voice,
            tone=settings.use_tone,
            push=self._default_channels.push,
            modal=self._default_channels.modal,
            selected_tone=settings.selected_tone,
            character=settings.character or "default",
        )
        scheduled_for = self.clock.now() + timedelta(minutes=interval)

        own = [r for r in self.store.for_task(task_id) if r.kind == ReminderKind.REMINDER]
        if not own:
            rid = self.create_reminder(
                ReminderSpec(
                    title=TASK_REMINDER_TITLE,
                    message=TASK_REMINDER_MESSAGE,
                    scheduled_for=scheduled_for,
                    task_id=task_id,
                    interval_minutes=interval,
                    snooze_options=snooze,
                    channels=channels,
                    is_active=settings.enabled,
                )
            )
            logger.info("Task reminder set task_id=%s every %d min", task_id, interval)
            return rid

        reminder, extra = own[0], own[1:]
        for r in extra:
            self.delete_reminder(r.id)

        self._cancel_loop(reminder.id)
        self.dispatcher.close_surfaces(reminder)
        reminder.interval_minutes = interval
        reminder.snooze_options = snooze
        reminder.channels = channels
        reminder.scheduled_for = scheduled_for
        reminder.is_active = settings.enabled
        reminder.state = ReminderState.SCHEDULED
        reminder.snoozed_until = None
        reminder.reminder_count = 0
        self.store.put(reminder)
        logger.info("Task reminder %s retuned task_id=%s every %d min", reminder.id, task_id, interval)
        return reminder.id

    def clear_task_reminders(self, task_id: str) -> int:
        removed = 0
        for reminder in self.store.for_task(task_id):
            self.delete_reminder(reminder.id)
            removed += 1
        logger.info("Task reminders cleared task_id=%s removed=%d", task_id, removed)
        return removed

    def get_stats(self) -> dict[str, float | int]:
        return self.history.stats(self.clock.now()).to_dict()

    # ------------------------------------------------------------------
    # Task defense (called by the monitor)
    # ------------------------------------------------------------------

    def defense_reminder(self, task_id: str) -> Reminder | None:
        return self.store.find(task_id, ReminderKind.DEFENSE)

    def ensure_defense_reminder(self, task: Task, level: int, now: datetime) -> Reminder:
        """
        Keep exactly one defense reminder per escalating task.

        A level change only retunes frequency/message going forward; reminder_count
        is left alone. An answered (inactive) defense reminder comes back only
        when the level rises above the one it was answered at.
        """
        frequency = refire_minutes(level)
        existing = self.store.find(task.id, ReminderKind.DEFENSE)

        if existing is None:
            reminder = Reminder(
                id=new_id(),
                task_id=task.id,
                title=level_title(level),
                message=self._defense_message(task, level),
                kind=ReminderKind.DEFENSE,
                scheduled_for=now,
                created_at=now,
                recurring=Recurrence.NONE,
                interval_minutes=frequency,
                snooze_options=self._default_snooze,
                channels=ChannelSettings(**self._defense_channels.to_dict()),
                level=level,
            )
            self.store.put(reminder)
            logger.info("Defense reminder created task_id=%s level=%d every %d min", task.id, level, frequency)
            return reminder

        if not existing.is_active:
            if level <= existing.level:
                return existing
            self._cancel_loop(existing.id)
            existing.is_active = True
            existing.state = ReminderState.SCHEDULED
            existing.scheduled_for = now
            existing.snoozed_until = None
            existing.reminder_count = 0
            self._retune(existing, task, level, frequency)
            self.store.put(existing)
            logger.info("Defense reminder re-activated task_id=%s level=%d", task.id, level)
            return existing

        if existing.level != level or existing.interval_minutes != frequency:
            previous = existing.level
            self._retune(existing, task, level, frequency)
            self.store.put(existing)
            if existing.id in self._loops:
                self._start_loop(existing, now)
            logger.info(
                "Defense reminder retuned task_id=%s level %d -> %d (every %d min)",
                task.id,
                previous,
                level,
                frequency,
            )
        return existing

    def _retune(self, reminder: Reminder, task: Task, level: int, frequency: int) -> None:
        reminder.level = level
        reminder.interval_minutes = frequency
        reminder.title = level_title(level)
        reminder.message = self._defense_message(task, level)

    def _defense_message(self, task: Task, level: int) -> str:
        return style_for_character(pick_level_message(task.title, level), self._defense_channels.character)

    def retire_defense_reminder(self, task_id: str) -> bool:
        """Deactivate the defense reminder of a task that no longer escalates."""
        reminder = self.store.find(task_id, ReminderKind.DEFENSE)
        if reminder is None or not reminder.is_active:
            return False
        self._cancel_loop(reminder.id)
        self.dispatcher.close_surfaces(reminder)
        reminder.is_active = False
        reminder.reminder_count = 0
        reminder.snoozed_until = None
        reminder.state = ReminderState.ACKNOWLEDGED
        # any renewed escalation counts as a rise
        reminder.level = 0
        self.store.put(reminder)
        logger.info("Defense reminder retired task_id=%s", task_id)
        return True

    def fire_now(self, reminder_id: str) -> Reminder:
        """Trigger a reminder immediately, whatever its schedule."""
        reminder = self.store.require(reminder_id)
        if not reminder.is_active:
            reminder.is_active = True
        self._fire(reminder, self.clock.now())
        return reminder
