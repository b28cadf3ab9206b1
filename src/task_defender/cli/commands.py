# src/task_defender/cli/commands.py

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta

from ..channels.tone import TONE_CATALOG, get_tone
from ..core.state import AppState
from ..errors import ReminderNotFoundError, ReminderValidationError
from ..reminders.models import (
    ChannelSettings,
    Recurrence,
    Reminder,
    ReminderKind,
    ReminderSpec,
    Task,
    TaskReminderSettings,
    TaskStatus,
)
from ..reminders.urgency import SEVERITY_LEVELS, effective_level

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], str]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /ack, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases or []:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, parts[1:], emit)
        except (ReminderNotFoundError, ReminderValidationError, ValueError) as e:
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- parsing helpers ----

_RELATIVE = re.compile(r"^\+(\d+)([mhd]?)$")
_CLOCK = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_when(raw: str, now: datetime) -> datetime:
    """
    Accepts:
      +15m / +2h / +1d / +30  (relative; bare number = minutes)
      HH:MM                    (today, or tomorrow if already past)
      ISO-8601 datetime        (local time if no offset)
    """
    raw = raw.strip()
    m = _RELATIVE.match(raw)
    if m:
        amount = int(m.group(1))
        unit = m.group(2) or "m"
        delta = {"m": timedelta(minutes=amount), "h": timedelta(hours=amount), "d": timedelta(days=amount)}[unit]
        return now + delta

    m = _CLOCK.match(raw)
    if m:
        hour, minute = int(m.group(1)), int(m.group(2))
        at = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return at if at > now else at + timedelta(days=1)

    try:
        at = datetime.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"cannot parse time {raw!r}; use +15m, HH:MM or an ISO date") from None
    return at if at.tzinfo is not None else at.astimezone()


def _split_options(args: list[str]) -> tuple[list[str], dict[str, str]]:
    words: list[str] = []
    opts: dict[str, str] = {}
    for a in args:
        if "=" in a and not a.startswith("="):
            k, v = a.split("=", 1)
            opts[k.lower()] = v
        else:
            words.append(a)
    return words, opts


def _resolve_reminder(state: AppState, raw: str | None) -> Reminder:
    """Full id, unique id prefix, or (when omitted) the most recently shown modal."""
    if not raw:
        modal = state.dispatcher.modal
        open_ids = modal.open_ids() if modal is not None else []
        if not open_ids:
            raise ValueError("no reminder is waiting for an answer; pass a reminder id")
        return state.scheduler.get_reminder(open_ids[-1])

    matches = [r for r in state.scheduler.list_reminders() if r.id.startswith(raw)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise ValueError(f"id prefix {raw!r} is ambiguous")
    raise ReminderNotFoundError(raw)


def _resolve_task(state: AppState, raw: str) -> Task:
    matches = [t for t in state.task_store.list_open_tasks() if t.id.startswith(raw)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise ValueError(f"task id prefix {raw!r} is ambiguous")
    task = state.task_store.get_task(raw)
    if task is None:
        raise ValueError(f"unknown task id: {raw}")
    return task


def _fmt_dt(dt: datetime | None) -> str:
    return dt.astimezone().strftime("%Y-%m-%d %H:%M") if dt else "-"


def format_reminder(r: Reminder) -> str:
    flags = [r.kind.value]
    if r.recurring != Recurrence.NONE:
        flags.append(r.recurring.value)
    if r.level:
        flags.append(f"L{r.level}")
    if not r.is_active:
        flags.append("inactive")
    line = f"{r.id[:8]} [{r.state.value}] {r.title} @ {_fmt_dt(r.scheduled_for)} ({', '.join(flags)})"
    if r.snoozed_until:
        line += f" snoozed until {_fmt_dt(r.snoozed_until)}"
    if r.reminder_count:
        line += f" fired x{r.reminder_count}"
    return line


# ---- commands ----

def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    sched = state.scheduler
    reminders = sched.list_reminders()
    active = sum(1 for r in reminders if r.is_active)
    loops = sum(1 for r in reminders if sched.has_loop(r.id))

    d = state.dispatcher
    channels = ", ".join(
        f"{name}={'ok' if ch is not None and ch.available() else 'off'}"
        for name, ch in (("voice", d.voice), ("tone", d.tone), ("push", d.push), ("modal", d.modal))
    )
    tickers = ", ".join(
        f"{t.name}={'running' if t.running else 'stopped'}/{t.interval_seconds:.0f}s/{t.ticks} ticks"
        for t in sched.ticker_status()
    )
    persisted = "pending write" if state.store.dirty else "in sync"
    return (
        "Status:\n"
        f"  Reminders: {len(reminders)} total, {active} active, {loops} continuous loops\n"
        f"  Channels: {channels}\n"
        f"  Tickers: {tickers}\n"
        f"  Store: {state.store.path} ({persisted})"
    )


def cmd_reminders(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    show_all = bool(args) and args[0].lower() == "all"
    items = state.scheduler.list_reminders(active_only=not show_all)
    if not items:
        return "No reminders." if show_all else "No active reminders. Use /reminders all to include inactive ones."
    return "\n".join(["Reminders:"] + [f"  {format_reminder(r)}" for r in items])


def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add <when> <title...> [every=daily|weekly|workdays] [interval=N] [tone=ID] [character=NAME]
    """
    words, opts = _split_options(args)
    if len(words) < 2:
        return "Usage: /add <+15m|HH:MM|ISO> <title...> [every=daily|weekly|workdays] [interval=N]"

    when = parse_when(words[0], state.clock.now())
    recurring = Recurrence(opts.get("every", "none").lower())
    interval = int(opts["interval"]) if "interval" in opts else None

    channels: ChannelSettings | None = None
    if "tone" in opts or "character" in opts:
        channels = ChannelSettings(
            voice=state.settings.voice_enabled,
            tone=state.settings.tone_enabled or "tone" in opts,
            push=state.settings.push_enabled,
            modal=state.settings.modal_enabled,
            selected_tone=opts.get("tone", state.settings.default_tone),
            character=opts.get("character", state.settings.default_character),
        )
        if get_tone(channels.selected_tone) is None:
            return f"Unknown tone: {channels.selected_tone}. Use /tones to list them."

    rid = state.scheduler.create_reminder(
        ReminderSpec(
            title=" ".join(words[1:]),
            scheduled_for=when,
            recurring=recurring,
            interval_minutes=interval,
            channels=channels,
        )
    )
    return f"Reminder {rid[:8]} scheduled for {_fmt_dt(when)} ({recurring.value})."


def cmd_ack(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    r = state.scheduler.acknowledge(_resolve_reminder(state, args[0] if args else None).id)
    if r.is_active:
        return f"Acknowledged {r.id[:8]}. Next at {_fmt_dt(r.scheduled_for)}."
    return f"Acknowledged {r.id[:8]}."


def cmd_snooze(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/snooze [id] [minutes]; a lone number is read as minutes for the open modal."""
    rid: str | None = None
    minutes: int | None = None
    for a in args[:2]:
        if a.isdigit() and minutes is None and (rid is not None or len(args) == 1):
            minutes = int(a)
        else:
            rid = a
    reminder = _resolve_reminder(state, rid)
    if minutes is None:
        minutes = reminder.snooze_options[0]
    r = state.scheduler.snooze(reminder.id, minutes)
    return f"Snoozed {r.id[:8]} for {minutes} min."


def cmd_dismiss(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    r = state.scheduler.dismiss(_resolve_reminder(state, args[0] if args else None).id)
    return f"Dismissed {r.id[:8]}."


def cmd_toggle(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /toggle <id>"
    r = _resolve_reminder(state, args[0])
    active = state.scheduler.toggle_active(r.id)
    return f"Reminder {r.id[:8]} is now {'active' if active else 'inactive'}."


def cmd_delete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /delete <id>"
    r = _resolve_reminder(state, args[0])
    state.scheduler.delete_reminder(r.id)
    return f"Deleted {r.id[:8]}."


def cmd_open(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """Same as clicking the push notification: show the reminder dialog again."""
    if not args:
        return "Usage: /open <id>"
    r = _resolve_reminder(state, args[0])
    if not state.scheduler.open_from_push(r.id):
        return "Reminder dialogs are disabled."
    return f"Opened {r.id[:8]}."


def cmd_stats(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    stats = state.scheduler.get_stats()
    return (
        "Intervention stats:\n"
        f"  Total (kept): {stats['total_interventions']}\n"
        f"  Last 24h: {stats['last_24h']}\n"
        f"  Average level: {stats['average_level']:.2f}"
    )


def cmd_tones(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/tones -> list; /tones play <id> -> preview"""
    if args and args[0].lower() == "play":
        if len(args) < 2:
            return "Usage: /tones play <tone-id>"
        player = state.tone_player
        if player is None or not player.available:
            return "Tone output is not available."
        if not player.play(args[1], state.settings.tone_volume):
            return f"Unknown tone: {args[1]}"
        return f"Playing {args[1]}."

    lines = ["Tones:"]
    for t in TONE_CATALOG.values():
        lines.append(f"  {t.id} - {t.name}: {t.description} ({t.frequency:.0f} Hz x{t.pulses})")
    return "\n".join(lines)


def _task_line(state: AppState, t: Task) -> str:
    level = effective_level(t, state.clock.now())
    due = _fmt_dt(t.due_date)
    extra = f", procrastinated x{t.procrastination_count}" if t.procrastination_count else ""
    return f"{t.id[:8]} [{t.status.value}] {t.title} due {due} ({t.priority}, L{level}{extra})"


def cmd_task(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /task list
    /task add <due|none> <title...> [priority=low|medium|high|urgent]
    /task start|done|procrastinate <id>
    /task remind <id> <minutes|off>
    /task clear <id>
    """
    usage = (
        "Usage:\n"
        "  /task list\n"
        "  /task add <+2h|HH:MM|ISO|none> <title...> [priority=low|medium|high|urgent]\n"
        "  /task start|done|procrastinate <id>\n"
        "  /task remind <id> <minutes|off>\n"
        "  /task clear <id>"
    )
    if not args:
        return usage
    sub, rest = args[0].lower(), args[1:]
    ts = state.task_store

    if sub == "list":
        tasks = ts.list_open_tasks()
        if not tasks:
            return "No open tasks."
        return "\n".join(["Open tasks:"] + [f"  {_task_line(state, t)}" for t in tasks])

    if sub == "add":
        words, opts = _split_options(rest)
        if len(words) < 2:
            return usage
        due = None if words[0].lower() == "none" else parse_when(words[0], state.clock.now())
        task_id = ts.add_task(
            " ".join(words[1:]),
            due_date=due,
            priority=opts.get("priority", "medium"),
            created_at=state.clock.now(),
        )
        return f"Task {task_id[:8]} added (due {_fmt_dt(due)})."

    if not rest:
        return usage
    task = _resolve_task(state, rest[0])

    if sub in ("start", "done"):
        new_status = TaskStatus.IN_PROGRESS if sub == "start" else TaskStatus.DONE
        ts.update_task_status(task.id, new_status)
        if new_status == TaskStatus.DONE:
            state.scheduler.retire_defense_reminder(task.id)
        return f"Task {task.id[:8]} is now {new_status.value}."

    if sub == "procrastinate":
        n = ts.record_procrastination(task.id)
        return f"Task {task.id[:8]} procrastination count: {n}."

    if sub == "remind":
        if len(rest) < 2:
            return usage
        if rest[1].lower() == "off":
            own = [
                r for r in state.scheduler.list_reminders()
                if r.task_id == task.id and r.kind == ReminderKind.REMINDER
            ]
            for r in own:
                state.scheduler.delete_reminder(r.id)
            return f"Removed {len(own)} reminder(s) for task {task.id[:8]}."
        minutes = int(rest[1])
        settings = state.settings
        rid = state.scheduler.set_task_reminder(
            task.id,
            TaskReminderSettings(
                enabled=True,
                interval_minutes=minutes,
                use_voice=settings.voice_enabled,
                use_tone=settings.tone_enabled,
                selected_tone=settings.default_tone,
                character=settings.default_character,
                snooze_options=settings.default_snooze_options,
            ),
        )
        return f"Task reminder {rid[:8]} set every {minutes} min for task {task.id[:8]}."

    if sub == "clear":
        n = state.scheduler.clear_task_reminders(task.id)
        return f"Cleared {n} reminder(s) for task {task.id[:8]}."

    return usage


def cmd_defend(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/defend -> reassess now; /defend <task-id> <severity> -> manual intervention"""
    if not args:
        levels = state.monitor.reassess(state.clock.now())
        if not levels:
            return "No open tasks to defend." if state.monitor.enabled else "Task defense is disabled."
        escalating = sum(1 for lvl in levels.values() if lvl > 0)
        return f"Reassessed {len(levels)} task(s); {escalating} escalating."

    if len(args) < 2:
        return f"Usage: /defend <task-id> <{'|'.join(SEVERITY_LEVELS)}>"
    task = _resolve_task(state, args[0])
    r = state.monitor.trigger_manual_defense(task.id, args[1])
    return f"Defense reminder {r.id[:8]} fired at level {r.level}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show scheduler, channel and store status.")
registry.register("reminders", cmd_reminders, help_text="List reminders: /reminders [all].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Schedule a reminder: /add <when> <title...> [every=daily].")
registry.register("ack", cmd_ack, help_text="Acknowledge: /ack [id].", aliases=["a"])
registry.register("snooze", cmd_snooze, help_text="Snooze: /snooze [id] [minutes].", aliases=["s"])
registry.register("dismiss", cmd_dismiss, help_text="Dismiss: /dismiss [id].", aliases=["d"])
registry.register("toggle", cmd_toggle, help_text="Activate/deactivate: /toggle <id>.")
registry.register("delete", cmd_delete, help_text="Delete: /delete <id>.", aliases=["rm"])
registry.register("open", cmd_open, help_text="Reopen a reminder dialog: /open <id>.")
registry.register("stats", cmd_stats, help_text="Intervention statistics.")
registry.register("tones", cmd_tones, help_text="List tones or preview one: /tones play <id>.")
registry.register("task", cmd_task, help_text="Tasks: /task list | add | start | done | procrastinate | remind | clear.")
registry.register("defend", cmd_defend, help_text="Task defense: /defend | /defend <task-id> <severity>.")
