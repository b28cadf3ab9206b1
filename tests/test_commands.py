# tests/test_commands.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from task_defender.cli.bootstrap import create_initial_state
from task_defender.cli.commands import CommandRegistry, parse_when, registry
from task_defender.connectors.console_connector import render_event
from task_defender.core.events import ReminderDue
from task_defender.reminders.models import Recurrence, ReminderKind, ReminderState

from .conftest import START
from .fakes import FakePushNotifier, FakeSpeech, FakeToneOutput, RecordingSink


@pytest.fixture()
def state(settings, clock):
    return create_initial_state(
        settings=settings,
        clock=clock,
        speech=FakeSpeech(),
        tone_output=FakeToneOutput(),
        push_notifier=FakePushNotifier(),
    )


def test_command_registry_routes_and_reports_errors(state) -> None:
    reg = CommandRegistry()
    seen: list[str] = []

    def ok(state, args, emit):
        if emit is not None:
            emit("note")
        return "ok " + " ".join(args)

    def bad(state, args, emit):
        raise ValueError("nope")

    reg.register("ok", ok, "ok", aliases=["k"])
    reg.register("bad", bad, "bad")

    assert reg.handle(state, "/K a b", emit=seen.append) == "ok a b"
    assert seen == ["note"]
    assert reg.handle(state, "/bad") == "Error: nope"
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "/ok - ok" in reg.build_help()


def test_parse_when() -> None:
    now = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    assert parse_when("+15m", now) == now + timedelta(minutes=15)
    assert parse_when("+2h", now) == now + timedelta(hours=2)
    assert parse_when("+1d", now) == now + timedelta(days=1)
    assert parse_when("+30", now) == now + timedelta(minutes=30)
    assert parse_when("10:30", now) == now.replace(hour=10, minute=30)
    assert parse_when("08:00", now) == now.replace(hour=8) + timedelta(days=1)
    assert parse_when("2026-03-05T12:00:00+00:00", now) == datetime(2026, 3, 5, 12, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        parse_when("soonish", now)


@pytest.mark.asyncio
async def test_add_fire_and_answer_from_console(state, clock) -> None:
    out = registry.handle(state, "/add +1m Stand up every=daily interval=2")
    assert out.startswith("Reminder ")
    (r,) = state.scheduler.list_reminders()
    assert r.recurring == Recurrence.DAILY
    assert r.interval_minutes == 2
    assert r.scheduled_for == START + timedelta(minutes=1)

    await clock.advance(60)
    state.scheduler.check_due(clock.now())
    assert r.state == ReminderState.TRIGGERED

    listing = registry.handle(state, "/reminders")
    assert r.id[:8] in listing
    assert "[triggered]" in listing

    # no id: answers the reminder whose dialog is open
    assert registry.handle(state, "/snooze 10") == f"Snoozed {r.id[:8]} for 10 min."
    assert r.snoozed_until == clock.now() + timedelta(minutes=10)

    clock.set(clock.now() + timedelta(minutes=10))
    state.scheduler.check_due(clock.now())
    assert "Next at" in registry.handle(state, "/ack")
    assert r.scheduled_for == START + timedelta(days=1, minutes=1)
    state.scheduler.stop()


@pytest.mark.asyncio
async def test_toggle_delete_and_errors(state) -> None:
    registry.handle(state, "/add +5m Water")
    (r,) = state.scheduler.list_reminders()

    assert "inactive" in registry.handle(state, f"/toggle {r.id[:6]}")
    assert "active" in registry.handle(state, f"/toggle {r.id}")
    assert registry.handle(state, "/ack").startswith("Error:")
    assert registry.handle(state, "/delete zzzz").startswith("Error: Unknown reminder id")
    assert registry.handle(state, "/add +5m").startswith("Usage")
    assert registry.handle(state, "/add +5m Tea every=hourly").startswith("Error:")
    assert registry.handle(state, "/add +5m Tea tone=kazoo").startswith("Unknown tone")
    assert registry.handle(state, f"/delete {r.id[:8]}") == f"Deleted {r.id[:8]}."
    assert state.scheduler.list_reminders() == []


@pytest.mark.asyncio
async def test_task_and_defend_commands(state, clock) -> None:
    out = registry.handle(state, "/task add +2h Write essay priority=high")
    assert out.startswith("Task ")
    (task,) = state.task_store.list_open_tasks()
    short = task.id[:8]

    assert "Write essay" in registry.handle(state, "/task list")
    assert "every 15 min" in registry.handle(state, f"/task remind {short} 15")
    assert "Removed 1" in registry.handle(state, f"/task remind {short} off")

    for _ in range(3):
        registry.handle(state, f"/task procrastinate {short}")
    assert "1 escalating" in registry.handle(state, "/defend")
    defense = state.scheduler.defense_reminder(task.id)
    assert defense.level == 2

    assert "level 3" in registry.handle(state, f"/defend {short} high")
    assert defense.state == ReminderState.TRIGGERED

    assert "done" in registry.handle(state, f"/task done {short}")
    assert not defense.is_active
    assert registry.handle(state, "/task list") == "No open tasks."
    assert "Cleared 1" in registry.handle(state, f"/task clear {task.id}")
    state.scheduler.stop()


@pytest.mark.asyncio
async def test_status_stats_tones_and_open(state) -> None:
    assert "Reminders: 0 total" in registry.handle(state, "/status")
    assert "gentle-bell" in registry.handle(state, "/tones")
    assert "Playing urgent-beep" in registry.handle(state, "/tones play urgent-beep")
    assert "Total (kept): 0" in registry.handle(state, "/stats")

    registry.handle(state, "/add +0m Ping")
    (r,) = state.scheduler.list_reminders()
    sink = RecordingSink()
    state.bus.subscribe(sink.publish)
    assert registry.handle(state, f"/open {r.id[:8]}") == f"Opened {r.id[:8]}."
    (due,) = sink.of_type(ReminderDue)
    text = render_event(due)
    assert "Ping" in text
    assert "/snooze 5" in text
    assert r.kind == ReminderKind.REMINDER
    state.scheduler.stop()
