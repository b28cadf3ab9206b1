# tests/test_defense.py

from __future__ import annotations

from datetime import timedelta

import pytest

from task_defender.errors import ReminderNotFoundError, ReminderValidationError
from task_defender.reminders.models import ReminderKind, ReminderState, Task, TaskStatus

from .conftest import START

HOUR = 3600


def _task(task_id: str = "t1", **kw) -> Task:
    base = dict(id=task_id, title="Finish slides", created_at=START, due_date=START + timedelta(hours=10))
    base.update(kw)
    return Task(**base)


def _defense(scheduler, task_id: str = "t1"):
    return scheduler.defense_reminder(task_id)


@pytest.mark.asyncio
async def test_no_reminder_below_half_way(monitor, scheduler, tasks, clock) -> None:
    tasks.put(_task())
    assert monitor.reassess(clock.now()) == {"t1": 0}
    assert _defense(scheduler) is None


@pytest.mark.asyncio
async def test_escalation_creates_one_reminder_and_retunes_it(monitor, scheduler, tasks, clock) -> None:
    tasks.put(_task())

    clock.set(START + timedelta(hours=5))
    monitor.reassess(clock.now())
    r = _defense(scheduler)
    assert r.kind == ReminderKind.DEFENSE
    assert r.level == 1
    assert r.interval_minutes == 60
    assert r.scheduled_for == clock.now()
    assert "Finish slides" in r.message

    scheduler.check_due(clock.now())
    assert r.state == ReminderState.TRIGGERED
    assert r.reminder_count == 1

    clock.set(START + timedelta(hours=8, minutes=30))
    monitor.reassess(clock.now())
    again = _defense(scheduler)
    assert again.id == r.id
    assert again.level == 3
    assert again.interval_minutes == 15
    assert again.title == "URGENT INTERVENTION"
    # retuning keeps the firing count and the running loop
    assert again.reminder_count == 1
    assert scheduler.has_loop(r.id)
    assert len([x for x in scheduler.list_reminders() if x.kind == ReminderKind.DEFENSE]) == 1
    scheduler.stop()


@pytest.mark.asyncio
async def test_level_change_rearms_loop_with_new_cadence(monitor, scheduler, tasks, clock, speech) -> None:
    tasks.put(_task())
    clock.set(START + timedelta(hours=9))  # 90% -> level 3, every 15 min
    monitor.reassess(clock.now())
    scheduler.check_due(clock.now())
    assert len(speech.spoken) == 1

    clock.set(START + timedelta(hours=9, minutes=36))  # 96% -> level 4, every 5 min
    monitor.reassess(clock.now())
    await clock.settle()
    # already overdue under the 5 min cadence
    assert len(speech.spoken) == 2
    await clock.advance(5 * 60)
    assert len(speech.spoken) == 3
    await clock.advance(5 * 60)
    assert len(speech.spoken) == 4
    scheduler.stop()


@pytest.mark.asyncio
async def test_done_or_vanished_task_deactivates_without_deleting(monitor, scheduler, tasks, clock) -> None:
    tasks.put(_task("t1"))
    tasks.put(_task("t2"))
    clock.set(START + timedelta(hours=7))
    monitor.reassess(clock.now())
    scheduler.check_due(clock.now())

    tasks.update("t1", status=TaskStatus.DONE)
    tasks.remove("t2")
    monitor.reassess(clock.now())

    for tid in ("t1", "t2"):
        r = _defense(scheduler, tid)
        assert r is not None
        assert not r.is_active
        assert not scheduler.has_loop(r.id)


@pytest.mark.asyncio
async def test_acknowledged_defense_returns_only_when_level_rises(monitor, scheduler, tasks, clock) -> None:
    tasks.put(_task())
    clock.set(START + timedelta(hours=7))
    monitor.reassess(clock.now())
    scheduler.check_due(clock.now())
    r = _defense(scheduler)
    scheduler.acknowledge(r.id)
    assert not r.is_active

    clock.set(START + timedelta(hours=8))
    monitor.reassess(clock.now())
    assert not _defense(scheduler).is_active

    clock.set(START + timedelta(hours=8, minutes=45))
    monitor.reassess(clock.now())
    r = _defense(scheduler)
    assert r.is_active
    assert r.level == 3
    assert r.state == ReminderState.SCHEDULED
    assert r.reminder_count == 0
    assert scheduler.check_due(clock.now()) == [r.id]
    scheduler.stop()


@pytest.mark.asyncio
async def test_procrastination_floor_without_due_date(monitor, scheduler, tasks, clock) -> None:
    tasks.put(_task(due_date=None, procrastination_count=3))
    assert monitor.reassess(clock.now()) == {"t1": 2}
    assert _defense(scheduler).interval_minutes == 30


@pytest.mark.asyncio
async def test_task_source_failure_is_contained(monitor, tasks, clock, monkeypatch) -> None:
    def boom():
        raise RuntimeError("db down")

    monkeypatch.setattr(tasks, "list_open_tasks", boom)
    assert monitor.reassess(clock.now()) == {}


@pytest.mark.asyncio
async def test_manual_defense_fires_immediately(monitor, scheduler, tasks, clock, history, sink) -> None:
    tasks.put(_task())
    r = monitor.trigger_manual_defense("t1", "critical")
    assert r.level == 4
    assert r.state == ReminderState.TRIGGERED
    assert r.reminder_count == 1
    assert history.entries()[-1].level == 4
    assert sink.events

    with pytest.raises(ReminderValidationError):
        monitor.trigger_manual_defense("t1", "apocalyptic")
    with pytest.raises(ReminderNotFoundError):
        monitor.trigger_manual_defense("nope", "low")
    scheduler.stop()


@pytest.mark.asyncio
async def test_reassess_ticker_runs_before_due_check(monitor, scheduler, tasks, clock, speech) -> None:
    tasks.put(_task(created_at=START - timedelta(hours=10), due_date=START + timedelta(minutes=10)))
    scheduler.start()
    await clock.settle()

    r = _defense(scheduler)
    assert r.level == 4
    assert r.state == ReminderState.TRIGGERED
    assert len(speech.spoken) == 1
    scheduler.stop()


def test_disabled_monitor_does_nothing(monitor, tasks, clock) -> None:
    monitor.enabled = False
    tasks.put(_task(procrastination_count=5))
    assert monitor.reassess(clock.now()) == {}
