# tests/conftest.py

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest

from task_defender.channels.dispatcher import ChannelDispatcher
from task_defender.channels.modal import ModalChannel
from task_defender.channels.push import PushChannel
from task_defender.channels.tone import ToneChannel, TonePlayer
from task_defender.channels.voice import VoiceChannel
from task_defender.config import Settings
from task_defender.reminders.defense import TaskDefenseMonitor
from task_defender.reminders.history import HistoryLog
from task_defender.reminders.scheduler import EscalationScheduler
from task_defender.reminders.store import ReminderStore

from .fakes import (
    FakeClock,
    FakePushNotifier,
    FakeSpeech,
    FakeToneOutput,
    InMemoryTaskSource,
    RecordingSink,
)

# Monday 2026-03-02 09:00 UTC
START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture()
def store(tmp_path: Path) -> ReminderStore:
    return ReminderStore(tmp_path / "reminders.json")


@pytest.fixture()
def history(store: ReminderStore) -> HistoryLog:
    return HistoryLog(store)


@pytest.fixture()
def speech() -> FakeSpeech:
    return FakeSpeech()


@pytest.fixture()
def tone_output() -> FakeToneOutput:
    return FakeToneOutput()


@pytest.fixture()
def push() -> FakePushNotifier:
    return FakePushNotifier()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def dispatcher(
        clock: FakeClock,
        speech: FakeSpeech,
        tone_output: FakeToneOutput,
        push: FakePushNotifier,
        sink: RecordingSink,
) -> ChannelDispatcher:
    """Real channels over fake device ports."""
    return ChannelDispatcher(
        voice=VoiceChannel(speech),
        tone=ToneChannel(TonePlayer(tone_output, clock)),
        push=PushChannel(push),
        modal=ModalChannel(sink, clock, timeout_seconds=120),
    )


@pytest.fixture()
def scheduler(
        store: ReminderStore,
        dispatcher: ChannelDispatcher,
        history: HistoryLog,
        clock: FakeClock,
) -> EscalationScheduler:
    return EscalationScheduler(store, dispatcher, history, clock)


@pytest.fixture()
def tasks() -> InMemoryTaskSource:
    return InMemoryTaskSource()


@pytest.fixture()
def monitor(tasks: InMemoryTaskSource, scheduler: EscalationScheduler) -> TaskDefenseMonitor:
    monitor = TaskDefenseMonitor(tasks, scheduler)
    scheduler.attach_monitor(monitor)
    return monitor


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Real Settings with every path under tmp_path and all device channels on.

    Built from the environment defaults, then pinned, so a developer's local
    TASKDEF_* variables cannot leak into the tests.
    """
    return replace(
        Settings.from_env(),
        data_dir=tmp_path,
        state_path=tmp_path / "reminders.json",
        tasks_db_path=tmp_path / "tasks.sqlite3",
        matrix_homeserver="",
        matrix_user_id="",
        matrix_password="",
        matrix_room="",
        matrix_store_path=tmp_path / "matrix_store",
        voice_enabled=True,
        tone_enabled=False,
        push_enabled=True,
        modal_enabled=True,
        defense_enabled=True,
        default_interval_minutes=30,
        default_snooze_options=(5, 10, 15),
        default_character="default",
        default_tone="gentle-bell",
        custom_prompts=(),
        continuous_max_firings=0,
        history_limit=100,
        modal_timeout_seconds=120.0,
    )
