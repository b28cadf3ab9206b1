# src/task_defender/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..channels.dispatcher import ChannelDispatcher
from ..channels.tone import TonePlayer
from ..channels.voice import VoiceChannel
from ..config import Settings
from ..reminders.defense import TaskDefenseMonitor
from ..reminders.history import HistoryLog
from ..reminders.scheduler import EscalationScheduler
from ..reminders.store import ReminderStore
from ..tasks.task_store import TaskStore
from .events import EventBus
from .ports import Clock, PushNotifier


@dataclass
class AppState:
    """Everything a connector or command needs, wired once by the bootstrap."""

    settings: Settings
    clock: Clock

    store: ReminderStore
    history: HistoryLog
    dispatcher: ChannelDispatcher
    scheduler: EscalationScheduler
    monitor: TaskDefenseMonitor
    task_store: TaskStore
    bus: EventBus

    voice: VoiceChannel | None = None
    tone_player: TonePlayer | None = None
    push_notifier: PushNotifier | None = None

    # objects with a shutdown()/close() hook, released in reverse order on exit
    closers: list[Any] = field(default_factory=list)
