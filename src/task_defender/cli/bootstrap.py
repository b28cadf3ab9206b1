# src/task_defender/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete port implementations (clock, speech, tone, push, UI bus)
  into the scheduler and returns an AppState.

Every port can be overridden, which is how tests build a state without audio
devices or a Matrix account.
"""

from __future__ import annotations

import logging

from ..channels.dispatcher import ChannelDispatcher
from ..channels.modal import ModalChannel
from ..channels.push import LogPushNotifier, PushChannel
from ..channels.tone import SoundDeviceToneOutput, ToneChannel, TonePlayer
from ..channels.voice import VoiceChannel
from ..config import Settings, get_settings
from ..core.clock import SystemClock
from ..core.events import EventBus
from ..core.ports import Clock, PushNotifier, SpeechSynthesizer, ToneOutput
from ..core.state import AppState
from ..reminders.defense import TaskDefenseMonitor
from ..reminders.history import HistoryLog
from ..reminders.models import ChannelSettings
from ..reminders.scheduler import EscalationScheduler
from ..reminders.store import ReminderStore
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.state_path.parent.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def _default_speech(settings: Settings) -> SpeechSynthesizer:
    from ..tts.engine import TTSConfig, XTTSSpeechSynthesizer

    return XTTSSpeechSynthesizer(
        enabled=settings.voice_enabled,
        cfg=TTSConfig(
            speaker_wav=settings.speaker_wav or None,
            xtts_speaker_name=settings.xtts_speaker_name,
            xtts_language=settings.xtts_language,
        ),
    )


def _default_push(settings: Settings) -> PushNotifier:
    if settings.matrix_configured:
        from ..connectors.matrix_push import MatrixPushNotifier

        return MatrixPushNotifier(settings)
    logger.info("Matrix push not configured; push notifications go to the log.")
    return LogPushNotifier()


def create_initial_state(
        *,
        settings: Settings | None = None,
        clock: Clock | None = None,
        speech: SpeechSynthesizer | None = None,
        tone_output: ToneOutput | None = None,
        push_notifier: PushNotifier | None = None,
        task_store: TaskStore | None = None,
        bus: EventBus | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    clock = clock or SystemClock()
    bus = bus or EventBus()
    closers: list = []

    if speech is None:
        speech = _default_speech(settings)
        closers.append(speech)
    if tone_output is None:
        tone_output = SoundDeviceToneOutput(enabled=settings.tone_enabled)
    if push_notifier is None:
        push_notifier = _default_push(settings)
        closers.append(push_notifier)

    voice = VoiceChannel(speech, custom_prompts=settings.custom_prompts)
    tone_player = TonePlayer(tone_output, clock)
    dispatcher = ChannelDispatcher(
        voice=voice,
        tone=ToneChannel(tone_player, volume=settings.tone_volume),
        push=PushChannel(push_notifier),
        modal=ModalChannel(bus, clock, timeout_seconds=settings.modal_timeout_seconds),
    )

    store = ReminderStore(settings.state_path)
    history = HistoryLog(store, limit=settings.history_limit)

    defaults = ChannelSettings(
        voice=settings.voice_enabled,
        tone=settings.tone_enabled,
        push=settings.push_enabled,
        modal=settings.modal_enabled,
        selected_tone=settings.default_tone,
        character=settings.default_character,
    )
    scheduler = EscalationScheduler(
        store,
        dispatcher,
        history,
        clock,
        check_interval_seconds=settings.check_interval_seconds,
        reassess_interval_seconds=settings.reassess_interval_seconds,
        default_interval_minutes=settings.default_interval_minutes,
        default_snooze_options=settings.default_snooze_options,
        default_channels=defaults,
        defense_channels=ChannelSettings.from_dict(defaults.to_dict()),
        continuous_max_firings=settings.continuous_max_firings,
    )

    tasks = task_store or TaskStore(settings.tasks_db_path)
    monitor = TaskDefenseMonitor(tasks, scheduler, enabled=settings.defense_enabled)
    scheduler.attach_monitor(monitor)

    return AppState(
        settings=settings,
        clock=clock,
        store=store,
        history=history,
        dispatcher=dispatcher,
        scheduler=scheduler,
        monitor=monitor,
        task_store=tasks,
        bus=bus,
        voice=voice,
        tone_player=tone_player,
        push_notifier=push_notifier,
        closers=closers,
    )
