# src/task_defender/reminders/templates.py

from __future__ import annotations

"""
Message templates.

Plain templated string selection: a pool per intervention level, then a
character-specific wrapper. No text is generated beyond filling in the task title.
"""

import random
from collections.abc import Sequence

LEVEL_MESSAGES: dict[int, tuple[str, ...]] = {
    1: (
        'Hey! Just a friendly reminder about "{title}". You\'re halfway to the deadline!',
        'Time check! "{title}" is waiting for your attention.',
        'Don\'t forget about "{title}" - you still have time to complete it properly!',
    ),
    2: (
        'Attention! "{title}" is getting close to its deadline. Time to focus!',
        'Warning: "{title}" needs your immediate attention. Let\'s get it done!',
        'TaskDefender Alert: "{title}" is approaching critical status!',
    ),
    3: (
        'URGENT: "{title}" is almost due! Drop everything and work on this now!',
        'RED ALERT: "{title}" deadline is imminent! This is your last chance!',
        'CRITICAL: "{title}" must be completed immediately or you\'ll miss the deadline!',
    ),
    4: (
        'EMERGENCY! "{title}" deadline is NOW! Stop procrastinating immediately!',
        'FINAL WARNING: "{title}" is overdue or about to be! Act NOW!',
        'LAST LINE OF DEFENSE ACTIVATED: "{title}" requires immediate action!',
    ),
}

LEVEL_TITLES: dict[int, str] = {
    1: "TaskDefender Reminder",
    2: "TaskDefender Alert",
    3: "URGENT INTERVENTION",
    4: "EMERGENCY INTERVENTION",
}

TASK_REMINDER_TITLE = "Task Reminder"
TASK_REMINDER_MESSAGE = "Time to work on your task!"


def pick_level_message(title: str, level: int, rng: random.Random | None = None) -> str:
    pool = LEVEL_MESSAGES.get(level) or ('Time to work on "{title}"!',)
    template = (rng or random).choice(pool)
    return template.format(title=title)


def level_title(level: int) -> str:
    return LEVEL_TITLES.get(level, "TaskDefender")


def style_for_character(message: str, character: str) -> str:
    """Wrap a message in the voice of the selected character."""
    if character == "mom":
        return (
            f"Honey, {message.lower()} I'm not angry, just disappointed. "
            "You know you can do better than this."
        )
    if character == "coach":
        return f"LISTEN UP CHAMPION! {message.upper()} NO EXCUSES! WINNERS DON'T PROCRASTINATE!"
    if character == "custom":
        # custom prompt pools are substituted later by the voice channel
        return message
    return f"Hey there! {message} Remember, I'm your last line of defense against procrastination!"


def pick_custom_prompt(pool: Sequence[str], rng: random.Random | None = None) -> str | None:
    prompts = [p for p in pool if p and p.strip()]
    if not prompts:
        return None
    return (rng or random).choice(prompts)
