# tests/test_recurrence_and_templates.py

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from task_defender.reminders.models import Recurrence
from task_defender.reminders.recurrence import next_occurrence
from task_defender.reminders.templates import (
    LEVEL_MESSAGES,
    level_title,
    pick_custom_prompt,
    pick_level_message,
    style_for_character,
)

FRIDAY = datetime(2026, 3, 6, 8, 30, tzinfo=timezone.utc)


def test_workdays_from_friday_lands_on_monday() -> None:
    nxt = next_occurrence(FRIDAY, Recurrence.WORKDAYS)
    assert nxt == FRIDAY + timedelta(days=3)
    assert nxt.weekday() == 0


def test_workdays_never_lands_on_weekend() -> None:
    start = FRIDAY
    for _ in range(14):
        start = next_occurrence(start, Recurrence.WORKDAYS)
        assert start.weekday() < 5


def test_daily_weekly_and_one_shot() -> None:
    assert next_occurrence(FRIDAY, Recurrence.DAILY) == FRIDAY + timedelta(days=1)
    assert next_occurrence(FRIDAY, Recurrence.WEEKLY) == FRIDAY + timedelta(days=7)
    assert next_occurrence(FRIDAY, Recurrence.NONE) is None


def test_level_message_fills_in_title() -> None:
    rng = random.Random(3)
    for level in (1, 2, 3, 4):
        msg = pick_level_message("Tax return", level, rng)
        assert '"Tax return"' in msg
        assert msg in {t.format(title="Tax return") for t in LEVEL_MESSAGES[level]}
    assert level_title(4) == "EMERGENCY INTERVENTION"


def test_character_styles() -> None:
    assert style_for_character("Go.", "coach").startswith("LISTEN UP CHAMPION! GO.")
    assert "disappointed" in style_for_character("Go.", "mom")
    assert style_for_character("Go.", "custom") == "Go."
    assert style_for_character("Go.", "default").startswith("Hey there! Go.")


def test_custom_prompt_pool_ignores_blank_entries() -> None:
    assert pick_custom_prompt(["", "  "]) is None
    assert pick_custom_prompt(["", "Move it"]) == "Move it"
