# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from task_defender.config import Settings


@pytest.fixture()
def clean_env(monkeypatch):
    import os

    for name in list(os.environ):
        if name.startswith("TASKDEF_"):
            monkeypatch.delenv(name)
    return monkeypatch


def test_defaults(clean_env) -> None:
    s = Settings.from_env()
    assert s.data_dir == Path(".local/task_defender")
    assert s.state_path == s.data_dir / "reminders.json"
    assert s.check_interval_seconds == 30.0
    assert s.reassess_interval_seconds == 300.0
    assert s.default_snooze_options == (5, 10, 15)
    assert s.history_limit == 100
    assert s.custom_prompts == ()
    assert not s.matrix_configured


def test_env_overrides_and_bad_values(clean_env, tmp_path: Path) -> None:
    clean_env.setenv("TASKDEF_DATA_DIR", str(tmp_path))
    clean_env.setenv("TASKDEF_SNOOZE_OPTIONS", "3, 7 x 20")
    clean_env.setenv("TASKDEF_HISTORY_LIMIT", "lots")
    clean_env.setenv("TASKDEF_VOICE_ENABLED", "off")
    clean_env.setenv("TASKDEF_CUSTOM_PROMPTS", "Stop scrolling, please.| |Get it done")
    clean_env.setenv("TASKDEF_MATRIX_HOMESERVER", "https://matrix.example.org")
    clean_env.setenv("TASKDEF_MATRIX_USER_ID", "@bot:example.org")
    clean_env.setenv("TASKDEF_MATRIX_PASSWORD", "secret")
    clean_env.setenv("TASKDEF_MATRIX_ROOM", "!room:example.org")

    s = Settings.from_env()
    assert s.tasks_db_path == tmp_path / "tasks.sqlite3"
    assert s.default_snooze_options == (3, 7, 20)
    assert s.history_limit == 100
    assert s.voice_enabled is False
    assert s.custom_prompts == ("Stop scrolling, please.", "Get it done")
    assert s.matrix_configured
