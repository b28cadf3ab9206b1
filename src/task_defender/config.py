# src/task_defender/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every knob has a working local default; Matrix push is opt-in.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TASKDEF"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int_tuple(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    out: list[int] = []
    for part in raw.replace(",", " ").split():
        try:
            out.append(int(part))
        except ValueError:
            continue
    return tuple(out) or default


def _env_prompts(name: str) -> tuple[str, ...]:
    # prompts contain spaces and commas, so they are separated by "|"
    raw = os.getenv(name)
    if raw is None:
        return ()
    return tuple(p.strip() for p in raw.split("|") if p.strip())


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    state_path: Path
    tasks_db_path: Path

    # ---- Scheduler timing ----
    check_interval_seconds: float
    reassess_interval_seconds: float
    modal_timeout_seconds: float
    history_limit: int
    continuous_max_firings: int

    # ---- Reminder defaults ----
    default_interval_minutes: int
    default_snooze_options: tuple[int, ...]
    default_character: str
    default_tone: str
    tone_volume: float
    custom_prompts: tuple[str, ...]

    # ---- Channel switches ----
    voice_enabled: bool
    tone_enabled: bool
    push_enabled: bool
    modal_enabled: bool
    defense_enabled: bool

    # ---- TTS ----
    speaker_wav: str
    xtts_speaker_name: str
    xtts_language: str

    # ---- Matrix (push) ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_room: str
    matrix_store_path: Path

    # ---- Connector flags ----
    console_enabled: bool

    @property
    def matrix_configured(self) -> bool:
        return bool(self.matrix_homeserver and self.matrix_user_id and self.matrix_password and self.matrix_room)

    @staticmethod
    def from_env() -> "Settings":
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/task_defender"))

        return Settings(
            app_name=_env(_k("APP_NAME"), "task-defender"),
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            data_dir=data_dir,
            state_path=_env_path(_k("STATE_PATH"), data_dir / "reminders.json"),
            tasks_db_path=_env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3"),
            check_interval_seconds=_env_float(_k("CHECK_INTERVAL_SECONDS"), 30.0),
            reassess_interval_seconds=_env_float(_k("REASSESS_INTERVAL_SECONDS"), 300.0),
            modal_timeout_seconds=_env_float(_k("MODAL_TIMEOUT_SECONDS"), 120.0),
            history_limit=_env_int(_k("HISTORY_LIMIT"), 100),
            continuous_max_firings=_env_int(_k("CONTINUOUS_MAX_FIRINGS"), 0),
            default_interval_minutes=_env_int(_k("DEFAULT_INTERVAL_MINUTES"), 30),
            default_snooze_options=_env_int_tuple(_k("SNOOZE_OPTIONS"), (5, 10, 15)),
            default_character=_env(_k("CHARACTER"), "default"),
            default_tone=_env(_k("TONE"), "gentle-bell"),
            tone_volume=_env_float(_k("TONE_VOLUME"), 0.3),
            custom_prompts=_env_prompts(_k("CUSTOM_PROMPTS")),
            voice_enabled=_env_bool(_k("VOICE_ENABLED"), True),
            tone_enabled=_env_bool(_k("TONE_ENABLED"), False),
            push_enabled=_env_bool(_k("PUSH_ENABLED"), True),
            modal_enabled=_env_bool(_k("MODAL_ENABLED"), True),
            defense_enabled=_env_bool(_k("DEFENSE_ENABLED"), True),
            speaker_wav=_env(_k("SPEAKER_WAV"), ""),
            xtts_speaker_name=_env(_k("XTTS_SPEAKER_NAME"), "Ana Florence"),
            xtts_language=_env(_k("XTTS_LANGUAGE"), "en"),
            matrix_homeserver=_env(_k("MATRIX_HOMESERVER"), "").strip(),
            matrix_user_id=_env(_k("MATRIX_USER_ID"), "").strip(),
            matrix_password=_env(_k("MATRIX_PASSWORD"), "").strip(),
            matrix_room=_env(_k("MATRIX_ROOM"), "").strip(),
            matrix_store_path=_env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store"),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
