# src/task_defender/reminders/store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

from ..errors import DuplicateReminderError, ReminderNotFoundError, StorePersistenceError
from .models import InterventionRecord, Reminder, ReminderKind

logger = logging.getLogger(__name__)

STORE_VERSION = 1


class ReminderStore:
    """
    JSON-file reminder store.

    The whole document is loaded once and rewritten on every mutation:
    - reminders: records keyed by id
    - history:   bounded list of intervention records (oldest first)

    In-memory state is authoritative for the process lifetime. A failed write is
    logged and the next successful write reconciles the file.

    Monitor-generated reminders are indexed by (task_id, kind); storing a second
    one for the same key is refused.
    """

    def __init__(self, path: str | Path = "reminders.json") -> None:
        self._path = Path(path)
        self._reminders: dict[str, Reminder] = {}
        self._index: dict[tuple[str, ReminderKind], str] = {}
        self._history: list[InterventionRecord] = []
        self._dirty = False
        self.load()
        logger.info(
            "ReminderStore ready path=%s reminders=%d history=%d",
            self._path,
            len(self._reminders),
            len(self._history),
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dirty(self) -> bool:
        """True while the file lags behind in-memory state after a failed write."""
        return self._dirty

    # ---- load / save ----

    def load(self) -> None:
        self._reminders.clear()
        self._index.clear()
        self._history = []

        if not self._path.exists():
            return

        try:
            data = json.loads(self._path.read_text("utf-8"))
        except Exception:
            logger.exception("Failed to read reminder store %s; starting empty", self._path)
            self._backup_corrupt()
            return

        if not isinstance(data, dict):
            logger.warning("Reminder store %s is not a JSON object; starting empty", self._path)
            self._backup_corrupt()
            return

        raw_reminders = data.get("reminders") or {}
        if isinstance(raw_reminders, list):
            # tolerate a plain list of records
            raw_reminders = {str(i): r for i, r in enumerate(raw_reminders)}
        if not isinstance(raw_reminders, dict):
            logger.warning("Reminder collection in %s has unexpected shape; ignoring it", self._path)
            raw_reminders = {}

        for key, raw in raw_reminders.items():
            try:
                if not isinstance(raw, dict):
                    raise TypeError(f"record is {type(raw).__name__}, expected object")
                reminder = Reminder.from_dict(raw)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Dropping malformed reminder record %r: %s", key, e)
                continue

            existing_id = self._index.get(reminder.index_key) if reminder.index_key else None
            if existing_id is not None:
                logger.warning(
                    "Dropping duplicate %s reminder id=%s for task_id=%s (kept id=%s)",
                    reminder.kind.value,
                    reminder.id,
                    reminder.task_id,
                    existing_id,
                )
                continue

            self._reminders[reminder.id] = reminder
            if reminder.index_key:
                self._index[reminder.index_key] = reminder.id

        raw_history = data.get("history") or []
        if not isinstance(raw_history, list):
            logger.warning("History in %s has unexpected shape; ignoring it", self._path)
            raw_history = []
        for raw in raw_history:
            try:
                self._history.append(InterventionRecord.from_dict(raw))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Dropping malformed history record: %s", e)

    def _backup_corrupt(self) -> None:
        backup = self._path.with_suffix(self._path.suffix + ".corrupt")
        with contextlib.suppress(Exception):
            os.replace(self._path, backup)
            logger.warning("Moved unreadable reminder store to %s", backup)

    def _document(self) -> dict[str, Any]:
        return {
            "version": STORE_VERSION,
            "reminders": {rid: r.to_dict() for rid, r in self._reminders.items()},
            "history": [h.to_dict() for h in self._history],
        }

    def _write(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps(self._document(), ensure_ascii=False, indent=2), "utf-8")
            os.replace(tmp, self._path)
        except Exception as e:
            raise StorePersistenceError(f"failed to write {self._path}") from e

    def persist(self) -> bool:
        """Write the whole document. Returns False (and logs) on failure."""
        try:
            self._write()
        except StorePersistenceError:
            self._dirty = True
            logger.exception("Reminder store write failed; keeping in-memory state")
            return False
        if self._dirty:
            logger.info("Reminder store reconciled to %s", self._path)
        self._dirty = False
        return True

    # ---- reminders ----

    def all(self) -> list[Reminder]:
        return list(self._reminders.values())

    def active(self) -> list[Reminder]:
        return [r for r in self._reminders.values() if r.is_active]

    def get(self, reminder_id: str) -> Reminder | None:
        return self._reminders.get(reminder_id)

    def require(self, reminder_id: str) -> Reminder:
        reminder = self._reminders.get(reminder_id)
        if reminder is None:
            raise ReminderNotFoundError(reminder_id)
        return reminder

    def find(self, task_id: str, kind: ReminderKind) -> Reminder | None:
        rid = self._index.get((task_id, kind))
        return self._reminders.get(rid) if rid else None

    def for_task(self, task_id: str) -> list[Reminder]:
        return [r for r in self._reminders.values() if r.task_id == task_id]

    def put(self, reminder: Reminder) -> None:
        """Insert or update a reminder, then persist."""
        key = reminder.index_key
        if key is not None:
            owner = self._index.get(key)
            if owner is not None and owner != reminder.id:
                raise DuplicateReminderError(
                    f"{key[1].value} reminder already exists for task_id={key[0]} (id={owner})"
                )

        for k, rid in list(self._index.items()):
            if rid == reminder.id and k != key:
                del self._index[k]
        if key is not None:
            self._index[key] = reminder.id

        self._reminders[reminder.id] = reminder
        self.persist()

    def remove(self, reminder_id: str) -> Reminder | None:
        reminder = self._reminders.pop(reminder_id, None)
        if reminder is None:
            return None
        if reminder.index_key and self._index.get(reminder.index_key) == reminder_id:
            del self._index[reminder.index_key]
        self.persist()
        return reminder

    def __len__(self) -> int:
        return len(self._reminders)

    # ---- history ----

    def history(self) -> list[InterventionRecord]:
        return list(self._history)

    def set_history(self, records: list[InterventionRecord]) -> None:
        self._history = list(records)
        self.persist()
