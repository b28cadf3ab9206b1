# src/task_defender/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path

from ..reminders.models import Task, TaskStatus

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high", "urgent")


class TaskStore:
    """
    Small local SQLite task source.

    Only what the defense monitor and the console need: create tasks, move
    their status, count procrastination, list open tasks.

    The schema is migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'todo',
                    created_at TEXT NOT NULL,
                    due_date TEXT,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    procrastination_count INTEGER NOT NULL DEFAULT 0
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("due_date", "TEXT")
            add_col("priority", "TEXT NOT NULL DEFAULT 'medium'")
            add_col("procrastination_count", "INTEGER NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, due_date)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        due = row["due_date"]
        return Task(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            status=TaskStatus.from_db(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            due_date=datetime.fromisoformat(due) if due else None,
            priority=str(row["priority"] or "medium"),
            procrastination_count=int(row["procrastination_count"] or 0),
        )

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(
        self,
        title: str,
        *,
        due_date: datetime | None = None,
        priority: str = "medium",
        created_at: datetime | None = None,
        status: TaskStatus = TaskStatus.TODO,
    ) -> str:
        if not title or not title.strip():
            raise ValueError("title is required")
        if priority not in PRIORITIES:
            raise ValueError(f"priority must be one of {PRIORITIES}, got {priority!r}")

        created = created_at or datetime.now().astimezone()
        if due_date is not None and due_date.tzinfo is None:
            due_date = due_date.astimezone()

        task_id = uuid.uuid4().hex
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(id, title, status, created_at, due_date, priority, procrastination_count)
                VALUES (?, ?, ?, ?, ?, ?, 0)
                """,
                (
                    task_id,
                    title.strip(),
                    status.value,
                    created.isoformat(),
                    due_date.isoformat() if due_date else None,
                    priority,
                ),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("Task added id=%s due=%s priority=%s", task_id, due_date, priority)
        return task_id

    def get_task(self, task_id: str) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def list_open_tasks(self) -> list[Task]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE status != 'done'
                ORDER BY COALESCE(due_date, created_at) ASC
                """
            ).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def update_task_status(self, task_id: str, new_status: TaskStatus) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("UPDATE tasks SET status = ? WHERE id = ?", (new_status.value, task_id))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def record_procrastination(self, task_id: str) -> int:
        """Bump the task's procrastination counter. Returns the new value (-1 if unknown)."""
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE tasks SET procrastination_count = procrastination_count + 1 WHERE id = ?",
                (task_id,),
            )
            conn.commit()
            if cur.rowcount != 1:
                return -1
            (n,) = conn.execute(
                "SELECT procrastination_count FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()
            return int(n)
        finally:
            conn.close()
