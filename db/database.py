import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

from db.models import SCHEMA_SQL, TASK_FIELDS, Task

logger = logging.getLogger(__name__)


class Database:
    """Task Record Store and Configuration Store on a single sqlite file.

    Writes to the same task are serialized by a per-task lock; different
    tasks never contend with each other.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._task_locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        if getattr(self._local, "conn", None) is None:
            self._local.conn = sqlite3.connect(str(self.db_path))
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
        return self._local.conn

    def _init_schema(self):
        conn = self._get_conn()
        conn.executescript(SCHEMA_SQL)
        conn.commit()

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        conn = self._get_conn()
        cursor = conn.execute(sql, params)
        conn.commit()
        return cursor

    def fetchone(self, sql: str, params: tuple = ()) -> dict | None:
        cursor = self._get_conn().execute(sql, params)
        row = cursor.fetchone()
        return dict(row) if row else None

    def fetchall(self, sql: str, params: tuple = ()) -> list[dict]:
        cursor = self._get_conn().execute(sql, params)
        return [dict(row) for row in cursor.fetchall()]

    # -- Tasks --

    @contextmanager
    def task_lock(self, task_id: str):
        with self._locks_guard:
            lock = self._task_locks.setdefault(task_id, threading.RLock())
        with lock:
            yield

    def save_task(self, task: Task) -> Task:
        """Insert or fully replace a task document."""
        values = _task_values(task)
        with self.task_lock(task.id):
            self.execute(
                f"INSERT INTO tasks (id, {', '.join(TASK_FIELDS)}) "
                f"VALUES (?, {', '.join('?' for _ in TASK_FIELDS)}) "
                f"ON CONFLICT(id) DO UPDATE SET "
                f"{', '.join(f'{k} = excluded.{k}' for k in TASK_FIELDS)}, "
                f"updated_at = datetime('now')",
                (task.id, *values),
            )
        return self.get_task(task.id)

    def get_task(self, task_id: str) -> Task | None:
        row = self.fetchone("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return Task(**row) if row else None

    def list_tasks(self) -> list[Task]:
        rows = self.fetchall("SELECT * FROM tasks ORDER BY created_at DESC, id")
        tasks = []
        for row in rows:
            try:
                tasks.append(Task(**row))
            except ValueError as e:
                logger.error("Skipping unreadable task %s: %s", row.get("id"), e)
        return tasks

    def update_task(self, task_id: str, **fields) -> Task | None:
        unknown = set(fields) - set(TASK_FIELDS)
        if unknown:
            raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")
        if not fields:
            return self.get_task(task_id)
        if "is_recording" in fields:
            fields["is_recording"] = int(bool(fields["is_recording"]))
        set_clause = ", ".join(f"{k} = ?" for k in fields)
        values = [_plain(v) for v in fields.values()] + [task_id]
        with self.task_lock(task_id):
            self.execute(
                f"UPDATE tasks SET {set_clause}, updated_at = datetime('now') WHERE id = ?",
                tuple(values),
            )
            return self.get_task(task_id)

    def delete_task(self, task_id: str) -> bool:
        with self.task_lock(task_id):
            cursor = self.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        with self._locks_guard:
            self._task_locks.pop(task_id, None)
        return cursor.rowcount > 0

    # -- Configuration documents --

    def get_config(self, name: str) -> dict | None:
        row = self.fetchone("SELECT document FROM config WHERE name = ?", (name,))
        if not row:
            return None
        try:
            return json.loads(row["document"])
        except json.JSONDecodeError as e:
            logger.error("Stored config '%s' is not valid JSON: %s", name, e)
            return None

    def set_config(self, name: str, document: dict) -> dict:
        self.execute(
            "INSERT INTO config (name, document) VALUES (?, ?) "
            "ON CONFLICT(name) DO UPDATE SET document = excluded.document, "
            "updated_at = datetime('now')",
            (name, json.dumps(document, ensure_ascii=False)),
        )
        return document


def _plain(value):
    return getattr(value, "value", value)


def _task_values(task: Task) -> tuple:
    values = []
    for field in TASK_FIELDS:
        value = _plain(getattr(task, field))
        if field == "is_recording":
            value = int(bool(value))
        values.append(value)
    return tuple(values)
