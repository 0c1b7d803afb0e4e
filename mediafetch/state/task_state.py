"""Task state management module"""
import datetime
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import Task, TaskState

_logger = logging.getLogger("media_fetch.state")

RESTART_INTERRUPTED_MESSAGE = "Interrupted by service restart"


class TaskStore(ABC):
    """
    Task store interface.

    Subclasses provide the ``_load``/``_save``/``_all`` primitives; the
    lifecycle transitions live here so every backend enforces the same rules:

    - terminal states are final
    - ``running`` is only entered from ``pending``
    - progress is clamped to 0-100 and never decreases
    - result fields are only set on ``completed``, error fields only on ``failed``
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @abstractmethod
    def _load(self, task_id: str) -> Optional[Task]:
        ...

    @abstractmethod
    def _save(self, task: Task) -> Task:
        ...

    @abstractmethod
    def _all(self) -> List[Task]:
        ...

    def _save_progress(self, task: Task) -> Task:
        return self._save(task)

    def put(self, task: Task) -> Task:
        with self._lock:
            return self._save(task)

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._load(task_id)

    def list(self, owner_key: Optional[str] = None) -> List[Task]:
        with self._lock:
            tasks = self._all()
        if owner_key is None:
            return tasks
        return [t for t in tasks if t.owner_key == owner_key]

    def _transition(self, task_id: str, allowed: tuple, **changes: Any) -> Optional[Task]:
        with self._lock:
            task = self._load(task_id)
            if task is None:
                _logger.warning("Attempted to update missing task task_id=%s", task_id)
                return None
            if task.state not in allowed:
                _logger.debug(
                    "Rejected transition task_id=%s from=%s to=%s",
                    task_id,
                    task.state.value,
                    changes.get("state", task.state).value,
                )
                return None
            updated = self._save(task.model_copy(update=changes))
        _logger.info("Updated task task_id=%s state=%s", task_id, updated.state.value)
        return updated

    def mark_running(self, task_id: str, service: Optional[str] = None) -> Optional[Task]:
        return self._transition(
            task_id,
            (TaskState.pending,),
            state=TaskState.running,
            service=service,
            progress=0,
            started_at=datetime.datetime.now(),
        )

    def update_progress(
        self,
        task_id: str,
        percent: Optional[float] = None,
        speed: Optional[str] = None,
        eta_seconds: Optional[int] = None,
    ) -> Optional[Task]:
        with self._lock:
            task = self._load(task_id)
            if task is None or task.state != TaskState.running:
                return None
            changes: Dict[str, Any] = {}
            if percent is not None:
                value = max(0, min(100, int(percent)))
                if value > task.progress:
                    changes["progress"] = value
            if speed is not None:
                changes["download_speed"] = speed
            if eta_seconds is not None:
                changes["eta_seconds"] = eta_seconds
            if not changes:
                return task
            return self._save_progress(task.model_copy(update=changes))

    def mark_completed(self, task_id: str, filename: str, size: int) -> Optional[Task]:
        return self._transition(
            task_id,
            (TaskState.running,),
            state=TaskState.completed,
            progress=100,
            eta_seconds=None,
            result_filename=filename,
            result_size=size,
            completed_at=datetime.datetime.now(),
        )

    def mark_failed(self, task_id: str, message: str, kind: str = "Error") -> Optional[Task]:
        return self._transition(
            task_id,
            (TaskState.pending, TaskState.running),
            state=TaskState.failed,
            eta_seconds=None,
            error=message or kind,
            error_kind=kind,
            failed_at=datetime.datetime.now(),
        )

    def mark_cancelled(self, task_id: str) -> Optional[Task]:
        return self._transition(
            task_id,
            (TaskState.pending, TaskState.running),
            state=TaskState.cancelled,
            eta_seconds=None,
            cancelled_at=datetime.datetime.now(),
        )


class InMemoryTaskStore(TaskStore):
    """Default store: a dict keyed by task id, kept in insertion order."""

    def __init__(self) -> None:
        super().__init__()
        self.tasks: Dict[str, Task] = {}

    def _load(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    def _save(self, task: Task) -> Task:
        self.tasks[task.id] = task
        return task

    def _all(self) -> List[Task]:
        return list(self.tasks.values())


class SqliteTaskStore(InMemoryTaskStore):
    """
    Durable store: the in-memory map stays authoritative for reads, every
    lifecycle write goes through to SQLite (progress updates stay in memory),
    and the map is rebuilt from the table on start-up.
    """

    def __init__(self, db_file: str = "tasks.db") -> None:
        super().__init__()
        self.db_file = db_file
        self._init_db()
        self._load_tasks()

    def _init_db(self) -> None:
        _logger.info("Initializing database db_file=%s", self.db_file)
        conn = sqlite3.connect(self.db_file)
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    owner_key TEXT NOT NULL,
                    state TEXT NOT NULL,
                    data TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks (owner_key)")
            conn.commit()
        finally:
            conn.close()

    def _load_tasks(self) -> None:
        start = time.monotonic()
        conn = sqlite3.connect(self.db_file)
        try:
            rows = conn.execute("SELECT data FROM tasks ORDER BY rowid").fetchall()
        finally:
            conn.close()

        interrupted = []
        for (data,) in rows:
            try:
                task = Task.model_validate_json(data)
            except ValueError:
                _logger.exception("Skipping unreadable task row db_file=%s", self.db_file)
                continue
            self.tasks[task.id] = task
            if not task.state.is_terminal:
                interrupted.append(task.id)

        # Work in flight belonged to a previous process and cannot be resumed.
        for task_id in interrupted:
            self.mark_failed(task_id, RESTART_INTERRUPTED_MESSAGE, kind="Interrupted")

        _logger.info(
            "Loaded tasks from database count=%d interrupted=%d elapsed_ms=%d",
            len(rows),
            len(interrupted),
            int((time.monotonic() - start) * 1000),
        )

    def _save(self, task: Task) -> Task:
        super()._save(task)
        conn = sqlite3.connect(self.db_file)
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO tasks (id, owner_key, state, data, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.owner_key,
                    task.state.value,
                    task.model_dump_json(),
                    datetime.datetime.now().isoformat(),
                ),
            )
            conn.commit()
        except sqlite3.Error:
            _logger.exception("Error saving task to database task_id=%s", task.id)
        finally:
            conn.close()
        _logger.debug("Saved task task_id=%s state=%s", task.id, task.state.value)
        return task

    def _save_progress(self, task: Task) -> Task:
        # Progress stays in memory; running tasks do not survive a restart.
        return InMemoryTaskStore._save(self, task)


def build_task_store(db_file: Optional[str] = None) -> TaskStore:
    """Return the durable store when a database file is configured, else the in-memory one."""
    if db_file:
        return SqliteTaskStore(db_file=db_file)
    return InMemoryTaskStore()
