"""Tests for task lifecycle rules and the durable store."""

import sqlite3

import pytest
from pydantic import ValidationError

from mediafetch.state import InMemoryTaskStore, SqliteTaskStore, Task, TaskOptions, TaskState, build_task_store


def _task(task_id="t1", owner="1.2.3.4", **kwargs) -> Task:
    return Task(id=task_id, url="https://example.com/v/1", owner_key=owner, **kwargs)


def _stored_progress(db_file: str, task_id: str) -> int:
    conn = sqlite3.connect(db_file)
    try:
        (data,) = conn.execute("SELECT data FROM tasks WHERE id = ?", (task_id,)).fetchone()
    finally:
        conn.close()
    return Task.model_validate_json(data).progress


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, temp_db):
    if request.param == "memory":
        return InMemoryTaskStore()
    return SqliteTaskStore(db_file=temp_db)


class TestLifecycle:
    def test_happy_path(self, any_store):
        any_store.put(_task())

        running = any_store.mark_running("t1", service="youtube")
        assert running.state == TaskState.running
        assert running.service == "youtube"
        assert running.started_at is not None

        done = any_store.mark_completed("t1", "clip.mp4", 1234)
        assert done.state == TaskState.completed
        assert done.progress == 100
        assert done.result_filename == "clip.mp4"
        assert done.result_size == 1234
        assert done.error is None

    def test_running_only_from_pending(self, any_store):
        any_store.put(_task())
        any_store.mark_running("t1")

        assert any_store.mark_running("t1") is None

    def test_completed_only_from_running(self, any_store):
        any_store.put(_task())

        assert any_store.mark_completed("t1", "clip.mp4", 1) is None
        assert any_store.get("t1").result_filename is None

    def test_terminal_states_are_final(self, any_store):
        any_store.put(_task())
        any_store.mark_cancelled("t1")

        assert any_store.mark_running("t1") is None
        assert any_store.mark_failed("t1", "late failure") is None
        assert any_store.update_progress("t1", 50) is None
        assert any_store.get("t1").state == TaskState.cancelled

    def test_failed_records_error_and_kind(self, any_store):
        any_store.put(_task())

        failed = any_store.mark_failed("t1", "No download strategy", kind="UnsupportedSource")

        assert failed.state == TaskState.failed
        assert failed.error == "No download strategy"
        assert failed.error_kind == "UnsupportedSource"
        assert failed.result_filename is None
        assert failed.failed_at is not None

    def test_progress_is_monotonic_and_clamped(self, any_store):
        any_store.put(_task())
        any_store.mark_running("t1")

        assert any_store.update_progress("t1", 40, "1.00MiB/s", 30).progress == 40
        assert any_store.update_progress("t1", 20).progress == 40
        assert any_store.update_progress("t1", 250).progress == 100
        task = any_store.get("t1")
        assert task.download_speed == "1.00MiB/s"
        assert task.eta_seconds == 30

    def test_progress_ignored_unless_running(self, any_store):
        any_store.put(_task())

        assert any_store.update_progress("t1", 10) is None
        assert any_store.get("t1").progress == 0

    def test_unknown_task(self, any_store):
        assert any_store.get("missing") is None
        assert any_store.mark_running("missing") is None
        assert any_store.mark_cancelled("missing") is None

    def test_list_filters_by_owner_in_insertion_order(self, any_store):
        any_store.put(_task("a", owner="alice"))
        any_store.put(_task("b", owner="bob"))
        any_store.put(_task("c", owner="alice"))

        assert [t.id for t in any_store.list("alice")] == ["a", "c"]
        assert [t.id for t in any_store.list()] == ["a", "b", "c"]

    def test_snapshots_are_immutable(self, any_store):
        any_store.put(_task())
        before = any_store.get("t1")

        any_store.mark_running("t1")

        assert before.state == TaskState.pending
        with pytest.raises(ValidationError):
            before.state = TaskState.failed


class TestSqliteTaskStore:
    def test_tasks_survive_restart(self, temp_db):
        store = SqliteTaskStore(db_file=temp_db)
        options = TaskOptions(time_range_enabled=True, start_time="5", end_time="10")
        store.put(_task("done", options=options))
        store.mark_running("done")
        store.mark_completed("done", "clip.mp4", 10)

        reloaded = SqliteTaskStore(db_file=temp_db)
        task = reloaded.get("done")

        assert task.state == TaskState.completed
        assert task.result_filename == "clip.mp4"
        assert task.options == options

    def test_progress_updates_are_not_written_to_disk(self, temp_db):
        store = SqliteTaskStore(db_file=temp_db)
        store.put(_task())
        store.mark_running("t1")

        store.update_progress("t1", 40, "1.00MiB/s", 30)

        assert store.get("t1").progress == 40
        assert _stored_progress(temp_db, "t1") == 0

        store.mark_completed("t1", "clip.mp4", 10)
        assert _stored_progress(temp_db, "t1") == 100

    def test_unfinished_tasks_marked_interrupted(self, temp_db):
        store = SqliteTaskStore(db_file=temp_db)
        store.put(_task("queued"))
        store.put(_task("active"))
        store.mark_running("active")

        reloaded = SqliteTaskStore(db_file=temp_db)

        for task_id in ("queued", "active"):
            task = reloaded.get(task_id)
            assert task.state == TaskState.failed
            assert task.error == "Interrupted by service restart"
            assert task.error_kind == "Interrupted"


def test_build_task_store(temp_db):
    assert isinstance(build_task_store(), InMemoryTaskStore)
    assert isinstance(build_task_store(temp_db), SqliteTaskStore)
