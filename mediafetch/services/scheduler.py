"""
Download scheduler.

Submissions are recorded as pending tasks and handed to a fixed worker pool.
A worker holds one global permit and one permit of its owner's pool while the
download runs, so no client can occupy more than its share of the global
capacity. A worker whose owner is at its limit hands its global permit back
instead of holding it while it waits. Both pools grant permits in arrival
order.
"""
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional

from mediafetch.config import Settings
from mediafetch.errors import AccessDenied, Cancelled, MediaFetchError, NotFound
from mediafetch.state import Task, TaskOptions, TaskState, TaskStore
from mediafetch.storage import FileStorage

from .composer import remove_quietly
from .permits import FairSemaphore
from .process_runner import CancelToken
from .progress import parse_progress_line
from .strategies import DownloadStrategy, FormatSelection, StrategyRegistry

_logger = logging.getLogger("media_fetch.scheduler")


class DownloadScheduler:
    def __init__(
        self,
        settings: Settings,
        store: TaskStore,
        registry: StrategyRegistry,
        storage: FileStorage,
    ) -> None:
        self.settings = settings
        self.store = store
        self.registry = registry
        self.storage = storage

        self._executor = ThreadPoolExecutor(
            max_workers=settings.worker_pool_size,
            thread_name_prefix="download-worker",
        )
        self._global_permits = FairSemaphore(settings.max_concurrent_downloads)
        self._client_permits: Dict[str, FairSemaphore] = {}
        self._client_permits_lock = threading.Lock()
        self._tokens: Dict[str, CancelToken] = {}
        self._tokens_lock = threading.Lock()
        self._running = 0
        self._running_lock = threading.Lock()

    def _client_pool(self, owner_key: str) -> FairSemaphore:
        with self._client_permits_lock:
            pool = self._client_permits.get(owner_key)
            if pool is None:
                pool = FairSemaphore(self.settings.max_concurrent_per_client)
                self._client_permits[owner_key] = pool
                _logger.debug("Created client permit pool owner=%s permits=%d", owner_key, pool.permits)
            return pool

    def _token(self, task_id: str) -> CancelToken:
        with self._tokens_lock:
            token = self._tokens.get(task_id)
            if token is None:
                token = CancelToken()
                self._tokens[task_id] = token
            return token

    def submit(
        self,
        url: str,
        owner_key: str,
        format_id: Optional[str] = None,
        quality: Optional[str] = None,
        options: Optional[TaskOptions] = None,
        video_format_id: Optional[str] = None,
        audio_format_id: Optional[str] = None,
    ) -> Task:
        """Record a new pending task and queue it. Never waits for capacity."""
        task = Task(
            id=str(uuid.uuid4()),
            url=url,
            owner_key=owner_key,
            format_id=format_id,
            video_format_id=video_format_id,
            audio_format_id=audio_format_id,
            quality=quality,
            options=options or TaskOptions(),
        )
        self.store.put(task)
        self._token(task.id)
        _logger.info("Queue download task task_id=%s owner=%s url=%s", task.id, owner_key, url)
        self._executor.submit(self.execute, task.id)
        return task

    def execute(self, task_id: str) -> None:
        """Worker body: wait for permits, run the strategy and record the outcome."""
        task = self.store.get(task_id)
        if task is None:
            _logger.warning("Worker picked up unknown task task_id=%s", task_id)
            return
        token = self._token(task_id)
        try:
            if task.state != TaskState.pending or token.is_cancelled:
                _logger.info("Skipping task task_id=%s state=%s", task_id, task.state.value)
                return
            self._execute_with_permits(task, token)
        finally:
            with self._tokens_lock:
                self._tokens.pop(task_id, None)

    def _acquire_permits(self, task: Task, token: CancelToken) -> FairSemaphore:
        """
        Take a global permit, then the owner's permit. A global permit is never
        held while the owner's pool is full: it is handed back and the worker
        waits for the owner's pool before queueing for a global permit again.
        """
        client_pool = self._client_pool(task.owner_key)
        while True:
            self._global_permits.acquire(token)
            if client_pool.try_acquire():
                return client_pool
            self._global_permits.release()
            _logger.debug("Client pool full, yielding global permit task_id=%s owner=%s", task.id, task.owner_key)
            client_pool.wait_available(token)

    def _execute_with_permits(self, task: Task, token: CancelToken) -> None:
        try:
            client_pool = self._acquire_permits(task, token)
        except Cancelled:
            _logger.info("Task cancelled while waiting for a permit task_id=%s", task.id)
            return
        try:
            with self._running_lock:
                self._running += 1
            try:
                self._run(task, token)
            finally:
                with self._running_lock:
                    self._running -= 1
        finally:
            client_pool.release()
            self._global_permits.release()

    def _run(self, task: Task, token: CancelToken) -> None:
        start = time.monotonic()
        try:
            strategy = self.registry.resolve(task.url)
            if self.store.mark_running(task.id, service=strategy.service_name) is None:
                _logger.info("Task no longer pending, not starting task_id=%s", task.id)
                return
            _logger.info("Process task start task_id=%s service=%s", task.id, strategy.service_name)

            path = self._dispatch(strategy, task, token)
            size = self.storage.size(path.name)
            if self.store.mark_completed(task.id, path.name, size) is None:
                _logger.info(
                    "Task left running state before finishing, discarding task_id=%s file=%s", task.id, path.name
                )
                remove_quietly(path, f"task_id={task.id}")
                return
            _logger.info(
                "Process task completed task_id=%s file=%s size=%d elapsed_ms=%d",
                task.id,
                path.name,
                size,
                int((time.monotonic() - start) * 1000),
            )
        except Cancelled:
            self.store.mark_cancelled(task.id)
            _logger.info("Process task cancelled task_id=%s", task.id)
        except MediaFetchError as exc:
            _logger.error("Process task failed task_id=%s kind=%s error=%s", task.id, exc.kind, exc)
            self.store.mark_failed(task.id, str(exc), kind=exc.kind)
        except Exception as exc:
            _logger.exception("Process task failed task_id=%s error=%s", task.id, exc)
            self.store.mark_failed(task.id, str(exc), kind="InternalError")

    def _dispatch(self, strategy: DownloadStrategy, task: Task, token: CancelToken) -> Path:
        out_dir = self.storage.ensure_directories()
        options = task.options

        def on_line(line: str) -> None:
            update = parse_progress_line(line)
            if update is not None:
                self.store.update_progress(task.id, update.percent, update.speed, update.eta_seconds)

        if options.frame_extraction_enabled and options.frame_time is not None:
            return strategy.extract_frame(task.url, out_dir, task.id, options.frame_time, on_line, token)

        selection = FormatSelection(
            format_id=task.format_id,
            video_format_id=task.video_format_id,
            audio_format_id=task.audio_format_id,
        )
        if options.time_range_enabled and options.start_time is not None and options.end_time is not None:
            return strategy.fetch_time_range(
                task.url, out_dir, selection, task.id, options.start_time, options.end_time, on_line, token
            )
        return strategy.fetch(task.url, out_dir, selection, task.id, on_line, token)

    def get_task(self, task_id: str, owner_key: str) -> Optional[Task]:
        """Return the task if it belongs to ``owner_key``; foreign tasks look missing."""
        task = self.store.get(task_id)
        if task is None or task.owner_key != owner_key:
            return None
        return task

    def require_task(self, task_id: str, owner_key: str) -> Task:
        """Like ``get_task`` but raises NotFound for unknown ids and AccessDenied for foreign ones."""
        task = self.store.get(task_id)
        if task is None:
            raise NotFound(f"Task with ID {task_id} not found")
        if task.owner_key != owner_key:
            _logger.info("Task requested by another client task_id=%s owner=%s", task_id, owner_key)
            raise AccessDenied(f"Task with ID {task_id} not found")
        return task

    def list_tasks(self, owner_key: str) -> List[Task]:
        return self.store.list(owner_key)

    def cancel(self, task_id: str, owner_key: str) -> bool:
        """
        Cancel a pending or running task. Returns False for unknown, foreign
        or already finished tasks, which are left untouched.
        """
        task = self.get_task(task_id, owner_key)
        if task is None:
            return False
        if self.store.mark_cancelled(task_id) is None:
            return False
        with self._tokens_lock:
            token = self._tokens.get(task_id)
        if token is not None:
            token.cancel()
        _logger.info("Cancelled task task_id=%s previous_state=%s", task_id, task.state.value)
        return True

    def find_completed_file(self, owner_key: str, filename: str) -> Optional[Path]:
        """Path of ``filename`` if a completed task of ``owner_key`` produced it and it still exists."""
        for task in self.store.list(owner_key):
            if task.state == TaskState.completed and task.result_filename == filename:
                if self.storage.exists(filename):
                    return self.storage.resolve(filename)
                _logger.warning("Completed task file missing task_id=%s file=%s", task.id, filename)
                return None
        return None

    def running_count(self) -> int:
        with self._running_lock:
            return self._running

    def shutdown(self, wait: bool = True) -> None:
        _logger.info("Shutting down scheduler wait=%s", wait)
        if not wait:
            with self._tokens_lock:
                tokens = list(self._tokens.values())
            for token in tokens:
                token.cancel()
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
