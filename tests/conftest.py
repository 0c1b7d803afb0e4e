"""
Shared fixtures and test utilities.
"""

import tempfile
import threading
import time
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from mediafetch.app import create_app
from mediafetch.config import Settings
from mediafetch.errors import Cancelled
from mediafetch.services import (
    DownloadScheduler,
    DownloadStrategy,
    MediaComposer,
    ProcessResult,
    StrategyRegistry,
)
from mediafetch.state import InMemoryTaskStore, SqliteTaskStore
from mediafetch.storage import FileStorage


class FakeRunner:
    """
    Stands in for ProcessRunner. Records every call; for yt-dlp style
    invocations it creates one file per extension in ``produce_exts`` from the
    ``-o`` template, otherwise it creates the last argument (ffmpeg output).
    """

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.produce_exts: List[str] = ["mp4"]
        self.create_output = True
        self.lines: List[str] = []
        self.error: Optional[Exception] = None

    def run(self, command, args, working_dir=None, timeout=None, on_line=None, cancel_token=None, tag=""):
        args = list(args)
        self.calls.append((command, args))
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(command)
        for line in self.lines:
            if on_line is not None:
                on_line(line)
        if self.error is not None:
            raise self.error
        if self.create_output:
            if "-o" in args:
                template = args[args.index("-o") + 1]
                for ext in self.produce_exts:
                    Path(template.replace("%(ext)s", ext)).write_bytes(b"media-" + ext.encode())
            else:
                Path(args[-1]).write_bytes(b"ffmpeg-output")
        return ProcessResult(exit_code=0, output="")

    def commands(self) -> List[str]:
        return [c for c, _ in self.calls]


class FakeStrategy(DownloadStrategy):
    """
    Strategy for ``example.com`` URLs that writes a small file instead of
    running yt-dlp. ``gate`` (when set) holds every fetch until it is opened,
    so tests can observe tasks while they run. With ``ignore_cancel`` the
    fetch keeps going after its token is set, like a tool that exits late.
    """

    service_name = "fake"
    hosts = ("example.com",)

    def __init__(self, runner: Optional[FakeRunner] = None) -> None:
        runner = runner or FakeRunner()
        super().__init__(runner, MediaComposer(runner))
        self.gate: Optional[threading.Event] = None
        self.lines: List[str] = []
        self.error: Optional[Exception] = None
        self.ignore_cancel = False
        self.events: List[tuple] = []
        self.operations: List[str] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def extract_media_id(self, url: str) -> Optional[str]:
        media_id = url.rstrip("/").rsplit("/", 1)[-1]
        return media_id or None

    def _work(self, operation, task_id, out_dir, filename, on_line, cancel_token) -> Path:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.events.append(("start", task_id))
            self.operations.append(operation)
        try:
            for line in self.lines:
                if on_line is not None:
                    on_line(line)
            if self.gate is not None:
                while not self.gate.wait(0.02):
                    if cancel_token is not None and cancel_token.is_cancelled and not self.ignore_cancel:
                        raise Cancelled("fake fetch cancelled")
            if self.error is not None:
                raise self.error
            path = Path(out_dir) / filename
            path.write_bytes(b"fake media content")
            return path
        finally:
            with self._lock:
                self.active -= 1
                self.events.append(("end", task_id))

    def fetch(self, url, out_dir, format_selection, task_id, on_line=None, cancel_token=None):
        stem = f"{self._media_id(url)}-{task_id[:8]}"
        return self._work("fetch", task_id, out_dir, f"{stem}.mp4", on_line, cancel_token)

    def fetch_time_range(self, url, out_dir, format_selection, task_id, start, end, on_line=None, cancel_token=None):
        return self._work("time_range", task_id, out_dir, f"trimmed_{task_id}.mp4", on_line, cancel_token)

    def extract_frame(self, url, out_dir, task_id, at_time, on_line=None, cancel_token=None):
        return self._work("frame", task_id, out_dir, f"frame_{task_id}.png", on_line, cancel_token)


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db(temp_dir: Path) -> Generator[str]:
    """Provide a temporary database file."""
    db_path = temp_dir / "test_tasks.db"
    yield str(db_path)


@pytest.fixture
def output_dir(temp_dir: Path) -> Path:
    path = temp_dir / "downloads"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def settings(output_dir: Path) -> Settings:
    """Settings with small limits and the fake service enabled."""
    return Settings(
        output_dir=str(output_dir),
        max_concurrent_downloads=2,
        max_concurrent_per_client=1,
        max_workers=4,
        enabled_services=["fake", "youtube", "bilibili"],
        log_level="DEBUG",
    )


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def sqlite_store(temp_db: str) -> SqliteTaskStore:
    return SqliteTaskStore(db_file=temp_db)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_strategy() -> FakeStrategy:
    return FakeStrategy()


@pytest.fixture
def registry(fake_strategy: FakeStrategy) -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register(fake_strategy)
    return registry


@pytest.fixture
def scheduler(settings, store, registry, output_dir, fake_strategy) -> Generator[DownloadScheduler]:
    """Scheduler wired to the fake strategy; any gate is opened on teardown."""
    scheduler = DownloadScheduler(settings, store, registry, FileStorage(str(output_dir)))
    yield scheduler
    if fake_strategy.gate is not None:
        fake_strategy.gate.set()
    scheduler.shutdown(wait=True)


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll ``predicate`` until it is truthy or ``timeout`` expires."""

    def _wait(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return bool(predicate())

    return _wait


@pytest.fixture
async def async_client(settings, scheduler) -> AsyncGenerator[AsyncClient]:
    """Provide an async HTTP client for testing the FastAPI app."""
    app = create_app(settings=settings, scheduler=scheduler)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_video_url() -> str:
    """Provide a sample video URL for testing."""
    return "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


@pytest.fixture
def sample_video_info() -> dict:
    """Provide sample yt-dlp info for a video with separate streams."""
    return {
        "id": "dQw4w9WgXcQ",
        "title": "Sample Video",
        "uploader": "Test Channel",
        "duration": 213,
        "thumbnail": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hq.jpg",
        "webpage_url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "formats": [
            {
                "format_id": "137",
                "ext": "mp4",
                "height": 1080,
                "width": 1920,
                "fps": 30,
                "vcodec": "avc1.640028",
                "acodec": "none",
                "filesize": 50_000_000,
                "format_note": "1080p",
            },
            {
                "format_id": "136",
                "ext": "mp4",
                "height": 720,
                "width": 1280,
                "fps": 30,
                "vcodec": "avc1.4d401f",
                "acodec": "none",
                "filesize": 20_000_000,
                "format_note": "720p",
            },
            {
                "format_id": "22",
                "ext": "mp4",
                "height": 720,
                "width": 1280,
                "vcodec": "avc1.64001F",
                "acodec": "mp4a.40.2",
                "filesize_approx": 30_000_000,
                "format_note": "720p",
            },
            {
                "format_id": "140",
                "ext": "m4a",
                "vcodec": "none",
                "acodec": "mp4a.40.2",
                "filesize": 3_000_000,
                "format_note": "medium",
            },
            {
                "format_id": "139",
                "ext": "m4a",
                "vcodec": "none",
                "acodec": "mp4a.40.5",
                "filesize": 1_000_000,
                "format_note": "low",
            },
        ],
    }
