"""FastAPI application setup"""
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from mediafetch.config import Settings, get_settings
from mediafetch.routes import download_router, info_router, tasks_router
from mediafetch.services import DownloadScheduler, MediaComposer, ProcessRunner, build_registry
from mediafetch.state import build_task_store
from mediafetch.storage import FileStorage

from .middleware import RequestIdFilter, RequestLoggingMiddleware

_logger = logging.getLogger("media_fetch")


def _setup_logger(level: str = "INFO") -> None:
    """Configure the media_fetch logger tree once, whether or not uvicorn's CLI started us."""
    if not _logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s")
        )
        handler.addFilter(RequestIdFilter())
        _logger.addHandler(handler)
    _logger.setLevel(level.upper())
    _logger.propagate = False
    _logger.debug("Logger initialized level=%s", level.upper())


def build_scheduler(settings: Settings) -> DownloadScheduler:
    """Wire the runner, composer, strategies, store and storage into a scheduler."""
    runner = ProcessRunner()
    composer = MediaComposer(runner, ffmpeg_binary=settings.ffmpeg_binary, timeout=settings.compose_timeout_seconds)
    registry = build_registry(settings, runner, composer)
    store = build_task_store(settings.task_db_file)
    storage = FileStorage(settings.output_dir)
    return DownloadScheduler(settings, store, registry, storage)


def create_app(
    settings: Optional[Settings] = None,
    scheduler: Optional[DownloadScheduler] = None,
) -> FastAPI:
    """Create and configure the FastAPI application"""
    settings = settings or get_settings()
    _setup_logger(settings.log_level)
    scheduler = scheduler or build_scheduler(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler.storage.ensure_directories()
        _logger.info("Service started services=%s", ",".join(settings.enabled_services))
        yield
        scheduler.shutdown(wait=False)

    app = FastAPI(
        title="Media Fetch API",
        description="Queued video downloads with per-client concurrency limits, built on yt-dlp and ffmpeg",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.scheduler = scheduler

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(download_router)
    app.include_router(tasks_router)
    app.include_router(info_router)

    return app


def start_api(settings: Optional[Settings] = None) -> None:
    """Start the API server"""
    settings = settings or get_settings()
    app = create_app(settings)
    _logger.info("Starting uvicorn host=%s port=%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)
