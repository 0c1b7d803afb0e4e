"""Configuration management module"""
import logging
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Read .env configuration (if present)
load_dotenv()

_logger = logging.getLogger("media_fetch.config")

DEFAULT_OUTPUT_DIR = "./downloads"
DEFAULT_SERVICES = ["youtube", "bilibili"]


def _env_truthy(value: Optional[str], *, default: bool = False) -> bool:
    """Parse common truthy/falsey strings from environment variables."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        _logger.warning("Ignoring non-integer env value name=%s value=%r", name, raw)
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """
    Service configuration loaded from environment variables.

    - max_concurrent_downloads: global permit pool size
    - max_concurrent_per_client: per-client permit pool size
    - max_workers: worker pool size (defaults to max(2, max_concurrent_downloads))
    - fetch_timeout_seconds / compose_timeout_seconds: per-process deadlines
    """

    output_dir: str = Field(default=DEFAULT_OUTPUT_DIR)
    max_concurrent_downloads: int = Field(default=3, ge=1)
    max_concurrent_per_client: int = Field(default=2, ge=1)
    max_workers: Optional[int] = Field(default=None, ge=1)
    fetch_timeout_seconds: float = Field(default=1800.0, gt=0)
    compose_timeout_seconds: float = Field(default=300.0, gt=0)

    ytdlp_binary: str = Field(default="yt-dlp")
    ffmpeg_binary: str = Field(default="ffmpeg")

    youtube_cookies_file: Optional[str] = None
    youtube_js_runtime: Optional[str] = Field(default="node")
    youtube_remote_components: bool = True
    bilibili_cookies_file: Optional[str] = None
    merge_audio_formats: bool = True

    enabled_services: List[str] = Field(default_factory=lambda: list(DEFAULT_SERVICES))
    task_db_file: Optional[str] = None

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO")

    @property
    def worker_pool_size(self) -> int:
        if self.max_workers:
            return self.max_workers
        return max(2, self.max_concurrent_downloads)

    def is_service_enabled(self, service_name: str) -> bool:
        return service_name.lower() in self.enabled_services

    @classmethod
    def from_env(cls) -> "Settings":
        cfg = cls(
            output_dir=os.getenv("OUTPUT_DIR", DEFAULT_OUTPUT_DIR),
            max_concurrent_downloads=_env_int("MAX_CONCURRENT_DOWNLOADS", 3),
            max_concurrent_per_client=_env_int("MAX_CONCURRENT_PER_CLIENT", 2),
            max_workers=_env_int("MAX_WORKERS", 0) or None,
            fetch_timeout_seconds=float(_env_int("FETCH_TIMEOUT_SECONDS", 1800)),
            compose_timeout_seconds=float(_env_int("COMPOSE_TIMEOUT_SECONDS", 300)),
            ytdlp_binary=os.getenv("YTDLP_BINARY", "yt-dlp"),
            ffmpeg_binary=os.getenv("FFMPEG_BINARY", "ffmpeg"),
            youtube_cookies_file=os.getenv("YOUTUBE_COOKIES_FILE") or None,
            youtube_js_runtime=os.getenv("YOUTUBE_JS_RUNTIME", "node") or None,
            youtube_remote_components=_env_truthy(os.getenv("YOUTUBE_REMOTE_COMPONENTS"), default=True),
            bilibili_cookies_file=os.getenv("BILIBILI_COOKIES_FILE") or None,
            merge_audio_formats=_env_truthy(os.getenv("MERGE_AUDIO_FORMATS"), default=True),
            enabled_services=_env_list("ENABLED_SERVICES", DEFAULT_SERVICES),
            task_db_file=os.getenv("TASK_DB_FILE") or None,
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 8000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        _logger.info(
            "Settings loaded output_dir=%s max_concurrent=%d per_client=%d workers=%d services=%s durable_store=%s",
            cfg.output_dir,
            cfg.max_concurrent_downloads,
            cfg.max_concurrent_per_client,
            cfg.worker_pool_size,
            ",".join(cfg.enabled_services),
            bool(cfg.task_db_file),
        )
        return cfg


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return Settings.from_env()
