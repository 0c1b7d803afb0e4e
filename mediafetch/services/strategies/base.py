"""
Download strategy base class.

A strategy knows how to turn a URL of one service into a yt-dlp invocation,
where the resulting files land and how to post-process them. The generic
time-range and frame operations are built on top of ``fetch`` and the
MediaComposer, so variants only supply their flags and id extraction.
"""
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from mediafetch.cookies import cookie_args
from mediafetch.errors import (
    CommandFailed,
    InternalInconsistency,
    InvalidArgument,
    ProcessTimeout,
)

from ..composer import MediaComposer, Timestamp, parse_timestamp, remove_quietly
from ..process_runner import CancelToken, ProcessRunner

_logger = logging.getLogger("media_fetch.strategy")

VIDEO_EXTENSIONS = ("mp4", "mkv", "webm", "flv", "avi", "mov")
AUDIO_EXTENSIONS = ("m4a", "aac", "mp3", "opus", "wav", "wma")
DEFAULT_SELECTOR = "best[ext=mp4]/best"
SINGLE_FILE_SELECTOR = "b"
DEFAULT_FETCH_TIMEOUT = 1800.0

LineObserver = Callable[[str], None]


def normalize_host(url: str) -> str:
    """Lower-cased host of ``url`` without port and without a ``www.``/``m.`` prefix."""
    if not url:
        return ""
    text = url.strip()
    if "://" not in text:
        text = "https://" + text
    try:
        host = urlparse(text).hostname or ""
    except ValueError:
        return ""
    for prefix in ("www.", "m."):
        if host.startswith(prefix):
            host = host[len(prefix):]
    return host


def host_matches(host: str, registered: str) -> bool:
    """True when ``registered`` equals ``host`` or is a suffix of it on a label boundary."""
    return host == registered or host.endswith("." + registered)


@dataclass(frozen=True)
class FormatSelection:
    format_id: Optional[str] = None
    video_format_id: Optional[str] = None
    audio_format_id: Optional[str] = None


def build_format_selector(selection: Optional[FormatSelection], audio_fallback: str) -> str:
    """
    Build the yt-dlp ``-f`` expression.

    - explicit video and audio ids: ``v+a``
    - a format id that already names a pair (``137+140``): used verbatim
    - a plain format id: ``<id>+<audio fallback>/<id>``
    - nothing selected: ``best[ext=mp4]/best``
    """
    if selection is None:
        return DEFAULT_SELECTOR
    video_id = (selection.video_format_id or "").strip()
    audio_id = (selection.audio_format_id or "").strip()
    format_id = (selection.format_id or "").strip()

    if video_id and audio_id:
        return f"{video_id}+{audio_id}"
    if video_id and not format_id:
        format_id = video_id
    if format_id:
        if "+" in format_id:
            return format_id
        return f"{format_id}+{audio_fallback}/{format_id}"
    return DEFAULT_SELECTOR


class DownloadStrategy(ABC):
    """Per-service download behaviour."""

    service_name: str = ""
    hosts: Tuple[str, ...] = ()
    audio_fallback: str = "bestaudio"

    def __init__(
        self,
        runner: ProcessRunner,
        composer: MediaComposer,
        ytdlp_binary: str = "yt-dlp",
        cookies_file: Optional[str] = None,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        self.runner = runner
        self.composer = composer
        self.ytdlp_binary = ytdlp_binary
        self.cookies_file = cookies_file
        self.timeout = timeout

    def supports(self, url: str) -> bool:
        host = normalize_host(url)
        return bool(host) and any(host_matches(host, h) for h in self.hosts)

    @abstractmethod
    def extract_media_id(self, url: str) -> Optional[str]:
        """Return the service's id for the item at ``url``, or None if there is none."""

    def service_args(self) -> List[str]:
        """Service-specific yt-dlp flags placed before cookies and format selection."""
        return []

    def build_args(self, url: str, selector: str, output_template: str, tag: str = "") -> List[str]:
        return [
            "--no-playlist",
            "--newline",
            *self.service_args(),
            *cookie_args(self.cookies_file, tag),
            "-f", selector,
            "-c",
            "-o", output_template,
            url,
        ]

    def _media_id(self, url: str) -> str:
        media_id = self.extract_media_id(url)
        if not media_id:
            raise InvalidArgument(f"Could not extract {self.service_name} media id from URL: {url}")
        return media_id

    def _tag(self, task_id: str) -> str:
        return f"[{self.service_name}:{task_id[:8]}]"

    def _run_ytdlp(
        self,
        url: str,
        out_dir: Path,
        stem: str,
        selector: str,
        tag: str,
        on_line: Optional[LineObserver],
        cancel_token: Optional[CancelToken],
    ) -> None:
        args = self.build_args(url, selector, str(out_dir / f"{stem}.%(ext)s"), tag)
        self.runner.run(
            self.ytdlp_binary,
            args,
            working_dir=str(out_dir),
            timeout=self.timeout,
            on_line=on_line,
            cancel_token=cancel_token,
            tag=tag,
        )

    @staticmethod
    def _find_output(out_dir: Path, stem: str, extensions: Sequence[str]) -> Optional[Path]:
        for ext in extensions:
            candidate = out_dir / f"{stem}.{ext}"
            if candidate.is_file():
                return candidate
        return None

    def fetch(
        self,
        url: str,
        out_dir: Path,
        format_selection: Optional[FormatSelection],
        task_id: str,
        on_line: Optional[LineObserver] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Path:
        """Download ``url`` into ``out_dir`` and return the path of the final file."""
        tag = self._tag(task_id)
        out_dir = Path(out_dir)
        stem = f"{self._media_id(url)}-{task_id[:8]}"
        selector = build_format_selector(format_selection, self.audio_fallback)

        _logger.info("%s Download started url=%s format=%s", tag, url, selector)
        start = time.monotonic()
        self._run_ytdlp(url, out_dir, stem, selector, tag, on_line, cancel_token)

        video = self._find_output(out_dir, stem, VIDEO_EXTENSIONS)
        audio = self._find_output(out_dir, stem, AUDIO_EXTENSIONS)
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if video is not None and audio is not None:
            _logger.info("%s Found separate video and audio files, merging", tag)
            try:
                result = self.composer.merge_streams(
                    video, audio, out_dir / f"{stem}_merged.mp4", cancel_token=cancel_token, tag=tag
                )
            except (CommandFailed, ProcessTimeout, InternalInconsistency) as e:
                _logger.warning("%s Merge failed, returning video file only error=%s", tag, e)
                remove_quietly(audio, tag)
                result = video
        elif video is not None:
            result = video
        elif audio is not None:
            _logger.warning("%s Only audio file found, returning audio", tag)
            result = audio
        else:
            _logger.error("%s Downloaded file not found stem=%s elapsed_ms=%d", tag, stem, elapsed_ms)
            raise InternalInconsistency(f"Downloaded file not found in output directory (stem {stem})")

        _logger.info("%s Download completed file=%s elapsed_ms=%d", tag, result.name, elapsed_ms)
        return result

    def fetch_time_range(
        self,
        url: str,
        out_dir: Path,
        format_selection: Optional[FormatSelection],
        task_id: str,
        start: Timestamp,
        end: Timestamp,
        on_line: Optional[LineObserver] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Path:
        """Download the full item, cut ``[start, end)`` out of it and drop the full-length file."""
        if parse_timestamp(end) <= parse_timestamp(start):
            raise InvalidArgument(f"End time must be after start time start={start} end={end}")

        tag = self._tag(task_id)
        full = self.fetch(url, out_dir, format_selection, task_id, on_line, cancel_token)
        trimmed = Path(out_dir) / f"trimmed_{task_id}.mp4"
        try:
            return self.composer.trim_time_range(full, start, end, trimmed, cancel_token=cancel_token, tag=tag)
        finally:
            if full != trimmed:
                remove_quietly(full, tag)

    def extract_frame(
        self,
        url: str,
        out_dir: Path,
        task_id: str,
        at_time: Timestamp,
        on_line: Optional[LineObserver] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Path:
        """Download a single-file rendition to a temporary name and capture one frame as PNG."""
        parse_timestamp(at_time)
        self._media_id(url)

        tag = self._tag(task_id)
        out_dir = Path(out_dir)
        temp_stem = f"temp_{task_id}"
        _logger.info("%s Frame extraction started url=%s time=%s", tag, url, at_time)
        try:
            self._run_ytdlp(url, out_dir, temp_stem, SINGLE_FILE_SELECTOR, tag, on_line, cancel_token)
            source = self._find_output(out_dir, temp_stem, VIDEO_EXTENSIONS)
            if source is None:
                raise InternalInconsistency("Temporary video file for frame extraction not found")
            output = out_dir / f"frame_{uuid.uuid4().hex}.png"
            return self.composer.extract_frame(source, at_time, output, cancel_token=cancel_token, tag=tag)
        finally:
            for leftover in out_dir.glob(f"{temp_stem}.*"):
                remove_quietly(leftover, tag)
