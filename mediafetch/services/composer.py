"""ffmpeg post-processing: stream merge, time-range trim and frame capture"""
import logging
import os
import time
from pathlib import Path
from typing import Optional, Union

from mediafetch.errors import InternalInconsistency, InvalidArgument

from .process_runner import CancelToken, ProcessRunner

_logger = logging.getLogger("media_fetch.composer")

PathLike = Union[str, Path]
Timestamp = Union[str, int, float]

DEFAULT_COMPOSE_TIMEOUT = 300.0


def parse_timestamp(value: Timestamp) -> float:
    """
    Parse a timestamp given as seconds (``90``, ``"90.5"``) or as
    ``[HH:]MM:SS[.mmm]`` into seconds. Negative values are rejected.
    """
    if isinstance(value, bool):
        raise InvalidArgument(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        if not text:
            raise InvalidArgument("Timestamp must not be empty")
        parts = text.split(":")
        if len(parts) > 3:
            raise InvalidArgument(f"Invalid timestamp: {value!r}")
        try:
            numbers = [float(p) for p in parts]
        except ValueError:
            raise InvalidArgument(f"Invalid timestamp: {value!r}") from None
        if len(numbers) > 1 and any(n < 0 for n in numbers):
            raise InvalidArgument(f"Invalid timestamp: {value!r}")
        seconds = 0.0
        for number in numbers:
            seconds = seconds * 60 + number

    if seconds != seconds or seconds in (float("inf"), float("-inf")):
        raise InvalidArgument(f"Invalid timestamp: {value!r}")
    if seconds < 0:
        raise InvalidArgument(f"Timestamp cannot be negative: {value!r}")
    return seconds


def format_timestamp(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS.mmm``."""
    total_ms = int(round(seconds * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def _existing(path: Optional[PathLike]) -> Optional[Path]:
    if path is None:
        return None
    p = Path(path)
    return p if p.is_file() else None


def remove_quietly(path: Path, tag: str = "") -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        _logger.warning("%s Could not delete file path=%s error=%s", tag, path, e)


class MediaComposer:
    """Runs ffmpeg through a ProcessRunner with a bounded timeout per invocation."""

    def __init__(
        self,
        runner: ProcessRunner,
        ffmpeg_binary: str = "ffmpeg",
        timeout: float = DEFAULT_COMPOSE_TIMEOUT,
    ) -> None:
        self.runner = runner
        self.ffmpeg_binary = ffmpeg_binary
        self.timeout = timeout

    def _ffmpeg(self, args: list, tag: str, cancel_token: Optional[CancelToken]) -> None:
        self.runner.run(
            self.ffmpeg_binary,
            args,
            timeout=self.timeout,
            cancel_token=cancel_token,
            tag=tag,
        )

    def merge_streams(
        self,
        video_path: Optional[PathLike],
        audio_path: Optional[PathLike],
        output_path: PathLike,
        cancel_token: Optional[CancelToken] = None,
        tag: str = "[Merge]",
    ) -> Path:
        """
        Mux separate video and audio files into ``output_path`` without re-encoding.

        When only one input exists it is returned unchanged and nothing is
        deleted. After a successful merge both inputs are removed.
        """
        video = _existing(video_path)
        audio = _existing(audio_path)

        if video is None and audio is None:
            raise InternalInconsistency(
                f"Neither video nor audio input exists video={video_path} audio={audio_path}"
            )
        if audio is None:
            _logger.info("%s No audio file, using video only file=%s", tag, video.name)
            return video
        if video is None:
            _logger.info("%s No video file, using audio only file=%s", tag, audio.name)
            return audio

        output = Path(output_path)
        _logger.info("%s Merging streams video=%s audio=%s output=%s", tag, video.name, audio.name, output.name)
        start = time.monotonic()
        self._ffmpeg(
            ["-i", str(video), "-i", str(audio), "-c:v", "copy", "-c:a", "copy", "-y", str(output)],
            tag,
            cancel_token,
        )
        if not output.is_file():
            raise InternalInconsistency(f"ffmpeg reported success but {output.name} is missing")

        for source in (video, audio):
            remove_quietly(source, tag)

        _logger.info(
            "%s Streams merged output=%s elapsed_ms=%d",
            tag,
            output.name,
            int((time.monotonic() - start) * 1000),
        )
        return output

    def trim_time_range(
        self,
        input_path: PathLike,
        start: Timestamp,
        end: Timestamp,
        output_path: PathLike,
        cancel_token: Optional[CancelToken] = None,
        tag: str = "[Trim]",
    ) -> Path:
        """Copy the ``[start, end)`` section of ``input_path`` into ``output_path``."""
        start_s = parse_timestamp(start)
        end_s = parse_timestamp(end)
        if end_s <= start_s:
            raise InvalidArgument(f"End time must be after start time start={start} end={end}")

        source = Path(input_path)
        if not source.is_file():
            raise InternalInconsistency(f"Input file not found: {source}")

        output = Path(output_path)
        _logger.info(
            "%s Trimming time range input=%s start=%s end=%s",
            tag,
            source.name,
            format_timestamp(start_s),
            format_timestamp(end_s),
        )
        self._ffmpeg(
            [
                "-i", str(source),
                "-ss", format_timestamp(start_s),
                "-to", format_timestamp(end_s),
                "-c", "copy",
                "-y", str(output),
            ],
            tag,
            cancel_token,
        )
        if not output.is_file():
            raise InternalInconsistency(f"ffmpeg reported success but {output.name} is missing")
        _logger.info("%s Time range extracted output=%s", tag, output.name)
        return output

    def extract_frame(
        self,
        input_path: PathLike,
        at_time: Timestamp,
        output_path: PathLike,
        cancel_token: Optional[CancelToken] = None,
        tag: str = "[Frame]",
    ) -> Path:
        """Write the frame at ``at_time`` of ``input_path`` as an image to ``output_path``."""
        seconds = parse_timestamp(at_time)

        output = Path(output_path)
        # image2 picks the encoder from the extension, so the suffix is kept.
        partial = output.with_name(f"{output.stem}.part{output.suffix}")
        _logger.info("%s Extracting frame input=%s time=%s", tag, input_path, format_timestamp(seconds))
        try:
            self._ffmpeg(
                [
                    "-ss", format_timestamp(seconds),
                    "-i", str(input_path),
                    "-vframes", "1",
                    "-q:v", "2",
                    "-f", "image2",
                    "-y", str(partial),
                ],
                tag,
                cancel_token,
            )
            if not partial.is_file():
                raise InternalInconsistency("Frame extraction failed: output file not created")
            os.replace(partial, output)
        finally:
            if partial.exists():
                remove_quietly(partial, tag)

        _logger.info("%s Frame extracted output=%s size=%d", tag, output.name, output.stat().st_size)
        return output
