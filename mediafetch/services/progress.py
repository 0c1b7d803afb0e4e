"""Progress parsing for yt-dlp ``--newline`` output"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

_logger = logging.getLogger("media_fetch.progress")

_PERCENT_RE = re.compile(r"\[download\]\s+(\d+(?:\.\d+)?)%")
_SPEED_RE = re.compile(r"at\s+(\d+(?:\.\d+)?[KMGT]?i?B/s)")
_ETA_RE = re.compile(r"ETA\s+(\d+):(\d+)")


@dataclass(frozen=True)
class ProgressUpdate:
    percent: Optional[int] = None
    speed: Optional[str] = None
    eta_seconds: Optional[int] = None


def parse_progress_line(line: str) -> Optional[ProgressUpdate]:
    """
    Extract percent, speed and ETA from one line of downloader output.

    Each field is matched independently, so a line carrying only some of them
    still yields an update. Returns None when nothing matched.
    """
    if not line:
        return None
    try:
        percent = speed = eta = None

        match = _PERCENT_RE.search(line)
        if match:
            percent = int(float(match.group(1)))

        match = _SPEED_RE.search(line)
        if match:
            speed = match.group(1)

        match = _ETA_RE.search(line)
        if match:
            eta = int(match.group(1)) * 60 + int(match.group(2))
    except ValueError:
        _logger.debug("Could not parse progress line line=%r", line)
        return None

    if percent is None and speed is None and eta is None:
        return None
    return ProgressUpdate(percent=percent, speed=speed, eta_seconds=eta)
