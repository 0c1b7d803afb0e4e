"""Bilibili download strategy"""
import re
from typing import List, Optional
from urllib.parse import urlparse

from .base import DownloadStrategy, normalize_host

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_VIDEO_PATH_RE = re.compile(r"/video/((?:BV|bv)[0-9A-Za-z]+|av\d+)")
_SHORT_ID_RE = re.compile(r"^[0-9A-Za-z]+$")


class BilibiliStrategy(DownloadStrategy):
    service_name = "bilibili"
    hosts = ("bilibili.com", "b23.tv")
    audio_fallback = "bestaudio[ext=m4a]"

    def service_args(self) -> List[str]:
        return [
            "--user-agent", USER_AGENT,
            "--no-check-certificate",
            "--socket-timeout", "30",
            "--retries", "3",
            "--fragment-retries", "3",
            "--extractor-args", "bilibili:is_story=False",
            "--extractor-args", "bilibili:metadata_api=true",
        ]

    def extract_media_id(self, url: str) -> Optional[str]:
        host = normalize_host(url)
        text = url.strip()
        parsed = urlparse(text if "://" in text else "https://" + text)

        if host == "b23.tv":
            segments = [s for s in parsed.path.split("/") if s]
            if segments and _SHORT_ID_RE.match(segments[0]):
                return segments[0]
            return None

        match = _VIDEO_PATH_RE.search(parsed.path)
        if match:
            return match.group(1)
        return None
