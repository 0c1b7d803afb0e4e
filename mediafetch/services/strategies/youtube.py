"""YouTube download strategy"""
import re
from typing import List, Optional
from urllib.parse import parse_qs, urlparse

from .base import DownloadStrategy, normalize_host

_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_PATH_PREFIXES = ("shorts", "embed", "live", "v")


class YouTubeStrategy(DownloadStrategy):
    service_name = "youtube"
    hosts = ("youtube.com", "youtu.be")
    audio_fallback = "bestaudio"

    def __init__(self, *args, js_runtime: Optional[str] = "node", remote_components: bool = True, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.js_runtime = js_runtime
        self.remote_components = remote_components

    def service_args(self) -> List[str]:
        args: List[str] = []
        if self.js_runtime:
            args += ["--js-runtimes", self.js_runtime]
        if self.remote_components:
            args += ["--remote-components", "ejs:github"]
        return args

    def extract_media_id(self, url: str) -> Optional[str]:
        host = normalize_host(url)
        text = url.strip()
        parsed = urlparse(text if "://" in text else "https://" + text)
        segments = [s for s in parsed.path.split("/") if s]

        candidate = None
        if host == "youtu.be" and segments:
            candidate = segments[0]
        elif segments and segments[0] == "watch":
            candidate = (parse_qs(parsed.query).get("v") or [None])[0]
        elif len(segments) >= 2 and segments[0] in _PATH_PREFIXES:
            candidate = segments[1]

        if candidate and _ID_RE.match(candidate):
            return candidate
        return None
