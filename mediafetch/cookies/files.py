"""Cookie file handling for yt-dlp"""
import logging
import os
from typing import Any, Dict, List, Optional

_logger = logging.getLogger("media_fetch.cookies")

# Files smaller than this only hold the Netscape header, not real cookies.
MIN_COOKIE_FILE_SIZE = 100


def usable_cookie_file(cookies_file: Optional[str], tag: str = "") -> Optional[str]:
    """Return the cookie file path if it exists and holds more than a header."""
    if not cookies_file:
        return None
    try:
        size = os.path.getsize(cookies_file)
    except OSError:
        _logger.debug("%s Cookies file not found path=%s, proceeding without cookies", tag, cookies_file)
        return None
    if size <= MIN_COOKIE_FILE_SIZE:
        _logger.debug("%s Cookies file empty path=%s size=%d, proceeding without cookies", tag, cookies_file, size)
        return None
    return cookies_file


def cookie_args(cookies_file: Optional[str], tag: str = "") -> List[str]:
    """Command-line arguments passing the cookie file to the yt-dlp CLI."""
    path = usable_cookie_file(cookies_file, tag)
    if not path:
        return []
    _logger.debug("%s Using cookies file path=%s", tag, path)
    return ["--cookies", path]


def apply_cookie_options(ydl_opts: Dict[str, Any], cookies_file: Optional[str], tag: str = "") -> Dict[str, Any]:
    """Add the cookie file to a yt-dlp library options dict."""
    path = usable_cookie_file(cookies_file, tag)
    if path:
        ydl_opts["cookiefile"] = path
    return ydl_opts
