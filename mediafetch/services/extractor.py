"""Video metadata extraction via the yt-dlp library"""
import logging
import time
from typing import Any, Dict, List, Optional

import yt_dlp

from mediafetch.cookies import apply_cookie_options

from .formats import Format, VideoInfo, enhance_formats

_logger = logging.getLogger("media_fetch.extractor")


def _codec(value: Any) -> str:
    return value if isinstance(value, str) and value else "none"


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def formats_from_info(raw_formats: List[Dict[str, Any]]) -> List[Format]:
    """
    Reduce yt-dlp's format list to one entry per (height, has audio) pair,
    keeping the largest, plus the largest audio-only stream so separate
    streams can be offered as a combination.
    """
    by_quality: Dict[str, Format] = {}
    best_audio: Optional[Format] = None

    for f in raw_formats or []:
        vcodec = _codec(f.get("vcodec"))
        acodec = _codec(f.get("acodec"))
        height = _as_int(f.get("height"))
        size = _as_int(f.get("filesize")) or _as_int(f.get("filesize_approx"))

        if vcodec == "none" or height == 0:
            if vcodec == "none" and acodec != "none":
                audio = Format(
                    format_id=str(f.get("format_id")),
                    ext=f.get("ext"),
                    note=f.get("format_note"),
                    acodec=acodec,
                    vcodec="none",
                    filesize=size,
                    quality="Audio",
                )
                if best_audio is None or audio.filesize > best_audio.filesize:
                    best_audio = audio
            continue

        fps = _as_int(f.get("fps"))
        quality = f"{height}p"
        if fps > 0:
            quality += f" ({fps}fps)"
        if acodec != "none":
            quality += " + Audio"

        fmt = Format(
            format_id=str(f.get("format_id")),
            ext=f.get("ext"),
            note=f.get("format_note"),
            resolution=f"{_as_int(f.get('width'))}x{height}",
            acodec=acodec,
            vcodec=vcodec,
            filesize=size,
            quality=quality,
            height=height,
        )
        key = f"{height}p_{'audio' if acodec != 'none' else 'noaudio'}"
        current = by_quality.get(key)
        if current is None or size > current.filesize:
            by_quality[key] = fmt

    formats = list(by_quality.values())
    if best_audio is not None:
        formats.append(best_audio)
    return formats


def build_video_info(info: Dict[str, Any], merge_audio: bool = True, service: Optional[str] = None) -> VideoInfo:
    formats = formats_from_info(info.get("requested_formats") or info.get("formats") or [])
    formats = enhance_formats(formats, merge_audio=merge_audio)
    formats.sort(key=lambda f: f.height or 0, reverse=True)
    return VideoInfo(
        id=info.get("id"),
        title=info.get("title"),
        uploader=info.get("uploader"),
        duration=info.get("duration"),
        thumbnail=info.get("thumbnail"),
        webpage_url=info.get("webpage_url"),
        service=service,
        formats=formats,
    )


def get_video_info(
    url: str,
    cookies_file: Optional[str] = None,
    merge_audio: bool = True,
    service: Optional[str] = None,
) -> VideoInfo:
    """
    Fetch metadata and the available formats for ``url`` without downloading.

    Errors raised by yt-dlp propagate to the caller.
    """
    tag = f"[VideoInfo:{service or '-'}]"
    ydl_opts: Dict[str, Any] = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
    }
    apply_cookie_options(ydl_opts, cookies_file, tag)
    _logger.debug("%s yt-dlp get_info url=%s opts=%s", tag, url, ydl_opts)

    start = time.monotonic()
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(url, download=False)
        info = ydl.sanitize_info(info)

    result = build_video_info(info or {}, merge_audio=merge_audio, service=service)
    _logger.info(
        "%s Extracted video info url=%s formats=%d elapsed_ms=%d",
        tag,
        url,
        len(result.formats),
        int((time.monotonic() - start) * 1000),
    )
    return result
