"""Format models and synthetic video+audio format generation"""
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

_logger = logging.getLogger("media_fetch.formats")

COMBINED_NOTE = "Video + Audio combined"


def _has_codec(codec: Optional[str]) -> bool:
    return bool(codec) and codec != "none"


class Format(BaseModel):
    format_id: str
    ext: Optional[str] = None
    note: Optional[str] = None
    resolution: Optional[str] = None
    acodec: Optional[str] = None
    vcodec: Optional[str] = None
    filesize: int = 0
    quality: Optional[str] = None
    height: Optional[int] = Field(default=None, exclude=True)

    @property
    def has_video(self) -> bool:
        return _has_codec(self.vcodec)

    @property
    def has_audio(self) -> bool:
        return _has_codec(self.acodec)

    @property
    def is_video_only(self) -> bool:
        return self.has_video and not self.has_audio

    @property
    def is_audio_only(self) -> bool:
        return self.has_audio and not self.has_video

    @property
    def is_combined(self) -> bool:
        return self.has_video and self.has_audio


class VideoInfo(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    uploader: Optional[str] = None
    duration: Optional[float] = None
    thumbnail: Optional[str] = None
    webpage_url: Optional[str] = None
    service: Optional[str] = None
    formats: List[Format] = Field(default_factory=list)


def enhance_formats(formats: List[Format], merge_audio: bool = True) -> List[Format]:
    """
    Return a copy of ``formats`` with synthetic ``video+audio`` entries added.

    When the source offers video-only and audio-only streams, one combined
    entry is built per distinct video quality label, pairing the first video
    seen with that label and the largest audio stream. Each entry is inserted
    at the front of the list.
    """
    enhanced = list(formats)
    if not formats or not merge_audio:
        return enhanced

    video_only = [f for f in formats if f.is_video_only]
    audio_only = [f for f in formats if f.is_audio_only]
    _logger.debug(
        "Format analysis video_only=%d audio_only=%d combined=%d",
        len(video_only),
        len(audio_only),
        sum(1 for f in formats if f.is_combined),
    )
    if not video_only or not audio_only:
        return enhanced

    best_video_by_quality: Dict[str, Format] = {}
    for video in video_only:
        if video.quality is None:
            continue
        best_video_by_quality.setdefault(video.quality, video)

    best_audio = max(audio_only, key=lambda f: f.filesize if f.filesize > 0 else 0)

    for quality, video in best_video_by_quality.items():
        combined = Format(
            format_id=f"{video.format_id}+{best_audio.format_id}",
            quality=f"{quality} + Audio",
            ext="mp4",
            vcodec=video.vcodec,
            acodec=best_audio.acodec,
            filesize=video.filesize + best_audio.filesize,
            note=COMBINED_NOTE,
            resolution=video.resolution,
            height=video.height,
        )
        enhanced.insert(0, combined)
        _logger.debug(
            "Created synthetic format format_id=%s video=%s audio=%s",
            combined.format_id,
            video.format_id,
            best_audio.format_id,
        )

    _logger.info("Created synthetic video+audio formats count=%d", len(best_video_by_quality))
    return enhanced
