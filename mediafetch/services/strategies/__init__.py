from .base import (
    AUDIO_EXTENSIONS,
    VIDEO_EXTENSIONS,
    DownloadStrategy,
    FormatSelection,
    build_format_selector,
    normalize_host,
)
from .bilibili import BilibiliStrategy
from .registry import StrategyRegistry, build_registry
from .youtube import YouTubeStrategy

__all__ = [
    "AUDIO_EXTENSIONS",
    "VIDEO_EXTENSIONS",
    "DownloadStrategy",
    "FormatSelection",
    "build_format_selector",
    "normalize_host",
    "BilibiliStrategy",
    "YouTubeStrategy",
    "StrategyRegistry",
    "build_registry",
]
