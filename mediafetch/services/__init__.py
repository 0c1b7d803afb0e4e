from .composer import MediaComposer, format_timestamp, parse_timestamp
from .extractor import build_video_info, get_video_info
from .formats import Format, VideoInfo, enhance_formats
from .permits import FairSemaphore
from .process_runner import CancelToken, ProcessResult, ProcessRunner
from .progress import ProgressUpdate, parse_progress_line
from .scheduler import DownloadScheduler
from .strategies import (
    BilibiliStrategy,
    DownloadStrategy,
    FormatSelection,
    StrategyRegistry,
    YouTubeStrategy,
    build_format_selector,
    build_registry,
)

__all__ = [
    "MediaComposer",
    "format_timestamp",
    "parse_timestamp",
    "build_video_info",
    "get_video_info",
    "Format",
    "VideoInfo",
    "enhance_formats",
    "FairSemaphore",
    "CancelToken",
    "ProcessResult",
    "ProcessRunner",
    "ProgressUpdate",
    "parse_progress_line",
    "DownloadScheduler",
    "BilibiliStrategy",
    "DownloadStrategy",
    "FormatSelection",
    "StrategyRegistry",
    "YouTubeStrategy",
    "build_format_selector",
    "build_registry",
]
