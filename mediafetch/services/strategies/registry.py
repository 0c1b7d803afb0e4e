"""Host-keyed dispatch from URLs to download strategies"""
import logging
from typing import Iterable, List, Optional, Tuple

from mediafetch.config import Settings
from mediafetch.errors import UnsupportedSource

from ..composer import MediaComposer
from ..process_runner import ProcessRunner
from .base import DownloadStrategy, host_matches, normalize_host
from .bilibili import BilibiliStrategy
from .youtube import YouTubeStrategy

_logger = logging.getLogger("media_fetch.strategy")


class StrategyRegistry:
    """
    Maps registered hosts to strategies.

    The most specific host wins: ``music.youtube.com`` beats ``youtube.com``
    for a URL on ``music.youtube.com``. Hosts of equal length resolve to the
    strategy registered first.
    """

    def __init__(self) -> None:
        self._entries: List[Tuple[str, DownloadStrategy]] = []

    def register(self, strategy: DownloadStrategy, hosts: Optional[Iterable[str]] = None) -> None:
        for host in hosts if hosts is not None else strategy.hosts:
            self._entries.append((normalize_host(host), strategy))
        _logger.debug("Registered strategy service=%s hosts=%s", strategy.service_name, list(hosts or strategy.hosts))

    def _match(self, url: str) -> Optional[DownloadStrategy]:
        host = normalize_host(url)
        if not host:
            return None
        best: Optional[Tuple[str, DownloadStrategy]] = None
        for registered, strategy in self._entries:
            if host_matches(host, registered) and (best is None or len(registered) > len(best[0])):
                best = (registered, strategy)
        return best[1] if best else None

    def resolve(self, url: str) -> DownloadStrategy:
        strategy = self._match(url)
        if strategy is None:
            raise UnsupportedSource(f"No download strategy supports URL: {url}")
        return strategy

    def is_supported(self, url: str) -> bool:
        return self._match(url) is not None

    def supported_services(self) -> List[str]:
        services: List[str] = []
        for _, strategy in self._entries:
            if strategy.service_name not in services:
                services.append(strategy.service_name)
        return services

    def get(self, service_name: str) -> Optional[DownloadStrategy]:
        for _, strategy in self._entries:
            if strategy.service_name == service_name:
                return strategy
        return None


def build_registry(settings: Settings, runner: ProcessRunner, composer: MediaComposer) -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register(
        YouTubeStrategy(
            runner,
            composer,
            ytdlp_binary=settings.ytdlp_binary,
            cookies_file=settings.youtube_cookies_file,
            timeout=settings.fetch_timeout_seconds,
            js_runtime=settings.youtube_js_runtime,
            remote_components=settings.youtube_remote_components,
        )
    )
    registry.register(
        BilibiliStrategy(
            runner,
            composer,
            ytdlp_binary=settings.ytdlp_binary,
            cookies_file=settings.bilibili_cookies_file,
            timeout=settings.fetch_timeout_seconds,
        )
    )
    _logger.info("Strategy registry ready services=%s", ",".join(registry.supported_services()))
    return registry
