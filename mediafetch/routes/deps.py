"""Request-scoped dependencies shared by the routers"""
from fastapi import Request

from mediafetch.config import Settings
from mediafetch.services import DownloadScheduler


def get_scheduler(request: Request) -> DownloadScheduler:
    return request.app.state.scheduler


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_client_key(request: Request) -> str:
    """Identify the caller by the first X-Forwarded-For entry, else the peer address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
