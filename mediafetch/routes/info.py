"""Video info, service list and health routes"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from mediafetch.config import Settings
from mediafetch.errors import UnsupportedSource
from mediafetch.services import DownloadScheduler, get_video_info

from .deps import get_app_settings, get_scheduler

router = APIRouter()
_logger = logging.getLogger("media_fetch.api")


@router.get("/api/info", response_class=JSONResponse)
async def api_get_video_info(
    url: str = Query(..., max_length=1000, description="The URL of the video"),
    scheduler: DownloadScheduler = Depends(get_scheduler),
    settings: Settings = Depends(get_app_settings),
):
    """
    Get metadata and the available formats of a video without downloading it.
    """
    try:
        strategy = scheduler.registry.resolve(url)
    except UnsupportedSource as e:
        raise HTTPException(status_code=400, detail=str(e))
    service = strategy.service_name
    if not settings.is_service_enabled(service):
        raise HTTPException(status_code=503, detail=f"Service {service} is currently disabled")

    try:
        _logger.info("Info request url=%s service=%s", url, service)
        info = await run_in_threadpool(
            get_video_info,
            url,
            cookies_file=strategy.cookies_file,
            merge_audio=settings.merge_audio_formats,
            service=service,
        )
        return {"status": "success", "data": info.model_dump(mode="json")}
    except Exception as exc:
        _logger.exception("Info request failed url=%s error=%s", url, exc)
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/api/services", response_class=JSONResponse)
async def api_list_services(
    scheduler: DownloadScheduler = Depends(get_scheduler),
    settings: Settings = Depends(get_app_settings),
):
    """
    List the enabled services and the hosts each one accepts.
    """
    services = []
    for name in scheduler.registry.supported_services():
        if not settings.is_service_enabled(name):
            continue
        strategy = scheduler.registry.get(name)
        services.append({"name": name, "hosts": list(strategy.hosts) if strategy else []})
    return {"status": "success", "data": services}


@router.get("/api/health", response_class=JSONResponse)
async def api_health(scheduler: DownloadScheduler = Depends(get_scheduler)):
    return {
        "status": "success",
        "data": {"status": "ok", "running_tasks": scheduler.running_count()},
    }
