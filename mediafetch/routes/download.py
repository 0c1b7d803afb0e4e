"""Download submission and file delivery routes"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, JSONResponse

from mediafetch.config import Settings
from mediafetch.errors import InvalidArgument, UnsupportedSource
from mediafetch.services import DownloadScheduler, parse_timestamp

from .deps import get_app_settings, get_client_key, get_scheduler
from .schemas import DownloadRequest, task_payload

router = APIRouter()
_logger = logging.getLogger("media_fetch.api")


def _validate_options(request: DownloadRequest) -> None:
    try:
        if request.frame_extraction_enabled:
            if not request.frame_time:
                raise InvalidArgument("frame_time is required when frame extraction is enabled")
            parse_timestamp(request.frame_time)
        elif request.time_range_enabled:
            if not request.start_time or not request.end_time:
                raise InvalidArgument("start_time and end_time are required when time range is enabled")
            if parse_timestamp(request.end_time) <= parse_timestamp(request.start_time):
                raise InvalidArgument("end_time must be after start_time")
    except InvalidArgument as e:
        _logger.info("Rejected download options error=%s", e)
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/api/download", response_class=JSONResponse)
async def api_download(
    request: DownloadRequest,
    client_key: str = Depends(get_client_key),
    scheduler: DownloadScheduler = Depends(get_scheduler),
    settings: Settings = Depends(get_app_settings),
):
    """
    Submit a download task and return it in the pending state.
    """
    try:
        strategy = scheduler.registry.resolve(request.url)
    except UnsupportedSource as e:
        _logger.info("Unsupported URL url=%s", request.url)
        raise HTTPException(status_code=400, detail=str(e))

    if not settings.is_service_enabled(strategy.service_name):
        _logger.info("Service disabled service=%s url=%s", strategy.service_name, request.url)
        raise HTTPException(status_code=503, detail=f"Service {strategy.service_name} is currently disabled")

    _validate_options(request)

    task = scheduler.submit(
        request.url,
        client_key,
        format_id=request.format_id,
        quality=request.quality,
        options=request.task_options(),
        video_format_id=request.video_format_id,
        audio_format_id=request.audio_format_id,
    )
    return {"status": "success", "data": task_payload(task)}


@router.get("/api/downloads/{filename}")
async def api_download_file(
    filename: str,
    client_key: str = Depends(get_client_key),
    scheduler: DownloadScheduler = Depends(get_scheduler),
):
    """
    Return a finished file. Only files produced by the caller's own completed
    tasks are served; anything else is reported as missing.
    """
    path = scheduler.find_completed_file(client_key, filename)
    if path is None:
        _logger.info("File not found filename=%s", filename)
        raise HTTPException(status_code=404, detail="File not found")

    _logger.info("Serving file filename=%s path=%s", filename, path)
    return FileResponse(path=str(path), filename=path.name, media_type="application/octet-stream")
