"""Task status and cancellation routes"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from mediafetch.errors import AccessDenied, NotFound
from mediafetch.services import DownloadScheduler
from mediafetch.state import Task

from .deps import get_client_key, get_scheduler
from .schemas import task_payload

router = APIRouter()
_logger = logging.getLogger("media_fetch.api")


def _require_task(scheduler: DownloadScheduler, task_id: str, client_key: str) -> Task:
    # Foreign tasks are reported exactly like unknown ones.
    try:
        return scheduler.require_task(task_id, client_key)
    except (NotFound, AccessDenied) as e:
        _logger.info("Task not found task_id=%s kind=%s", task_id, e.kind)
        raise HTTPException(status_code=404, detail=f"Task with ID {task_id} not found")


@router.get("/api/tasks/{task_id}", response_class=JSONResponse)
async def get_task_status(
    task_id: str,
    client_key: str = Depends(get_client_key),
    scheduler: DownloadScheduler = Depends(get_scheduler),
):
    """
    Get the status of one of the caller's tasks.
    """
    task = _require_task(scheduler, task_id, client_key)
    return {"status": "success", "data": task_payload(task)}


@router.get("/api/tasks", response_class=JSONResponse)
async def list_client_tasks(
    client_key: str = Depends(get_client_key),
    scheduler: DownloadScheduler = Depends(get_scheduler),
):
    """
    List the caller's tasks.
    """
    tasks = scheduler.list_tasks(client_key)
    _logger.debug("List tasks count=%d", len(tasks))
    return {"status": "success", "data": [task_payload(t) for t in tasks]}


@router.delete("/api/tasks/{task_id}", response_class=JSONResponse)
async def cancel_task(
    task_id: str,
    client_key: str = Depends(get_client_key),
    scheduler: DownloadScheduler = Depends(get_scheduler),
):
    """
    Cancel a pending or running task. Finished tasks are left as they are.
    """
    _require_task(scheduler, task_id, client_key)
    cancelled = scheduler.cancel(task_id, client_key)
    task = scheduler.get_task(task_id, client_key)
    return {
        "status": "success",
        "data": {"cancelled": cancelled, "task": task_payload(task) if task else None},
    }
