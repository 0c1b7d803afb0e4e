"""Task data models"""
import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskState(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.completed, TaskState.failed, TaskState.cancelled)


class TaskOptions(BaseModel):
    """Post-processing options chosen at submission time."""

    model_config = ConfigDict(frozen=True)

    time_range_enabled: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    frame_extraction_enabled: bool = False
    frame_time: Optional[str] = None


class Task(BaseModel):
    """
    Download task record.

    Instances are immutable snapshots: the store swaps whole records on every
    transition, so a reader never sees a half-applied update.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    owner_key: str
    format_id: Optional[str] = None
    video_format_id: Optional[str] = None
    audio_format_id: Optional[str] = None
    quality: Optional[str] = None
    options: TaskOptions = Field(default_factory=TaskOptions)

    state: TaskState = TaskState.pending
    service: Optional[str] = None
    progress: int = 0
    download_speed: Optional[str] = None
    eta_seconds: Optional[int] = None

    result_filename: Optional[str] = None
    result_size: Optional[int] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    created_at: datetime.datetime = Field(default_factory=datetime.datetime.now)
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    failed_at: Optional[datetime.datetime] = None
    cancelled_at: Optional[datetime.datetime] = None
