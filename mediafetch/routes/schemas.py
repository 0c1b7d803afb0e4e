"""Request and response models"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from mediafetch.state import Task, TaskOptions


class DownloadRequest(BaseModel):
    """Download submission"""
    url: str = Field(..., min_length=1, max_length=1000)
    format_id: Optional[str] = Field(default=None, max_length=200)
    video_format_id: Optional[str] = Field(default=None, max_length=100)
    audio_format_id: Optional[str] = Field(default=None, max_length=100)
    quality: Optional[str] = Field(default=None, max_length=100)
    time_range_enabled: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    frame_extraction_enabled: bool = False
    frame_time: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("url must not be blank")
        return value

    def task_options(self) -> TaskOptions:
        return TaskOptions(
            time_range_enabled=self.time_range_enabled,
            start_time=self.start_time,
            end_time=self.end_time,
            frame_extraction_enabled=self.frame_extraction_enabled,
            frame_time=self.frame_time,
        )


def task_payload(task: Task) -> Dict[str, Any]:
    """Client-facing view of a task; the owner key is never echoed back."""
    data = task.model_dump(mode="json", exclude={"owner_key"})
    data["status"] = data.pop("state")
    return data
