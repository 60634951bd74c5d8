"""Video task record and its status machine."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TaskMode(str, Enum):
    TEXT_TO_VIDEO = "t2v"
    IMAGE_TO_VIDEO = "i2v"


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAIL = "fail"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCESS, TaskStatus.FAIL)

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_move_to(self, new: "TaskStatus") -> bool:
        """Status only moves forward; terminal states never change."""
        if self.is_terminal:
            return False
        return new.rank >= self.rank


_STATUS_RANK = {
    TaskStatus.QUEUED: 0,
    TaskStatus.RUNNING: 1,
    TaskStatus.SUCCESS: 2,
    TaskStatus.FAIL: 2,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VideoTask(BaseModel):
    """A single generation request tracked by this service."""

    local_task_id: str
    provider_task_id: str
    created_at: datetime = Field(default_factory=utc_now)
    mode: TaskMode
    prompt: str
    status: TaskStatus = TaskStatus.QUEUED
    progress: float = 0
    video_url: Optional[str] = None  # re-hosted copy
    origin_video_url: Optional[str] = None  # provider-hosted result
    error: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    revision: int = 0

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(mode="python")
        doc["_id"] = self.local_task_id
        doc["mode"] = self.mode.value
        doc["status"] = self.status.value
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "VideoTask":
        data = {k: v for k, v in doc.items() if k not in ("_id", "expires_at")}
        created_at = data.get("created_at")
        # Mongo hands back naive UTC datetimes.
        if isinstance(created_at, datetime) and created_at.tzinfo is None:
            data["created_at"] = created_at.replace(tzinfo=timezone.utc)
        return cls.model_validate(data)
