"""Video API request and response schemas."""

from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from video_relay.tasks.models import TaskStatus


# ============================================================================
# Request Schemas
# ============================================================================

class VideoCreateRequest(BaseModel):
    """A single generation job. Values are checked against the allow-lists by the service."""
    model_config = ConfigDict(extra="ignore")

    mode: Optional[str] = Field(None, description="t2v (text-to-video) or i2v (image-to-video)")
    prompt: Optional[str] = None
    image_url: Optional[str] = None
    image_urls: Optional[List[Optional[str]]] = None
    duration: Union[int, str] = Field(5, description="Seconds: 5, 10 or 15")
    aspect_ratio: str = Field("16:9", description="16:9, 9:16, 1:1, landscape, portrait or square")
    character_id_list: Optional[List[str]] = None


class BatchCreateRequest(BaseModel):
    concurrency: Optional[Any] = None
    jobs: Any = None


# ============================================================================
# Response Schemas
# ============================================================================

class VideoCreateResponse(BaseModel):
    task_id: str


class BatchItemResult(BaseModel):
    index: int
    ok: bool
    task_id: Optional[str] = None
    error: Optional[str] = None


class BatchCreateResponse(BaseModel):
    accepted: int
    concurrency: int
    results: List[BatchItemResult]


class VideoStatusResponse(BaseModel):
    status: TaskStatus
    progress: Union[int, float]
    video_url: Optional[str] = None
    origin_video_url: Optional[str] = None
    error: Optional[str] = None


class VideoListItem(BaseModel):
    """History row; field names follow the existing frontend contract."""
    model_config = ConfigDict(populate_by_name=True)

    local_task_id: str = Field(..., alias="localTaskId")
    created_at: datetime = Field(..., alias="createdAt")
    mode: str
    prompt: str
    status: TaskStatus
    progress: Union[int, float]
    video_url: Optional[str] = None
    origin_video_url: Optional[str] = None
    error: Optional[str] = None


class VideoListResponse(BaseModel):
    tasks: List[VideoListItem]


class DeleteTaskResponse(BaseModel):
    success: bool
    id: str
