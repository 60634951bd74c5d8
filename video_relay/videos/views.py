"""Video task API endpoints."""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Path, Query

from video_relay.core.dependencies import get_video_service, require_app_token
from video_relay.core.exceptions import BadRequestException
from video_relay.core.rate_limit import enforce_creation_limit
from video_relay.videos.models import (
    BatchCreateRequest,
    BatchCreateResponse,
    DeleteTaskResponse,
    VideoCreateResponse,
    VideoListResponse,
    VideoStatusResponse,
)
from video_relay.videos.service import VideoTaskService

router = APIRouter(tags=["Videos"], dependencies=[Depends(require_app_token)])


@router.post(
    "/video/create",
    response_model=VideoCreateResponse,
    dependencies=[Depends(enforce_creation_limit)],
)
async def create_video(
    body: Any = Body(None, description="VideoCreateRequest"),
    service: VideoTaskService = Depends(get_video_service),
):
    """
    Create one generation task.

    400 on a disallowed mode, duration or aspect ratio, a missing prompt, or
    an i2v request without images; 502 when the provider rejects the task.
    The body is validated by the service so mistyped fields are a 400 too.
    """
    if not isinstance(body, dict):
        raise BadRequestException("Request body must be a JSON object")
    task = await service.create_from_payload(body)
    return VideoCreateResponse(task_id=task.local_task_id)


@router.post(
    "/video/batch_create",
    response_model=BatchCreateResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(enforce_creation_limit)],
)
async def batch_create_videos(
    body: BatchCreateRequest,
    service: VideoTaskService = Depends(get_video_service),
):
    """
    Create many tasks with bounded concurrency.

    Each job succeeds or fails on its own; ``results`` follow input order.
    """
    return await service.create_batch(body.jobs, body.concurrency)


@router.get("/video/status", response_model=VideoStatusResponse)
async def get_video_status(
    task_id: Optional[str] = Query(None),
    service: VideoTaskService = Depends(get_video_service),
):
    if not task_id:
        raise BadRequestException("task_id is required")
    return await service.get_status(task_id)


@router.get("/video/list", response_model=VideoListResponse)
async def list_videos(
    limit: Optional[str] = Query(None, description="1-200, default 50"),
    service: VideoTaskService = Depends(get_video_service),
):
    return await service.list_recent(limit)


@router.delete("/tasks/{task_id}", response_model=DeleteTaskResponse)
async def delete_task(
    task_id: str = Path(..., description="Local task ID"),
    service: VideoTaskService = Depends(get_video_service),
):
    return await service.delete_task(task_id)
