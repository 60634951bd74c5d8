"""Task lifecycle: creation (single and batch), status, listing and deletion."""

from __future__ import annotations

import asyncio
import logging
import math
import secrets
import string
import time
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from video_relay.core.config import Settings
from video_relay.core.exceptions import AppException, NotFoundError, ValidationError
from video_relay.provider.client import ProviderClient
from video_relay.provider.models import ProviderTaskInput, ProviderTaskRequest
from video_relay.tasks.models import TaskMode, TaskStatus, VideoTask
from video_relay.tasks.store import TaskStore
from video_relay.videos.models import (
    BatchCreateResponse,
    BatchItemResult,
    DeleteTaskResponse,
    VideoCreateRequest,
    VideoListItem,
    VideoListResponse,
    VideoStatusResponse,
)
from video_relay.videos.validation import NormalizedRequest, normalize_request

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_local_task_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"task_{int(time.time() * 1000)}_{suffix}"


def display_progress(value: float):
    return int(value) if float(value).is_integer() else value


def _clamp_number(value: Any, default: int, minimum: int, maximum: int) -> int:
    """Parse a loosely typed number; zero or unparseable values fall back to ``default``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0
    if math.isnan(number) or number == 0:
        number = default
    return int(min(max(number, minimum), maximum))


class VideoTaskService:
    """Validates requests, creates provider tasks and persists local task records."""

    def __init__(self, store: TaskStore, provider: ProviderClient, settings: Settings):
        self.store = store
        self.provider = provider
        self.settings = settings

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _provider_request(self, normalized: NormalizedRequest) -> ProviderTaskRequest:
        if normalized.mode is TaskMode.IMAGE_TO_VIDEO:
            model = self.settings.PROVIDER_I2V_MODEL
        else:
            model = self.settings.PROVIDER_T2V_MODEL

        return ProviderTaskRequest(
            model=model,
            callback_url=self.settings.callback_url,
            input=ProviderTaskInput(
                prompt=normalized.prompt,
                aspect_ratio=normalized.provider_aspect_ratio,
                n_frames=normalized.n_frames,
                remove_watermark=True,
                image_urls=normalized.image_urls or None,
                character_id_list=normalized.character_id_list or None,
            ),
        )

    async def create_task(self, request: VideoCreateRequest) -> VideoTask:
        """
        Validate, create the provider task, then persist the local record.

        Nothing is stored when validation or the provider call fails.
        """
        normalized = normalize_request(request)
        provider_task_id = await self.provider.create_task(self._provider_request(normalized))

        task = VideoTask(
            local_task_id=new_local_task_id(),
            provider_task_id=provider_task_id,
            mode=normalized.mode,
            prompt=normalized.prompt,
            status=TaskStatus.QUEUED,
            progress=0,
            params={
                "mode": normalized.mode.value,
                "prompt": normalized.prompt,
                "image_url": request.image_url,
                "image_urls": normalized.image_urls,
                "duration": normalized.duration,
                "aspect_ratio": normalized.aspect_ratio,
                "remove_watermark": True,
                "character_id_list": normalized.character_id_list,
            },
        )
        await self.store.put(task, refresh_recent=True)
        logger.info(f"Created task localTaskId={task.local_task_id} providerTaskId={provider_task_id}")
        return task

    async def create_from_payload(self, payload: Any) -> VideoTask:
        if not isinstance(payload, dict):
            raise ValidationError("Job must be an object")
        try:
            request = VideoCreateRequest.model_validate(payload)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            loc = first.get("loc") or ("request",)
            field = str(loc[0])
            raise ValidationError(f"Invalid {field}")
        return await self.create_task(request)

    def normalize_concurrency(self, value: Any) -> int:
        return _clamp_number(
            value,
            default=self.settings.BATCH_DEFAULT_CONCURRENCY,
            minimum=1,
            maximum=self.settings.BATCH_MAX_CONCURRENCY,
        )

    async def create_batch(self, jobs: Any, concurrency: Any = None) -> BatchCreateResponse:
        """
        Create every job independently, at most ``concurrency`` at a time.

        Results keep the input order; a failing job only fills its own slot.
        """
        if not isinstance(jobs, list):
            raise ValidationError("jobs must be an array")

        limit = self.normalize_concurrency(concurrency)
        semaphore = asyncio.Semaphore(limit)

        async def run_one(index: int, job: Any) -> BatchItemResult:
            async with semaphore:
                try:
                    task = await self.create_from_payload(job)
                    return BatchItemResult(index=index, ok=True, task_id=task.local_task_id)
                except AppException as e:
                    return BatchItemResult(index=index, ok=False, error=str(e.detail))
                except Exception as e:
                    logger.exception(f"Unexpected error creating batch job #{index}")
                    return BatchItemResult(index=index, ok=False, error=str(e) or "Failed to create task")

        results: List[BatchItemResult] = await asyncio.gather(
            *(run_one(index, job) for index, job in enumerate(jobs))
        )
        succeeded = sum(1 for r in results if r.ok)
        logger.info(f"Batch create finished: {succeeded}/{len(jobs)} created (concurrency={limit})")
        return BatchCreateResponse(accepted=len(jobs), concurrency=limit, results=results)

    # ------------------------------------------------------------------
    # Status / listing
    # ------------------------------------------------------------------

    async def get_task(self, local_task_id: str) -> VideoTask:
        task = await self.store.get(local_task_id)
        if task is None:
            raise NotFoundError()
        return task

    async def get_status(self, local_task_id: str) -> VideoStatusResponse:
        task = await self.get_task(local_task_id)
        return VideoStatusResponse(
            status=task.status,
            progress=display_progress(task.progress),
            video_url=task.video_url,
            origin_video_url=task.origin_video_url,
            error=task.error,
        )

    def normalize_limit(self, value: Any) -> int:
        return _clamp_number(
            value,
            default=self.settings.LIST_DEFAULT_LIMIT,
            minimum=1,
            maximum=self.settings.LIST_MAX_LIMIT,
        )

    async def list_recent(self, limit: Optional[Any] = None) -> VideoListResponse:
        tasks = await self.store.list_recent(self.normalize_limit(limit))
        return VideoListResponse(
            tasks=[
                VideoListItem(
                    local_task_id=task.local_task_id,
                    created_at=task.created_at,
                    mode=task.mode.value,
                    prompt=task.prompt,
                    status=task.status,
                    progress=display_progress(task.progress),
                    video_url=task.video_url,
                    origin_video_url=task.origin_video_url,
                    error=task.error,
                )
                for task in tasks
            ]
        )

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_task(self, local_task_id: str) -> DeleteTaskResponse:
        task = await self.store.delete(local_task_id)
        if task is None:
            raise NotFoundError()

        artifact = Path(self.settings.FILES_DIR) / f"{local_task_id}.mp4"
        try:
            artifact.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove artifact for task {local_task_id}: {e}")

        logger.info(f"Deleted task {local_task_id}")
        return DeleteTaskResponse(success=True, id=local_task_id)
