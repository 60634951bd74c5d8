"""Callback reconciliation: provider events -> local task state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from video_relay.artifacts.downloader import ArtifactDownloader
from video_relay.callbacks.models import (
    CallbackData,
    CallbackOutcome,
    decode_result_url,
    normalize_progress,
    parse_event,
)
from video_relay.tasks.models import TaskStatus, VideoTask
from video_relay.tasks.store import TaskStore

logger = logging.getLogger(__name__)

MISSING_RESULT_URL_ERROR = "Missing origin video url in callback"


@dataclass
class _Decision:
    outcome: CallbackOutcome = CallbackOutcome.UPDATED
    download_url: Optional[str] = None


class CallbackReconciler:
    """
    Applies provider status events to tasks.

    Events may be duplicated, retried or reordered. Status only moves forward
    and terminal states are sticky; an event that would move a task backwards
    is dropped whole. ``handle`` never raises, so the webhook can always
    acknowledge.
    """

    def __init__(self, store: TaskStore, downloader: ArtifactDownloader):
        self.store = store
        self.downloader = downloader

    async def handle(self, payload: Any) -> CallbackOutcome:
        try:
            return await self._reconcile(payload)
        except Exception:
            logger.exception("Callback processing failed")
            return CallbackOutcome.ERROR

    async def _reconcile(self, payload: Any) -> CallbackOutcome:
        try:
            event = parse_event(payload)
        except PydanticValidationError as e:
            logger.warning(f"Malformed callback payload: {e}")
            return CallbackOutcome.MALFORMED

        provider_task_id = event.data.provider_task_id if event else None
        if not provider_task_id:
            logger.warning("Callback without taskId ignored")
            return CallbackOutcome.MALFORMED

        data = event.data
        logger.info(f"Callback received providerTaskId={provider_task_id} state={data.state}")

        local_task_id = await self.store.resolve_by_provider_id(provider_task_id)
        if not local_task_id:
            logger.warning(f"Callback task not found for providerTaskId={provider_task_id}")
            return CallbackOutcome.UNKNOWN_TASK

        decision = _Decision()

        def apply(task: VideoTask) -> bool:
            return _apply_event(task, data, decision)

        task = await self.store.update(local_task_id, apply)
        if task is None:
            logger.warning(f"Callback local task missing for providerTaskId={provider_task_id}")
            return CallbackOutcome.MISSING_TASK

        if decision.outcome is not CallbackOutcome.UPDATED:
            logger.info(
                f"Callback for task {local_task_id} ignored ({decision.outcome.value}); "
                f"current status={task.status.value}, event state={data.state}"
            )
            return decision.outcome

        if decision.download_url:
            self.downloader.schedule(local_task_id, decision.download_url)
        return CallbackOutcome.UPDATED


def _apply_event(task: VideoTask, data: CallbackData, decision: _Decision) -> bool:
    if task.status.is_terminal:
        decision.outcome = CallbackOutcome.TERMINAL_IGNORED
        return False

    new_status = data.status
    if new_status is not None and not task.status.can_move_to(new_status):
        decision.outcome = CallbackOutcome.STALE_IGNORED
        return False

    if new_status is not None:
        task.status = new_status

    progress = normalize_progress(data.progress)
    if progress is not None:
        task.progress = progress

    if new_status is TaskStatus.SUCCESS:
        task.progress = 100
        origin_url = decode_result_url(data.result_json)
        if origin_url:
            task.origin_video_url = origin_url
            decision.download_url = origin_url
        else:
            task.error = task.error or MISSING_RESULT_URL_ERROR
    elif new_status is TaskStatus.FAIL:
        task.error = data.fail_message()

    return True
