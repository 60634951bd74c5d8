"""Fire-and-forget re-hosting of provider result videos."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Set

from video_relay.core.exceptions import DownloadError
from video_relay.provider.client import ProviderClient
from video_relay.tasks.models import VideoTask
from video_relay.tasks.store import TaskStore

logger = logging.getLogger(__name__)


class ArtifactDownloader:
    """
    Runs downloads as detached asyncio tasks, at most ``concurrency`` at once.

    The outcome of each job is written back to the Task Store: the public URL
    on success, a soft ``error`` on failure. Status is never touched. No
    exception escapes a job; callers only ever see the ``schedule`` call.
    """

    def __init__(
        self,
        store: TaskStore,
        provider: ProviderClient,
        *,
        files_dir: Path,
        public_url_for: Callable[[str], str],
        concurrency: int = 4,
    ):
        self.store = store
        self.provider = provider
        self.files_dir = Path(files_dir)
        self.public_url_for = public_url_for
        self._semaphore = asyncio.Semaphore(max(1, int(concurrency)))
        self._pending: Set[asyncio.Task] = set()

    def artifact_path(self, local_task_id: str) -> Path:
        return self.files_dir / f"{local_task_id}.mp4"

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, local_task_id: str, source_url: str) -> asyncio.Task:
        job = asyncio.create_task(
            self._run(local_task_id, source_url), name=f"download:{local_task_id}"
        )
        self._pending.add(job)
        job.add_done_callback(self._pending.discard)
        logger.info(f"Scheduled download for task {local_task_id}")
        return job

    async def join(self) -> None:
        """Wait for every scheduled download to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def shutdown(self) -> None:
        for job in list(self._pending):
            job.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _run(self, local_task_id: str, source_url: str) -> None:
        try:
            async with self._semaphore:
                await self._download(local_task_id, source_url)
        except asyncio.CancelledError:
            logger.warning(f"Download for task {local_task_id} cancelled")
            raise
        except Exception:
            logger.exception(f"Unexpected error while re-hosting task {local_task_id}")

    async def _download(self, local_task_id: str, source_url: str) -> None:
        destination = self.artifact_path(local_task_id)
        try:
            await self.provider.download_artifact(source_url, destination)
        except DownloadError as e:
            logger.warning(f"Failed to download video for task {local_task_id}: {e}")
            await self._record_error(local_task_id, f"Failed to download video: {e}")
            return

        video_url = self.public_url_for(local_task_id)

        def set_url(task: VideoTask) -> bool:
            task.video_url = video_url
            return True

        updated = await self.store.update(local_task_id, set_url)
        if updated is None:
            # Task deleted or expired while downloading; drop the orphan file.
            logger.info(f"Task {local_task_id} vanished during download, removing artifact")
            _unlink(destination)
            return
        logger.info(f"Re-hosted video for task {local_task_id} at {video_url}")

    async def _record_error(self, local_task_id: str, message: str) -> Optional[VideoTask]:
        def set_error(task: VideoTask) -> bool:
            if task.error:
                return False
            task.error = message
            return True

        return await self.store.update(local_task_id, set_error)


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")
