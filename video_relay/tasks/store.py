"""
Task Store: TTL-backed persistence for video tasks.

Three structures are kept per task, all sharing one expiry:

- the task record, keyed by local task id;
- a provider-id -> local-id mapping used by the callback path;
- a recency index ordered by creation time used for listing.

Records whose TTL has passed are reported as missing, never as errors.
Recency entries may outlive their record; ``list_recent`` prunes them.
"""

from __future__ import annotations

import abc
import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from video_relay.tasks.models import VideoTask

logger = logging.getLogger(__name__)

# Returns True when it changed the task and the change must be persisted.
Mutator = Callable[[VideoTask], bool]


class StoreConflictError(Exception):
    """An atomic update kept losing the compare-and-set race."""


class TaskStore(abc.ABC):
    """Contract shared by every storage backend."""

    backend_name = ""

    def __init__(self, ttl_seconds: int):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = int(ttl_seconds)

    async def start(self) -> None:
        """Prepare backend resources (indexes, connections)."""

    async def close(self) -> None:
        """Release backend resources."""

    @abc.abstractmethod
    async def put(self, task: VideoTask, *, refresh_recent: bool = False) -> None:
        """Upsert a task, refreshing the TTL of its record, mapping and recency entry."""

    @abc.abstractmethod
    async def get(self, local_task_id: str) -> Optional[VideoTask]:
        ...

    @abc.abstractmethod
    async def resolve_by_provider_id(self, provider_task_id: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    async def list_recent(self, limit: int) -> List[VideoTask]:
        """Newest first. Dangling recency entries are dropped silently."""

    @abc.abstractmethod
    async def delete(self, local_task_id: str) -> Optional[VideoTask]:
        """Remove a task with its mapping and recency entry; returns what was removed."""

    @abc.abstractmethod
    async def update(self, local_task_id: str, mutate: Mutator) -> Optional[VideoTask]:
        """
        Atomically apply ``mutate`` to the stored task.

        ``mutate`` receives a private copy; when it returns True the copy is
        written back (TTL refreshed, revision bumped). Returns the task as it
        stands afterwards, or None when no live record exists.
        """


@dataclass
class _Entry:
    value: object
    expires_at: float


class MemoryTaskStore(TaskStore):
    """
    In-process backend with explicit expiry.

    Suitable for a single process and for tests; every operation runs under
    one asyncio lock, which makes ``update`` a plain critical section.
    """

    backend_name = "memory"

    def __init__(self, ttl_seconds: int, *, clock: Callable[[], float] = time.time):
        super().__init__(ttl_seconds)
        self._clock = clock
        self._tasks: Dict[str, _Entry] = {}
        self._provider_map: Dict[str, _Entry] = {}
        self._recent: Dict[str, _Entry] = {}  # value: creation timestamp
        self._lock = asyncio.Lock()

    def _live(self, table: Dict[str, _Entry], key: str) -> Optional[_Entry]:
        entry = table.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del table[key]
            return None
        return entry

    def _write(self, task: VideoTask, refresh_recent: bool) -> None:
        expires_at = self._clock() + self.ttl_seconds
        self._tasks[task.local_task_id] = _Entry(copy.deepcopy(task), expires_at)
        if task.provider_task_id:
            self._provider_map[task.provider_task_id] = _Entry(task.local_task_id, expires_at)
        if refresh_recent:
            self._recent[task.local_task_id] = _Entry(task.created_at.timestamp(), expires_at)
        elif task.local_task_id in self._recent:
            self._recent[task.local_task_id].expires_at = expires_at

    async def put(self, task: VideoTask, *, refresh_recent: bool = False) -> None:
        async with self._lock:
            self._write(task, refresh_recent)

    async def get(self, local_task_id: str) -> Optional[VideoTask]:
        async with self._lock:
            entry = self._live(self._tasks, local_task_id)
            return copy.deepcopy(entry.value) if entry else None

    async def resolve_by_provider_id(self, provider_task_id: str) -> Optional[str]:
        async with self._lock:
            entry = self._live(self._provider_map, provider_task_id)
            return entry.value if entry else None

    async def list_recent(self, limit: int) -> List[VideoTask]:
        async with self._lock:
            for key in list(self._recent):
                self._live(self._recent, key)
            ids = sorted(self._recent, key=lambda k: self._recent[k].value, reverse=True)[:limit]

            tasks = []
            missing = []
            for local_task_id in ids:
                entry = self._live(self._tasks, local_task_id)
                if entry is None:
                    missing.append(local_task_id)
                    continue
                tasks.append(copy.deepcopy(entry.value))

            for local_task_id in missing:
                self._recent.pop(local_task_id, None)
            if missing:
                logger.debug(f"Pruned {len(missing)} dangling recency entries")
            return tasks

    async def delete(self, local_task_id: str) -> Optional[VideoTask]:
        async with self._lock:
            entry = self._live(self._tasks, local_task_id)
            self._tasks.pop(local_task_id, None)
            self._recent.pop(local_task_id, None)
            if entry is None:
                return None
            task: VideoTask = entry.value
            mapped = self._provider_map.get(task.provider_task_id)
            if mapped is not None and mapped.value == local_task_id:
                del self._provider_map[task.provider_task_id]
            return task

    async def update(self, local_task_id: str, mutate: Mutator) -> Optional[VideoTask]:
        async with self._lock:
            entry = self._live(self._tasks, local_task_id)
            if entry is None:
                return None
            task = copy.deepcopy(entry.value)
            if not mutate(task):
                return task
            task.revision += 1
            self._write(task, refresh_recent=False)
            return copy.deepcopy(task)
