"""MongoDB backend for the Task Store (TTL indexes on ``expires_at``)."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from pymongo import DESCENDING, ReturnDocument

from video_relay.core.database import Database
from video_relay.tasks.models import VideoTask
from video_relay.tasks.store import Mutator, StoreConflictError, TaskStore

logger = logging.getLogger(__name__)

TASKS_COLLECTION = "video_tasks"
PROVIDER_MAP_COLLECTION = "video_task_provider_map"
RECENT_COLLECTION = "video_task_recent"

MAX_UPDATE_ATTEMPTS = 5


class MongoTaskStore(TaskStore):
    """
    Task records live in ``video_tasks`` keyed by local id; the provider
    mapping and the recency index are separate collections. Every write
    stamps the same ``expires_at`` on all documents of a task, and Mongo's
    TTL monitor removes them. Reads filter on ``expires_at`` as well because
    the TTL monitor only runs periodically.

    Timestamps are naive UTC, which is what pymongo hands back by default.
    """

    backend_name = "mongo"

    def __init__(self, database: Database, ttl_seconds: int, *, clock: Callable[[], float] = time.time):
        super().__init__(ttl_seconds)
        self.database = database
        self._clock = clock

    def _tasks(self):
        return self.database.get_collection(TASKS_COLLECTION)

    def _provider_map(self):
        return self.database.get_collection(PROVIDER_MAP_COLLECTION)

    def _recent(self):
        return self.database.get_collection(RECENT_COLLECTION)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), timezone.utc).replace(tzinfo=None)

    def _expiry(self) -> datetime:
        return self._now() + timedelta(seconds=self.ttl_seconds)

    async def start(self) -> None:
        await self.database.connect()
        for collection in (self._tasks(), self._provider_map(), self._recent()):
            await collection.create_index("expires_at", expireAfterSeconds=0)
        await self._recent().create_index([("created_at", DESCENDING)])

    async def close(self) -> None:
        await self.database.disconnect()

    async def _write_secondary(self, task: VideoTask, expires_at: datetime, refresh_recent: bool) -> None:
        if task.provider_task_id:
            await self._provider_map().update_one(
                {"_id": task.provider_task_id},
                {"$set": {"local_task_id": task.local_task_id, "expires_at": expires_at}},
                upsert=True,
            )
        if refresh_recent:
            await self._recent().update_one(
                {"_id": task.local_task_id},
                {"$set": {"created_at": _naive(task.created_at), "expires_at": expires_at}},
                upsert=True,
            )
        else:
            await self._recent().update_one(
                {"_id": task.local_task_id},
                {"$set": {"expires_at": expires_at}},
            )

    async def put(self, task: VideoTask, *, refresh_recent: bool = False) -> None:
        expires_at = self._expiry()
        await self._tasks().replace_one(
            {"_id": task.local_task_id}, _document(task, expires_at), upsert=True
        )
        await self._write_secondary(task, expires_at, refresh_recent)

    async def get(self, local_task_id: str) -> Optional[VideoTask]:
        doc = await self._tasks().find_one(
            {"_id": local_task_id, "expires_at": {"$gt": self._now()}}
        )
        return VideoTask.from_document(doc) if doc else None

    async def resolve_by_provider_id(self, provider_task_id: str) -> Optional[str]:
        doc = await self._provider_map().find_one(
            {"_id": provider_task_id, "expires_at": {"$gt": self._now()}}
        )
        return doc.get("local_task_id") if doc else None

    async def list_recent(self, limit: int) -> List[VideoTask]:
        cursor = self._recent().find({}, {"_id": 1}).sort("created_at", DESCENDING).limit(limit)
        ids = [doc["_id"] for doc in await cursor.to_list(length=limit)]
        if not ids:
            return []

        found = {}
        async for doc in self._tasks().find({"_id": {"$in": ids}, "expires_at": {"$gt": self._now()}}):
            found[doc["_id"]] = VideoTask.from_document(doc)

        missing = [local_task_id for local_task_id in ids if local_task_id not in found]
        if missing:
            await self._recent().delete_many({"_id": {"$in": missing}})
            logger.debug(f"Pruned {len(missing)} dangling recency entries")

        return [found[local_task_id] for local_task_id in ids if local_task_id in found]

    async def delete(self, local_task_id: str) -> Optional[VideoTask]:
        doc = await self._tasks().find_one_and_delete({"_id": local_task_id})
        await self._recent().delete_one({"_id": local_task_id})
        if not doc:
            return None
        task = VideoTask.from_document(doc)
        await self._provider_map().delete_one(
            {"_id": task.provider_task_id, "local_task_id": local_task_id}
        )
        if doc.get("expires_at") and _naive(doc["expires_at"]) <= self._now():
            return None
        return task

    async def update(self, local_task_id: str, mutate: Mutator) -> Optional[VideoTask]:
        for _ in range(MAX_UPDATE_ATTEMPTS):
            task = await self.get(local_task_id)
            if task is None:
                return None
            revision = task.revision
            if not mutate(task):
                return task

            task.revision = revision + 1
            expires_at = self._expiry()
            updated = await self._tasks().find_one_and_replace(
                {"_id": local_task_id, "revision": revision},
                _document(task, expires_at),
                return_document=ReturnDocument.AFTER,
            )
            if updated is not None:
                await self._write_secondary(task, expires_at, refresh_recent=False)
                return task
            logger.debug(f"Revision conflict updating task {local_task_id}, retrying")

        raise StoreConflictError(f"Could not update task {local_task_id} after {MAX_UPDATE_ATTEMPTS} attempts")


def _document(task: VideoTask, expires_at: datetime) -> dict:
    doc = task.to_document()
    doc["created_at"] = _naive(task.created_at)
    doc["expires_at"] = expires_at
    return doc


def _naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
