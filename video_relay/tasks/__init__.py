"""Video task records and the Task Store."""

from video_relay.tasks.models import TaskMode, TaskStatus, VideoTask
from video_relay.tasks.store import MemoryTaskStore, TaskStore

__all__ = ["TaskMode", "TaskStatus", "VideoTask", "MemoryTaskStore", "TaskStore"]
