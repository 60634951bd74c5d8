"""Provider callback payload and its decoding rules."""

from __future__ import annotations

import json
import logging
import math
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from video_relay.tasks.models import TaskStatus

logger = logging.getLogger(__name__)

# Provider task states -> local status.
PROVIDER_STATE_MAP = {
    "waiting": TaskStatus.QUEUED,
    "queuing": TaskStatus.QUEUED,
    "queued": TaskStatus.QUEUED,
    "generating": TaskStatus.RUNNING,
    "running": TaskStatus.RUNNING,
    "success": TaskStatus.SUCCESS,
    "fail": TaskStatus.FAIL,
}

# Keys tried, in order, inside a decoded resultJson object.
RESULT_URL_KEYS = ("resultUrls", "resultUrl")

# Keys tried, in order, for the failure message.
FAIL_MESSAGE_KEYS = ("fail_msg", "msg", "fail_code")
DEFAULT_FAIL_MESSAGE = "Provider task failed"


class CallbackData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    task_id: Optional[Any] = Field(None, alias="taskId")
    state: Optional[Any] = None
    progress: Optional[Any] = None
    result_json: Optional[Any] = Field(None, alias="resultJson")
    fail_msg: Optional[Any] = Field(None, alias="failMsg")
    msg: Optional[Any] = None
    fail_code: Optional[Any] = Field(None, alias="failCode")

    @property
    def provider_task_id(self) -> Optional[str]:
        if self.task_id in (None, ""):
            return None
        return str(self.task_id)

    @property
    def status(self) -> Optional[TaskStatus]:
        if not self.state:
            return None
        return PROVIDER_STATE_MAP.get(str(self.state).strip().lower())

    def fail_message(self) -> str:
        for key in FAIL_MESSAGE_KEYS:
            value = getattr(self, key)
            if value not in (None, ""):
                return str(value)
        return DEFAULT_FAIL_MESSAGE


class CallbackEvent(BaseModel):
    """``{"data": {...}}`` as pushed by the provider."""
    model_config = ConfigDict(extra="allow")

    data: CallbackData = Field(default_factory=CallbackData)


def normalize_progress(value: Any) -> Optional[float]:
    """
    Progress as a 0-100 number.

    A non-integral value between 0 and 1 is a fraction and is scaled up.
    Anything non-numeric is ignored (None).
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    if 0 < number < 1:
        number *= 100
    return min(max(number, 0.0), 100.0)


def _first_url(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item.strip():
                return item.strip()
    return None


def _url_from_object(payload: dict) -> Optional[str]:
    for key in RESULT_URL_KEYS:
        url = _first_url(payload.get(key))
        if url:
            return url
    return None


def decode_result_url(raw: Any) -> Optional[str]:
    """
    Extract the result video URL from ``resultJson``.

    Accepted variants, in order:

    - an object (or a JSON string encoding one) carrying ``resultUrls``
      (list: first non-empty entry, or a single string) then ``resultUrl``;
    - a list of URLs;
    - a bare string starting with ``http`` that is not JSON.
    """
    if raw is None or raw == "":
        return None

    if isinstance(raw, str):
        text = raw.strip()
        try:
            decoded = json.loads(text)
        except ValueError:
            if text.startswith("http"):
                return text
            logger.warning("Failed to parse resultJson")
            return None
        if isinstance(decoded, str):
            return decoded.strip() if decoded.strip().startswith("http") else None
        raw = decoded

    if isinstance(raw, dict):
        return _url_from_object(raw)
    if isinstance(raw, list):
        return _first_url(raw)
    return None


def parse_event(payload: Any) -> Optional[CallbackEvent]:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    return CallbackEvent.model_validate(payload)


class CallbackAck(BaseModel):
    ok: bool = True


class CallbackOutcome(str, Enum):
    """What the reconciler did with an event; logged and returned for tests."""
    MALFORMED = "malformed"
    UNKNOWN_TASK = "unknown_task"
    MISSING_TASK = "missing_task"
    TERMINAL_IGNORED = "terminal_ignored"
    STALE_IGNORED = "stale_ignored"
    UPDATED = "updated"
    ERROR = "error"
