"""Allow-lists and normalization for creation requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from video_relay.core.exceptions import ValidationError
from video_relay.tasks.models import TaskMode
from video_relay.videos.models import VideoCreateRequest

# Input aspect ratio -> provider vocabulary.
ASPECT_RATIO_MAP = {
    "16:9": "landscape",
    "9:16": "portrait",
    "1:1": "square",
    "landscape": "landscape",
    "portrait": "portrait",
    "square": "square",
}

# Requested seconds -> provider n_frames.
DURATION_FRAMES_MAP = {
    5: "10",
    10: "10",
    15: "15",
}


@dataclass(frozen=True)
class NormalizedRequest:
    mode: TaskMode
    prompt: str
    duration: int
    aspect_ratio: str
    n_frames: str
    provider_aspect_ratio: str
    image_urls: List[str] = field(default_factory=list)
    character_id_list: List[str] = field(default_factory=list)


def resolve_image_urls(image_url: Optional[str], image_urls: Optional[List[Optional[str]]]) -> List[str]:
    """Non-empty entries of ``image_urls``; falls back to ``[image_url]`` when the list yields nothing."""
    urls = [u.strip() for u in (image_urls or []) if isinstance(u, str) and u.strip()]
    if urls:
        return urls
    if image_url and image_url.strip():
        return [image_url.strip()]
    return []


def resolve_aspect_ratio(value: str) -> str:
    provider_value = ASPECT_RATIO_MAP.get((value or "").strip())
    if not provider_value:
        raise ValidationError("Invalid aspect_ratio")
    return provider_value


def resolve_duration(value: Union[int, str, None]) -> int:
    if isinstance(value, bool):
        raise ValidationError("Invalid duration")
    try:
        seconds = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid duration")
    if seconds not in DURATION_FRAMES_MAP:
        raise ValidationError("Invalid duration")
    return seconds


def normalize_request(request: VideoCreateRequest) -> NormalizedRequest:
    """Check a creation request against the allow-lists; raises ``ValidationError``."""
    prompt = (request.prompt or "").strip()
    if not request.mode or not prompt:
        raise ValidationError("Missing required fields")

    try:
        mode = TaskMode(request.mode)
    except ValueError:
        raise ValidationError("Invalid mode")

    image_urls = resolve_image_urls(request.image_url, request.image_urls)
    if mode is TaskMode.IMAGE_TO_VIDEO and not image_urls:
        raise ValidationError("image_url or image_urls is required for i2v")

    provider_aspect_ratio = resolve_aspect_ratio(request.aspect_ratio)
    duration = resolve_duration(request.duration)

    return NormalizedRequest(
        mode=mode,
        prompt=prompt,
        duration=duration,
        aspect_ratio=request.aspect_ratio.strip(),
        n_frames=DURATION_FRAMES_MAP[duration],
        provider_aspect_ratio=provider_aspect_ratio,
        image_urls=image_urls if mode is TaskMode.IMAGE_TO_VIDEO else [],
        character_id_list=[c for c in (request.character_id_list or []) if c],
    )
