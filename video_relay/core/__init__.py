"""Core module - config, database, exceptions."""

from video_relay.core.config import get_settings, Settings
from video_relay.core.database import Database
from video_relay.core.exceptions import (
    AppException,
    NotFoundException,
    UnauthorizedException,
    BadRequestException,
)

__all__ = [
    "get_settings",
    "Settings",
    "Database",
    "AppException",
    "NotFoundException",
    "UnauthorizedException",
    "BadRequestException",
]
