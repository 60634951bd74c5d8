"""
Common dependencies for FastAPI routes.

Services are built once in the application lifespan and kept on
``app.state``; handlers reach them through these functions.
"""

import hmac

from fastapi import Header, Request

from video_relay.core.config import Settings
from video_relay.core.exceptions import UnauthorizedException


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_app_token(
    request: Request,
    x_app_token: str = Header(default="", alias="X-APP-TOKEN"),
) -> str:
    """
    Shared-secret check for first-party routes.

    If APP_TOKEN is not configured, deny everything (fail closed).
    """
    expected = (get_app_settings(request).APP_TOKEN or "").strip()
    provided = (x_app_token or "").strip()

    if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise UnauthorizedException("Unauthorized")
    return provided


def get_video_service(request: Request):
    return request.app.state.video_service


def get_callback_reconciler(request: Request):
    return request.app.state.callback_reconciler
