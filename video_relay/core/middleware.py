"""Shared FastAPI middleware."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse

from video_relay.core.config import get_settings


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """
    Reject requests with bodies larger than MAX_REQUEST_BODY_BYTES.

    Creation payloads are small JSON documents; anything larger is refused
    before it reaches a handler. Paths in ``exempt_paths`` are passed through
    untouched (the provider webhook must always be acknowledged).
    """

    def __init__(self, app, max_bytes: Optional[int] = None, exempt_paths: Iterable[str] = ()):
        super().__init__(app)
        self.max_bytes = max_bytes
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        limit = self.max_bytes or int(get_settings().MAX_REQUEST_BODY_BYTES)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > limit:
                    return JSONResponse({"detail": "Payload too large."}, status_code=413)
            except ValueError:
                pass

        # For chunked / missing content-length, read body and enforce size.
        # Starlette caches request.body() so downstream handlers still can read it.
        try:
            body = await request.body()
        except Exception:
            return JSONResponse({"detail": "Invalid request body."}, status_code=400)

        if body and len(body) > limit:
            return JSONResponse({"detail": "Payload too large."}, status_code=413)

        return await call_next(request)
