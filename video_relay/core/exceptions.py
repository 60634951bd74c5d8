"""
Custom application exceptions.

Client-facing errors derive from ``AppException`` (an ``HTTPException``), so
FastAPI renders them as ``{"detail": ...}`` with the right status code.
"""

from typing import Optional

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(detail=detail, status_code=status.HTTP_401_UNAUTHORIZED)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, detail: str = "Bad request"):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class BadGatewayException(AppException):
    """An upstream dependency failed."""

    def __init__(self, detail: str = "Bad gateway"):
        super().__init__(detail=detail, status_code=status.HTTP_502_BAD_GATEWAY)


# ============================================================================
# Domain errors
# ============================================================================

class ValidationError(BadRequestException):
    """Malformed or disallowed creation request field."""


class NotFoundError(NotFoundException):
    """Unknown (or expired) local task identifier."""

    def __init__(self, detail: str = "Task not found"):
        super().__init__(detail=detail)


class UpstreamError(BadGatewayException):
    """The provider rejected task creation, was unreachable, or answered in an unexpected shape."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.upstream_status = status_code
        super().__init__(detail=message)


class DownloadError(Exception):
    """Artifact re-hosting failed. Never surfaced to clients."""
