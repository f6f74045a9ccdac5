"""Application error taxonomy.

``AppError`` is an ``HTTPException`` so routers can raise it directly; the
status code is derived from the error code.
"""

import enum
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes returned to API clients."""
    AUTH_FAILED = "AUTH_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    LASTFM_API_ERROR = "LASTFM_API_ERROR"
    DB_ERROR = "DB_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL = "INTERNAL"


ERROR_STATUS_MAP = {
    ErrorCode.AUTH_FAILED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.LASTFM_API_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.DB_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppError(HTTPException):
    """An error with a stable code, a user-facing message and optional details."""

    def __init__(self, code: ErrorCode, message: str, details: Optional[Any] = None):
        headers = {"WWW-Authenticate": "Bearer"} if code == ErrorCode.AUTH_FAILED else None
        super().__init__(status_code=ERROR_STATUS_MAP[code], detail=message, headers=headers)
        self.code = code
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


async def app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as ``{"detail": ..., "code": ...}``."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code.value},
        headers=exc.headers,
    )


@contextmanager
def error_boundary(code: ErrorCode, message: str, logger: Optional[logging.Logger] = None) -> Iterator[None]:
    """Re-raise anything that is not already an AppError as ``AppError(code, message)``.

    Usage::

        with error_boundary(ErrorCode.DB_ERROR, "Failed to create playlist", logger):
            playlist = await client.playlist.create(...)
    """
    try:
        yield
    except AppError:
        raise
    except Exception as exc:
        if logger is not None:
            logger.error(f"{message}: {exc}", extra={"exception_class": exc.__class__.__name__})
        raise AppError(code, message) from exc
