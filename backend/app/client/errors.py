"""Errors raised by the database client."""

import re
from typing import List, Optional, Type

from sqlalchemy.exc import IntegrityError

from app.errors import AppError, ErrorCode


class ClientError(AppError):
    """Base class for database client errors."""

    error_code = ErrorCode.DB_ERROR

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(self.error_code, message, details)


class RecordNotFoundError(ClientError):
    """A required record does not exist."""

    error_code = ErrorCode.NOT_FOUND


class UniqueConstraintError(ClientError):
    """An insert or update would duplicate a unique key."""

    error_code = ErrorCode.CONFLICT

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message, {"fields": fields or []})
        self.fields = fields or []


class ForeignKeyConstraintError(ClientError):
    """A write references a row that does not exist."""

    error_code = ErrorCode.INVALID_INPUT


class InvalidQueryError(ClientError):
    """The query arguments do not fit the model."""

    error_code = ErrorCode.INVALID_INPUT


_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: ([\w., ]+)", re.IGNORECASE)
_POSTGRES_KEY = re.compile(r"Key \(([^)]+)\)=")


def _violated_fields(message: str) -> List[str]:
    """Pull the offending column names out of a driver error message."""
    match = _SQLITE_UNIQUE.search(message)
    if match:
        return [part.strip().split(".")[-1] for part in match.group(1).split(",")]
    match = _POSTGRES_KEY.search(message)
    if match:
        return [part.strip() for part in match.group(1).split(",")]
    return []


def translate_integrity_error(exc: IntegrityError, model: Optional[Type] = None) -> ClientError:
    """Map a driver ``IntegrityError`` onto a client error."""
    original = getattr(exc, "orig", None)
    error_name = original.__class__.__name__ if original is not None else ""
    message = str(original if original is not None else exc)
    lowered = message.lower()
    target = model.__name__ if model is not None else "record"

    if error_name == "UniqueViolationError" or "unique" in lowered or "duplicate key" in lowered:
        fields = _violated_fields(message)
        label = ", ".join(fields) if fields else "a unique key"
        return UniqueConstraintError(f"Unique constraint failed on {target}: {label}", fields)

    if error_name == "ForeignKeyViolationError" or "foreign key" in lowered:
        return ForeignKeyConstraintError(f"Foreign key constraint failed on {target}")

    return ClientError(f"Integrity error on {target}: {message}")
