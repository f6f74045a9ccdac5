"""Schema-driven database client."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.client.client import DatabaseClient
from app.client.delegate import ModelDelegate
from app.client.errors import (
    ClientError,
    ForeignKeyConstraintError,
    InvalidQueryError,
    RecordNotFoundError,
    UniqueConstraintError,
)
from app.database import get_db


async def get_client(db: AsyncSession = Depends(get_db)) -> DatabaseClient:
    """FastAPI dependency returning a client bound to the request session."""
    return DatabaseClient(db)


__all__ = [
    "DatabaseClient",
    "ModelDelegate",
    "ClientError",
    "ForeignKeyConstraintError",
    "InvalidQueryError",
    "RecordNotFoundError",
    "UniqueConstraintError",
    "get_client",
]
