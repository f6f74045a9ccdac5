"""Session-token authentication."""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Cookie, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.client import DatabaseClient, get_client
from app.config import get_settings
from app.errors import AppError, ErrorCode
from app.models import Session, User

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"

bearer_scheme = HTTPBearer(auto_error=False)


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def session_expiry(now: Optional[datetime] = None) -> datetime:
    """Expiry timestamp for a session created at ``now``."""
    settings = get_settings()
    return (now or datetime.utcnow()) + timedelta(days=settings.session_max_age_days)


async def create_session(client: DatabaseClient, user_id: str) -> Session:
    """Create a fresh login session for ``user_id``."""
    session = await client.session.create(
        data={
            "session_token": new_session_token(),
            "user_id": user_id,
            "expires": session_expiry(),
        }
    )
    logger.info(f"Created session for user {user_id}")
    return session


async def get_session_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session_token: Optional[str] = Cookie(default=None),
) -> Optional[str]:
    """Read the session token from the bearer header, falling back to the cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return session_token


async def get_current_session(
    token: Optional[str] = Depends(get_session_token),
    client: DatabaseClient = Depends(get_client),
) -> Optional[Session]:
    """Resolve the request's session; expired or unknown tokens resolve to None."""
    if not token:
        return None

    session = await client.session.find_unique(
        where={"session_token": token},
        include={"user": True},
    )
    if session is None:
        return None
    if session.expires <= datetime.utcnow():
        logger.info(f"Rejected expired session for user {session.user_id}")
        return None
    return session


async def get_current_user(
    session: Optional[Session] = Depends(get_current_session),
) -> Optional[User]:
    """Get the current user, or None for anonymous requests."""
    return session.user if session else None


async def require_user(
    current_user: Optional[User] = Depends(get_current_user),
) -> User:
    """Require an authenticated user. Raises 401 if not authenticated."""
    if not current_user:
        raise AppError(ErrorCode.AUTH_FAILED, "Authentication required")
    return current_user
