"""Authentication router: Last.fm web auth and session management."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from app.client import DatabaseClient, get_client
from app.config import get_settings
from app.errors import AppError, ErrorCode, error_boundary
from app.logging_config import log_timing
from app.models import Session, User
from app.serializers import user_to_dict
from app.services.auth import SESSION_COOKIE, create_session, get_current_session, require_user
from app.services.lastfm import lastfm_service

logger = logging.getLogger(__name__)

router = APIRouter()

LASTFM_PROVIDER = "lastfm"


def lastfm_email(username: str) -> str:
    """Placeholder address keying Last.fm users, who have no email."""
    return f"{username}@last.fm"


@router.get("/lastfm/login")
async def lastfm_login():
    """Return the Last.fm URL the browser should visit to authorize the app."""
    return {"auth_url": lastfm_service.get_auth_url()}


@router.get("/lastfm/callback")
async def lastfm_callback(
    response: Response,
    token: str = Query(..., min_length=1),
    client: DatabaseClient = Depends(get_client),
):
    """Exchange the callback token for a session and sign the user in.

    Creates or refreshes the user and their Last.fm account (the session key is
    stored as the account's access token), then opens a new login session.
    """
    profile = await lastfm_service.get_session(token)
    username = profile["username"]
    if not username:
        raise AppError(ErrorCode.AUTH_FAILED, "Last.fm profile is missing a username")

    with error_boundary(ErrorCode.DB_ERROR, "Failed to sign in", logger):
        async with log_timing(logger, "Upsert Last.fm user"):
            async with client.transaction():
                user = await client.user.upsert(
                    where={"email": lastfm_email(username)},
                    update={"name": username, "image": profile["image"]},
                    create={
                        "email": lastfm_email(username),
                        "name": username,
                        "image": profile["image"],
                    },
                )
                await client.account.upsert(
                    where={
                        "provider_provider_account_id": {
                            "provider": LASTFM_PROVIDER,
                            "provider_account_id": username,
                        }
                    },
                    update={"access_token": profile["session_key"], "token_type": "Bearer"},
                    create={
                        "user_id": user.id,
                        "type": "oauth",
                        "provider": LASTFM_PROVIDER,
                        "provider_account_id": username,
                        "access_token": profile["session_key"],
                        "token_type": "Bearer",
                    },
                )
                session = await create_session(client, user.id)

    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        session.session_token,
        max_age=settings.session_max_age_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )
    logger.info(f"User {user.id} signed in with Last.fm")
    return {
        "session_token": session.session_token,
        "expires": session.expires.isoformat(),
        "user": user_to_dict(user),
    }


@router.get("/me")
async def get_me(current_user: User = Depends(require_user)):
    """Get the signed-in user."""
    return user_to_dict(current_user)


@router.post("/logout")
async def logout(
    response: Response,
    session: Optional[Session] = Depends(get_current_session),
    client: DatabaseClient = Depends(get_client),
):
    """End the current session."""
    if session is None:
        raise AppError(ErrorCode.AUTH_FAILED, "Authentication required")

    await client.session.delete(where={"id": session.id})
    response.delete_cookie(SESSION_COOKIE, path="/")
    return {"status": "logged_out"}
