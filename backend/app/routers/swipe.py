"""Swipe router: discovery feed, swipe recording and history."""

import asyncio
import logging
import random
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.client import DatabaseClient, get_client
from app.errors import AppError, ErrorCode, error_boundary
from app.logging_config import log_timing
from app.models import SwipeDirection, User
from app.routers.songs import SongData, upsert_song
from app.serializers import page, swipe_to_dict
from app.services.auth import require_user
from app.services.lastfm import lastfm_service

logger = logging.getLogger(__name__)

router = APIRouter()

TOP_ARTIST_LIMIT = 5
SEED_ARTISTS = 3
SIMILAR_PER_ARTIST = 3
SIMILAR_ARTIST_LIMIT = 5
TRACKS_PER_ARTIST = 5


class SwipeRequest(BaseModel):
    song: SongData
    action: SwipeDirection


async def get_lastfm_session_key(client: DatabaseClient, user_id: str) -> str:
    """The Last.fm session key stored on the user's linked account."""
    account = await client.account.find_first(where={"user_id": user_id, "provider": "lastfm"})
    if account is None or not account.access_token:
        raise AppError(ErrorCode.AUTH_FAILED, "Last.fm account not connected")
    return account.access_token


@router.get("/feed")
async def get_discovery_feed(
    limit: int = Query(20, ge=1, le=50),
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Recommend unswiped tracks by artists similar to the user's top artists."""
    session_key = await get_lastfm_session_key(client, current_user.id)

    with error_boundary(ErrorCode.LASTFM_API_ERROR, "Failed to generate discovery feed", logger):
        async with log_timing(logger, "Fetch top artists"):
            top_artists = await lastfm_service.get_user_top_artists(session_key, limit=TOP_ARTIST_LIMIT)
        if not top_artists:
            logger.info(f"No top artists for user {current_user.id}, returning empty feed")
            return []

        async with log_timing(logger, "Fetch similar artists"):
            similar_results = await asyncio.gather(*[
                lastfm_service.get_similar_artists(name, limit=SIMILAR_PER_ARTIST)
                for name in top_artists[:SEED_ARTISTS]
            ])
        similar_names = []
        for result in similar_results:
            for artist in result:
                if artist["name"] not in similar_names:
                    similar_names.append(artist["name"])

        async with log_timing(logger, "Fetch artist top tracks"):
            track_results = await asyncio.gather(*[
                lastfm_service.get_artist_top_tracks(name, limit=TRACKS_PER_ARTIST)
                for name in similar_names[:SIMILAR_ARTIST_LIMIT]
            ])

        candidates = []
        seen = set()
        for result in track_results:
            for track in result:
                if track["external_id"] in seen:
                    continue
                seen.add(track["external_id"])
                candidates.append(track)

    with error_boundary(ErrorCode.DB_ERROR, "Failed to generate discovery feed", logger):
        swiped = await client.song.find_many(
            where={
                "external_id": {"in": sorted(seen)},
                "swipe_actions": {"some": {"user_id": current_user.id}},
            }
        )
    swiped_ids = {song.external_id for song in swiped}

    feed = [track for track in candidates if track["external_id"] not in swiped_ids]
    random.shuffle(feed)
    logger.info(
        f"Discovery feed for user {current_user.id}: "
        f"{len(candidates)} candidates, {len(feed)} unswiped, returning {min(limit, len(feed))}"
    )
    return feed[:limit]


@router.post("")
async def record_swipe(
    request: SwipeRequest,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Record a swipe; swiping the same song again replaces the action."""
    with error_boundary(ErrorCode.DB_ERROR, "Failed to record swipe", logger):
        async with log_timing(logger, "Upsert song"):
            song = await upsert_song(client, request.song)
        async with log_timing(logger, "Upsert swipe action"):
            swipe = await client.swipe_action.upsert(
                where={"user_id_song_id": {"user_id": current_user.id, "song_id": song.id}},
                update={"action": request.action.value},
                create={"user_id": current_user.id, "song_id": song.id, "action": request.action.value},
                include={"song": True},
            )
    logger.info(f"Recorded swipe {swipe.id} ({swipe.action}) for user {current_user.id}")
    return swipe_to_dict(swipe)


@router.get("/history")
async def get_swipe_history(
    action: Optional[SwipeDirection] = None,
    limit: int = Query(20, ge=1, le=50),
    cursor: Optional[str] = None,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Swipes newest first; `next_cursor` is the id of the last swipe returned."""
    where = {"user_id": current_user.id}
    if action is not None:
        where["action"] = action.value

    with error_boundary(ErrorCode.DB_ERROR, "Failed to fetch swipe history", logger):
        async with log_timing(logger, "Fetch swipe history"):
            swipes = await client.swipe_action.find_many(
                where=where,
                include={"song": True},
                order_by={"created_at": "desc"},
                take=limit + 1,
                cursor={"id": cursor} if cursor else None,
                skip=1 if cursor else None,
            )

    next_cursor = None
    if len(swipes) > limit:
        swipes.pop()
        next_cursor = swipes[-1].id
    return page([swipe_to_dict(swipe) for swipe in swipes], next_cursor)


@router.get("/stats")
async def get_swipe_stats(
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Swipe counts per action."""
    with error_boundary(ErrorCode.DB_ERROR, "Failed to fetch swipe stats", logger):
        groups = await client.swipe_action.group_by(
            by=["action"],
            where={"user_id": current_user.id},
            count=True,
        )

    by_action = {direction.value: 0 for direction in SwipeDirection}
    for group in groups:
        by_action[group["action"]] = group["_count"]
    return {"total": sum(by_action.values()), "by_action": by_action}
