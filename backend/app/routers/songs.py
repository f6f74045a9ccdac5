"""Songs router: Last.fm lookups and song registration."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.client import DatabaseClient, get_client
from app.errors import ErrorCode, error_boundary
from app.logging_config import log_timing
from app.models import User
from app.serializers import song_to_dict
from app.services.auth import require_user
from app.services.lastfm import lastfm_service

logger = logging.getLogger(__name__)

router = APIRouter()


class SongData(BaseModel):
    title: str = Field(..., min_length=1)
    artist: str = Field(..., min_length=1)
    album: Optional[str] = None
    album_art: Optional[str] = None
    lastfm_url: Optional[str] = None
    duration: Optional[int] = None
    external_id: str = Field(..., min_length=1)


async def upsert_song(client: DatabaseClient, data: SongData):
    """Find a song by external id, refreshing its metadata, or create it."""
    fields = data.model_dump(exclude={"external_id"}, exclude_unset=True)
    return await client.song.upsert(
        where={"external_id": data.external_id},
        update=fields,
        create={**fields, "external_id": data.external_id},
    )


@router.get("/search")
async def search_songs(
    query: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
):
    """Search songs via Last.fm."""
    async with log_timing(logger, "Last.fm track search"):
        tracks = await lastfm_service.search_tracks(query, limit)
    logger.info(f"Song search for '{query}' returned {len(tracks)} results")
    return tracks


@router.get("/info")
async def get_song_info(
    track: str = Query(..., min_length=1),
    artist: str = Query(..., min_length=1),
):
    """Get detailed track info from Last.fm."""
    async with log_timing(logger, "Last.fm track info"):
        return await lastfm_service.get_track_info(track, artist)


@router.post("")
async def find_or_create_song(
    request: SongData,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Find a song in the database or create it."""
    with error_boundary(ErrorCode.DB_ERROR, "Failed to create or find song", logger):
        async with log_timing(logger, "Upsert song"):
            song = await upsert_song(client, request)
    return song_to_dict(song)
