"""Playlists router: CRUD and song ordering for the caller's playlists."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.client import DatabaseClient, get_client
from app.errors import AppError, ErrorCode, error_boundary
from app.logging_config import log_timing
from app.models import Playlist, User
from app.routers.songs import SongData, upsert_song
from app.serializers import playlist_song_to_dict, playlist_to_dict
from app.services.auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter()

PLAYLIST_SONGS = {"songs": {"include": {"song": True}}}


# Request/Response models

class PlaylistCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    cover_image: Optional[str] = None
    is_public: bool = True


class PlaylistUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    cover_image: Optional[str] = None
    is_public: Optional[bool] = None


class AddSongRequest(BaseModel):
    song: SongData


class ReorderSongsRequest(BaseModel):
    song_ids: List[str]


async def get_owned_playlist(
    client: DatabaseClient,
    playlist_id: str,
    user: User,
    include: Optional[Dict[str, Any]] = None,
) -> Playlist:
    """Load a playlist, enforcing that ``user`` owns it."""
    playlist = await client.playlist.find_unique(where={"id": playlist_id}, include=include)
    if playlist is None:
        raise AppError(ErrorCode.NOT_FOUND, "Playlist not found")
    if playlist.user_id != user.id:
        raise AppError(ErrorCode.UNAUTHORIZED, "Not your playlist")
    return playlist


@router.get("")
async def list_playlists(
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Get the caller's playlists, most recently updated first."""
    with error_boundary(ErrorCode.DB_ERROR, "Failed to fetch playlists", logger):
        async with log_timing(logger, "Fetch playlists"):
            playlists = await client.playlist.find_many(
                where={"user_id": current_user.id},
                order_by={"updated_at": "desc"},
                include={"_count": ["songs"]},
            )
    return [playlist_to_dict(playlist) for playlist in playlists]


@router.get("/{playlist_id}")
async def get_playlist(
    playlist_id: str,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Get a playlist with its songs in order."""
    playlist = await get_owned_playlist(client, playlist_id, current_user, include=PLAYLIST_SONGS)
    return playlist_to_dict(playlist)


@router.post("")
async def create_playlist(
    request: PlaylistCreateRequest,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Create a playlist."""
    with error_boundary(ErrorCode.DB_ERROR, "Failed to create playlist", logger):
        async with log_timing(logger, "Create playlist"):
            playlist = await client.playlist.create(
                data={**request.model_dump(), "user_id": current_user.id},
                include={"_count": ["songs"]},
            )
    logger.info(f"Created playlist {playlist.id} for user {current_user.id}")
    return playlist_to_dict(playlist)


@router.patch("/{playlist_id}")
async def update_playlist(
    playlist_id: str,
    request: PlaylistUpdateRequest,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Update playlist details."""
    await get_owned_playlist(client, playlist_id, current_user)
    changes = request.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        raise AppError(ErrorCode.INVALID_INPUT, "Playlist name cannot be empty")

    with error_boundary(ErrorCode.DB_ERROR, "Failed to update playlist", logger):
        async with log_timing(logger, "Update playlist"):
            playlist = await client.playlist.update(
                where={"id": playlist_id},
                data=changes,
                include={"_count": ["songs"]},
            )
    return playlist_to_dict(playlist)


@router.delete("/{playlist_id}")
async def delete_playlist(
    playlist_id: str,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Delete a playlist; its entries and any shared post go with it."""
    await get_owned_playlist(client, playlist_id, current_user)
    with error_boundary(ErrorCode.DB_ERROR, "Failed to delete playlist", logger):
        async with log_timing(logger, "Delete playlist"):
            await client.playlist.delete(where={"id": playlist_id})
    logger.info(f"Deleted playlist {playlist_id}")
    return {"status": "deleted", "id": playlist_id}


@router.post("/{playlist_id}/songs")
async def add_song(
    playlist_id: str,
    request: AddSongRequest,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Append a song to the playlist; a song already present keeps its position."""
    await get_owned_playlist(client, playlist_id, current_user)

    with error_boundary(ErrorCode.DB_ERROR, "Failed to add song to playlist", logger):
        async with log_timing(logger, "Upsert song"):
            song = await upsert_song(client, request.song)

        positions = await client.playlist_song.aggregate(
            where={"playlist_id": playlist_id},
            max=["position"],
        )
        highest = positions["_max"]["position"]
        next_position = 0 if highest is None else highest + 1

        async with log_timing(logger, "Add playlist song"):
            entry = await client.playlist_song.upsert(
                where={"playlist_id_song_id": {"playlist_id": playlist_id, "song_id": song.id}},
                create={"playlist_id": playlist_id, "song_id": song.id, "position": next_position},
                update={},
                include={"song": True},
            )
    logger.info(f"Song {song.id} at position {entry.position} in playlist {playlist_id}")
    return playlist_song_to_dict(entry)


@router.delete("/{playlist_id}/songs/{song_id}")
async def remove_song(
    playlist_id: str,
    song_id: str,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Remove a song from the playlist."""
    await get_owned_playlist(client, playlist_id, current_user)
    with error_boundary(ErrorCode.DB_ERROR, "Failed to remove song from playlist", logger):
        await client.playlist_song.delete(
            where={"playlist_id_song_id": {"playlist_id": playlist_id, "song_id": song_id}}
        )
    return {"status": "removed", "playlist_id": playlist_id, "song_id": song_id}


@router.put("/{playlist_id}/songs/order")
async def reorder_songs(
    playlist_id: str,
    request: ReorderSongsRequest,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Rewrite song positions to match the order of ``song_ids``."""
    await get_owned_playlist(client, playlist_id, current_user)

    with error_boundary(ErrorCode.DB_ERROR, "Failed to reorder songs", logger):
        async with log_timing(logger, "Reorder songs"):
            async with client.transaction():
                for index, song_id in enumerate(request.song_ids):
                    await client.playlist_song.update(
                        where={"playlist_id_song_id": {"playlist_id": playlist_id, "song_id": song_id}},
                        data={"position": index},
                    )
    return {"success": True}
