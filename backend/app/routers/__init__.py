"""API routers."""

from app.routers import (
    auth,
    health,
    playlists,
    social,
    songs,
    swipe,
)

__all__ = [
    "auth",
    "health",
    "playlists",
    "social",
    "songs",
    "swipe",
]
