"""External service integrations."""

from app.services.lastfm import LastFMService, lastfm_service

__all__ = [
    "LastFMService",
    "lastfm_service",
]
