"""Last.fm API integration: web auth, track search and discovery."""

import asyncio
from typing import Optional, List, Dict, Any, Tuple
from urllib.parse import urlencode
import logging

import pylast

from app.config import get_settings
from app.errors import AppError, ErrorCode

logger = logging.getLogger(__name__)

LASTFM_HOMEPAGE = "https://www.last.fm"


def track_external_id(artist: str, title: str) -> str:
    """Stable song key shared by the swipe feed and stored songs."""
    return f"{artist}:{title}".lower()


class LastFMService:
    """Last.fm API service for authentication, search and recommendations."""

    def __init__(self):
        """Initialize Last.fm client."""
        self._network: Optional[pylast.LastFMNetwork] = None

    @property
    def network(self) -> Optional[pylast.LastFMNetwork]:
        """Get or create Last.fm network."""
        settings = get_settings()
        if self._network is None and settings.lastfm_api_key:
            try:
                self._network = pylast.LastFMNetwork(
                    api_key=settings.lastfm_api_key,
                    api_secret=settings.lastfm_shared_secret,
                )
            except Exception as e:
                logger.error(f"Failed to initialize Last.fm network: {e}")
        return self._network

    @property
    def is_available(self) -> bool:
        """Check if Last.fm service is available."""
        return self.network is not None

    def _require_network(self) -> pylast.LastFMNetwork:
        network = self.network
        if network is None:
            raise AppError(ErrorCode.LASTFM_API_ERROR, "Last.fm is not configured")
        return network

    def _session_network(self, session_key: str) -> pylast.LastFMNetwork:
        """A network bound to one user's session key."""
        settings = get_settings()
        self._require_network()
        return pylast.LastFMNetwork(
            api_key=settings.lastfm_api_key,
            api_secret=settings.lastfm_shared_secret,
            session_key=session_key,
        )

    # -------------------------------------------------------------------------
    # AUTH
    # -------------------------------------------------------------------------

    def get_auth_url(self) -> str:
        """Web auth URL the user is sent to; Last.fm redirects back with ?token=."""
        settings = get_settings()
        self._require_network()
        query = urlencode({"api_key": settings.lastfm_api_key, "cb": settings.lastfm_callback_url})
        return f"{LASTFM_HOMEPAGE}/api/auth/?{query}"

    def _fetch_session(self, token: str) -> Tuple[str, str, Optional[str]]:
        """Blocking: exchange a web auth token for (session key, username, image)."""
        network = self._require_network()
        generator = pylast.SessionKeyGenerator(network)
        session_key, username = generator.get_web_auth_session_key_username(url=None, token=token)
        image = None
        try:
            image = network.get_user(username).get_image()
        except pylast.PyLastError:
            logger.debug(f"No Last.fm profile image for {username}")
        return session_key, username, image

    async def get_session(self, token: str) -> Dict[str, Any]:
        """Exchange the callback token for a session key and profile."""
        try:
            session_key, username, image = await asyncio.to_thread(self._fetch_session, token)
        except AppError:
            raise
        except Exception as e:
            logger.error(f"Last.fm session exchange failed: {e}")
            raise AppError(ErrorCode.AUTH_FAILED, "Last.fm authentication failed") from e
        return {"session_key": session_key, "username": username, "image": image}

    # -------------------------------------------------------------------------
    # TRACKS
    # -------------------------------------------------------------------------

    def _fetch_tracks(self, query: str, limit: int) -> List[Dict[str, Any]]:
        """Blocking: search for tracks via pylast."""
        results = self._require_network().search_for_track("", query)
        tracks = results.get_next_page()[:limit]
        # Listeners and artwork come with the search page; no per-track lookups
        track_results = []
        for track in tracks:
            images = (track.info or {}).get("image") or []
            track_results.append({
                "name": track.title,
                "artist": track.artist.name if track.artist else None,
                "url": track.get_url(),
                "listeners": getattr(track, "listener_count", None) or 0,
                "image": next((url for url in reversed(images) if url), None),
            })
        return track_results

    async def search_tracks(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Search for tracks."""
        try:
            return await asyncio.to_thread(self._fetch_tracks, query, limit)
        except AppError:
            raise
        except Exception as e:
            logger.error(f"Last.fm track search failed: {e}")
            raise AppError(ErrorCode.LASTFM_API_ERROR, "Failed to search tracks") from e

    def _fetch_track_info(self, track_title: str, artist_name: str) -> Dict[str, Any]:
        """Blocking: fetch detailed track info via pylast."""
        track = self._require_network().get_track(artist_name, track_title)

        album = None
        try:
            lastfm_album = track.get_album()
            if lastfm_album:
                album = {
                    "title": lastfm_album.title,
                    "artist": lastfm_album.artist.name if lastfm_album.artist else None,
                    "url": lastfm_album.get_url(),
                    "image": lastfm_album.get_cover_image(),
                }
        except Exception:
            pass

        wiki = None
        try:
            wiki = track.get_wiki_content()
        except Exception:
            pass

        return {
            "name": track.title,
            "artist": track.artist.name,
            "url": track.get_url(),
            "playcount": track.get_playcount() or 0,
            "listeners": track.get_listener_count() or 0,
            "duration": track.get_duration(),
            "album": album,
            "image": album["image"] if album else None,
            "wiki": wiki,
        }

    async def get_track_info(self, track_title: str, artist_name: str) -> Dict[str, Any]:
        """Get detailed track info."""
        try:
            return await asyncio.to_thread(self._fetch_track_info, track_title, artist_name)
        except AppError:
            raise
        except Exception as e:
            logger.error(f"Last.fm get track info failed: {e}")
            raise AppError(ErrorCode.LASTFM_API_ERROR, "Failed to get track info") from e

    # -------------------------------------------------------------------------
    # DISCOVERY
    # -------------------------------------------------------------------------

    def _fetch_user_top_artists(self, session_key: str, period: str, limit: int) -> List[str]:
        """Blocking: fetch the authenticated user's top artists via pylast."""
        user = self._session_network(session_key).get_authenticated_user()
        return [item.item.name for item in user.get_top_artists(period=period, limit=limit)]

    async def get_user_top_artists(
        self,
        session_key: str,
        period: str = pylast.PERIOD_3MONTHS,
        limit: int = 5,
    ) -> List[str]:
        """Get the names of a user's top artists."""
        try:
            return await asyncio.to_thread(self._fetch_user_top_artists, session_key, period, limit)
        except AppError:
            raise
        except Exception as e:
            logger.error(f"Last.fm get user top artists failed: {e}")
            raise AppError(ErrorCode.LASTFM_API_ERROR, "Failed to fetch top artists") from e

    def _fetch_similar_artists(self, artist_name: str, limit: int) -> List[Dict[str, Any]]:
        """Blocking: fetch similar artists via pylast."""
        artist = self._require_network().get_artist(artist_name)
        similar = artist.get_similar(limit=limit)
        return [
            {
                "name": item.item.name,
                "match": item.match,
                "url": item.item.get_url(),
            }
            for item in similar
        ]

    async def get_similar_artists(
        self,
        artist_name: str,
        limit: int = 3,
    ) -> List[Dict[str, Any]]:
        """Get similar artists."""
        if not self.network:
            return []

        try:
            return await asyncio.to_thread(self._fetch_similar_artists, artist_name, limit)
        except Exception as e:
            logger.error(f"Last.fm get similar artists failed: {e}")
            return []

    def _fetch_artist_top_tracks(self, artist_name: str, limit: int) -> List[Dict[str, Any]]:
        """Blocking: fetch an artist's top tracks via pylast."""
        artist = self._require_network().get_artist(artist_name)
        tracks = artist.get_top_tracks(limit=limit)
        results = []
        for item in tracks:
            track = item.item
            track_artist = track.artist.name if track.artist else artist_name
            results.append({
                "name": track.title,
                "artist": track_artist,
                "url": track.get_url(),
                "image": None,
                "external_id": track_external_id(track_artist, track.title),
            })
        return results

    async def get_artist_top_tracks(
        self,
        artist_name: str,
        limit: int = 5,
    ) -> List[Dict[str, Any]]:
        """Get an artist's top tracks by play count."""
        if not self.network:
            return []

        try:
            return await asyncio.to_thread(self._fetch_artist_top_tracks, artist_name, limit)
        except Exception as e:
            logger.error(f"Last.fm get artist top tracks failed: {e}")
            return []


# Singleton instance
lastfm_service = LastFMService()
