import pytest

from app.errors import AppError, ErrorCode
from app.routers import songs
from conftest import build_app, http_client

BELIEVE = {"title": "Believe", "artist": "Cher", "external_id": "cher:believe"}


@pytest.mark.asyncio
async def test_find_or_create_song_is_keyed_by_external_id(client, alice):
    app = build_app(songs.router, "/api/songs", client, user=alice)

    async with http_client(app) as http:
        created = await http.post("/api/songs", json=BELIEVE)
        refreshed = await http.post("/api/songs", json={**BELIEVE, "album": "Believe", "duration": 239})
        missing_title = await http.post("/api/songs", json={"artist": "Cher", "external_id": "cher:x"})

    assert created.status_code == 200
    assert created.json()["album"] is None
    assert refreshed.json()["id"] == created.json()["id"]
    assert refreshed.json()["album"] == "Believe"
    assert refreshed.json()["duration"] == 239
    assert missing_title.status_code == 422
    assert await client.song.count() == 1


@pytest.mark.asyncio
async def test_upsert_keeps_metadata_that_was_not_sent(client, alice):
    app = build_app(songs.router, "/api/songs", client, user=alice)

    async with http_client(app) as http:
        await http.post("/api/songs", json={**BELIEVE, "album": "Believe"})
        again = await http.post("/api/songs", json=BELIEVE)

    assert again.json()["album"] == "Believe"


@pytest.mark.asyncio
async def test_search_proxies_lastfm(client, monkeypatch):
    received = {}

    async def search_tracks(query, limit=10):
        received.update(query=query, limit=limit)
        return [{"name": "Believe", "artist": "Cher"}]

    monkeypatch.setattr(songs.lastfm_service, "search_tracks", search_tracks)
    app = build_app(songs.router, "/api/songs", client)

    async with http_client(app) as http:
        response = await http.get("/api/songs/search", params={"query": "believe", "limit": 3})
        too_many = await http.get("/api/songs/search", params={"query": "believe", "limit": 500})

    assert response.json() == [{"name": "Believe", "artist": "Cher"}]
    assert received == {"query": "believe", "limit": 3}
    assert too_many.status_code == 422


@pytest.mark.asyncio
async def test_track_info_errors_map_to_bad_gateway(client, monkeypatch):
    async def get_track_info(track, artist):
        raise AppError(ErrorCode.LASTFM_API_ERROR, "Failed to get track info")

    monkeypatch.setattr(songs.lastfm_service, "get_track_info", get_track_info)
    app = build_app(songs.router, "/api/songs", client)

    async with http_client(app) as http:
        response = await http.get("/api/songs/info", params={"track": "Believe", "artist": "Cher"})

    assert response.status_code == 502
    assert response.json() == {"detail": "Failed to get track info", "code": "LASTFM_API_ERROR"}
