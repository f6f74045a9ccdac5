from datetime import datetime, timedelta

import pytest

from app.errors import AppError, ErrorCode
from app.routers import auth
from app.services.auth import SESSION_COOKIE
from conftest import build_app, http_client


@pytest.fixture
def lastfm_profile(monkeypatch):
    async def get_session(token):
        if token != "good-token":
            raise AppError(ErrorCode.AUTH_FAILED, "Last.fm authentication failed")
        return {"session_key": "lastfm-session-key", "username": "rj", "image": "https://img/rj.png"}

    monkeypatch.setattr(auth.lastfm_service, "get_session", get_session)


@pytest.mark.asyncio
async def test_callback_creates_user_account_and_session(client, lastfm_profile):
    app = build_app(auth.router, "/api/auth", client)

    async with http_client(app) as http:
        response = await http.get("/api/auth/lastfm/callback", params={"token": "good-token"})

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["email"] == "rj@last.fm"
    assert body["user"]["name"] == "rj"
    assert response.cookies.get(SESSION_COOKIE) == body["session_token"]

    account = await client.account.find_unique(
        where={"provider_provider_account_id": {"provider": "lastfm", "provider_account_id": "rj"}}
    )
    assert account.access_token == "lastfm-session-key"
    assert account.user_id == body["user"]["id"]
    assert await client.session.count(where={"user_id": account.user_id}) == 1


@pytest.mark.asyncio
async def test_repeat_sign_in_reuses_user_and_opens_new_session(client, lastfm_profile):
    app = build_app(auth.router, "/api/auth", client)

    async with http_client(app) as http:
        first = (await http.get("/api/auth/lastfm/callback", params={"token": "good-token"})).json()
        second = (await http.get("/api/auth/lastfm/callback", params={"token": "good-token"})).json()

    assert first["user"]["id"] == second["user"]["id"]
    assert first["session_token"] != second["session_token"]
    assert await client.user.count() == 1
    assert await client.account.count() == 1
    assert await client.session.count() == 2


@pytest.mark.asyncio
async def test_callback_with_bad_token_is_rejected(client, lastfm_profile):
    app = build_app(auth.router, "/api/auth", client)

    async with http_client(app) as http:
        response = await http.get("/api/auth/lastfm/callback", params={"token": "bad-token"})

    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_FAILED"
    assert await client.user.count() == 0


@pytest.mark.asyncio
async def test_me_accepts_bearer_token_or_cookie(client, lastfm_profile):
    app = build_app(auth.router, "/api/auth", client)

    async with http_client(app) as http:
        token = (await http.get("/api/auth/lastfm/callback", params={"token": "good-token"})).json()["session_token"]
        http.cookies.clear()

        anonymous = await http.get("/api/auth/me")
        bearer = await http.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        http.cookies.set(SESSION_COOKIE, token)
        cookie = await http.get("/api/auth/me")

    assert anonymous.status_code == 401
    assert anonymous.headers["www-authenticate"] == "Bearer"
    assert bearer.json()["name"] == "rj"
    assert cookie.json()["name"] == "rj"


@pytest.mark.asyncio
async def test_expired_session_is_rejected(client, alice):
    await client.session.create(data={
        "session_token": "stale",
        "user_id": alice.id,
        "expires": datetime.utcnow() - timedelta(minutes=1),
    })
    app = build_app(auth.router, "/api/auth", client)

    async with http_client(app) as http:
        response = await http.get("/api/auth/me", headers={"Authorization": "Bearer stale"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_logout_deletes_session(client, lastfm_profile):
    app = build_app(auth.router, "/api/auth", client)

    async with http_client(app) as http:
        token = (await http.get("/api/auth/lastfm/callback", params={"token": "good-token"})).json()["session_token"]
        headers = {"Authorization": f"Bearer {token}"}

        logged_out = await http.post("/api/auth/logout", headers=headers)
        after = await http.get("/api/auth/me", headers=headers)
        http.cookies.clear()
        again = await http.post("/api/auth/logout")

    assert logged_out.json() == {"status": "logged_out"}
    assert after.status_code == 401
    assert again.status_code == 401
    assert await client.session.count() == 0


@pytest.mark.asyncio
async def test_login_returns_lastfm_auth_url(client, monkeypatch):
    monkeypatch.setattr(auth.lastfm_service, "get_auth_url", lambda: "https://www.last.fm/api/auth/?api_key=k")
    app = build_app(auth.router, "/api/auth", client)

    async with http_client(app) as http:
        response = await http.get("/api/auth/lastfm/login")

    assert response.json() == {"auth_url": "https://www.last.fm/api/auth/?api_key=k"}
