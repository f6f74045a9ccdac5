import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.client import DatabaseClient, get_client
from app.database import Base, enable_sqlite_foreign_keys
from app.errors import AppError, app_error_handler
from app.services.auth import require_user


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test, with FK enforcement on."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db):
    return DatabaseClient(db)


@pytest_asyncio.fixture
async def alice(client):
    return await client.user.create(data={"id": "user-alice", "name": "Alice", "email": "alice@example.com"})


@pytest_asyncio.fixture
async def bob(client):
    return await client.user.create(data={"id": "user-bob", "name": "Bob", "email": "bob@example.com"})


async def make_song(client: DatabaseClient, n: int, **overrides):
    data = {
        "id": f"song-{n}",
        "title": f"Song {n}",
        "artist": f"Artist {n % 3}",
        "duration": 100 + n,
        "external_id": f"artist {n % 3}:song {n}",
    }
    data.update(overrides)
    return await client.song.create(data=data)


def build_app(router, prefix: str, client: DatabaseClient, user=None) -> FastAPI:
    """A bare app mounting one router over the test database."""
    app = FastAPI()
    app.include_router(router, prefix=prefix)
    app.add_exception_handler(AppError, app_error_handler)

    async def override_get_client():
        return client

    app.dependency_overrides[get_client] = override_get_client
    if user is not None:
        async def override_require_user():
            return user

        app.dependency_overrides[require_user] = override_require_user
    return app


def http_client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")
