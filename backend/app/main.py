"""PlaySwipe - Main FastAPI Application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import init_db
from app.errors import AppError, app_error_handler
from app.logging_config import setup_logging
from app.routers import (
    auth,
    health,
    playlists,
    social,
    songs,
    swipe,
)

setup_logging()
logger = logging.getLogger(__name__)

config = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    await init_db()
    logger.info(f"{config.app_name} {config.app_version} started ({config.environment})")
    yield


app = FastAPI(
    title=config.app_name,
    description="Swipe-based music discovery and playlist sharing",
    version=config.app_version,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppError, app_error_handler)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(songs.router, prefix="/api/songs", tags=["Songs"])
app.include_router(playlists.router, prefix="/api/playlists", tags=["Playlists"])
app.include_router(swipe.router, prefix="/api/swipe", tags=["Swipe"])
app.include_router(social.router, prefix="/api/social", tags=["Social"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": config.app_name,
        "version": config.app_version,
        "description": "Swipe-based music discovery and playlist sharing",
    }
