"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends
from redis import asyncio as aioredis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.config import get_settings
from app.services.lastfm import lastfm_service

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


async def check_redis(url: str) -> bool:
    client = aioredis.from_url(url)
    try:
        return bool(await client.ping())
    finally:
        await client.aclose()


@router.get("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "version": settings.app_version}


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness check including database and Redis connectivity."""
    checks = {
        "database": False,
        "redis": False,
    }

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.warning(f"Database readiness check failed: {e}")

    try:
        checks["redis"] = await check_redis(settings.redis_url)
    except Exception as e:
        logger.warning(f"Redis readiness check failed: {e}")

    all_healthy = all(checks.values())
    return {
        "status": "ready" if all_healthy else "degraded",
        "checks": checks,
        "lastfm_configured": lastfm_service.is_available,
    }
