"""Expired credential cleanup tasks."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from app.celery_app import celery_app
from app.client import DatabaseClient
from app.database import AsyncSessionLocal, engine

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run a coroutine to completion from a worker process.

    Pooled connections are bound to the loop that opened them, so the pool is
    disposed before the loop closes.
    """
    async def runner():
        try:
            return await coro
        finally:
            await engine.dispose()

    return asyncio.run(runner())


@celery_app.task(name="app.tasks.cleanup.purge_expired_sessions")
def purge_expired_sessions():
    """Delete login sessions past their expiry."""
    return run_async(_purge_expired_sessions_async())


async def _purge_expired_sessions_async(now: Optional[datetime] = None) -> dict:
    async with AsyncSessionLocal() as db:
        client = DatabaseClient(db)
        deleted = await client.session.delete_many(
            where={"expires": {"lt": now or datetime.utcnow()}}
        )
    logger.info(f"Purged {deleted} expired sessions")
    return {"status": "completed", "deleted": deleted}


@celery_app.task(name="app.tasks.cleanup.purge_expired_verification_tokens")
def purge_expired_verification_tokens():
    """Delete verification tokens past their expiry."""
    return run_async(_purge_expired_verification_tokens_async())


async def _purge_expired_verification_tokens_async(now: Optional[datetime] = None) -> dict:
    async with AsyncSessionLocal() as db:
        client = DatabaseClient(db)
        deleted = await client.verification_token.delete_many(
            where={"expires": {"lt": now or datetime.utcnow()}}
        )
    logger.info(f"Purged {deleted} expired verification tokens")
    return {"status": "completed", "deleted": deleted}
