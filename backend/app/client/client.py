"""Typed database client with one delegate per model."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Type

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.client.delegate import ModelDelegate
from app.client.errors import translate_integrity_error
from app.models import (
    Account,
    Comment,
    Follow,
    Like,
    Playlist,
    PlaylistSong,
    Session,
    SocialPost,
    Song,
    SwipeAction,
    User,
    VerificationToken,
)

logger = logging.getLogger(__name__)


class DatabaseClient:
    """Entry point for queries: ``client.playlist.find_many(...)``.

    Every write commits on its own unless it runs inside ``transaction()``,
    in which case the writes only flush and the block commits once at the end.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._transaction_depth = 0

        self.user: ModelDelegate[User] = ModelDelegate(self, User)
        self.account: ModelDelegate[Account] = ModelDelegate(self, Account)
        self.session: ModelDelegate[Session] = ModelDelegate(self, Session)
        self.verification_token: ModelDelegate[VerificationToken] = ModelDelegate(self, VerificationToken)
        self.song: ModelDelegate[Song] = ModelDelegate(self, Song)
        self.playlist: ModelDelegate[Playlist] = ModelDelegate(self, Playlist)
        self.playlist_song: ModelDelegate[PlaylistSong] = ModelDelegate(self, PlaylistSong)
        self.swipe_action: ModelDelegate[SwipeAction] = ModelDelegate(self, SwipeAction)
        self.social_post: ModelDelegate[SocialPost] = ModelDelegate(self, SocialPost)
        self.like: ModelDelegate[Like] = ModelDelegate(self, Like)
        self.comment: ModelDelegate[Comment] = ModelDelegate(self, Comment)
        self.follow: ModelDelegate[Follow] = ModelDelegate(self, Follow)

    @property
    def in_transaction(self) -> bool:
        return self._transaction_depth > 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["DatabaseClient"]:
        """Run several operations atomically.

        Nested blocks join the outermost one; any exception rolls everything
        back and propagates.
        """
        outermost = self._transaction_depth == 0
        self._transaction_depth += 1
        try:
            yield self
            if outermost:
                await self.db.commit()
        except IntegrityError as exc:
            if outermost:
                await self.db.rollback()
            raise translate_integrity_error(exc) from exc
        except BaseException:
            if outermost:
                await self.db.rollback()
                logger.debug("Transaction rolled back")
            raise
        finally:
            self._transaction_depth -= 1

    async def _write(self, model: Type, operation: Callable[[], Awaitable[Any]]) -> Any:
        """Run a write and make it durable (or flush it inside a transaction)."""
        try:
            result = await operation()
            if self.in_transaction:
                await self.db.flush()
            else:
                await self.db.commit()
            return result
        except IntegrityError as exc:
            if not self.in_transaction:
                await self.db.rollback()
            raise translate_integrity_error(exc, model) from exc
        except Exception:
            if not self.in_transaction:
                await self.db.rollback()
            raise

