"""Swipe action model."""

import enum
from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, generate_id


class SwipeDirection(str, enum.Enum):
    """What a user did with a recommended song."""
    LIKED = "liked"
    SKIPPED = "skipped"
    SUPERLIKED = "superliked"


class SwipeAction(Base):
    """A user's latest swipe on a song."""

    __tablename__ = "swipe_actions"
    __table_args__ = (
        UniqueConstraint("user_id", "song_id", name="uq_swipe_user_song"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    action: Mapped[str] = mapped_column(String(20), index=True)

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    song_id: Mapped[str] = mapped_column(ForeignKey("songs.id", ondelete="CASCADE"), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="swipe_actions")
    song = relationship("Song", back_populates="swipe_actions")

    def __repr__(self) -> str:
        return f"<SwipeAction(user_id={self.user_id}, song_id={self.song_id}, action={self.action})>"
