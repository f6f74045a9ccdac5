"""Song model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, generate_id


class Song(Base):
    """A track known to the app, keyed externally by its Last.fm identity."""

    __tablename__ = "songs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    # Basic info
    title: Mapped[str] = mapped_column(String(500), index=True)
    artist: Mapped[str] = mapped_column(String(500), index=True)
    album: Mapped[Optional[str]] = mapped_column(String(500))
    album_art: Mapped[Optional[str]] = mapped_column(String(1000))
    lastfm_url: Mapped[Optional[str]] = mapped_column(String(1000))

    # External identity, e.g. "queen:bohemian rhapsody"
    external_id: Mapped[str] = mapped_column(String(500), unique=True, index=True)

    # Seconds
    duration: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    playlist_entries = relationship(
        "PlaylistSong", back_populates="song", cascade="all, delete-orphan", passive_deletes=True
    )
    swipe_actions = relationship(
        "SwipeAction", back_populates="song", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Song(id={self.id}, title={self.title}, artist={self.artist})>"
