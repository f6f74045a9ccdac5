"""Social feature models - shared posts, likes, comments, follows."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, generate_id


class SocialPost(Base):
    """A playlist shared to the public feed."""

    __tablename__ = "social_posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    caption: Mapped[Optional[str]] = mapped_column(String(500))

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    # A playlist can be shared at most once
    playlist_id: Mapped[str] = mapped_column(
        ForeignKey("playlists.id", ondelete="CASCADE"), unique=True, index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="social_posts")
    playlist = relationship("Playlist", back_populates="shared_post")
    likes = relationship("Like", back_populates="social_post", cascade="all, delete-orphan", passive_deletes=True)
    comments = relationship(
        "Comment",
        back_populates="social_post",
        order_by="Comment.created_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<SocialPost(id={self.id}, playlist_id={self.playlist_id})>"


class Like(Base):
    """A user's like on a social post."""

    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint("user_id", "social_post_id", name="uq_like_user_post"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    social_post_id: Mapped[str] = mapped_column(ForeignKey("social_posts.id", ondelete="CASCADE"), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="likes")
    social_post = relationship("SocialPost", back_populates="likes")

    def __repr__(self) -> str:
        return f"<Like(user_id={self.user_id}, social_post_id={self.social_post_id})>"


class Comment(Base):
    """A comment on a social post."""

    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    content: Mapped[str] = mapped_column(Text)

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    social_post_id: Mapped[str] = mapped_column(ForeignKey("social_posts.id", ondelete="CASCADE"), index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="comments")
    social_post = relationship("SocialPost", back_populates="comments")

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, social_post_id={self.social_post_id})>"


class Follow(Base):
    """User follow relationships."""

    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follow"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    follower_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    following_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    follower = relationship("User", foreign_keys=[follower_id], back_populates="following")
    following = relationship("User", foreign_keys=[following_id], back_populates="followers")

    def __repr__(self) -> str:
        return f"<Follow(follower={self.follower_id}, following={self.following_id})>"
