"""Database models."""

from app.models.user import User
from app.models.account import Account, Session, VerificationToken
from app.models.song import Song
from app.models.playlist import Playlist, PlaylistSong
from app.models.swipe_action import SwipeAction, SwipeDirection
from app.models.social import SocialPost, Like, Comment, Follow

__all__ = [
    "User",
    "Account",
    "Session",
    "VerificationToken",
    "Song",
    "Playlist",
    "PlaylistSong",
    "SwipeAction",
    "SwipeDirection",
    "SocialPost",
    "Like",
    "Comment",
    "Follow",
]
