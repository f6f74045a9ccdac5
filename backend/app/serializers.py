"""Model-to-dict conversion for API responses.

Only relationships that were eagerly loaded are rendered; touching an
unloaded relationship would trigger lazy IO outside the async context.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import inspect


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def is_loaded(instance: Any, name: str) -> bool:
    """Whether relationship ``name`` of ``instance`` is already in memory."""
    return name not in inspect(instance).unloaded


def relation_count(instance: Any, name: str) -> Optional[int]:
    counts = getattr(instance, "relation_counts", None) or {}
    return counts.get(name)


def user_summary(user) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "image": user.image}


def user_to_dict(user) -> Dict[str, Any]:
    """Convert user model to response dict."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "email_verified": _iso(user.email_verified),
        "created_at": _iso(user.created_at),
    }


def song_to_dict(song) -> Dict[str, Any]:
    return {
        "id": song.id,
        "title": song.title,
        "artist": song.artist,
        "album": song.album,
        "album_art": song.album_art,
        "lastfm_url": song.lastfm_url,
        "external_id": song.external_id,
        "duration": song.duration,
        "created_at": _iso(song.created_at),
    }


def playlist_song_to_dict(entry) -> Dict[str, Any]:
    data = {
        "id": entry.id,
        "position": entry.position,
        "playlist_id": entry.playlist_id,
        "song_id": entry.song_id,
        "added_at": _iso(entry.added_at),
    }
    if is_loaded(entry, "song"):
        data["song"] = song_to_dict(entry.song) if entry.song else None
    return data


def playlist_to_dict(playlist, song_limit: Optional[int] = None) -> Dict[str, Any]:
    """Convert a playlist, with its songs when they were loaded."""
    data = {
        "id": playlist.id,
        "name": playlist.name,
        "description": playlist.description,
        "cover_image": playlist.cover_image,
        "is_public": playlist.is_public,
        "user_id": playlist.user_id,
        "created_at": _iso(playlist.created_at),
        "updated_at": _iso(playlist.updated_at),
    }
    if is_loaded(playlist, "user"):
        data["user"] = user_summary(playlist.user)
    if is_loaded(playlist, "songs"):
        entries = playlist.songs if song_limit is None else playlist.songs[:song_limit]
        data["songs"] = [playlist_song_to_dict(entry) for entry in entries]

    song_count = relation_count(playlist, "songs")
    if song_count is not None:
        data["song_count"] = song_count
    elif is_loaded(playlist, "songs"):
        data["song_count"] = len(playlist.songs)
    return data


def swipe_to_dict(swipe) -> Dict[str, Any]:
    data = {
        "id": swipe.id,
        "action": swipe.action,
        "user_id": swipe.user_id,
        "song_id": swipe.song_id,
        "created_at": _iso(swipe.created_at),
    }
    if is_loaded(swipe, "song"):
        data["song"] = song_to_dict(swipe.song) if swipe.song else None
    return data


def comment_to_dict(comment) -> Dict[str, Any]:
    data = {
        "id": comment.id,
        "content": comment.content,
        "user_id": comment.user_id,
        "social_post_id": comment.social_post_id,
        "created_at": _iso(comment.created_at),
        "updated_at": _iso(comment.updated_at),
    }
    if is_loaded(comment, "user"):
        data["user"] = user_summary(comment.user)
    return data


def like_to_dict(like) -> Dict[str, Any]:
    data = {
        "id": like.id,
        "user_id": like.user_id,
        "social_post_id": like.social_post_id,
        "created_at": _iso(like.created_at),
    }
    if is_loaded(like, "user"):
        data["user"] = user_summary(like.user)
    return data


def post_to_dict(post, song_limit: Optional[int] = None) -> Dict[str, Any]:
    """Convert a social post with whatever relations were included."""
    data = {
        "id": post.id,
        "caption": post.caption,
        "user_id": post.user_id,
        "playlist_id": post.playlist_id,
        "created_at": _iso(post.created_at),
        "updated_at": _iso(post.updated_at),
    }
    if is_loaded(post, "user"):
        data["user"] = user_summary(post.user)
    if is_loaded(post, "playlist") and post.playlist is not None:
        data["playlist"] = playlist_to_dict(post.playlist, song_limit=song_limit)
    if is_loaded(post, "likes"):
        data["likes"] = [like_to_dict(like) for like in post.likes]
    if is_loaded(post, "comments"):
        data["comments"] = [comment_to_dict(comment) for comment in post.comments]

    like_count = relation_count(post, "likes")
    comment_count = relation_count(post, "comments")
    if like_count is not None:
        data["like_count"] = like_count
    if comment_count is not None:
        data["comment_count"] = comment_count
    if "playlist" in data and "song_count" in data["playlist"]:
        data["song_count"] = data["playlist"]["song_count"]
    return data


def page(items: List[Dict[str, Any]], next_cursor: Optional[str]) -> Dict[str, Any]:
    return {"items": items, "next_cursor": next_cursor}
