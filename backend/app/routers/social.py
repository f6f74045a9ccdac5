"""Social features router - shared playlists, likes, comments, follows."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.client import DatabaseClient, get_client
from app.errors import AppError, ErrorCode, error_boundary
from app.logging_config import log_timing
from app.models import SocialPost, User
from app.routers.playlists import PLAYLIST_SONGS, get_owned_playlist
from app.serializers import comment_to_dict, page, playlist_to_dict, post_to_dict
from app.services.auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter()

FEED_PREVIEW_SONGS = 5

POST_INCLUDE = {
    "user": True,
    "playlist": {"include": {**PLAYLIST_SONGS, "_count": ["songs"]}},
    "_count": ["likes", "comments"],
}


# Request/Response models

class SharePlaylistRequest(BaseModel):
    playlist_id: str = Field(..., min_length=1)
    caption: Optional[str] = Field(None, max_length=500)


class CommentCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)


async def get_post_or_404(client: DatabaseClient, post_id: str, include=None) -> SocialPost:
    post = await client.social_post.find_unique(where={"id": post_id}, include=include)
    if post is None:
        raise AppError(ErrorCode.NOT_FOUND, "Post not found")
    return post


# === Posts ===

@router.post("/posts")
async def share_playlist(
    request: SharePlaylistRequest,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Share one of the caller's playlists to the feed."""
    playlist = await get_owned_playlist(
        client, request.playlist_id, current_user, include={"shared_post": True}
    )
    if playlist.shared_post is not None:
        raise AppError(ErrorCode.CONFLICT, "Playlist already shared")

    with error_boundary(ErrorCode.DB_ERROR, "Failed to share playlist", logger):
        async with log_timing(logger, "Create social post"):
            post = await client.social_post.create(
                data={
                    "caption": request.caption,
                    "user_id": current_user.id,
                    "playlist_id": playlist.id,
                },
                include=POST_INCLUDE,
            )
    logger.info(f"User {current_user.id} shared playlist {playlist.id} as post {post.id}")
    return post_to_dict(post)


@router.get("/feed")
async def get_feed(
    limit: int = Query(20, ge=1, le=50),
    cursor: Optional[str] = None,
    client: DatabaseClient = Depends(get_client),
):
    """Shared playlists newest first with a short song preview."""
    with error_boundary(ErrorCode.DB_ERROR, "Failed to fetch social feed", logger):
        async with log_timing(logger, "Fetch feed"):
            posts = await client.social_post.find_many(
                include=POST_INCLUDE,
                order_by={"created_at": "desc"},
                take=limit + 1,
                cursor={"id": cursor} if cursor else None,
                skip=1 if cursor else None,
            )

    next_cursor = None
    if len(posts) > limit:
        posts.pop()
        # The next page starts after the last post returned
        next_cursor = posts[-1].id
    items = [post_to_dict(post, song_limit=FEED_PREVIEW_SONGS) for post in posts]
    return page(items, next_cursor)


@router.get("/posts/{post_id}")
async def get_post(
    post_id: str,
    client: DatabaseClient = Depends(get_client),
):
    """Get a post with its full playlist, likes and comments."""
    with error_boundary(ErrorCode.DB_ERROR, "Failed to fetch post", logger):
        post = await get_post_or_404(
            client,
            post_id,
            include={
                **POST_INCLUDE,
                "likes": {"include": {"user": True}},
                "comments": {"include": {"user": True}},
            },
        )
    return post_to_dict(post)


@router.post("/posts/{post_id}/copy")
async def copy_playlist_from_post(
    post_id: str,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Copy a shared playlist into the caller's own (private) collection."""
    post = await get_post_or_404(client, post_id, include={"playlist": {"include": PLAYLIST_SONGS}})
    source = post.playlist

    with error_boundary(ErrorCode.DB_ERROR, "Failed to copy playlist", logger):
        async with log_timing(logger, "Create playlist copy"):
            playlist = await client.playlist.create(
                data={
                    "name": f"{source.name} (copy)",
                    "description": source.description,
                    "cover_image": source.cover_image,
                    "is_public": False,
                    "user_id": current_user.id,
                    "songs": {
                        "create": [
                            {"position": entry.position, "song_id": entry.song_id}
                            for entry in source.songs
                        ],
                    },
                },
                include=PLAYLIST_SONGS,
            )
    logger.info(f"Copied playlist {source.id} to {playlist.id} ({len(playlist.songs)} songs)")
    return playlist_to_dict(playlist)


# === Likes ===

@router.post("/posts/{post_id}/like")
async def like_post(
    post_id: str,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Like a post; liking twice is a no-op."""
    await get_post_or_404(client, post_id)
    with error_boundary(ErrorCode.DB_ERROR, "Failed to like post", logger):
        await client.like.upsert(
            where={"user_id_social_post_id": {"user_id": current_user.id, "social_post_id": post_id}},
            create={"user_id": current_user.id, "social_post_id": post_id},
            update={},
        )
    return {"success": True}


@router.delete("/posts/{post_id}/like")
async def unlike_post(
    post_id: str,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Remove the caller's like."""
    with error_boundary(ErrorCode.DB_ERROR, "Failed to unlike post", logger):
        await client.like.delete(
            where={"user_id_social_post_id": {"user_id": current_user.id, "social_post_id": post_id}}
        )
    return {"success": True}


# === Comments ===

@router.post("/posts/{post_id}/comments")
async def add_comment(
    post_id: str,
    request: CommentCreateRequest,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Comment on a post."""
    await get_post_or_404(client, post_id)
    with error_boundary(ErrorCode.DB_ERROR, "Failed to add comment", logger):
        comment = await client.comment.create(
            data={
                "content": request.content,
                "user_id": current_user.id,
                "social_post_id": post_id,
            },
            include={"user": True},
        )
    return comment_to_dict(comment)


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Delete one of the caller's comments."""
    comment = await client.comment.find_unique(where={"id": comment_id})
    if comment is None:
        raise AppError(ErrorCode.NOT_FOUND, "Comment not found")
    if comment.user_id != current_user.id:
        raise AppError(ErrorCode.UNAUTHORIZED, "Not your comment")

    with error_boundary(ErrorCode.DB_ERROR, "Failed to delete comment", logger):
        await client.comment.delete(where={"id": comment_id})
    return {"success": True}


# === Follows ===

@router.post("/follow/{user_id}")
async def follow_user(
    user_id: str,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Follow another user."""
    if user_id == current_user.id:
        raise AppError(ErrorCode.INVALID_INPUT, "Cannot follow yourself")

    target = await client.user.find_unique(where={"id": user_id})
    if target is None:
        raise AppError(ErrorCode.NOT_FOUND, "User not found")

    with error_boundary(ErrorCode.DB_ERROR, "Failed to follow user", logger):
        await client.follow.upsert(
            where={"follower_id_following_id": {"follower_id": current_user.id, "following_id": user_id}},
            create={"follower_id": current_user.id, "following_id": user_id},
            update={},
        )
    logger.info(f"User {current_user.id} followed {user_id}")
    return {"status": "followed", "user_id": user_id}


@router.delete("/follow/{user_id}")
async def unfollow_user(
    user_id: str,
    current_user: User = Depends(require_user),
    client: DatabaseClient = Depends(get_client),
):
    """Unfollow a user."""
    with error_boundary(ErrorCode.DB_ERROR, "Failed to unfollow user", logger):
        await client.follow.delete(
            where={"follower_id_following_id": {"follower_id": current_user.id, "following_id": user_id}}
        )
    return {"status": "unfollowed", "user_id": user_id}


@router.get("/users/{user_id}")
async def get_user_profile(
    user_id: str,
    client: DatabaseClient = Depends(get_client),
):
    """Public profile with activity counts."""
    user = await client.user.find_unique(
        where={"id": user_id},
        include={"_count": ["playlists", "social_posts", "followers", "following"]},
    )
    if user is None:
        raise AppError(ErrorCode.NOT_FOUND, "User not found")

    counts = user.relation_counts
    return {
        "id": user.id,
        "name": user.name,
        "image": user.image,
        "playlist_count": counts["playlists"],
        "post_count": counts["social_posts"],
        "follower_count": counts["followers"],
        "following_count": counts["following"],
    }
