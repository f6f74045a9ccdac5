"""Seed the database with demo data: ``python -m app.seed``."""

import asyncio
import logging

from app.client import DatabaseClient
from app.database import AsyncSessionLocal, engine, init_db
from app.logging_config import setup_logging

logger = logging.getLogger(__name__)

USERS = [
    {"id": "seed-user-alice", "name": "Alice", "email": "alice@example.com", "image": "https://i.pravatar.cc/150?u=alice"},
    {"id": "seed-user-bob", "name": "Bob", "email": "bob@example.com", "image": "https://i.pravatar.cc/150?u=bob"},
    {"id": "seed-user-carol", "name": "Carol", "email": "carol@example.com", "image": "https://i.pravatar.cc/150?u=carol"},
]

# (title, artist, album, duration in seconds)
SONGS = [
    ("Bohemian Rhapsody", "Queen", "A Night at the Opera", 354),
    ("Stairway to Heaven", "Led Zeppelin", "Led Zeppelin IV", 482),
    ("Hotel California", "Eagles", "Hotel California", 391),
    ("Comfortably Numb", "Pink Floyd", "The Wall", 382),
    ("Imagine", "John Lennon", "Imagine", 187),
    ("Smells Like Teen Spirit", "Nirvana", "Nevermind", 301),
    ("Wonderwall", "Oasis", "(What's the Story) Morning Glory?", 258),
    ("Let It Be", "The Beatles", "Let It Be", 243),
    ("Purple Rain", "Prince", "Purple Rain", 520),
    ("Billie Jean", "Michael Jackson", "Thriller", 294),
]

# (id, owner, name, description, is_public, song indexes in order)
PLAYLISTS = [
    ("seed-playlist-a1", "seed-user-alice", "Classic Rock Essentials", "The best classic rock tracks of all time", True, [0, 1, 2, 3]),
    ("seed-playlist-a2", "seed-user-alice", "Chill Vibes", "Relaxing tunes for a quiet evening", True, [4, 7]),
    ("seed-playlist-b1", "seed-user-bob", "90s Grunge Mix", "The grunge era's finest", True, [5, 6, 3]),
    ("seed-playlist-b2", "seed-user-bob", "Pop Legends", "Iconic pop tracks", False, [9, 8]),
    ("seed-playlist-c1", "seed-user-carol", "All-Time Favorites", "My personal top picks", True, [0, 4, 8, 9, 5]),
]

SWIPES = [
    ("seed-user-alice", 0, "liked"),
    ("seed-user-alice", 1, "liked"),
    ("seed-user-alice", 5, "skipped"),
    ("seed-user-alice", 9, "superliked"),
    ("seed-user-bob", 5, "liked"),
    ("seed-user-bob", 6, "liked"),
    ("seed-user-bob", 0, "skipped"),
    ("seed-user-carol", 0, "superliked"),
    ("seed-user-carol", 4, "liked"),
    ("seed-user-carol", 7, "skipped"),
]

POSTS = [
    ("seed-post-1", "seed-user-alice", "seed-playlist-a1", "Check out my classic rock playlist! These tracks never get old."),
    ("seed-post-2", "seed-user-bob", "seed-playlist-b1", "Grunge forever. This playlist takes me back to the 90s."),
]

LIKES = [
    ("seed-user-bob", "seed-post-1"),
    ("seed-user-carol", "seed-post-1"),
    ("seed-user-alice", "seed-post-2"),
    ("seed-user-carol", "seed-post-2"),
]

COMMENTS = [
    ("seed-user-bob", "seed-post-1", "Love this playlist! Bohemian Rhapsody is timeless."),
    ("seed-user-carol", "seed-post-1", "Great taste! Stairway to Heaven is my all-time favorite."),
    ("seed-user-alice", "seed-post-2", "Nirvana changed everything. Solid picks!"),
]

FOLLOWS = [
    ("seed-user-alice", "seed-user-bob"),
    ("seed-user-alice", "seed-user-carol"),
    ("seed-user-bob", "seed-user-alice"),
    ("seed-user-carol", "seed-user-alice"),
    ("seed-user-carol", "seed-user-bob"),
]

# Children before parents
CLEAR_ORDER = (
    "comment",
    "like",
    "social_post",
    "follow",
    "swipe_action",
    "playlist_song",
    "playlist",
    "song",
    "session",
    "account",
    "verification_token",
    "user",
)


def song_id(index: int) -> str:
    return f"seed-song-{index + 1}"


def _slug(value: str) -> str:
    return "-".join(value.lower().replace("'", "").split())


async def clear_database(client: DatabaseClient) -> None:
    """Delete every row, in foreign-key-safe order."""
    for name in CLEAR_ORDER:
        deleted = await getattr(client, name).delete_many()
        logger.debug(f"Cleared {deleted} rows from {name}")
    # Bulk deletes bypass the identity map
    client.db.expunge_all()


async def seed_database(client: DatabaseClient) -> dict:
    """Replace the database contents with the demo data set."""
    await clear_database(client)

    async with client.transaction():
        await client.user.create_many(USERS)
        await client.song.create_many([
            {
                "id": song_id(index),
                "title": title,
                "artist": artist,
                "album": album,
                "duration": duration,
                "lastfm_url": f"https://www.last.fm/music/{artist.replace(' ', '+')}/_/{title.replace(' ', '+')}",
                "external_id": f"lastfm:{_slug(artist)}:{_slug(title)}",
            }
            for index, (title, artist, album, duration) in enumerate(SONGS)
        ])

        for playlist_id, owner, name, description, is_public, song_indexes in PLAYLISTS:
            await client.playlist.create(data={
                "id": playlist_id,
                "name": name,
                "description": description,
                "is_public": is_public,
                "user": {"connect": {"id": owner}},
                "songs": {
                    "create": [
                        {"position": position, "song_id": song_id(index)}
                        for position, index in enumerate(song_indexes)
                    ],
                },
            })

        await client.swipe_action.create_many([
            {"user_id": user_id, "song_id": song_id(index), "action": action}
            for user_id, index, action in SWIPES
        ])
        await client.social_post.create_many([
            {"id": post_id, "user_id": user_id, "playlist_id": playlist_id, "caption": caption}
            for post_id, user_id, playlist_id, caption in POSTS
        ])
        await client.like.create_many([
            {"user_id": user_id, "social_post_id": post_id} for user_id, post_id in LIKES
        ])
        await client.comment.create_many([
            {"user_id": user_id, "social_post_id": post_id, "content": content}
            for user_id, post_id, content in COMMENTS
        ])
        await client.follow.create_many([
            {"follower_id": follower, "following_id": following} for follower, following in FOLLOWS
        ])

    summary = {
        "users": len(USERS),
        "songs": len(SONGS),
        "playlists": len(PLAYLISTS),
        "swipe_actions": len(SWIPES),
        "social_posts": len(POSTS),
        "likes": len(LIKES),
        "comments": len(COMMENTS),
        "follows": len(FOLLOWS),
    }
    logger.info(f"Seed complete: {summary}")
    return summary


async def main() -> None:
    await init_db()
    try:
        async with AsyncSessionLocal() as db:
            await seed_database(DatabaseClient(db))
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
