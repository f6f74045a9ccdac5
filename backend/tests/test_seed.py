import pytest

from app import seed


@pytest.mark.asyncio
async def test_seed_database_loads_demo_data(client):
    summary = await seed.seed_database(client)

    assert summary == {
        "users": 3,
        "songs": 10,
        "playlists": 5,
        "swipe_actions": 10,
        "social_posts": 2,
        "likes": 4,
        "comments": 3,
        "follows": 5,
    }
    assert await client.user.count() == 3
    assert await client.song.count() == 10
    assert await client.playlist_song.count() == 16

    grunge = await client.playlist.find_unique(
        where={"id": "seed-playlist-b1"},
        include={"songs": {"include": {"song": True}}, "user": True},
    )
    assert grunge.user.name == "Bob"
    assert [entry.song.title for entry in grunge.songs] == [
        "Smells Like Teen Spirit",
        "Wonderwall",
        "Comfortably Numb",
    ]

    alice = await client.user.find_unique(
        where={"email": "alice@example.com"},
        include={"_count": ["followers", "following", "swipe_actions"]},
    )
    assert alice.relation_counts == {"followers": 2, "following": 2, "swipe_actions": 4}


@pytest.mark.asyncio
async def test_seed_database_replaces_existing_rows(client, alice):
    await client.song.create(data={"title": "Stray", "artist": "Nobody", "external_id": "nobody:stray"})

    await seed.seed_database(client)
    await seed.seed_database(client)

    assert await client.user.count() == 3
    assert await client.song.count() == 10
    assert await client.song.find_unique(where={"external_id": "nobody:stray"}) is None
    assert await client.follow.count() == 5


def test_seed_external_ids_are_slugged():
    assert seed._slug("(What's the Story) Morning Glory?") == "(whats-the-story)-morning-glory?"
    assert seed.song_id(0) == "seed-song-1"
