import pytest

from app.client import (
    ForeignKeyConstraintError,
    InvalidQueryError,
    RecordNotFoundError,
    UniqueConstraintError,
)
from conftest import make_song


@pytest.mark.asyncio
async def test_create_applies_defaults_and_find_unique_reads_it_back(client, alice):
    playlist = await client.playlist.create(data={"name": "Road trip", "user_id": alice.id})

    assert len(playlist.id) == 36
    assert playlist.is_public is True
    assert playlist.created_at is not None

    found = await client.playlist.find_unique(where={"id": playlist.id})
    assert found.name == "Road trip"
    assert await client.playlist.find_unique(where={"id": "missing"}) is None


@pytest.mark.asyncio
async def test_create_with_nested_songs_and_connected_owner(client, alice):
    await make_song(client, 1)
    await make_song(client, 2)

    playlist = await client.playlist.create(
        data={
            "name": "Mix",
            "user": {"connect": {"email": "alice@example.com"}},
            "songs": {
                "create": [
                    {"position": 1, "song_id": "song-1"},
                    {"position": 0, "song_id": "song-2"},
                ],
            },
        },
        include={"songs": {"include": {"song": True}}, "user": True},
    )

    assert playlist.user_id == alice.id
    assert playlist.user.name == "Alice"
    assert [entry.song.id for entry in playlist.songs] == ["song-2", "song-1"]


@pytest.mark.asyncio
async def test_nested_connect_to_missing_record_raises_not_found(client):
    with pytest.raises(RecordNotFoundError):
        await client.playlist.create(data={"name": "Orphan", "user": {"connect": {"id": "nobody"}}})


@pytest.mark.asyncio
async def test_create_rejects_unknown_fields(client, alice):
    with pytest.raises(InvalidQueryError):
        await client.playlist.create(data={"name": "Mix", "user_id": alice.id, "colour": "red"})


@pytest.mark.asyncio
async def test_duplicate_unique_value_raises_conflict_and_session_recovers(client, alice):
    with pytest.raises(UniqueConstraintError) as excinfo:
        await client.user.create(data={"name": "Imposter", "email": "alice@example.com"})

    assert excinfo.value.fields == ["email"]
    assert excinfo.value.status_code == 409

    other = await client.user.create(data={"name": "Carol", "email": "carol@example.com"})
    assert await client.user.count() == 2
    assert other.email == "carol@example.com"


@pytest.mark.asyncio
async def test_missing_parent_raises_foreign_key_error(client):
    with pytest.raises(ForeignKeyConstraintError) as excinfo:
        await client.playlist.create(data={"name": "Lost", "user_id": "nobody"})

    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_create_many_counts_rows_and_can_skip_duplicates(client):
    inserted = await client.song.create_many([
        {"title": "A", "artist": "X", "external_id": "x:a"},
        {"title": "B", "artist": "X", "external_id": "x:b"},
    ])
    assert inserted == 2

    inserted = await client.song.create_many(
        [
            {"title": "B again", "artist": "X", "external_id": "x:b"},
            {"title": "C", "artist": "X", "external_id": "x:c"},
        ],
        skip_duplicates=True,
    )
    assert inserted == 1
    assert await client.song.count() == 3

    with pytest.raises(UniqueConstraintError):
        await client.song.create_many([{"title": "A", "artist": "X", "external_id": "x:a"}])


@pytest.mark.asyncio
async def test_update_supports_atomic_number_operations(client):
    await make_song(client, 1)

    song = await client.song.update(where={"id": "song-1"}, data={"duration": {"increment": 10}})
    assert song.duration == 111

    song = await client.song.update(where={"external_id": "artist 1:song 1"}, data={"duration": {"multiply": 2}})
    assert song.duration == 222

    song = await client.song.update(where={"id": "song-1"}, data={"duration": {"set": 5}, "album": "Live"})
    assert (song.duration, song.album) == (5, "Live")


@pytest.mark.asyncio
async def test_divide_on_integer_column_truncates(client):
    await make_song(client, 1)
    await make_song(client, 4)

    song = await client.song.update(where={"id": "song-1"}, data={"duration": {"decrement": 1}})
    assert song.duration == 100

    song = await client.song.update(where={"id": "song-1"}, data={"duration": {"divide": 3}})
    assert song.duration == 33
    assert isinstance(song.duration, int)

    updated = await client.song.update_many(where={"artist": "Artist 1"}, data={"duration": {"divide": 2}})
    assert updated == 2
    durations = [song.duration for song in await client.song.find_many(order_by={"id": "asc"})]
    assert durations == [16, 52]


@pytest.mark.asyncio
async def test_update_of_missing_record_raises_not_found(client):
    with pytest.raises(RecordNotFoundError) as excinfo:
        await client.song.update(where={"id": "nope"}, data={"title": "x"})

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_update_rejects_relation_writes(client, alice):
    playlist = await client.playlist.create(data={"name": "Mix", "user_id": alice.id})

    with pytest.raises(InvalidQueryError):
        await client.playlist.update(where={"id": playlist.id}, data={"songs": {"create": []}})


@pytest.mark.asyncio
async def test_update_many_returns_match_count_and_reads_see_new_values(client):
    for n in range(1, 5):
        await make_song(client, n)
    before = await client.song.find_unique(where={"id": "song-1"})

    updated = await client.song.update_many(where={"artist": "Artist 1"}, data={"album": "Greatest Hits"})

    assert updated == 2
    after = await client.song.find_unique(where={"id": "song-1"})
    assert after is before
    assert after.album == "Greatest Hits"
    assert await client.song.count(where={"album": "Greatest Hits"}) == 2


@pytest.mark.asyncio
async def test_upsert_creates_then_updates(client):
    selector = {"external_id": "queen:bohemian rhapsody"}
    created = await client.song.upsert(
        where=selector,
        create={"title": "Bohemian Rhapsody", "artist": "Queen", "external_id": selector["external_id"]},
        update={"title": "Bohemian Rhapsody (Remastered)"},
    )
    assert created.title == "Bohemian Rhapsody"

    updated = await client.song.upsert(
        where=selector,
        create={"title": "ignored", "artist": "Queen", "external_id": selector["external_id"]},
        update={"title": "Bohemian Rhapsody (Remastered)"},
    )
    assert updated.id == created.id
    assert updated.title == "Bohemian Rhapsody (Remastered)"
    assert await client.song.count() == 1


@pytest.mark.asyncio
async def test_compound_unique_selector_matches_flat_form(client, alice):
    await make_song(client, 1)
    playlist = await client.playlist.create(data={"name": "Mix", "user_id": alice.id})
    entry = await client.playlist_song.create(data={"playlist_id": playlist.id, "song_id": "song-1"})

    compound = await client.playlist_song.find_unique(
        where={"playlist_id_song_id": {"playlist_id": playlist.id, "song_id": "song-1"}}
    )
    flat = await client.playlist_song.find_unique(where={"playlist_id": playlist.id, "song_id": "song-1"})

    assert compound.id == flat.id == entry.id
    with pytest.raises(InvalidQueryError):
        await client.playlist_song.find_unique(where={"playlist_id": playlist.id})


@pytest.mark.asyncio
async def test_delete_returns_record_and_cascades_to_children(client, alice, bob):
    await make_song(client, 1)
    playlist = await client.playlist.create(
        data={"name": "Mix", "user_id": alice.id, "songs": {"create": {"position": 0, "song_id": "song-1"}}}
    )
    post = await client.social_post.create(data={"user_id": alice.id, "playlist_id": playlist.id})
    await client.like.create(data={"user_id": bob.id, "social_post_id": post.id})
    await client.follow.create(data={"follower_id": bob.id, "following_id": alice.id})

    deleted = await client.user.delete(where={"id": alice.id})

    assert deleted.email == "alice@example.com"
    assert await client.playlist.count() == 0
    assert await client.playlist_song.count() == 0
    assert await client.social_post.count() == 0
    assert await client.like.count() == 0
    assert await client.follow.count() == 0
    assert await client.song.count() == 1
    assert await client.user.count() == 1


@pytest.mark.asyncio
async def test_delete_of_missing_record_raises_and_delete_many_counts(client):
    with pytest.raises(RecordNotFoundError):
        await client.song.delete(where={"id": "nope"})

    for n in range(1, 4):
        await make_song(client, n)

    assert await client.song.delete_many(where={"duration": {"gte": 102}}) == 2
    assert await client.song.delete_many() == 1
    assert await client.song.delete_many() == 0
