import pytest
import pytest_asyncio

from app.client import InvalidQueryError
from conftest import make_song


@pytest_asyncio.fixture
async def songs(client):
    """Six songs: artists cycle 1, 2, 0 and durations run 101..106."""
    return [await make_song(client, n) for n in range(1, 7)]


def ids(records):
    return [record.id for record in records]


@pytest.mark.asyncio
async def test_scalar_operators(client, songs):
    assert ids(await client.song.find_many(
        where={"duration": {"gt": 102, "lte": 104}}, order_by={"duration": "asc"}
    )) == ["song-3", "song-4"]
    assert ids(await client.song.find_many(
        where={"id": {"in": ["song-2", "song-5"]}}, order_by={"id": "asc"}
    )) == ["song-2", "song-5"]
    assert await client.song.count(where={"artist": {"not": "Artist 0"}}) == 4
    assert await client.song.count(where={"id": {"not_in": ["song-1"]}}) == 5
    assert await client.song.count(where={"album": None}) == 6
    assert await client.song.count(where={"title": {"startswith": "Song"}}) == 6


@pytest.mark.asyncio
async def test_insensitive_mode_folds_case(client, songs):
    found = await client.song.find_many(where={"title": {"contains": "song 1", "mode": "insensitive"}})
    assert ids(found) == ["song-1"]
    assert await client.song.count(where={"artist": {"equals": "ARTIST 0", "mode": "insensitive"}}) == 2


@pytest.mark.asyncio
async def test_logical_combinators(client, songs):
    either = await client.song.find_many(
        where={"OR": [{"id": "song-1"}, {"duration": {"gte": 106}}]}, order_by={"id": "asc"}
    )
    assert ids(either) == ["song-1", "song-6"]

    assert await client.song.count(where={"NOT": {"artist": "Artist 1"}}) == 4
    assert await client.song.count(where={"AND": [{"artist": "Artist 1"}, {"duration": {"lt": 104}}]}) == 1


@pytest.mark.asyncio
async def test_relation_filters(client, alice, bob, songs):
    await client.playlist.create(data={
        "name": "Mix",
        "user_id": alice.id,
        "songs": {"create": [{"position": 0, "song_id": "song-1"}]},
    })

    some = await client.user.find_many(where={"playlists": {"some": {"name": "Mix"}}})
    none = await client.user.find_many(where={"playlists": {"none": {}}})
    every = await client.user.find_many(where={"playlists": {"every": {"is_public": True}}}, order_by={"name": "asc"})

    assert ids(some) == [alice.id]
    assert ids(none) == [bob.id]
    assert ids(every) == [alice.id, bob.id]

    owned = await client.playlist.find_many(where={"user": {"is": {"email": {"endswith": "@example.com"}}}})
    assert [playlist.name for playlist in owned] == ["Mix"]

    on_playlists = await client.song.find_many(where={"playlist_entries": {"some": {"playlist": {"name": "Mix"}}}})
    assert ids(on_playlists) == ["song-1"]


@pytest.mark.asyncio
async def test_unknown_fields_and_operators_are_rejected(client, songs):
    with pytest.raises(InvalidQueryError):
        await client.song.find_many(where={"genre": "rock"})
    with pytest.raises(InvalidQueryError):
        await client.song.find_many(where={"duration": {"between": [1, 2]}})
    with pytest.raises(InvalidQueryError):
        await client.song.find_many(where={"title": {"contains": "x", "mode": "fuzzy"}})
    with pytest.raises(InvalidQueryError):
        await client.song.find_many(order_by={"popularity": "desc"})
    with pytest.raises(InvalidQueryError):
        await client.song.find_unique(where={"title": "Song 1"})


@pytest.mark.asyncio
async def test_order_by_multiple_fields_and_nulls_placement(client, songs):
    await client.song.update(where={"id": "song-2"}, data={"album": "B"})
    await client.song.update(where={"id": "song-5"}, data={"album": "A"})

    ordered = await client.song.find_many(order_by=[{"artist": "desc"}, {"duration": "asc"}])
    assert ids(ordered) == ["song-2", "song-5", "song-1", "song-4", "song-3", "song-6"]

    nulls_last = await client.song.find_many(order_by=[{"album": {"sort": "asc", "nulls": "last"}}, {"id": "asc"}])
    assert ids(nulls_last)[:2] == ["song-5", "song-2"]

    nulls_first = await client.song.find_many(order_by=[{"album": {"sort": "asc", "nulls": "first"}}, {"id": "asc"}])
    assert ids(nulls_first)[-2:] == ["song-5", "song-2"]


@pytest.mark.asyncio
async def test_skip_take_and_backwards_take(client, songs):
    by_duration = {"duration": "asc"}

    assert ids(await client.song.find_many(order_by=by_duration, skip=1, take=2)) == ["song-2", "song-3"]
    assert ids(await client.song.find_many(order_by=by_duration, take=-2)) == ["song-5", "song-6"]
    assert ids(await client.song.find_many(order_by=by_duration, skip=1, take=-2)) == ["song-4", "song-5"]

    with pytest.raises(InvalidQueryError):
        await client.song.find_many(skip=-1)


@pytest.mark.asyncio
async def test_cursor_pagination(client, songs):
    by_duration = {"duration": "asc"}

    page = await client.song.find_many(order_by=by_duration, cursor={"id": "song-3"}, take=2)
    assert ids(page) == ["song-3", "song-4"]

    page = await client.song.find_many(order_by=by_duration, cursor={"id": "song-3"}, skip=1, take=2)
    assert ids(page) == ["song-4", "song-5"]

    page = await client.song.find_many(order_by=by_duration, cursor={"id": "song-4"}, take=-2)
    assert ids(page) == ["song-3", "song-4"]

    assert await client.song.find_many(cursor={"id": "gone"}, take=2) == []
    assert await client.song.count(order_by=by_duration, cursor={"id": "song-5"}) == 2


@pytest.mark.asyncio
async def test_distinct_keeps_first_row_per_value(client, songs):
    firsts = await client.song.find_many(distinct=["artist"], order_by={"duration": "asc"})
    assert ids(firsts) == ["song-1", "song-2", "song-3"]

    page = await client.song.find_many(distinct=["artist"], order_by={"duration": "asc"}, skip=1, take=1)
    assert ids(page) == ["song-2"]


@pytest.mark.asyncio
async def test_find_first(client, songs):
    latest = await client.song.find_first(where={"artist": "Artist 1"}, order_by={"duration": "desc"})
    assert latest.id == "song-4"
    assert await client.song.find_first(where={"artist": "Nobody"}) is None


@pytest.mark.asyncio
async def test_include_with_filter_and_relation_counts(client, alice, bob, songs):
    playlist = await client.playlist.create(data={
        "name": "Mix",
        "user_id": alice.id,
        "songs": {"create": [{"position": n, "song_id": f"song-{n + 1}"} for n in range(3)]},
    })
    await client.follow.create(data={"follower_id": bob.id, "following_id": alice.id})

    loaded = await client.playlist.find_unique(
        where={"id": playlist.id},
        include={"songs": {"where": {"position": {"gte": 1}}, "include": {"song": True}}, "user": True},
    )
    assert [entry.song.id for entry in loaded.songs] == ["song-2", "song-3"]
    assert loaded.user.email == "alice@example.com"

    user = await client.user.find_unique(where={"id": alice.id}, include={"_count": ["playlists", "followers", "following"]})
    assert user.relation_counts == {"playlists": 1, "followers": 1, "following": 0}

    owners = await client.playlist.find_many(include={"user": {"include": {"_count": {"playlists": True}}}})
    assert owners[0].user.relation_counts == {"playlists": 1}

    with pytest.raises(InvalidQueryError):
        await client.playlist.find_many(include={"owner": True})
