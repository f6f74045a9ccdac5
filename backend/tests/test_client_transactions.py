import pytest
from sqlalchemy.exc import IntegrityError

from app.client import ClientError, ForeignKeyConstraintError, InvalidQueryError, UniqueConstraintError
from app.client.errors import translate_integrity_error
from app.client.filters import normalize_unique_where, unique_keys
from app.models import Like, PlaylistSong, User
from conftest import make_song


@pytest.mark.asyncio
async def test_transaction_commits_every_write_once(client):
    async with client.transaction():
        await make_song(client, 1)
        await make_song(client, 2)
        assert client.in_transaction

    assert not client.in_transaction
    assert await client.song.count() == 2


@pytest.mark.asyncio
async def test_exception_inside_transaction_rolls_back_all_writes(client):
    with pytest.raises(RuntimeError):
        async with client.transaction():
            await make_song(client, 1)
            raise RuntimeError("boom")

    assert await client.song.count() == 0


@pytest.mark.asyncio
async def test_failed_write_inside_transaction_rolls_back_earlier_writes(client):
    with pytest.raises(UniqueConstraintError):
        async with client.transaction():
            await make_song(client, 1)
            await make_song(client, 2, external_id="artist 1:song 1")

    assert await client.song.count() == 0


@pytest.mark.asyncio
async def test_rejected_update_inside_transaction_leaves_record_untouched(client):
    await make_song(client, 1)

    async with client.transaction():
        with pytest.raises(InvalidQueryError):
            await client.song.update(where={"id": "song-1"}, data={"duration": 999, "bogus": 1})

    song = await client.song.find_unique(where={"id": "song-1"})
    assert song.duration == 101


@pytest.mark.asyncio
async def test_nested_transactions_join_the_outer_one(client):
    with pytest.raises(RuntimeError):
        async with client.transaction():
            async with client.transaction():
                await make_song(client, 1)
            assert await client.song.count() == 1
            raise RuntimeError("outer failure")

    assert await client.song.count() == 0


def test_unique_keys_list_primary_then_compound_keys():
    assert unique_keys(PlaylistSong) == [("id",), ("playlist_id", "song_id")]
    assert unique_keys(User) == [("id",), ("email",)]


def test_normalize_unique_where_flattens_compound_selector():
    flat = normalize_unique_where(Like, {"user_id_social_post_id": {"user_id": "u", "social_post_id": "p"}})
    assert flat == {"user_id": "u", "social_post_id": "p"}


def test_translate_sqlite_and_postgres_unique_violations():
    sqlite_error = IntegrityError(
        "INSERT", {}, Exception("UNIQUE constraint failed: playlist_songs.playlist_id, playlist_songs.song_id")
    )
    translated = translate_integrity_error(sqlite_error, PlaylistSong)
    assert isinstance(translated, UniqueConstraintError)
    assert translated.fields == ["playlist_id", "song_id"]

    postgres_error = IntegrityError(
        "INSERT",
        {},
        Exception(
            'duplicate key value violates unique constraint "uq_like_user_post"\n'
            "DETAIL:  Key (user_id, social_post_id)=(a, b) already exists."
        ),
    )
    translated = translate_integrity_error(postgres_error, Like)
    assert translated.fields == ["user_id", "social_post_id"]
    assert "Like" in translated.message


def test_translate_foreign_key_and_other_integrity_errors():
    fk_error = IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))
    assert isinstance(translate_integrity_error(fk_error), ForeignKeyConstraintError)

    other = translate_integrity_error(IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: songs.title")))
    assert type(other) is ClientError
    assert other.status_code == 500
