"""
Tests for astrotune.core.library_db and the query modules behind it.

These tests verify:
- Schema creation and the always-present default playlist
- Song insert with file_path deduplication, listing and search
- Playlist CRUD and the protected default playlist
- Membership ordering: append positions and gap-free renumbering
- The process-wide shared handle
"""

from __future__ import annotations

import random
from pathlib import Path

import pytest

import astrotune.core.library_db as library_db_module
from astrotune.core import (
    ConflictError,
    MissingReferenceError,
    NotFoundError,
    ProtectedEntityError,
)
from astrotune.core.db.models import DEFAULT_PLAYLIST_ID, DEFAULT_PLAYLIST_NAME, NewSong
from astrotune.core.db.schema import SCHEMA_VERSION
from astrotune.core.library_db import LibraryDb, close_library_db, get_library_db


@pytest.fixture
async def db() -> LibraryDb:
    """Create an in-memory database for testing."""
    db = LibraryDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


async def _add(db: LibraryDb, path: str, title: str = "", **kwargs) -> int:
    song_id = await db.add_song(NewSong(file_path=path, title=title or Path(path).stem, **kwargs))
    assert song_id is not None
    return song_id


async def _positions(db: LibraryDb, playlist_id: int) -> dict[int, int]:
    return {m.song_id: m.position for m in await db.list_memberships(playlist_id)}


async def _assert_packed(db: LibraryDb, playlist_id: int) -> None:
    positions = sorted(m.position for m in await db.list_memberships(playlist_id))
    assert positions == list(range(1, len(positions) + 1))


# =============================================================================
# Schema / Store
# =============================================================================


class TestSchema:
    """Tests for schema creation and lifecycle."""

    async def test_open_close(self) -> None:
        """Test basic open/close lifecycle."""
        db = LibraryDb(":memory:")
        assert not db.is_open

        await db.open()
        assert db.is_open

        await db.close()
        assert not db.is_open

    async def test_open_twice_keeps_connection(self) -> None:
        db = LibraryDb(":memory:")
        await db.open()
        conn = db._conn
        await db.open()
        assert db._conn is conn
        await db.close()

    async def test_requires_open(self) -> None:
        db = LibraryDb(":memory:")
        with pytest.raises(RuntimeError):
            await db.get_all_songs()

    async def test_default_playlist_exists(self, db: LibraryDb) -> None:
        playlists = await db.get_all_playlists()
        assert [(p.id, p.name) for p in playlists] == [(DEFAULT_PLAYLIST_ID, DEFAULT_PLAYLIST_NAME)]
        assert playlists[0].is_default

    async def test_ensure_schema_is_idempotent(self, db: LibraryDb) -> None:
        await db.ensure_schema()
        await db.ensure_schema()
        assert await db.count_playlists() == 1
        assert await db.count_songs() == 0

    async def test_schema_version_recorded(self, db: LibraryDb) -> None:
        conn = db._require_conn()
        cursor = await conn.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        assert row[0] == SCHEMA_VERSION

    async def test_newer_schema_rejected(self, db: LibraryDb) -> None:
        await db.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1};")
        with pytest.raises(RuntimeError, match="newer"):
            await db.ensure_schema()

    async def test_default_playlist_reseeded(self, db: LibraryDb) -> None:
        """A database that lost its default playlist gets it back on startup."""
        await db.execute("DELETE FROM playlists;")
        await db.commit()
        await db.ensure_schema()

        playlist = await db.get_playlist_by_id(DEFAULT_PLAYLIST_ID)
        assert playlist is not None
        assert playlist.name == DEFAULT_PLAYLIST_NAME

    async def test_file_database_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "library.db"
        db = LibraryDb(path)
        await db.open()
        await db.ensure_schema()
        await _add(db, "/music/a.mp3", "A")
        await db.commit()
        await db.close()

        db = LibraryDb(path)
        await db.open()
        await db.ensure_schema()
        songs = await db.get_all_songs()
        await db.close()
        assert [s.file_path for s in songs] == ["/music/a.mp3"]


class TestSharedHandle:
    """Tests for the lazily created process-wide handle."""

    async def test_same_instance_returned(self, tmp_path: Path) -> None:
        try:
            first = await get_library_db(tmp_path / "shared.db")
            second = await get_library_db(tmp_path / "ignored.db")
            assert first is second
            assert first.is_open
            assert await first.count_playlists() == 1
        finally:
            await close_library_db()

    async def test_close_then_reopen(self, tmp_path: Path) -> None:
        try:
            first = await get_library_db(tmp_path / "shared.db")
            await close_library_db()
            assert not first.is_open

            second = await get_library_db(tmp_path / "shared.db")
            assert second is not first
            assert second.is_open
        finally:
            await close_library_db()

    async def test_close_without_open_is_noop(self) -> None:
        await close_library_db()

    async def test_failed_schema_leaves_no_handle(self, tmp_path: Path) -> None:
        path = tmp_path / "future.db"
        future = LibraryDb(path)
        await future.open()
        await future.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1};")
        await future.commit()
        await future.close()

        with pytest.raises(RuntimeError, match="newer"):
            await get_library_db(path)
        assert library_db_module._shared_db is None

        try:
            db = await get_library_db(tmp_path / "fresh.db")
            assert db.is_open
        finally:
            await close_library_db()


# =============================================================================
# Songs
# =============================================================================


class TestSongs:
    """Tests for song insert, dedup, listing and search."""

    async def test_add_song(self, db: LibraryDb) -> None:
        song_id = await db.add_song(
            NewSong(
                file_path="/music/test.mp3",
                title="Test Song",
                artist="Test Artist",
                album="Test Album",
                duration=185,
            )
        )
        assert song_id is not None and song_id > 0

        row = await db.get_song_by_id(song_id)
        assert row is not None
        assert row.title == "Test Song"
        assert row.artist == "Test Artist"
        assert row.album == "Test Album"
        assert row.duration == 185
        assert row.file_path == "/music/test.mp3"
        assert row.date_added is not None
        assert row.duration_display == "3:05"

    async def test_duplicate_path_is_noop(self, db: LibraryDb) -> None:
        first = await db.add_song(NewSong(file_path="/music/a.mp3", title="Original"))
        second = await db.add_song(NewSong(file_path="/music/a.mp3", title="Changed"))

        assert first is not None
        assert second is None
        assert await db.count_songs() == 1
        row = await db.get_song_by_path("/music/a.mp3")
        assert row is not None
        assert row.title == "Original"

    async def test_defaults_applied(self, db: LibraryDb) -> None:
        song_id = await db.add_song(NewSong(file_path="/music/Some Track.flac", title="  "))
        row = await db.get_song_by_id(song_id)
        assert row.title == "Some Track"
        assert row.artist == "Unknown Artist"
        assert row.album == "Unknown Album"
        assert row.duration == 0

    async def test_rejects_empty_path(self, db: LibraryDb) -> None:
        with pytest.raises(ValueError):
            await db.add_song(NewSong(file_path="   ", title="x"))

    async def test_rejects_negative_duration(self, db: LibraryDb) -> None:
        with pytest.raises(ValueError):
            await db.add_song(NewSong(file_path="/music/x.mp3", title="x", duration=-1))

    async def test_get_all_songs_sorted_by_title(self, db: LibraryDb) -> None:
        await _add(db, "/music/1.mp3", "banana")
        await _add(db, "/music/2.mp3", "Apple")
        await _add(db, "/music/3.mp3", "cherry")
        await _add(db, "/music/4.mp3", "Zebra")

        titles = [s.title for s in await db.get_all_songs()]
        # Default BINARY collation: uppercase sorts before lowercase.
        assert titles == ["Apple", "Zebra", "banana", "cherry"]

    async def test_list_songs_paging_and_order(self, db: LibraryDb) -> None:
        for i in range(5):
            await _add(db, f"/music/{i}.mp3", f"Song {i}", artist=f"Artist {4 - i}")

        page = await db.list_songs(limit=2, offset=1, order_by="title")
        assert [s.title for s in page] == ["Song 1", "Song 2"]

        by_artist = await db.list_songs(order_by="artist")
        assert [s.artist for s in by_artist] == [f"Artist {i}" for i in range(5)]

        # Unknown keys fall back to title order.
        fallback = await db.list_songs(order_by="nope; DROP TABLE songs")
        assert [s.title for s in fallback] == [f"Song {i}" for i in range(5)]

    async def test_search_case_insensitive(self, db: LibraryDb) -> None:
        await _add(db, "/music/1.mp3", "ABCdef")
        await _add(db, "/music/2.mp3", "xyz")

        results = await db.search_songs("abc")
        assert [s.title for s in results] == ["ABCdef"]

    async def test_search_matches_artist_and_album(self, db: LibraryDb) -> None:
        await _add(db, "/music/1.mp3", "One", artist="Miles Davis", album="Kind of Blue")
        await _add(db, "/music/2.mp3", "Two", artist="Coltrane", album="Blue Train")
        await _add(db, "/music/3.mp3", "Three", artist="Monk", album="Brilliant Corners")

        assert [s.title for s in await db.search_songs("DAVIS")] == ["One"]
        assert [s.title for s in await db.search_songs("blue")] == ["One", "Two"]

    async def test_search_empty_query_matches_all(self, db: LibraryDb) -> None:
        await _add(db, "/music/1.mp3", "b")
        await _add(db, "/music/2.mp3", "a")
        assert [s.title for s in await db.search_songs("")] == ["a", "b"]

    async def test_search_wildcards_are_literal(self, db: LibraryDb) -> None:
        await _add(db, "/music/1.mp3", "100% Pure")
        await _add(db, "/music/2.mp3", "1000 Pure")

        assert [s.title for s in await db.search_songs("0%")] == ["100% Pure"]
        assert await db.search_songs("_") == []

    async def test_search_unicode_case_folding(self, db: LibraryDb) -> None:
        await _add(db, "/music/1.mp3", "ÉTÉ Indien")
        assert [s.title for s in await db.search_songs("été")] == ["ÉTÉ Indien"]

    async def test_clear_all_songs_cascades(self, db: LibraryDb) -> None:
        a = await _add(db, "/music/a.mp3")
        b = await _add(db, "/music/b.mp3")
        playlist_id = await db.create_playlist("Mix")
        await db.add_membership(playlist_id, a)
        await db.add_membership(DEFAULT_PLAYLIST_ID, b)

        deleted = await db.clear_all_songs()
        assert deleted == 2
        assert await db.count_memberships(playlist_id) == 0
        assert await db.count_memberships(DEFAULT_PLAYLIST_ID) == 0


# =============================================================================
# Playlists
# =============================================================================


class TestPlaylists:
    """Tests for playlist CRUD."""

    async def test_create_and_list_sorted(self, db: LibraryDb) -> None:
        await db.create_playlist("Workout")
        await db.create_playlist("Chill")

        names = [p.name for p in await db.get_all_playlists()]
        assert names == ["All Songs", "Chill", "Workout"]

    async def test_create_strips_name(self, db: LibraryDb) -> None:
        playlist_id = await db.create_playlist("  Road Trip ")
        playlist = await db.get_playlist_by_id(playlist_id)
        assert playlist.name == "Road Trip"
        assert not playlist.is_default

    async def test_create_duplicate_conflicts(self, db: LibraryDb) -> None:
        await db.create_playlist("Mix")
        with pytest.raises(ConflictError):
            await db.create_playlist("Mix")

    async def test_create_default_name_conflicts(self, db: LibraryDb) -> None:
        with pytest.raises(ConflictError):
            await db.create_playlist(DEFAULT_PLAYLIST_NAME)

    async def test_create_blank_name_rejected(self, db: LibraryDb) -> None:
        with pytest.raises(ValueError):
            await db.create_playlist("   ")

    async def test_delete_default_fails(self, db: LibraryDb) -> None:
        with pytest.raises(ProtectedEntityError):
            await db.delete_playlist(DEFAULT_PLAYLIST_ID)
        assert await db.get_playlist_by_id(DEFAULT_PLAYLIST_ID) is not None

    async def test_delete_cascades_memberships_only(self, db: LibraryDb) -> None:
        a = await _add(db, "/music/a.mp3")
        b = await _add(db, "/music/b.mp3")
        await db.add_membership(DEFAULT_PLAYLIST_ID, a)
        await db.add_membership(DEFAULT_PLAYLIST_ID, b)
        mix = await db.create_playlist("Mix")
        other = await db.create_playlist("Other")
        await db.add_membership(mix, a)
        await db.add_membership(mix, b)
        await db.add_membership(other, b)

        assert await db.delete_playlist(mix) is True

        assert await db.get_playlist_by_id(mix) is None
        assert await db.count_memberships(mix) == 0
        assert await db.count_songs() == 2
        assert await _positions(db, other) == {b: 1}
        assert await _positions(db, DEFAULT_PLAYLIST_ID) == {a: 1, b: 2}

    async def test_delete_missing_is_noop(self, db: LibraryDb) -> None:
        assert await db.delete_playlist(999) is False

    async def test_rename(self, db: LibraryDb) -> None:
        playlist_id = await db.create_playlist("Old")
        await db.rename_playlist(playlist_id, "New")
        playlist = await db.get_playlist_by_id(playlist_id)
        assert playlist.name == "New"

    async def test_rename_default_fails(self, db: LibraryDb) -> None:
        with pytest.raises(ProtectedEntityError):
            await db.rename_playlist(DEFAULT_PLAYLIST_ID, "Everything")

    async def test_rename_missing_fails(self, db: LibraryDb) -> None:
        with pytest.raises(NotFoundError):
            await db.rename_playlist(42, "Whatever")

    async def test_rename_to_taken_name_conflicts(self, db: LibraryDb) -> None:
        await db.create_playlist("A")
        b = await db.create_playlist("B")
        with pytest.raises(ConflictError):
            await db.rename_playlist(b, "A")

    async def test_song_count_reported(self, db: LibraryDb) -> None:
        a = await _add(db, "/music/a.mp3")
        mix = await db.create_playlist("Mix")
        await db.add_membership(mix, a)

        playlist = await db.get_playlist_by_id(mix)
        assert playlist.song_count == 1

        counts = {p.name: p.song_count for p in await db.get_all_playlists()}
        assert counts == {"All Songs": 0, "Mix": 1}


# =============================================================================
# Memberships
# =============================================================================


class TestMemberships:
    """Tests for ordered membership and renumbering."""

    async def test_next_position_empty(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        assert await db.next_position(mix) == 1

    async def test_add_appends(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        ids = [await _add(db, f"/music/{i}.mp3") for i in range(3)]
        for song_id in ids:
            assert await db.add_membership(mix, song_id) is True

        assert await _positions(db, mix) == {ids[0]: 1, ids[1]: 2, ids[2]: 3}
        assert await db.next_position(mix) == 4

    async def test_add_is_idempotent(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        a = await _add(db, "/music/a.mp3")
        assert await db.add_membership(mix, a) is True
        assert await db.add_membership(mix, a) is False
        assert await _positions(db, mix) == {a: 1}

    async def test_add_missing_song_fails(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        with pytest.raises(MissingReferenceError):
            await db.add_membership(mix, 12345)
        assert await db.count_memberships(mix) == 0

    async def test_add_missing_playlist_fails(self, db: LibraryDb) -> None:
        a = await _add(db, "/music/a.mp3")
        with pytest.raises(MissingReferenceError):
            await db.add_membership(999, a)

    async def test_remove_closes_gap_preserving_order(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        ids = [await _add(db, f"/music/{i}.mp3") for i in range(5)]
        for song_id in ids:
            await db.add_membership(mix, song_id)

        assert await db.remove_membership(mix, ids[1]) is True

        ordered = [m.song_id for m in await db.list_memberships(mix)]
        assert ordered == [ids[0], ids[2], ids[3], ids[4]]
        await _assert_packed(db, mix)

    async def test_remove_first_and_last(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        ids = [await _add(db, f"/music/{i}.mp3") for i in range(4)]
        for song_id in ids:
            await db.add_membership(mix, song_id)

        await db.remove_membership(mix, ids[0])
        await db.remove_membership(mix, ids[3])
        assert await _positions(db, mix) == {ids[1]: 1, ids[2]: 2}

    async def test_remove_absent_is_noop(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        a = await _add(db, "/music/a.mp3")
        assert await db.remove_membership(mix, a) is False
        assert await db.remove_membership(999, 999) is False

    async def test_remove_only_touches_one_playlist(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        other = await db.create_playlist("Other")
        a = await _add(db, "/music/a.mp3")
        b = await _add(db, "/music/b.mp3")
        for playlist_id in (mix, other):
            await db.add_membership(playlist_id, a)
            await db.add_membership(playlist_id, b)

        await db.remove_membership(mix, a)
        assert await _positions(db, mix) == {b: 1}
        assert await _positions(db, other) == {a: 1, b: 2}

    async def test_default_playlist_scenario(self, db: LibraryDb) -> None:
        """Remove from the default playlist, then re-add: the song goes to the end."""
        a = await _add(db, "/a.mp3", "A")
        b = await _add(db, "/b.mp3", "B")
        await db.add_membership(DEFAULT_PLAYLIST_ID, a)
        await db.add_membership(DEFAULT_PLAYLIST_ID, b)
        assert await _positions(db, DEFAULT_PLAYLIST_ID) == {a: 1, b: 2}

        await db.remove_membership(DEFAULT_PLAYLIST_ID, a)
        assert await _positions(db, DEFAULT_PLAYLIST_ID) == {b: 1}
        # The song itself stays in the catalogue.
        assert await db.get_song_by_id(a) is not None

        await db.add_membership(DEFAULT_PLAYLIST_ID, a)
        assert await _positions(db, DEFAULT_PLAYLIST_ID) == {b: 1, a: 2}

    async def test_renumber_repairs_gaps(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        ids = [await _add(db, f"/music/{i}.mp3") for i in range(3)]
        # Write sparse positions directly to simulate a damaged playlist.
        for song_id, position in zip(ids, (10, 4, 7)):
            await db.execute(
                "INSERT INTO playlist_songs (playlist_id, song_id, position) VALUES (?, ?, ?);",
                (mix, song_id, position),
            )

        changed = await db.renumber_positions(mix)
        assert changed == 3
        assert await _positions(db, mix) == {ids[1]: 1, ids[2]: 2, ids[0]: 3}
        assert await db.renumber_positions(mix) == 0

    async def test_get_ordered_songs(self, db: LibraryDb) -> None:
        mix = await db.create_playlist("Mix")
        z = await _add(db, "/music/z.mp3", "Zulu")
        a = await _add(db, "/music/a.mp3", "Alpha")
        await db.add_membership(mix, z)
        await db.add_membership(mix, a)

        titles = [s.title for s in await db.get_ordered_songs(mix)]
        assert titles == ["Zulu", "Alpha"]

    async def test_random_add_remove_keeps_positions_packed(self, db: LibraryDb) -> None:
        """Any sequence of adds and removes leaves positions exactly 1..N in add order."""
        rng = random.Random(1234)
        mix = await db.create_playlist("Mix")
        song_ids = [await _add(db, f"/music/{i}.mp3") for i in range(12)]
        expected: list[int] = []

        for _ in range(200):
            song_id = rng.choice(song_ids)
            if song_id in expected and rng.random() < 0.6:
                await db.remove_membership(mix, song_id)
                expected.remove(song_id)
            else:
                await db.add_membership(mix, song_id)
                if song_id not in expected:
                    expected.append(song_id)

            members = await db.list_memberships(mix)
            assert [m.position for m in members] == list(range(1, len(expected) + 1))
            assert [m.song_id for m in members] == expected
