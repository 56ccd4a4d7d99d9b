"""
Music library database access layer.

Goals:
- Small and testable.
- SQLite + aiosqlite, async/await friendly.
- Schema evolves via user_version migrations.

This module is intentionally independent of the web layer.

Note:
- Models/DTOs and normalization helpers live in `astrotune.core.db.models`
- Schema/migrations live in `astrotune.core.db.schema`
- Query functions live in `astrotune.core.db.queries_*` modules
- `LibraryDb` remains the public facade used by the rest of the codebase
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Mapping, Sequence

import aiosqlite

from astrotune.config import get_config

# Import query modules for delegation
from astrotune.core.db import queries_memberships, queries_playlists, queries_songs
from astrotune.core.db.models import (
    MembershipRow,
    NewSong,
    PlaylistRow,
    SongRow,
)
from astrotune.core.db.schema import ensure_schema as ensure_schema_sql

logger = logging.getLogger(__name__)

__all__ = [
    "LibraryDb",
    "MembershipRow",
    "NewSong",
    "PlaylistRow",
    "SongRow",
    "close_library_db",
    "get_library_db",
]


class LibraryDb:
    """
    Async access layer for the music library DB.

    Usage:
        db = LibraryDb("astrotune.db")
        await db.open()
        await db.ensure_schema()
        ... queries ...
        await db.close()

    Notes:
    - This class is designed to be injected into other components.
    - Connections are not pooled; we keep a single connection.
    - Write methods do not commit unless stated; call `commit()` when a unit of
      work is complete.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        # Pragmas: modern defaults without being clever.
        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute("PRAGMA journal_mode = WAL;")
        await self._conn.execute("PRAGMA synchronous = NORMAL;")
        await self._conn.execute("PRAGMA temp_store = MEMORY;")

        await queries_songs.register_functions(self._conn)
        logger.debug("Opened library database %s", self._db_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("LibraryDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version and seed the default playlist."""
        conn = self._require_conn()
        await ensure_schema_sql(conn)

    async def execute(self, sql: str, params: Sequence[Any] | Mapping[str, Any] = ()) -> None:
        conn = self._require_conn()
        await conn.execute(sql, params)

    async def commit(self) -> None:
        conn = self._require_conn()
        await conn.commit()

    async def rollback(self) -> None:
        conn = self._require_conn()
        await conn.rollback()

    @asynccontextmanager
    async def savepoint(self, name: str) -> AsyncIterator[None]:
        """
        Run a block inside a SQLite savepoint.

        The savepoint is released on success and rolled back on any exception,
        which is then re-raised. `name` must be a plain identifier.
        """
        if not name.isidentifier():
            raise ValueError(f"Invalid savepoint name: {name!r}")
        conn = self._require_conn()
        await conn.execute(f"SAVEPOINT {name};")
        try:
            yield
        except Exception:
            await conn.execute(f"ROLLBACK TO SAVEPOINT {name};")
            await conn.execute(f"RELEASE SAVEPOINT {name};")
            raise
        await conn.execute(f"RELEASE SAVEPOINT {name};")

    # ===========================================================================
    # Songs (delegated to queries_songs module)
    # ===========================================================================

    async def add_song(self, candidate: NewSong) -> int | None:
        """Insert a song unless its file_path exists. Returns the new id or None."""
        return await queries_songs.add_song(self._require_conn(), candidate)

    async def get_song_by_id(self, song_id: int) -> SongRow | None:
        return await queries_songs.get_song_by_id(self._require_conn(), song_id)

    async def get_song_by_path(self, file_path: str) -> SongRow | None:
        return await queries_songs.get_song_by_path(self._require_conn(), file_path)

    async def get_all_songs(self) -> list[SongRow]:
        return await queries_songs.get_all_songs(self._require_conn())

    async def list_songs(
        self, *, limit: int = 500, offset: int = 0, order_by: str = "title"
    ) -> list[SongRow]:
        return await queries_songs.list_songs(
            self._require_conn(), limit=limit, offset=offset, order_by=order_by
        )

    async def count_songs(self) -> int:
        return await queries_songs.count_songs(self._require_conn())

    async def search_songs(self, query: str) -> list[SongRow]:
        return await queries_songs.search_songs(self._require_conn(), query)

    async def clear_all_songs(self) -> int:
        """Delete every song (memberships cascade). Returns count of deleted songs."""
        return await queries_songs.clear_all_songs(self._require_conn())

    # ===========================================================================
    # Playlists (delegated to queries_playlists module)
    # ===========================================================================

    async def get_all_playlists(self) -> list[PlaylistRow]:
        return await queries_playlists.get_all_playlists(self._require_conn())

    async def get_playlist_by_id(self, playlist_id: int) -> PlaylistRow | None:
        return await queries_playlists.get_playlist_by_id(self._require_conn(), playlist_id)

    async def count_playlists(self) -> int:
        return await queries_playlists.count_playlists(self._require_conn())

    async def create_playlist(self, name: str) -> int:
        return await queries_playlists.create_playlist(self._require_conn(), name)

    async def rename_playlist(self, playlist_id: int, name: str) -> None:
        await queries_playlists.rename_playlist(self._require_conn(), playlist_id, name)

    async def delete_playlist(self, playlist_id: int) -> bool:
        return await queries_playlists.delete_playlist(self._require_conn(), playlist_id)

    async def delete_non_default_playlists(self) -> int:
        return await queries_playlists.delete_non_default_playlists(self._require_conn())

    # ===========================================================================
    # Memberships (delegated to queries_memberships module)
    # ===========================================================================

    async def next_position(self, playlist_id: int) -> int:
        return await queries_memberships.next_position(self._require_conn(), playlist_id)

    async def add_membership(self, playlist_id: int, song_id: int) -> bool:
        return await queries_memberships.add_membership(
            self._require_conn(), playlist_id, song_id
        )

    async def remove_membership(self, playlist_id: int, song_id: int) -> bool:
        return await queries_memberships.remove_membership(
            self._require_conn(), playlist_id, song_id
        )

    async def renumber_positions(self, playlist_id: int) -> int:
        return await queries_memberships.renumber_positions(self._require_conn(), playlist_id)

    async def list_memberships(self, playlist_id: int) -> list[MembershipRow]:
        return await queries_memberships.list_memberships(self._require_conn(), playlist_id)

    async def count_memberships(self, playlist_id: int) -> int:
        return await queries_memberships.count_memberships(self._require_conn(), playlist_id)

    async def get_ordered_songs(self, playlist_id: int) -> list[SongRow]:
        return await queries_memberships.get_ordered_songs(self._require_conn(), playlist_id)

    async def clear_all_memberships(self) -> int:
        return await queries_memberships.clear_all_memberships(self._require_conn())


# ===========================================================================
# Process-wide shared handle
# ===========================================================================

_shared_db: LibraryDb | None = None
_shared_lock = asyncio.Lock()


async def get_library_db(db_path: str | Path | None = None) -> LibraryDb:
    """
    Return the process-wide `LibraryDb`, opening and migrating it on first use.

    Later calls return the same instance; `db_path` is only consulted the first
    time. When omitted, the path comes from `astrotune.config.get_config()`.
    """
    global _shared_db

    if _shared_db is not None:
        return _shared_db

    async with _shared_lock:
        if _shared_db is None:
            if db_path is None:
                db_path = get_config().db_path
            db = LibraryDb(db_path)
            await db.open()
            try:
                await db.ensure_schema()
            except Exception:
                await db.close()
                raise
            logger.info("Library database ready at %s", db.path)
            _shared_db = db

    return _shared_db


async def close_library_db() -> None:
    """Close and forget the shared handle (no-op if it was never opened)."""
    global _shared_db

    async with _shared_lock:
        if _shared_db is not None:
            await _shared_db.close()
            _shared_db = None
