"""
Database schema + migrations for AstroTune.

- Connection management and the public `LibraryDb` facade live in `library_db.py`
- Schema creation, schema versioning, and forward-only migrations live here

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- Migrations are forward-only (no downgrade support).
- The default playlist is seeded on every `ensure_schema()` call, not only
  during migration, so a missing row is restored on the next startup.
"""

from __future__ import annotations

import logging
from typing import Final

import aiosqlite

from astrotune.core.db.models import DEFAULT_PLAYLIST_ID, DEFAULT_PLAYLIST_NAME

logger = logging.getLogger(__name__)

# Bump when you change the schema and add a migration in `migrate()`.
SCHEMA_VERSION: Final[int] = 1


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create or migrate schema to current version, then seed the default playlist.

    This function assumes:
    - `conn` is an open aiosqlite connection
    - foreign_keys pragma is enabled by the caller
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current < SCHEMA_VERSION:
        logger.info("Migrating library schema from v%d to v%d", current, SCHEMA_VERSION)
        await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
        await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")

    await seed_default_playlist(conn)
    await conn.commit()


async def seed_default_playlist(conn: aiosqlite.Connection) -> None:
    """Insert the catalogue-wide playlist if it is absent."""
    await conn.execute(
        "INSERT OR IGNORE INTO playlists (id, name) VALUES (?, ?);",
        (DEFAULT_PLAYLIST_ID, DEFAULT_PLAYLIST_NAME),
    )


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """
    Perform forward-only migrations.

    Keep migrations small. If you need a big refactor, create a new DB.
    """
    # v0 -> v1
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS songs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                artist TEXT NOT NULL,
                album TEXT NOT NULL,
                duration INTEGER NOT NULL DEFAULT 0 CHECK (duration >= 0),
                file_path TEXT NOT NULL UNIQUE,
                date_added DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlists (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

        # Positions are 1..N per playlist; the membership layer keeps them packed.
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlist_songs (
                playlist_id INTEGER NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
                song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
                position INTEGER NOT NULL CHECK (position > 0),
                PRIMARY KEY (playlist_id, song_id)
            )
            """
        )

        await conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_title ON songs(title);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_artist ON songs(artist);")
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playlist_songs_playlist ON playlist_songs(playlist_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playlist_songs_song ON playlist_songs(song_id);"
        )

        await conn.commit()
        from_version = 1

    if from_version != to_version:
        raise RuntimeError(f"No migration path from {from_version} to {to_version}.")
