"""
Playlist-related DB queries.

Design:
- Functions are *pure DB helpers* taking an open `aiosqlite.Connection`.
- Constraint violations are translated into `astrotune.core` errors here so
  callers never see raw `sqlite3.IntegrityError`.
- Writes do not commit; the caller owns the transaction.
"""

from __future__ import annotations

import aiosqlite

from astrotune.core import ConflictError, NotFoundError, ProtectedEntityError
from astrotune.core.db.models import DEFAULT_PLAYLIST_ID, PlaylistRow, normalize_text


def _row_to_playlist(row: aiosqlite.Row) -> PlaylistRow:
    return PlaylistRow(
        id=int(row["id"]),
        name=str(row["name"]),
        created_at=row["created_at"],
        song_count=int(row["song_count"]),
    )


def _require_name(name: str) -> str:
    cleaned = normalize_text(name)
    if cleaned is None:
        raise ValueError("Playlist name must not be empty")
    return cleaned


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


async def get_all_playlists(conn: aiosqlite.Connection) -> list[PlaylistRow]:
    cursor = await conn.execute(
        """
        SELECT
            p.id,
            p.name,
            p.created_at,
            (SELECT COUNT(*) FROM playlist_songs ps WHERE ps.playlist_id = p.id) AS song_count
        FROM playlists p
        ORDER BY p.name ASC, p.id ASC;
        """
    )
    rows = await cursor.fetchall()
    return [_row_to_playlist(r) for r in rows]


async def get_playlist_by_id(conn: aiosqlite.Connection, playlist_id: int) -> PlaylistRow | None:
    cursor = await conn.execute(
        """
        SELECT
            p.id,
            p.name,
            p.created_at,
            (SELECT COUNT(*) FROM playlist_songs ps WHERE ps.playlist_id = p.id) AS song_count
        FROM playlists p
        WHERE p.id = ?;
        """,
        (int(playlist_id),),
    )
    row = await cursor.fetchone()
    return _row_to_playlist(row) if row else None


async def count_playlists(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM playlists;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------


async def create_playlist(conn: aiosqlite.Connection, name: str) -> int:
    """
    Create a playlist and return its id.

    Raises:
        ValueError: blank name.
        ConflictError: a playlist with this name already exists.
    """
    cleaned = _require_name(name)
    try:
        cursor = await conn.execute("INSERT INTO playlists (name) VALUES (?);", (cleaned,))
    except aiosqlite.IntegrityError as e:
        raise ConflictError(f"Playlist {cleaned!r} already exists") from e
    return int(cursor.lastrowid)


async def rename_playlist(conn: aiosqlite.Connection, playlist_id: int, name: str) -> None:
    """
    Rename a playlist.

    Raises:
        ProtectedEntityError: `playlist_id` is the default playlist.
        NotFoundError: no such playlist.
        ConflictError: another playlist already uses `name`.
    """
    if int(playlist_id) == DEFAULT_PLAYLIST_ID:
        raise ProtectedEntityError("The default playlist cannot be renamed")

    cleaned = _require_name(name)
    try:
        cursor = await conn.execute(
            "UPDATE playlists SET name = ? WHERE id = ?;",
            (cleaned, int(playlist_id)),
        )
    except aiosqlite.IntegrityError as e:
        raise ConflictError(f"Playlist {cleaned!r} already exists") from e

    if cursor.rowcount < 1:
        raise NotFoundError(f"Playlist {playlist_id} not found")


async def delete_playlist(conn: aiosqlite.Connection, playlist_id: int) -> bool:
    """
    Delete a playlist; its memberships cascade. Songs are untouched.

    Returns False when the playlist did not exist.

    Raises:
        ProtectedEntityError: `playlist_id` is the default playlist.
    """
    if int(playlist_id) == DEFAULT_PLAYLIST_ID:
        raise ProtectedEntityError("The default playlist cannot be deleted")

    cursor = await conn.execute("DELETE FROM playlists WHERE id = ?;", (int(playlist_id),))
    return cursor.rowcount > 0


async def delete_non_default_playlists(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute(
        "DELETE FROM playlists WHERE id != ?;",
        (DEFAULT_PLAYLIST_ID,),
    )
    return cursor.rowcount
