"""
Song-related DB queries.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return materialized dataclasses.
- Ordering is centralized via `astrotune.core.db.ordering.songs_order_clause`.
- These functions assume `conn.row_factory = aiosqlite.Row`.
- Writes do not commit; the caller owns the transaction.

Important:
- Do NOT interpolate user input into SQL. Any dynamic SQL here is limited to
  ORDER BY clauses selected from a small whitelist in `songs_order_clause`.
"""

from __future__ import annotations

import aiosqlite

from astrotune.core.db.models import NewSong, SongRow, normalize_candidate
from astrotune.core.db.ordering import SongsOrderBy, songs_order_clause

# SQL function registered on every connection (see `register_functions`).
# SQLite's own LIKE/lower() only fold ASCII; search needs full Unicode folding.
CASEFOLD_FN = "casefold"


def _casefold(value: object) -> object:
    return value.casefold() if isinstance(value, str) else value


async def register_functions(conn: aiosqlite.Connection) -> None:
    await conn.create_function(CASEFOLD_FN, 1, _casefold, deterministic=True)


def row_to_song(row: aiosqlite.Row) -> SongRow:
    return SongRow(
        id=int(row["id"]),
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        duration=int(row["duration"] or 0),
        file_path=str(row["file_path"]),
        date_added=row["date_added"],
    )


# ---------------------------------------------------------------------------
# Insert
# ---------------------------------------------------------------------------


async def add_song(conn: aiosqlite.Connection, candidate: NewSong) -> int | None:
    """
    Insert `candidate` unless its `file_path` is already catalogued.

    Returns the new song id, or None when the path already existed (dedup no-op).

    Raises:
        ValueError: the candidate fails normalization.
    """
    song = normalize_candidate(candidate)
    cursor = await conn.execute(
        """
        INSERT INTO songs (title, artist, album, duration, file_path)
        VALUES (:title, :artist, :album, :duration, :file_path)
        ON CONFLICT(file_path) DO NOTHING
        """,
        {
            "title": song.title,
            "artist": song.artist,
            "album": song.album,
            "duration": song.duration,
            "file_path": song.file_path,
        },
    )
    if cursor.rowcount < 1:
        return None
    return int(cursor.lastrowid)


# ---------------------------------------------------------------------------
# Basic get/list/count
# ---------------------------------------------------------------------------


async def get_song_by_id(conn: aiosqlite.Connection, song_id: int) -> SongRow | None:
    cursor = await conn.execute("SELECT * FROM songs WHERE id = ?;", (int(song_id),))
    row = await cursor.fetchone()
    return row_to_song(row) if row else None


async def get_song_by_path(conn: aiosqlite.Connection, file_path: str) -> SongRow | None:
    cursor = await conn.execute("SELECT * FROM songs WHERE file_path = ?;", (file_path,))
    row = await cursor.fetchone()
    return row_to_song(row) if row else None


async def get_all_songs(conn: aiosqlite.Connection) -> list[SongRow]:
    cursor = await conn.execute(f"SELECT * FROM songs s {songs_order_clause('title')};")
    rows = await cursor.fetchall()
    return [row_to_song(r) for r in rows]


async def list_songs(
    conn: aiosqlite.Connection,
    *,
    limit: int,
    offset: int,
    order_by: SongsOrderBy | str,
) -> list[SongRow]:
    order_clause = songs_order_clause(order_by)
    cursor = await conn.execute(
        f"""
        SELECT * FROM songs s
        {order_clause}
        LIMIT ? OFFSET ?;
        """,
        (int(limit), int(offset)),
    )
    rows = await cursor.fetchall()
    return [row_to_song(r) for r in rows]


async def count_songs(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM songs;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def search_songs(conn: aiosqlite.Connection, query: str) -> list[SongRow]:
    """Case-insensitive substring match over title, artist and album."""
    needle = query.casefold()
    cursor = await conn.execute(
        f"""
        SELECT * FROM songs s
        WHERE instr({CASEFOLD_FN}(s.title), :q) > 0
           OR instr({CASEFOLD_FN}(s.artist), :q) > 0
           OR instr({CASEFOLD_FN}(s.album), :q) > 0
        {songs_order_clause('title')};
        """,
        {"q": needle},
    )
    rows = await cursor.fetchall()
    return [row_to_song(r) for r in rows]


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


async def clear_all_songs(conn: aiosqlite.Connection) -> int:
    """Delete every song; memberships go with them via ON DELETE CASCADE."""
    cursor = await conn.execute("DELETE FROM songs;")
    return cursor.rowcount
