"""
Playlist membership queries: the ordered (playlist, song) relation.

Invariant maintained here: for every playlist the `position` values are exactly
1..N, where N is the playlist's membership count.

- Appends always go to `MAX(position) + 1`; existing entries are never moved.
- Removal is followed by a re-rank pass over the remaining rows.
- Writes do not commit; the caller owns the transaction.
"""

from __future__ import annotations

import logging

import aiosqlite

from astrotune.core import MissingReferenceError
from astrotune.core.db.models import MembershipRow, SongRow
from astrotune.core.db.queries_songs import row_to_song

logger = logging.getLogger(__name__)


async def next_position(conn: aiosqlite.Connection, playlist_id: int) -> int:
    cursor = await conn.execute(
        "SELECT COALESCE(MAX(position), 0) AS max_pos FROM playlist_songs WHERE playlist_id = ?;",
        (int(playlist_id),),
    )
    row = await cursor.fetchone()
    return (int(row["max_pos"]) if row else 0) + 1


async def has_membership(conn: aiosqlite.Connection, playlist_id: int, song_id: int) -> bool:
    cursor = await conn.execute(
        "SELECT 1 FROM playlist_songs WHERE playlist_id = ? AND song_id = ?;",
        (int(playlist_id), int(song_id)),
    )
    return await cursor.fetchone() is not None


async def add_membership(conn: aiosqlite.Connection, playlist_id: int, song_id: int) -> bool:
    """
    Append `song_id` to the end of `playlist_id`.

    Returns False if the song is already in the playlist (no-op).

    Raises:
        MissingReferenceError: the playlist or the song does not exist.
    """
    if await has_membership(conn, playlist_id, song_id):
        return False

    position = await next_position(conn, playlist_id)
    try:
        await conn.execute(
            "INSERT INTO playlist_songs (playlist_id, song_id, position) VALUES (?, ?, ?);",
            (int(playlist_id), int(song_id), position),
        )
    except aiosqlite.IntegrityError as e:
        raise MissingReferenceError(
            f"Cannot add song {song_id} to playlist {playlist_id}: "
            "song or playlist does not exist"
        ) from e
    return True


async def renumber_positions(conn: aiosqlite.Connection, playlist_id: int) -> int:
    """
    Re-rank the playlist's memberships to 1..N, preserving relative order.

    All new positions are computed from one snapshot of the current ones before
    anything is written. Returns the number of rows whose position changed.
    """
    cursor = await conn.execute(
        """
        SELECT song_id, position FROM playlist_songs
        WHERE playlist_id = ?
        ORDER BY position ASC, song_id ASC;
        """,
        (int(playlist_id),),
    )
    rows = await cursor.fetchall()

    updates = [
        (rank, int(playlist_id), int(row["song_id"]))
        for rank, row in enumerate(rows, start=1)
        if int(row["position"]) != rank
    ]
    if updates:
        await conn.executemany(
            "UPDATE playlist_songs SET position = ? WHERE playlist_id = ? AND song_id = ?;",
            updates,
        )
        logger.debug("Renumbered %d memberships in playlist %d", len(updates), playlist_id)
    return len(updates)


async def remove_membership(conn: aiosqlite.Connection, playlist_id: int, song_id: int) -> bool:
    """
    Remove `song_id` from `playlist_id` and close the gap it leaves.

    Returns False when the pair did not exist (not an error).
    """
    cursor = await conn.execute(
        "DELETE FROM playlist_songs WHERE playlist_id = ? AND song_id = ?;",
        (int(playlist_id), int(song_id)),
    )
    if cursor.rowcount < 1:
        return False

    await renumber_positions(conn, playlist_id)
    return True


async def list_memberships(conn: aiosqlite.Connection, playlist_id: int) -> list[MembershipRow]:
    cursor = await conn.execute(
        """
        SELECT playlist_id, song_id, position FROM playlist_songs
        WHERE playlist_id = ?
        ORDER BY position ASC;
        """,
        (int(playlist_id),),
    )
    rows = await cursor.fetchall()
    return [
        MembershipRow(
            playlist_id=int(r["playlist_id"]),
            song_id=int(r["song_id"]),
            position=int(r["position"]),
        )
        for r in rows
    ]


async def count_memberships(conn: aiosqlite.Connection, playlist_id: int) -> int:
    cursor = await conn.execute(
        "SELECT COUNT(*) AS c FROM playlist_songs WHERE playlist_id = ?;",
        (int(playlist_id),),
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def get_ordered_songs(conn: aiosqlite.Connection, playlist_id: int) -> list[SongRow]:
    cursor = await conn.execute(
        """
        SELECT s.* FROM songs s
        INNER JOIN playlist_songs ps ON s.id = ps.song_id
        WHERE ps.playlist_id = ?
        ORDER BY ps.position ASC;
        """,
        (int(playlist_id),),
    )
    rows = await cursor.fetchall()
    return [row_to_song(r) for r in rows]


async def clear_all_memberships(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("DELETE FROM playlist_songs;")
    return cursor.rowcount
