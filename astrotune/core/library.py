from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Iterable, Mapping

from astrotune.core.db.models import (
    DEFAULT_PLAYLIST_ID,
    ImportFailure,
    ImportResult,
    MembershipRow,
    NewSong,
    PlaylistRow,
    SongRow,
)
from astrotune.core.events import EventBus, LibraryImportEvent, PlaylistChangedEvent
from astrotune.core.library_db import LibraryDb

logger = logging.getLogger(__name__)


class MusicLibraryError(RuntimeError):
    """Base error for MusicLibrary operations."""


class MusicLibraryNotReadyError(MusicLibraryError):
    """Raised when operations are attempted before the library is initialized."""


class MusicLibrary:
    """
    High-level facade for the AstroTune library.

    Composes the song, playlist and membership layers of `LibraryDb` into the
    two batch operations the UI needs (`add_songs`, `clear_library`) and wraps
    the single-step operations in commit/rollback so callers never manage
    transactions themselves.

    Dependencies:
    - `LibraryDb` for persistence (must already be open)
    - an optional `EventBus` for import progress and playlist change signals
    """

    def __init__(
        self,
        *,
        db: LibraryDb,
        events: EventBus | None = None,
        progress_interval: int = 1,
    ) -> None:
        if progress_interval < 1:
            raise ValueError("progress_interval must be >= 1")
        self._db = db
        self._events = events
        self._progress_interval = progress_interval
        self._initialized = False
        # Every write shares one connection; positions are assigned from MAX(position).
        self._write_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def db(self) -> LibraryDb:
        return self._db

    async def initialize(self) -> None:
        """
        Initialize underlying storage and prepare the library.

        Contract:
        - `LibraryDb` must already be open.
        - schema/migrations and the default playlist are ensured here.
        """
        if not self._db.is_open:
            raise MusicLibraryError(
                "LibraryDb is not open. Open it before initializing MusicLibrary."
            )

        await self._db.ensure_schema()
        self._initialized = True

    # ---- Batch operations ----

    async def add_songs(
        self, candidates: Iterable[NewSong | Mapping[str, Any]]
    ) -> ImportResult:
        """
        Import scanned songs one at a time.

        Items may be `NewSong`s or raw scan records (mappings). New songs are
        appended to the default playlist. A candidate whose `file_path` is
        already catalogued is skipped. A candidate that fails (including a
        record that cannot be converted) is rolled back on its own, logged, and
        reported in `failures`; the rest of the batch still runs.
        """
        self._require_initialized()
        batch = list(candidates)
        total = len(batch)

        added: list[int] = []
        skipped = 0
        failures: list[ImportFailure] = []

        async with self._write_lock:
            await self._publish(LibraryImportEvent(status="started", total=total))

            for index, item in enumerate(batch, start=1):
                try:
                    candidate = item if isinstance(item, NewSong) else NewSong.from_dict(item)
                    async with self._db.savepoint("import_song"):
                        song_id = await self._db.add_song(candidate)
                        if song_id is not None:
                            await self._db.add_membership(DEFAULT_PLAYLIST_ID, song_id)
                except Exception as e:
                    file_path = _record_path(item)
                    logger.warning("Error adding song %s: %s", file_path, e)
                    failures.append(ImportFailure(file_path=file_path, error=str(e)))
                else:
                    if song_id is None:
                        skipped += 1
                    else:
                        added.append(song_id)

                if index % self._progress_interval == 0 or index == total:
                    await self._publish(
                        LibraryImportEvent(
                            status="progress",
                            current=index,
                            total=total,
                            added=len(added),
                            skipped=skipped,
                            failed=len(failures),
                        )
                    )

            await self._db.commit()

            result = ImportResult(added=tuple(added), skipped=skipped, failures=tuple(failures))
            logger.info(
                "Imported %d songs (%d already present, %d failed)",
                len(result.added),
                result.skipped,
                len(result.failures),
            )
            await self._publish(
                LibraryImportEvent(
                    status="completed",
                    current=total,
                    total=total,
                    added=len(result.added),
                    skipped=result.skipped,
                    failed=len(result.failures),
                )
            )
        return result

    async def clear_library(self) -> dict[str, int]:
        """
        Return the catalogue to its freshly initialized state.

        Removes every membership, every playlist except the default one, and
        every song. Returns counts of removed rows.
        """
        self._require_initialized()
        async with self._unit_of_work():
            memberships = await self._db.clear_all_memberships()
            playlists = await self._db.delete_non_default_playlists()
            songs = await self._db.clear_all_songs()

        logger.info(
            "Cleared library: %d songs, %d playlists, %d memberships",
            songs,
            playlists,
            memberships,
        )
        await self._publish(PlaylistChangedEvent(action="clear"))
        return {
            "songs_deleted": songs,
            "playlists_deleted": playlists,
            "memberships_deleted": memberships,
        }

    # ---- Playlists ----

    async def create_playlist(self, name: str) -> int:
        self._require_initialized()
        async with self._unit_of_work():
            playlist_id = await self._db.create_playlist(name)
        await self._publish(PlaylistChangedEvent(action="create", playlist_id=playlist_id))
        return playlist_id

    async def rename_playlist(self, playlist_id: int, name: str) -> None:
        self._require_initialized()
        async with self._unit_of_work():
            await self._db.rename_playlist(playlist_id, name)
        await self._publish(PlaylistChangedEvent(action="rename", playlist_id=playlist_id))

    async def delete_playlist(self, playlist_id: int) -> bool:
        self._require_initialized()
        async with self._unit_of_work():
            deleted = await self._db.delete_playlist(playlist_id)
        if deleted:
            await self._publish(PlaylistChangedEvent(action="delete", playlist_id=playlist_id))
        return deleted

    async def add_to_playlist(self, playlist_id: int, song_id: int) -> bool:
        self._require_initialized()
        async with self._unit_of_work():
            added = await self._db.add_membership(playlist_id, song_id)
        if added:
            await self._publish(
                PlaylistChangedEvent(action="add", playlist_id=playlist_id, song_id=song_id)
            )
        return added

    async def remove_from_playlist(self, playlist_id: int, song_id: int) -> bool:
        """
        Remove a song from a playlist and close the gap.

        For the default playlist only the membership goes; the song stays in
        the catalogue and can be appended again with `add_to_playlist`.
        """
        self._require_initialized()
        async with self._unit_of_work():
            removed = await self._db.remove_membership(playlist_id, song_id)
        if removed:
            await self._publish(
                PlaylistChangedEvent(action="remove", playlist_id=playlist_id, song_id=song_id)
            )
        return removed

    # ---- Read APIs ----

    async def get_all_songs(self) -> list[SongRow]:
        self._require_initialized()
        return await self._db.get_all_songs()

    async def search_songs(self, query: str) -> list[SongRow]:
        self._require_initialized()
        return await self._db.search_songs(query)

    async def get_all_playlists(self) -> list[PlaylistRow]:
        self._require_initialized()
        return await self._db.get_all_playlists()

    async def get_playlist(self, playlist_id: int) -> PlaylistRow | None:
        self._require_initialized()
        return await self._db.get_playlist_by_id(playlist_id)

    async def get_playlist_songs(self, playlist_id: int) -> list[SongRow]:
        self._require_initialized()
        return await self._db.get_ordered_songs(playlist_id)

    async def get_playlist_memberships(self, playlist_id: int) -> list[MembershipRow]:
        self._require_initialized()
        return await self._db.list_memberships(playlist_id)

    # ---- Internals ----

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[None]:
        """Serialize a write with every other write, then commit or roll back."""
        async with self._write_lock:
            try:
                yield
            except Exception:
                await self._db.rollback()
                raise
            await self._db.commit()

    async def _publish(self, event: LibraryImportEvent | PlaylistChangedEvent) -> None:
        if self._events is not None:
            await self._events.publish(event)

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise MusicLibraryNotReadyError(
                "MusicLibrary is not initialized. Call await MusicLibrary.initialize() first."
            )


def _record_path(item: Any) -> str:
    if isinstance(item, NewSong):
        return item.file_path
    if isinstance(item, Mapping):
        return str(item.get("file_path") or "")
    return ""
