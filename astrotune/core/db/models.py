"""
DB models (DTOs) and small normalization helpers.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Mapping

DEFAULT_ARTIST = "Unknown Artist"
DEFAULT_ALBUM = "Unknown Album"

# The catalogue-wide playlist. It always exists and is never deleted or renamed.
DEFAULT_PLAYLIST_ID = 1
DEFAULT_PLAYLIST_NAME = "All Songs"


@dataclass(frozen=True, slots=True)
class SongRow:
    """
    Canonical song record as stored in SQLite.

    `file_path` is the stable unique identifier for a local file; importing the
    same path twice never creates a second row.
    """

    id: int
    title: str
    artist: str
    album: str
    duration: int
    file_path: str
    date_added: str | None = None

    @property
    def duration_display(self) -> str:
        """Duration as `m:ss`."""
        minutes, seconds = divmod(max(int(self.duration), 0), 60)
        return f"{minutes}:{seconds:02d}"


@dataclass(frozen=True, slots=True)
class PlaylistRow:
    """Playlist record as stored in SQLite."""

    id: int
    name: str
    created_at: str | None = None
    song_count: int | None = None  # Only filled by list queries that join memberships

    @property
    def is_default(self) -> bool:
        return self.id == DEFAULT_PLAYLIST_ID


@dataclass(frozen=True, slots=True)
class MembershipRow:
    """One (playlist, song) association with its 1-based position."""

    playlist_id: int
    song_id: int
    position: int


@dataclass(frozen=True, slots=True)
class NewSong:
    """
    Input record produced by a directory scan.

    The defaults match what the scanner falls back to when a file carries no
    tags. Call `normalize_candidate()` before persisting.
    """

    file_path: str
    title: str = ""
    artist: str = DEFAULT_ARTIST
    album: str = DEFAULT_ALBUM
    duration: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NewSong:
        """
        Build a candidate from a scan record; unknown keys (e.g. `id`) are ignored.

        Raises:
            TypeError: `data` is not a mapping.
            ValueError: `duration` is not a whole number of seconds.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"Song record must be an object, got {type(data).__name__}")
        return cls(
            file_path=str(data.get("file_path") or ""),
            title=str(data.get("title") or ""),
            artist=str(data.get("artist") or DEFAULT_ARTIST),
            album=str(data.get("album") or DEFAULT_ALBUM),
            duration=parse_duration(data.get("duration")),
        )


@dataclass(frozen=True, slots=True)
class ImportFailure:
    """A candidate that could not be imported, with the reason."""

    file_path: str
    error: str


@dataclass(frozen=True, slots=True)
class ImportResult:
    """
    Outcome of a bulk import.

    - `added`: ids of newly created songs, in import order
    - `skipped`: candidates whose `file_path` was already catalogued
    - `failures`: candidates rejected individually; the batch still completed
    """

    added: tuple[int, ...] = ()
    skipped: int = 0
    failures: tuple[ImportFailure, ...] = ()

    @property
    def total(self) -> int:
        return len(self.added) + self.skipped + len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures


def parse_duration(value: Any) -> int:
    """
    Coerce a duration to whole seconds.

    None and "" mean 0. Integral floats and digit strings are accepted;
    fractional values, booleans and anything else raise ValueError.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"duration must be whole seconds, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValueError(f"duration must be whole seconds, got {value!r}")


def normalize_text(value: str | None) -> str | None:
    """
    Normalize optional text fields:
    - strip whitespace
    - coerce empty strings to None
    """
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def normalize_candidate(song: NewSong) -> NewSong:
    """
    Return a cleaned copy of `song` ready for insertion.

    Raises:
        ValueError: empty `file_path` or negative `duration`.
    """
    file_path = normalize_text(song.file_path)
    if file_path is None:
        raise ValueError("file_path must not be empty")

    duration = parse_duration(song.duration)
    if duration < 0:
        raise ValueError(f"duration must be non-negative, got {duration}")

    title = normalize_text(song.title) or PurePath(file_path).stem or file_path
    return NewSong(
        file_path=file_path,
        title=title,
        artist=normalize_text(song.artist) or DEFAULT_ARTIST,
        album=normalize_text(song.album) or DEFAULT_ALBUM,
        duration=duration,
    )
