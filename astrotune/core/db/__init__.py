"""
Internal DB subpackage for AstroTune.

Split into focused units (models, schema/migrations, and query groups) while
keeping `LibraryDb` as the single public interface that the rest of the
codebase imports.

External code should import `LibraryDb` from `astrotune.core.library_db`.
"""

from __future__ import annotations

# Models / DTOs
from .models import (
    DEFAULT_PLAYLIST_ID,
    DEFAULT_PLAYLIST_NAME,
    ImportFailure,
    ImportResult,
    MembershipRow,
    NewSong,
    PlaylistRow,
    SongRow,
)

# Schema / migrations
from .schema import ensure_schema, migrate

__all__ = [
    # models
    "DEFAULT_PLAYLIST_ID",
    "DEFAULT_PLAYLIST_NAME",
    "ImportFailure",
    "ImportResult",
    "MembershipRow",
    "NewSong",
    "PlaylistRow",
    "SongRow",
    # schema
    "ensure_schema",
    "migrate",
]
