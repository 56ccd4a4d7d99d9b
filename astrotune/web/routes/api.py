"""
REST API Routes for AstroTune.

Provides REST endpoints for the desktop/web UI and the scan driver:
- /api/status: Library status
- /api/songs*: Catalogue listing, search, bulk import
- /api/playlists*: Playlist CRUD and ordered membership
- /api/library: Full reset
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException, Request

from astrotune.core import (
    ConflictError,
    CoreError,
    MissingReferenceError,
    NotFoundError,
    ProtectedEntityError,
)
from astrotune.core.db.models import PlaylistRow, SongRow

if TYPE_CHECKING:
    from astrotune.core.library import MusicLibrary

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])

# Reference set during route registration
_music_library: MusicLibrary | None = None


def register_api_routes(app, music_library: MusicLibrary) -> None:
    """
    Register API routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        music_library: MusicLibrary backing every endpoint
    """
    global _music_library
    _music_library = music_library
    app.include_router(router)


def _library() -> MusicLibrary:
    if _music_library is None:
        raise HTTPException(status_code=503, detail="Library not initialized")
    return _music_library


def _http_error(exc: CoreError | ValueError) -> HTTPException:
    """Map core errors onto HTTP status codes."""
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ProtectedEntityError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, (NotFoundError, MissingReferenceError)):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from e


def _song_dict(song: SongRow) -> dict[str, Any]:
    return {
        "id": song.id,
        "title": song.title,
        "artist": song.artist,
        "album": song.album,
        "duration": song.duration,
        "duration_display": song.duration_display,
        "file_path": song.file_path,
        "date_added": song.date_added,
    }


def _playlist_dict(playlist: PlaylistRow) -> dict[str, Any]:
    return {
        "id": playlist.id,
        "name": playlist.name,
        "created_at": playlist.created_at,
        "songs": playlist.song_count or 0,
        "default": playlist.is_default,
    }


# =============================================================================
# Status
# =============================================================================


@router.get("/api/status")
async def library_status() -> dict[str, Any]:
    """Get library status and basic counts."""
    library = _library()
    return {
        "server": "astrotune",
        "library_initialized": library.initialized,
        "songs": await library.db.count_songs(),
        "playlists": await library.db.count_playlists(),
    }


# =============================================================================
# Songs
# =============================================================================


@router.get("/api/songs")
async def get_songs() -> dict[str, Any]:
    """Get every song, ordered by title."""
    songs = await _library().get_all_songs()
    return {"count": len(songs), "songs": [_song_dict(s) for s in songs]}


@router.get("/api/songs/search")
async def search_songs(q: str = "") -> dict[str, Any]:
    """Search title, artist and album (case-insensitive substring)."""
    songs = await _library().search_songs(q)
    return {"query": q, "count": len(songs), "songs": [_song_dict(s) for s in songs]}


@router.post("/api/songs/import")
async def import_songs(request: Request) -> dict[str, Any]:
    """
    Import a list of scanned song records.

    Body: JSON array of {title, artist, album, duration, file_path}.
    Individual bad records (including ones that are not objects or carry
    unusable field values) are reported in `failures`; they do not fail the
    request.
    """
    library = _library()
    body = await _json_body(request)
    if not isinstance(body, list):
        raise HTTPException(status_code=400, detail="Expected a JSON array of songs")

    result = await library.add_songs(body)
    return {
        "added": len(result.added),
        "skipped": result.skipped,
        "failed": len(result.failures),
        "song_ids": list(result.added),
        "failures": [{"file_path": f.file_path, "error": f.error} for f in result.failures],
    }


@router.delete("/api/library")
async def clear_library() -> dict[str, Any]:
    """Remove every song and every playlist except the default one."""
    counts = await _library().clear_library()
    return {"status": "cleared", **counts}


# =============================================================================
# Playlists
# =============================================================================


@router.get("/api/playlists")
async def get_playlists() -> dict[str, Any]:
    """Get all playlists ordered by name."""
    playlists = await _library().get_all_playlists()
    return {"count": len(playlists), "playlists": [_playlist_dict(p) for p in playlists]}


@router.post("/api/playlists", status_code=201)
async def create_playlist(request: Request) -> dict[str, Any]:
    """Create a playlist. Body: {"name": "..."}."""
    library = _library()
    body = await _json_body(request)
    name = body.get("name") if isinstance(body, dict) else None
    if not isinstance(name, str):
        raise HTTPException(status_code=400, detail="Missing 'name'")

    try:
        playlist_id = await library.create_playlist(name)
    except (CoreError, ValueError) as e:
        raise _http_error(e) from e
    return {"id": playlist_id, "name": name.strip()}


@router.patch("/api/playlists/{playlist_id}")
async def rename_playlist(playlist_id: int, request: Request) -> dict[str, Any]:
    """Rename a playlist. Body: {"name": "..."}."""
    library = _library()
    body = await _json_body(request)
    name = body.get("name") if isinstance(body, dict) else None
    if not isinstance(name, str):
        raise HTTPException(status_code=400, detail="Missing 'name'")

    try:
        await library.rename_playlist(playlist_id, name)
    except (CoreError, ValueError) as e:
        raise _http_error(e) from e
    return {"id": playlist_id, "name": name.strip()}


@router.delete("/api/playlists/{playlist_id}")
async def delete_playlist(playlist_id: int) -> dict[str, Any]:
    """Delete a playlist (never the default one). Deleting a missing id is not an error."""
    try:
        deleted = await _library().delete_playlist(playlist_id)
    except CoreError as e:
        raise _http_error(e) from e
    return {"id": playlist_id, "deleted": deleted}


@router.get("/api/playlists/{playlist_id}/songs")
async def get_playlist_songs(playlist_id: int) -> dict[str, Any]:
    """Get the songs of a playlist in position order."""
    library = _library()
    playlist = await library.get_playlist(playlist_id)
    if playlist is None:
        raise HTTPException(status_code=404, detail="Playlist not found")

    positions = {
        m.song_id: m.position for m in await library.get_playlist_memberships(playlist_id)
    }
    entries = [
        {"position": positions[song.id], **_song_dict(song)}
        for song in await library.get_playlist_songs(playlist_id)
        if song.id in positions
    ]
    return {"playlist": _playlist_dict(playlist), "count": len(entries), "songs": entries}


@router.post("/api/playlists/{playlist_id}/songs")
async def add_song_to_playlist(playlist_id: int, request: Request) -> dict[str, Any]:
    """Append a song to a playlist. Body: {"song_id": n}."""
    library = _library()
    body = await _json_body(request)
    song_id = body.get("song_id") if isinstance(body, dict) else None
    if not isinstance(song_id, int) or isinstance(song_id, bool):
        raise HTTPException(status_code=400, detail="Missing integer 'song_id'")

    try:
        added = await library.add_to_playlist(playlist_id, song_id)
    except CoreError as e:
        raise _http_error(e) from e
    return {"playlist_id": playlist_id, "song_id": song_id, "added": added}


@router.delete("/api/playlists/{playlist_id}/songs/{song_id}")
async def remove_song_from_playlist(playlist_id: int, song_id: int) -> dict[str, Any]:
    """Remove a song from a playlist; later songs move up by one."""
    removed = await _library().remove_from_playlist(playlist_id, song_id)
    return {"playlist_id": playlist_id, "song_id": song_id, "removed": removed}
