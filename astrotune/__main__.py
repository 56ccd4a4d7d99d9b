"""
AstroTune - Entry Point

Run with: python -m astrotune <command>
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from astrotune import __version__
from astrotune.config import AppConfig, reload_config
from astrotune.core import CoreError
from astrotune.core.db.models import SongRow
from astrotune.core.events import Event, LibraryImportEvent, event_bus
from astrotune.core.library import MusicLibrary
from astrotune.core.library_db import close_library_db, get_library_db

logger = logging.getLogger("astrotune")


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Configure logging for the application."""
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="astrotune",
        description="AstroTune - personal music library",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", type=Path, default=None, help="Path to a TOML config file")
    parser.add_argument("--db", type=Path, default=None, help="Override the database path")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="Import songs from a JSON scan file")
    p.add_argument(
        "file", type=Path, help="JSON array of {title, artist, album, duration, file_path}"
    )

    sub.add_parser("songs", help="List all songs")

    p = sub.add_parser("search", help="Search title, artist and album")
    p.add_argument("query")

    sub.add_parser("playlists", help="List playlists")

    p = sub.add_parser("create", help="Create a playlist")
    p.add_argument("name")

    p = sub.add_parser("rename", help="Rename a playlist")
    p.add_argument("playlist_id", type=int)
    p.add_argument("name")

    p = sub.add_parser("delete", help="Delete a playlist")
    p.add_argument("playlist_id", type=int)

    p = sub.add_parser("add", help="Append a song to a playlist")
    p.add_argument("playlist_id", type=int)
    p.add_argument("song_id", type=int)

    p = sub.add_parser("remove", help="Remove a song from a playlist")
    p.add_argument("playlist_id", type=int)
    p.add_argument("song_id", type=int)

    p = sub.add_parser("show", help="Show a playlist in order")
    p.add_argument("playlist_id", type=int)

    sub.add_parser("clear", help="Remove all songs and playlists")

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", type=str, default=None, help="Bind address (default: from config)")
    p.add_argument("--port", type=int, default=None, help="Port (default: from config)")

    return parser


def _print_songs(songs: list[SongRow], *, numbered: bool = False) -> None:
    for index, song in enumerate(songs, start=1):
        prefix = f"{index:>4}. " if numbered else f"[{song.id}] "
        print(f"{prefix}{song.title} - {song.artist} ({song.album}) {song.duration_display}")


def _load_records(path: Path) -> list[Any]:
    """Read a scan file; records are validated one by one during import."""
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of songs")
    return data


async def _log_import_progress(event: Event) -> None:
    if isinstance(event, LibraryImportEvent) and event.status == "progress":
        logger.info("Import progress: %d/%d", event.current, event.total)


async def run_command(args: argparse.Namespace, config: AppConfig) -> int:
    """Open the library and run one CLI command."""
    try:
        db = await get_library_db(args.db or config.db_path)
        library = MusicLibrary(
            db=db,
            events=event_bus,
            progress_interval=config.progress_interval,
        )
        await library.initialize()

        cmd = args.command
        if cmd == "import":
            records = _load_records(args.file)
            await event_bus.subscribe("library.import", _log_import_progress)
            try:
                result = await library.add_songs(records)
            finally:
                await event_bus.unsubscribe("library.import", _log_import_progress)
            print(
                f"Added {len(result.added)}, skipped {result.skipped}, "
                f"failed {len(result.failures)} of {result.total}"
            )
            for failure in result.failures:
                print(f"  failed: {failure.file_path}: {failure.error}")
        elif cmd == "songs":
            _print_songs(await library.get_all_songs())
        elif cmd == "search":
            _print_songs(await library.search_songs(args.query))
        elif cmd == "playlists":
            for playlist in await library.get_all_playlists():
                print(f"[{playlist.id}] {playlist.name} ({playlist.song_count or 0} songs)")
        elif cmd == "create":
            playlist_id = await library.create_playlist(args.name)
            print(f"Created playlist {playlist_id}")
        elif cmd == "rename":
            await library.rename_playlist(args.playlist_id, args.name)
        elif cmd == "delete":
            if not await library.delete_playlist(args.playlist_id):
                print(f"Playlist {args.playlist_id} does not exist")
        elif cmd == "add":
            if not await library.add_to_playlist(args.playlist_id, args.song_id):
                print("Song is already in the playlist")
        elif cmd == "remove":
            if not await library.remove_from_playlist(args.playlist_id, args.song_id):
                print("Song is not in the playlist")
        elif cmd == "show":
            if await library.get_playlist(args.playlist_id) is None:
                logger.error("Playlist %d not found", args.playlist_id)
                return 1
            _print_songs(await library.get_playlist_songs(args.playlist_id), numbered=True)
        elif cmd == "clear":
            counts = await library.clear_library()
            print(
                f"Removed {counts['songs_deleted']} songs "
                f"and {counts['playlists_deleted']} playlists"
            )
        elif cmd == "serve":
            from astrotune.web.server import WebServer

            server = WebServer(music_library=library)
            await server.serve(
                host=args.host or config.web_host,
                port=args.port or config.web_port,
            )
    except (CoreError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1
    finally:
        await close_library_db()

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = build_parser().parse_args(argv)
    config = reload_config(args.config)
    setup_logging(verbose=args.verbose, level=config.log_level)

    try:
        return asyncio.run(run_command(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
