"""
Web Server Module for AstroTune.

This module provides the WebServer class that creates and manages the
FastAPI application and registers the REST routes used by the UI and by the
scan driver that pushes imported songs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from astrotune import __version__
from astrotune.web.routes.api import register_api_routes

if TYPE_CHECKING:
    from astrotune.core.library import MusicLibrary

logger = logging.getLogger(__name__)


class WebServer:
    """FastAPI-based web server exposing the music library."""

    def __init__(self, music_library: MusicLibrary) -> None:
        self.music_library = music_library

        self.app = FastAPI(
            title="AstroTune",
            description="Personal music library: songs, playlists and search",
            version=__version__,
        )

        # The desktop shell loads the UI from a local origin.
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._server: uvicorn.Server | None = None
        self._host = "127.0.0.1"
        self._port = 8765

        self._register_routes()

    def _register_routes(self) -> None:
        """Register all routes with the FastAPI app."""

        @self.app.get("/health")
        async def health_check() -> dict[str, str]:
            """Health check endpoint."""
            return {"status": "ok", "server": "astrotune"}

        register_api_routes(self.app, music_library=self.music_library)

    async def serve(self, host: str = "127.0.0.1", port: int = 8765) -> None:
        """
        Run the web server until it is stopped.

        Args:
            host: Host address to bind to
            port: Port to listen on
        """
        self._host = host
        self._port = port

        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)

        logger.info("Web server listening on http://%s:%d", host, port)
        try:
            await self._server.serve()
        finally:
            self._server = None
            logger.info("Web server stopped")

    def stop(self) -> None:
        """Ask a running server to exit."""
        if self._server is not None:
            self._server.should_exit = True

    @property
    def port(self) -> int:
        return self._port

    @property
    def host(self) -> str:
        return self._host
