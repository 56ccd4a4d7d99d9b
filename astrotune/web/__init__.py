"""
AstroTune Web Layer.

Components:
- WebServer: FastAPI application with the REST routes
"""

from astrotune.web.server import WebServer

__all__ = [
    "WebServer",
]
