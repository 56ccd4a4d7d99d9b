"""
AstroTune - a personal music library.

AstroTune catalogues locally discovered songs, keeps them in ordered
playlists, and searches them. Directory scanning and playback live elsewhere;
this package owns the library storage and the surfaces built on it.
"""

__version__ = "0.1.0"
__author__ = "AstroTune Contributors"
__license__ = "GPL-2.0"

__all__ = ["__version__"]
