"""
Core domain package.

This package contains the library storage layer and the facade built on top of
it. It has no knowledge of the web layer or the CLI; both consume it.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `astrotune.core.library`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "NotFoundError",
    "ConflictError",
    "ProtectedEntityError",
    "MissingReferenceError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class NotFoundError(CoreError):
    """Raised when a song or playlist id does not exist."""


class ConflictError(CoreError):
    """Raised when a unique constraint (playlist name) would be violated."""


class ProtectedEntityError(CoreError):
    """Raised on attempts to delete or rename the default playlist."""


class MissingReferenceError(CoreError):
    """Raised when a membership references a song or playlist that does not exist."""
