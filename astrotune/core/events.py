"""
Event Bus for AstroTune.

A simple pub/sub event system so UI layers can follow long-running work
without the storage layer knowing about them.

Event types:
- library.import: Bulk import started / progressed / completed
- library.playlist: A playlist was created, renamed, deleted, changed or cleared

Usage:
    from astrotune.core.events import event_bus

    async def on_import(event: LibraryImportEvent) -> None:
        print(f"{event.current}/{event.total}")

    await event_bus.subscribe("library.import", on_import)

    await event_bus.publish(LibraryImportEvent(status="progress", current=3, total=10))
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[["Event"], Coroutine[Any, Any, None]]


@dataclass
class Event:
    """Base class for all events."""

    event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for JSON serialization."""
        return {"type": self.event_type}


@dataclass
class LibraryImportEvent(Event):
    """Fired while a batch of scanned songs is imported."""

    event_type: str = field(default="library.import", init=False)
    status: str = ""  # started, progress, completed
    current: int = 0
    total: int = 0
    added: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "status": self.status,
            "current": self.current,
            "total": self.total,
            "added": self.added,
            "skipped": self.skipped,
            "failed": self.failed,
        }


@dataclass
class PlaylistChangedEvent(Event):
    """Fired when a playlist or its contents change."""

    event_type: str = field(default="library.playlist", init=False)
    action: str = ""  # create, rename, delete, add, remove, clear
    playlist_id: int | None = None
    song_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.event_type,
            "action": self.action,
        }
        if self.playlist_id is not None:
            result["playlist_id"] = self.playlist_id
        if self.song_id is not None:
            result["song_id"] = self.song_id
        return result


class EventBus:
    """
    Simple async pub/sub event bus.

    Supports:
    - Multiple handlers per event type
    - Wildcard subscriptions (e.g., "library.*")
    - Error isolation (one handler failing doesn't affect others)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event type to subscribe to. Use ".*" suffix for wildcards.
            handler: Async function to call when event is published.
        """
        async with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            logger.debug("Subscribed to %s: %s", event_type, handler)

    async def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns True if handler was found and removed.
        """
        async with self._lock:
            handlers = self._handlers.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)
                logger.debug("Unsubscribed from %s: %s", event_type, handler)
                return True
            return False

    async def publish(self, event: Event) -> int:
        """
        Publish an event to all subscribed handlers.

        Returns:
            Number of handlers that received the event.
        """
        event_type = event.event_type
        handlers_called = 0

        async with self._lock:
            matching_handlers: list[EventHandler] = list(self._handlers.get(event_type, ()))

            for pattern, handlers in self._handlers.items():
                if pattern.endswith(".*"):
                    prefix = pattern[:-2]
                    if event_type.startswith(prefix + "."):
                        matching_handlers.extend(handlers)
                elif pattern == "*":
                    matching_handlers.extend(handlers)

        # Call handlers outside of lock
        for handler in matching_handlers:
            try:
                await handler(event)
                handlers_called += 1
            except Exception as e:
                logger.exception("Error in event handler for %s: %s", event_type, e)

        if handlers_called > 0:
            logger.debug("Published %s to %d handlers", event_type, handlers_called)

        return handlers_called

    async def clear(self) -> None:
        """Remove all subscriptions."""
        async with self._lock:
            self._handlers.clear()
            logger.debug("Cleared all event subscriptions")


# Global event bus instance
event_bus = EventBus()
