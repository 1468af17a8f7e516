"""
Realtime bridge transport.

For backends that push per-collection change notifications (the mobile
client listened to one live query per collection). The bridge keeps the
latest full array of every collection it has heard about and exposes them
as a single document, so the rest of the system keeps its full-snapshot
view. Until every collection has been heard from at least once, a pull
fails instead of returning a partial document: a wholesale replace with
missing keys would empty those collections locally and, on the next push,
remotely. Every notification is forwarded to subscribers, which typically
trigger a coordinator refresh.

Pushes are handed to a writer callable that owns the backend specifics.
"""

import copy
from typing import Any, Awaitable, Callable, Optional

import structlog

from fintrack.models.records import Collection
from fintrack.services.sync.interface import SyncFailure, SyncTransport


logger = structlog.get_logger("fintrack.sync.realtime")

ChangeListener = Callable[[str], None]
Writer = Callable[[dict[str, Any]], Awaitable[None]]


class RealtimeBridgeTransport(SyncTransport):
    """Assembles per-collection notifications into one document."""

    name = "realtime"

    def __init__(self, writer: Optional[Writer] = None):
        self._writer = writer
        self._document: dict[str, Any] = {}
        self._listeners: list[ChangeListener] = []

    def collection_changed(self, name: str, items: Any) -> None:
        """Record the latest full value of one collection and notify subscribers."""
        self._document[name] = copy.deepcopy(items)
        logger.debug("collection_changed", collection=name)

        for listener in list(self._listeners):
            try:
                listener(name)
            except Exception:
                logger.exception("realtime_listener_failed", collection=name)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def pending_collections(self) -> list[str]:
        """Collections no notification has arrived for yet."""
        return [c.value for c in Collection if c.value not in self._document]

    async def pull(self) -> dict[str, Any]:
        pending = self.pending_collections
        if pending:
            raise SyncFailure(
                f"Realtime bridge is still waiting for: {', '.join(pending)}"
            )
        return copy.deepcopy(self._document)

    async def push(self, document: dict[str, Any]) -> None:
        if self._writer is None:
            raise SyncFailure("Realtime bridge has no writer configured")
        await self._writer(copy.deepcopy(document))
        self._document = copy.deepcopy(document)
