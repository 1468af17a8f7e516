"""
In-memory transport.

Holds the remote document in memory. Used for offline sessions and in
tests, where failures can be injected per direction.
"""

import asyncio
import copy
from typing import Any, Optional

from fintrack.services.sync.interface import SyncFailure, SyncTransport


class InMemoryTransport(SyncTransport):
    """A full-document store living in this process."""

    name = "memory"

    def __init__(
        self,
        document: Optional[dict[str, Any]] = None,
        delay: float = 0.0,
    ):
        self._document = copy.deepcopy(document) if document is not None else {}
        self._delay = delay
        self._failures: dict[str, list[SyncFailure]] = {"pull": [], "push": []}
        self.pull_count = 0
        self.push_count = 0
        self.pushed: list[dict[str, Any]] = []

    @property
    def document(self) -> dict[str, Any]:
        return copy.deepcopy(self._document)

    def fail_next(
        self,
        error: SyncFailure,
        direction: str = "pull",
        times: int = 1,
    ) -> None:
        """Make the next `times` calls in `direction` raise `error`."""
        if direction not in self._failures:
            raise ValueError(f"direction must be 'pull' or 'push', got {direction!r}")
        self._failures[direction].extend([error] * times)

    async def pull(self) -> dict[str, Any]:
        self.pull_count += 1
        await asyncio.sleep(self._delay)
        self._raise_if_scheduled("pull")
        return copy.deepcopy(self._document)

    async def push(self, document: dict[str, Any]) -> None:
        self.push_count += 1
        await asyncio.sleep(self._delay)
        self._raise_if_scheduled("push")
        self._document = copy.deepcopy(document)
        self.pushed.append(copy.deepcopy(document))

    def _raise_if_scheduled(self, direction: str) -> None:
        if self._failures[direction]:
            raise self._failures[direction].pop(0)
