"""
Abstract Sync Transport Interface

DESIGN DECISION: The remote side is a single full-document store. Every
backend the tracker has used (a JSON file behind an Express server, a REST
API with session tokens, a relational database, realtime listeners) is
reduced to exactly two operations:

    pull() -> the whole document
    push(document) -> overwrite the whole document

This allows us to:
1. Swap backends without touching the mutation engine
2. Use in-memory transports for testing
3. Substitute a delta or CRDT transport later behind the same seam

There is no partial-update wire format. Documents are plain JSON-shaped
dicts with the five top-level keys (transactions, categories, tags,
settings, todos).
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class SyncTransport(ABC):
    """
    Abstract interface for full-snapshot sync backends.

    Implementations raise SyncFailure (or a subclass) on any failure and
    never return partial documents.
    """

    name: str = "transport"

    @abstractmethod
    async def pull(self) -> dict[str, Any]:
        """
        Retrieve the authoritative remote document.

        Returns:
            The JSON-shaped document

        Raises:
            AuthExpired: If the session is no longer valid
            SyncConnectionError: If the backend could not be reached
            MalformedSnapshotError: If the response is not a document
            SyncFailure: For any other backend error
        """
        pass

    @abstractmethod
    async def push(self, document: dict[str, Any]) -> None:
        """
        Overwrite the remote document in its entirety.

        Args:
            document: The full JSON-shaped document

        Raises:
            AuthExpired: If the session is no longer valid
            SyncConnectionError: If the backend could not be reached
            SyncFailure: For any other backend error
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the transport."""
        return None


class SyncFailure(Exception):
    """Base exception for sync operations: pull or push could not complete."""

    code = "sync_failed"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SyncConnectionError(SyncFailure):
    """Could not reach the backend. Transient; retried."""

    code = "connection_error"


class MalformedSnapshotError(SyncFailure):
    """The backend answered with something that is not a snapshot document."""

    code = "malformed_snapshot"


class AuthExpired(SyncFailure):
    """The session expired; sync stops until re-authentication."""

    code = "auth_expired"
