"""Services package."""

from fintrack.services.sync import (
    AuthExpired,
    MalformedSnapshotError,
    SyncClient,
    SyncConnectionError,
    SyncFailure,
    SyncResult,
    SyncTransport,
)

__all__ = [
    "AuthExpired",
    "MalformedSnapshotError",
    "SyncClient",
    "SyncConnectionError",
    "SyncFailure",
    "SyncResult",
    "SyncTransport",
]
