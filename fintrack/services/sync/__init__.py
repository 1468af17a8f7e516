"""
Sync Services Package

Provides the full-snapshot transport interface, its concrete backends and
the SyncClient that drives them. Backends are swappable behind SyncTransport.
"""

from fintrack.services.sync.interface import (
    AuthExpired,
    MalformedSnapshotError,
    SyncConnectionError,
    SyncFailure,
    SyncTransport,
)
from fintrack.services.sync.memory import InMemoryTransport
from fintrack.services.sync.json_file import JsonFileTransport
from fintrack.services.sync.http import HttpTransport
from fintrack.services.sync.google_sheets import GoogleSheetsClient, GoogleSheetsTransport
from fintrack.services.sync.realtime import RealtimeBridgeTransport
from fintrack.services.sync.client import SyncClient, SyncResult

__all__ = [
    # Interface
    "SyncTransport",
    # Exceptions
    "AuthExpired",
    "MalformedSnapshotError",
    "SyncConnectionError",
    "SyncFailure",
    # Transports
    "GoogleSheetsClient",
    "GoogleSheetsTransport",
    "HttpTransport",
    "InMemoryTransport",
    "JsonFileTransport",
    "RealtimeBridgeTransport",
    # Client
    "SyncClient",
    "SyncResult",
]
