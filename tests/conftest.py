"""Shared fixtures."""

import pytest

from fintrack.audit import AuditLogger
from fintrack.config import SyncSettings
from fintrack.models.records import Snapshot
from fintrack.mutations import MutationEngine
from fintrack.store import RecordStore
from fintrack.validation import MutationValidator


def make_document() -> dict:
    """A small remote document with one debt category and two tags."""
    return {
        "transactions": [
            {
                "id": "t1",
                "date": "2024-03-01",
                "amount": -50,
                "description": "Notary",
                "categoryId": "c1",
                "tagIds": ["g1"],
                "isPinned": True,
            },
            {
                "id": "t2",
                "date": "2024-03-02",
                "amount": 1200,
                "categoryId": "c0",
            },
        ],
        "categories": [
            {"id": "c0", "code": "INGR", "name": "Ingresos", "color": "#4caf50", "icon": "trending_up", "isFixed": True},
            {"id": "c1", "code": "CONS", "name": "Construcción", "color": "#ff9800", "icon": "construction", "debt": 100},
        ],
        "tags": [
            {"id": "g1", "code": "IMP", "name": "Impuestos", "color": "#f44336"},
            {"id": "g2", "code": "DOC", "name": "Documentos", "color": "#3f51b5"},
        ],
        "settings": {"initialBalance": 500, "darkMode": False},
        "todos": [
            {"id": "d1", "text": "Call the notary", "done": False, "createdAt": "2024-03-01T10:00:00.000Z"},
        ],
    }


@pytest.fixture
def document() -> dict:
    return make_document()


@pytest.fixture
def store() -> RecordStore:
    return RecordStore.from_snapshot(Snapshot.from_document(make_document()))


@pytest.fixture
def engine() -> MutationEngine:
    counter = iter(range(1, 10_000))
    return MutationEngine(
        validator=MutationValidator(require_category=False),
        protect_fixed_categories=True,
        id_factory=lambda: f"gen-{next(counter)}",
    )


@pytest.fixture
def fast_sync_settings() -> SyncSettings:
    """Retry policy without backoff delays."""
    return SyncSettings(retry_attempts=3, retry_wait_min=0, retry_wait_max=0)


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger(buffer_size=1000)
