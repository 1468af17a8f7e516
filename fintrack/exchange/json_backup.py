"""
JSON backup exchange.

A backup is the full snapshot document, the same shape the sync backends
store. Restoring one goes through the mutation engine's import_snapshot,
so ids are preserved and only the collections present in the file are
replaced.
"""

import json
from typing import Any

from fintrack.exchange.errors import ExchangeFormatError
from fintrack.store import RecordStore


def export_snapshot_json(store: RecordStore, indent: int = 2) -> str:
    """The whole store as a JSON document."""
    document = store.to_snapshot().to_document()
    return json.dumps(document, indent=indent, ensure_ascii=False)


def parse_snapshot_json(text: str) -> dict[str, Any]:
    """
    Parse backup text into a snapshot document.

    Raises:
        ExchangeFormatError: If the text is not a JSON object
    """
    try:
        document = json.loads(text.lstrip("\ufeff"))
    except json.JSONDecodeError as e:
        raise ExchangeFormatError(f"Backup is not valid JSON: {e}")

    if not isinstance(document, dict):
        raise ExchangeFormatError(
            f"Backup must be a JSON object, got {type(document).__name__}"
        )
    return document
