"""Record store package."""

from fintrack.store.record_store import RecordStore, index_by_id

__all__ = ["RecordStore", "index_by_id"]
