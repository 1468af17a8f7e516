"""
Record Store

The in-memory authoritative copy of the five collections.

DESIGN DECISION: The store is a passive container. It holds no validation
logic and performs no I/O. It is never mutated in place; the mutation
engine builds the next store from the current one, sharing every
collection it did not touch. Swapping one store reference for another is
what makes a mutation (including its debt side effect) atomic.
"""

from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, TypeVar

from fintrack.models.defaults import default_snapshot
from fintrack.models.records import (
    Category,
    Collection,
    Record,
    Snapshot,
    Tag,
    Todo,
    Transaction,
    UserSettings,
)


R = TypeVar("R", bound=Record)


def index_by_id(records: Iterable[R]) -> dict[str, R]:
    """Insertion-ordered id -> record map. A repeated id keeps the last record."""
    return {record.id: record for record in records}


def _read_only(mapping: Optional[Mapping]) -> Mapping:
    # Already-frozen collections are shared between successive stores
    if isinstance(mapping, MappingProxyType):
        return mapping
    return MappingProxyType(dict(mapping or {}))


class RecordStore:
    """
    Five named collections keyed by id, iterated in insertion order.
    """

    __slots__ = ("_transactions", "_categories", "_tags", "_todos", "_settings", "_extras")

    def __init__(
        self,
        transactions: Optional[Mapping[str, Transaction]] = None,
        categories: Optional[Mapping[str, Category]] = None,
        tags: Optional[Mapping[str, Tag]] = None,
        settings: Optional[UserSettings] = None,
        todos: Optional[Mapping[str, Todo]] = None,
        extras: Optional[Mapping[str, Any]] = None,
    ):
        self._transactions = _read_only(transactions)
        self._categories = _read_only(categories)
        self._tags = _read_only(tags)
        self._todos = _read_only(todos)
        self._settings = settings or UserSettings()
        # Top-level document keys this app does not model, kept for the next push
        self._extras = _read_only(extras)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def empty(cls) -> "RecordStore":
        return cls()

    @classmethod
    def seeded(cls) -> "RecordStore":
        """A store holding the default categories and tags."""
        return cls.from_snapshot(default_snapshot())

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "RecordStore":
        return cls(
            transactions=index_by_id(snapshot.transactions),
            categories=index_by_id(snapshot.categories),
            tags=index_by_id(snapshot.tags),
            settings=snapshot.settings,
            todos=index_by_id(snapshot.todos),
            extras=snapshot.model_extra,
        )

    def replace_all(self, snapshot: Snapshot) -> "RecordStore":
        """Wholesale replacement, used for pull results."""
        return RecordStore.from_snapshot(snapshot)

    def with_collections(
        self,
        transactions: Optional[Mapping[str, Transaction]] = None,
        categories: Optional[Mapping[str, Category]] = None,
        tags: Optional[Mapping[str, Tag]] = None,
        settings: Optional[UserSettings] = None,
        todos: Optional[Mapping[str, Todo]] = None,
    ) -> "RecordStore":
        """
        Next store: the given collections replaced, the rest shared.
        """
        return RecordStore(
            transactions=self._transactions if transactions is None else transactions,
            categories=self._categories if categories is None else categories,
            tags=self._tags if tags is None else tags,
            settings=self._settings if settings is None else settings,
            todos=self._todos if todos is None else todos,
            extras=self._extras,
        )

    def copy_of(self, collection: Collection) -> dict:
        """A mutable copy of one keyed collection, for building the next store."""
        if collection == Collection.SETTINGS:
            raise ValueError("Settings is a single record, not a keyed collection")
        return dict(self._mapping(collection))

    def to_snapshot(self) -> Snapshot:
        return Snapshot(
            transactions=list(self._transactions.values()),
            categories=list(self._categories.values()),
            tags=list(self._tags.values()),
            settings=self._settings,
            todos=list(self._todos.values()),
            **self._extras,
        )

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def transactions(self) -> list[Transaction]:
        return list(self._transactions.values())

    def categories(self) -> list[Category]:
        return list(self._categories.values())

    def tags(self) -> list[Tag]:
        return list(self._tags.values())

    def todos(self) -> list[Todo]:
        return list(self._todos.values())

    @property
    def settings(self) -> UserSettings:
        return self._settings

    @property
    def extras(self) -> Mapping[str, Any]:
        return self._extras

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    def get_category(self, category_id: Optional[str]) -> Optional[Category]:
        if not category_id:
            return None
        return self._categories.get(category_id)

    def get_tag(self, tag_id: str) -> Optional[Tag]:
        return self._tags.get(tag_id)

    def get_todo(self, todo_id: str) -> Optional[Todo]:
        return self._todos.get(todo_id)

    def has(self, collection: Collection, record_id: str) -> bool:
        return record_id in self._mapping(collection)

    def get_category_by_code(self, code: str) -> Optional[Category]:
        for category in self._categories.values():
            if category.code == code:
                return category
        return None

    def get_tags_by_codes(self, codes: Iterable[str]) -> list[Tag]:
        wanted = set(codes)
        return [tag for tag in self._tags.values() if tag.code in wanted]

    def counts(self) -> dict[str, int]:
        return {
            "transactions": len(self._transactions),
            "categories": len(self._categories),
            "tags": len(self._tags),
            "todos": len(self._todos),
        }

    def _mapping(self, collection: Collection) -> Mapping:
        if collection == Collection.TRANSACTIONS:
            return self._transactions
        if collection == Collection.CATEGORIES:
            return self._categories
        if collection == Collection.TAGS:
            return self._tags
        if collection == Collection.TODOS:
            return self._todos
        raise ValueError(f"No keyed collection named {collection!r}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecordStore):
            return NotImplemented
        return (
            dict(self._transactions) == dict(other._transactions)
            and dict(self._categories) == dict(other._categories)
            and dict(self._tags) == dict(other._tags)
            and dict(self._todos) == dict(other._todos)
            and self._settings == other._settings
            and dict(self._extras) == dict(other._extras)
        )

    __hash__ = None

    def __repr__(self) -> str:
        counts = ", ".join(f"{k}={v}" for k, v in self.counts().items())
        return f"RecordStore({counts})"
