"""
Mutation Engine

Applies one logical operation to the record store and produces the next
store plus a description of what changed.

DESIGN DECISION: Every operation is a pure, synchronous transform
(store, payload) -> MutationResult. Nothing here performs I/O and nothing
here mutates the store it was given. The caller swaps in the returned
store in a single assignment, so a mutation and its side effects are
visible all at once or not at all.

The one cross-entity side effect is DEBT AUTO-REDUCTION: adding an expense
against a category with outstanding debt lowers that debt by the expense
amount, floored at zero. Updates and removals of transactions never
restore or recompute debt. This is the tracker's established behaviour and
is kept on purpose, even though it means debt can drift from the sum of the
expenses currently recorded.
"""

from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from fintrack.config import get_settings
from fintrack.models.records import (
    Category,
    Collection,
    Snapshot,
    SnapshotFormatError,
    Tag,
    Todo,
    Transaction,
    UserSettings,
    derive_code,
    utc_timestamp,
)
from fintrack.models.validation import (
    DANGLING_REFERENCE,
    NOT_FOUND,
    ValidationIssue,
)
from fintrack.mutations.errors import MutationValidationError
from fintrack.store import RecordStore, index_by_id
from fintrack.validation import MutationValidator, payload_to_dict
from fintrack.validation.validator import Payload


class DebtChange(BaseModel):
    """The debt side effect of an expense insert."""

    category_id: str
    previous: Decimal
    current: Decimal
    transaction_id: str


class MutationResult(BaseModel):
    """
    Outcome of a successfully validated mutation.

    An empty `changed` set means the mutation was a no-op (e.g. removing
    an id that does not exist); the returned store is then the input store.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    intent: str
    store: RecordStore
    changed: frozenset[Collection] = Field(default_factory=frozenset)
    entity_id: Optional[str] = None
    issues: list[ValidationIssue] = Field(default_factory=list)
    debt_change: Optional[DebtChange] = None

    @property
    def applied(self) -> bool:
        return bool(self.changed)

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]


SNAPSHOT_KEYS = tuple(c.value for c in Collection)


class MutationEngine:
    """
    Applies mutation intents to a RecordStore.

    Usage:
        engine = MutationEngine()
        result = engine.add_transaction(store, {"date": "2024-05-01", "amount": -30})
        store = result.store
    """

    INTENTS = (
        "add_transaction",
        "update_transaction",
        "remove_transaction",
        "add_category",
        "update_category",
        "remove_category",
        "add_tag",
        "update_tag",
        "remove_tag",
        "update_settings",
        "add_todo",
        "toggle_todo",
        "delete_todo",
        "import_snapshot",
    )

    def __init__(
        self,
        validator: Optional[MutationValidator] = None,
        protect_fixed_categories: Optional[bool] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        if protect_fixed_categories is None:
            protect_fixed_categories = get_settings().app.protect_fixed_categories
        self._validator = validator or MutationValidator()
        self._protect_fixed = protect_fixed_categories
        self._new_id = id_factory or (lambda: str(uuid4()))

    @property
    def validator(self) -> MutationValidator:
        return self._validator

    def apply(self, store: RecordStore, intent: str, payload: Any = None) -> MutationResult:
        """Dispatch an intent by name."""
        if intent not in self.INTENTS:
            raise MutationValidationError(intent, [ValidationIssue(
                field="intent",
                issue_type="unknown_intent",
                message=f"Unknown mutation {intent!r}",
                severity="error",
            )])
        return getattr(self, intent)(store, payload)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def add_transaction(self, store: RecordStore, payload: Payload) -> MutationResult:
        intent = "add_transaction"
        data = self._with_id(_payload_dict(intent, payload))
        self._reject_duplicate(intent, store, Collection.TRANSACTIONS, data["id"])

        transaction, validation = self._validator.validate_transaction(data, store, intent)
        if not validation.is_valid:
            raise MutationValidationError(intent, validation.issues)

        transactions = store.copy_of(Collection.TRANSACTIONS)
        transactions[transaction.id] = transaction
        changed = {Collection.TRANSACTIONS}

        # Debt reduction lands in the same next-store as the insert
        categories = None
        debt_change = self._reduce_debt(store, transaction)
        if debt_change is not None:
            categories = store.copy_of(Collection.CATEGORIES)
            categories[debt_change.category_id] = categories[debt_change.category_id].model_copy(
                update={"debt": debt_change.current}
            )
            changed.add(Collection.CATEGORIES)

        return MutationResult(
            intent=intent,
            store=store.with_collections(transactions=transactions, categories=categories),
            changed=frozenset(changed),
            entity_id=transaction.id,
            issues=validation.issues,
            debt_change=debt_change,
        )

    def update_transaction(self, store: RecordStore, payload: Payload) -> MutationResult:
        intent = "update_transaction"
        data = _payload_dict(intent, payload)
        transaction_id = self._require_id(intent, data)

        if store.get_transaction(transaction_id) is None:
            return self._not_found(intent, store, Collection.TRANSACTIONS, transaction_id)

        transaction, validation = self._validator.validate_transaction(data, store, intent)
        if not validation.is_valid:
            raise MutationValidationError(intent, validation.issues)

        # Debt is deliberately left alone on update
        transactions = store.copy_of(Collection.TRANSACTIONS)
        transactions[transaction_id] = transaction

        return MutationResult(
            intent=intent,
            store=store.with_collections(transactions=transactions),
            changed=frozenset({Collection.TRANSACTIONS}),
            entity_id=transaction_id,
            issues=validation.issues,
        )

    def remove_transaction(self, store: RecordStore, transaction_id: str) -> MutationResult:
        return self._remove("remove_transaction", store, Collection.TRANSACTIONS, transaction_id)

    def _reduce_debt(
        self,
        store: RecordStore,
        transaction: Transaction,
    ) -> Optional[DebtChange]:
        if not transaction.is_expense or not transaction.category_id:
            return None

        category = store.get_category(transaction.category_id)
        if category is None or category.outstanding_debt <= 0:
            return None

        previous = category.outstanding_debt
        current = max(Decimal("0"), previous - abs(transaction.amount))
        return DebtChange(
            category_id=category.id,
            previous=previous,
            current=current,
            transaction_id=transaction.id,
        )

    # -------------------------------------------------------------------------
    # Categories and tags
    # -------------------------------------------------------------------------

    def add_category(self, store: RecordStore, payload: Payload) -> MutationResult:
        return self._add_coded("add_category", store, Collection.CATEGORIES, Category, payload)

    def update_category(self, store: RecordStore, payload: Payload) -> MutationResult:
        return self._update_coded("update_category", store, Collection.CATEGORIES, Category, payload)

    def remove_category(self, store: RecordStore, category_id: str) -> MutationResult:
        intent = "remove_category"
        category = store.get_category(category_id)
        if category is not None and category.is_fixed and self._protect_fixed:
            raise MutationValidationError(intent, [ValidationIssue(
                field="isFixed",
                issue_type="protected",
                message=f"Category {category.name!r} is built in and cannot be removed",
                severity="error",
                suggested_fix="Edit the category instead",
            )])
        # No cascade: transactions keep the dangling id
        return self._remove(intent, store, Collection.CATEGORIES, category_id)

    def add_tag(self, store: RecordStore, payload: Payload) -> MutationResult:
        return self._add_coded("add_tag", store, Collection.TAGS, Tag, payload)

    def update_tag(self, store: RecordStore, payload: Payload) -> MutationResult:
        return self._update_coded("update_tag", store, Collection.TAGS, Tag, payload)

    def remove_tag(self, store: RecordStore, tag_id: str) -> MutationResult:
        return self._remove("remove_tag", store, Collection.TAGS, tag_id)

    def _add_coded(
        self,
        intent: str,
        store: RecordStore,
        collection: Collection,
        model_cls: type[Union[Category, Tag]],
        payload: Payload,
    ) -> MutationResult:
        data = self._with_code(self._with_id(_payload_dict(intent, payload)))
        self._reject_duplicate(intent, store, collection, data["id"])

        record, validation = self._validator.validate_record(model_cls, data, intent)
        if not validation.is_valid:
            raise MutationValidationError(intent, validation.issues)

        records = store.copy_of(collection)
        records[record.id] = record
        return MutationResult(
            intent=intent,
            store=store.with_collections(**{collection.value: records}),
            changed=frozenset({collection}),
            entity_id=record.id,
            issues=validation.issues,
        )

    def _update_coded(
        self,
        intent: str,
        store: RecordStore,
        collection: Collection,
        model_cls: type[Union[Category, Tag]],
        payload: Payload,
    ) -> MutationResult:
        data = self._with_code(_payload_dict(intent, payload))
        record_id = self._require_id(intent, data)

        if not store.has(collection, record_id):
            return self._not_found(intent, store, collection, record_id)

        record, validation = self._validator.validate_record(model_cls, data, intent)
        if not validation.is_valid:
            raise MutationValidationError(intent, validation.issues)

        records = store.copy_of(collection)
        records[record_id] = record
        return MutationResult(
            intent=intent,
            store=store.with_collections(**{collection.value: records}),
            changed=frozenset({collection}),
            entity_id=record_id,
            issues=validation.issues,
        )

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def update_settings(self, store: RecordStore, payload: Payload) -> MutationResult:
        """Merge a partial settings mapping into the current settings."""
        intent = "update_settings"
        merged = store.settings.model_dump(by_alias=True, exclude_unset=True)
        for key, value in _payload_dict(intent, payload).items():
            field = UserSettings.model_fields.get(key)
            merged[field.alias if field is not None and field.alias else key] = value

        settings, validation = self._validator.validate_record(UserSettings, merged, intent)
        if not validation.is_valid:
            raise MutationValidationError(intent, validation.issues)

        return MutationResult(
            intent=intent,
            store=store.with_collections(settings=settings),
            changed=frozenset({Collection.SETTINGS}),
            issues=validation.issues,
        )

    # -------------------------------------------------------------------------
    # Todos
    # -------------------------------------------------------------------------

    def add_todo(self, store: RecordStore, payload: Union[str, Payload]) -> MutationResult:
        intent = "add_todo"
        if isinstance(payload, str):
            data = {"text": payload}
        else:
            data = _payload_dict(intent, payload)
        data = self._with_id(data)
        data.setdefault("done", False)
        data.setdefault("createdAt", utc_timestamp())
        self._reject_duplicate(intent, store, Collection.TODOS, data["id"])

        todo, validation = self._validator.validate_record(Todo, data, intent)
        if not validation.is_valid:
            raise MutationValidationError(intent, validation.issues)

        todos = store.copy_of(Collection.TODOS)
        todos[todo.id] = todo
        return MutationResult(
            intent=intent,
            store=store.with_collections(todos=todos),
            changed=frozenset({Collection.TODOS}),
            entity_id=todo.id,
            issues=validation.issues,
        )

    def toggle_todo(self, store: RecordStore, todo_id: str) -> MutationResult:
        intent = "toggle_todo"
        todo = store.get_todo(todo_id)
        if todo is None:
            return MutationResult(intent=intent, store=store, entity_id=todo_id)

        todos = store.copy_of(Collection.TODOS)
        todos[todo_id] = todo.model_copy(update={"done": not todo.done})
        return MutationResult(
            intent=intent,
            store=store.with_collections(todos=todos),
            changed=frozenset({Collection.TODOS}),
            entity_id=todo_id,
        )

    def delete_todo(self, store: RecordStore, todo_id: str) -> MutationResult:
        return self._remove("delete_todo", store, Collection.TODOS, todo_id)

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    def import_snapshot(
        self,
        store: RecordStore,
        payload: Union[Snapshot, Mapping[str, Any]],
    ) -> MutationResult:
        """
        Replace collections wholesale from an import payload.

        Every top-level key present (and not null) replaces that collection
        entirely; absent keys leave the collection untouched. Ids are kept
        verbatim, so re-importing the same backup is idempotent. The whole
        payload is validated before anything is applied.
        """
        intent = "import_snapshot"
        if isinstance(payload, Snapshot):
            # Only the collections the snapshot was built with
            document = payload.to_document()
        elif isinstance(payload, Mapping):
            document = dict(payload)
        else:
            raise MutationValidationError(intent, [ValidationIssue(
                field="snapshot",
                issue_type="invalid_format",
                message="Import payload must be an object with collection keys",
                severity="error",
            )])

        present = [key for key in SNAPSHOT_KEYS if document.get(key) is not None]
        try:
            parsed = Snapshot.from_document({key: document[key] for key in present})
        except SnapshotFormatError as e:
            raise MutationValidationError(intent, [
                ValidationIssue(
                    field=".".join(str(part) for part in err.get("loc", ())) or "snapshot",
                    issue_type="missing" if err.get("type") == "missing" else "invalid_value",
                    message=err.get("msg", "invalid value"),
                    severity="error",
                )
                for err in e.errors
            ] or [ValidationIssue(
                field="snapshot",
                issue_type="invalid_format",
                message=str(e),
                severity="error",
            )]) from e

        replacements: dict[str, Any] = {}
        for key in present:
            if key == Collection.SETTINGS.value:
                replacements[key] = parsed.settings
            else:
                replacements[key] = index_by_id(getattr(parsed, key))

        next_store = store.with_collections(**replacements)
        return MutationResult(
            intent=intent,
            store=next_store,
            changed=frozenset(Collection(key) for key in present),
            issues=self._dangling_summary(next_store),
        )

    def _dangling_summary(self, store: RecordStore) -> list[ValidationIssue]:
        """One warning per kind of dangling reference after an import."""
        missing_categories = 0
        missing_tags = 0
        for transaction in store.transactions():
            if transaction.category_id and store.get_category(transaction.category_id) is None:
                missing_categories += 1
            if any(store.get_tag(tag_id) is None for tag_id in transaction.tag_ids):
                missing_tags += 1

        issues = []
        if missing_categories:
            issues.append(ValidationIssue(
                field="categoryId",
                issue_type=DANGLING_REFERENCE,
                message=f"{missing_categories} transactions refer to unknown categories",
                severity="warning",
            ))
        if missing_tags:
            issues.append(ValidationIssue(
                field="tagIds",
                issue_type=DANGLING_REFERENCE,
                message=f"{missing_tags} transactions refer to unknown tags",
                severity="warning",
            ))
        return issues

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _with_id(self, data: dict[str, Any]) -> dict[str, Any]:
        if not data.get("id"):
            data["id"] = self._new_id()
        return data

    @staticmethod
    def _with_code(data: dict[str, Any]) -> dict[str, Any]:
        name = data.get("name")
        if not data.get("code") and isinstance(name, str) and name.strip():
            data["code"] = derive_code(name)
        return data

    @staticmethod
    def _require_id(intent: str, data: Mapping[str, Any]) -> str:
        record_id = data.get("id")
        if not record_id or not isinstance(record_id, str):
            raise MutationValidationError(intent, [ValidationIssue(
                field="id",
                issue_type="missing",
                message="An id is required to update a record",
                severity="error",
            )])
        return record_id

    @staticmethod
    def _reject_duplicate(
        intent: str,
        store: RecordStore,
        collection: Collection,
        record_id: str,
    ) -> None:
        if store.has(collection, record_id):
            raise MutationValidationError(intent, [ValidationIssue(
                field="id",
                issue_type="duplicate",
                message=f"{collection.value} already contains id {record_id!r}",
                severity="error",
                suggested_fix="Use the update operation to change an existing record",
            )])

    @staticmethod
    def _not_found(
        intent: str,
        store: RecordStore,
        collection: Collection,
        record_id: str,
    ) -> MutationResult:
        return MutationResult(
            intent=intent,
            store=store,
            entity_id=record_id,
            issues=[ValidationIssue(
                field="id",
                issue_type=NOT_FOUND,
                message=f"No {collection.value} record with id {record_id!r}",
                severity="warning",
            )],
        )

    @staticmethod
    def _remove(
        intent: str,
        store: RecordStore,
        collection: Collection,
        record_id: str,
    ) -> MutationResult:
        if not store.has(collection, record_id):
            return MutationResult(intent=intent, store=store, entity_id=record_id)

        records = store.copy_of(collection)
        del records[record_id]
        return MutationResult(
            intent=intent,
            store=store.with_collections(**{collection.value: records}),
            changed=frozenset({collection}),
            entity_id=record_id,
        )


def _payload_dict(intent: str, payload: Any) -> dict[str, Any]:
    try:
        return payload_to_dict(payload)
    except TypeError as e:
        raise MutationValidationError(intent, [ValidationIssue(
            field="payload",
            issue_type="invalid_format",
            message=str(e),
            severity="error",
        )]) from e
