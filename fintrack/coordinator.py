"""
Reconciliation Coordinator

This module ties together the store, the mutation engine and the sync
client, and defines the two flows the UI drives:
1. Mutation (intent -> engine -> store swapped -> push scheduled)
2. Refresh (pull -> store replaced wholesale)

DESIGN DECISION: The coordinator enforces the boundaries:
- Mutations are synchronous and applied in call order
- The store is only ever replaced by a single assignment
- Sync failures are reported, never raised, and never clear local data
- Every step is audited

States:
    idle      nothing in flight, last sync (if any) succeeded
    loading   a pull is in flight
    mutating  a local change is waiting to be pushed or being pushed
    error     nothing in flight, the last sync failed (error surfaced)

Pushes are coalesced: while a push is scheduled but not started, further
mutations ride along with it. A push snapshots the store when it starts,
so it always sends the latest full state. Started pushes are never
cancelled.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from fintrack.audit import AuditLogger, configure_logging, create_correlation_id
from fintrack.config import Settings, get_settings
from fintrack.exchange import (
    ExchangeFormatError,
    export_snapshot_json,
    export_transactions_csv,
    parse_snapshot_json,
    parse_transactions_csv,
)
from fintrack.models.defaults import with_default_lookups
from fintrack.models.records import (
    Category,
    Collection,
    Snapshot,
    Tag,
    Todo,
    Transaction,
    UserSettings,
)
from fintrack.models.reports import ImportReport
from fintrack.models.validation import ValidationIssue
from fintrack.mutations import MutationEngine, MutationResult, MutationValidationError
from fintrack.queries import ReportExecutor
from fintrack.services.sync import (
    AuthExpired,
    GoogleSheetsClient,
    GoogleSheetsTransport,
    HttpTransport,
    InMemoryTransport,
    JsonFileTransport,
    SyncClient,
    SyncResult,
    SyncTransport,
)
from fintrack.store import RecordStore
from fintrack.validation import MutationValidator


class SyncState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    MUTATING = "mutating"
    ERROR = "error"


class MutationOutcome(BaseModel):
    """
    What a mutation did, as reported to the UI.

    Validation failures come back here with applied=False instead of
    being raised.
    """

    intent: str
    applied: bool
    entity_id: Optional[str] = None
    changed: list[str] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)
    message: str = ""
    correlation_id: Optional[UUID] = None

    @property
    def rejected(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]


StoreListener = Callable[[RecordStore], None]
SyncErrorListener = Callable[[SyncResult], None]


class ReconciliationCoordinator:
    """
    Owns the record store for one client session.

    Nothing else mutates the store. Callers read through the accessors
    and change data through the mutation methods.
    """

    def __init__(
        self,
        sync_client: SyncClient,
        engine: Optional[MutationEngine] = None,
        store: Optional[RecordStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self._sync = sync_client
        self._engine = engine or MutationEngine()
        self._store = store or RecordStore.empty()
        self._audit_logger = audit_logger
        self._app_settings = settings.app
        self._push_delay = settings.sync.push_debounce_seconds

        self._state = SyncState.IDLE
        self._last_error: Optional[SyncResult] = None
        self._last_push: Optional[SyncResult] = None

        # Local change counter; the store is clean when the pushed version catches up
        self._version = 0
        self._pushed_version = 0

        self._pending_push: Optional[asyncio.Task] = None
        self._in_flight: set[asyncio.Task] = set()
        self._pulls = 0
        self._disposed = False

        self._store_listeners: list[StoreListener] = []
        self._error_listeners: list[SyncErrorListener] = []
        self._sync.on_auth_expired(self._on_auth_expired)

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_dirty(self) -> bool:
        """True while some local change has not been confirmed by a push."""
        return self._version != self._pushed_version

    @property
    def last_error(self) -> Optional[SyncResult]:
        return self._last_error

    @property
    def sync_client(self) -> SyncClient:
        return self._sync

    @property
    def reports(self) -> ReportExecutor:
        return ReportExecutor(self._store, self._app_settings)

    def get_transactions(self) -> list[Transaction]:
        return self._store.transactions()

    def get_categories(self) -> list[Category]:
        return self._store.categories()

    def get_tags(self) -> list[Tag]:
        return self._store.tags()

    def get_todos(self) -> list[Todo]:
        return self._store.todos()

    def get_settings(self) -> UserSettings:
        return self._store.settings

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._store.get_transaction(transaction_id)

    def get_category(self, category_id: str) -> Optional[Category]:
        return self._store.get_category(category_id)

    def get_tag(self, tag_id: str) -> Optional[Tag]:
        return self._store.get_tag(tag_id)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_transaction(self, payload: Any) -> MutationOutcome:
        return self._mutate("add_transaction", payload)

    def update_transaction(self, payload: Any) -> MutationOutcome:
        return self._mutate("update_transaction", payload)

    def remove_transaction(self, transaction_id: str) -> MutationOutcome:
        return self._mutate("remove_transaction", transaction_id)

    def add_category(self, payload: Any) -> MutationOutcome:
        return self._mutate("add_category", payload)

    def update_category(self, payload: Any) -> MutationOutcome:
        return self._mutate("update_category", payload)

    def remove_category(self, category_id: str) -> MutationOutcome:
        return self._mutate("remove_category", category_id)

    def add_tag(self, payload: Any) -> MutationOutcome:
        return self._mutate("add_tag", payload)

    def update_tag(self, payload: Any) -> MutationOutcome:
        return self._mutate("update_tag", payload)

    def remove_tag(self, tag_id: str) -> MutationOutcome:
        return self._mutate("remove_tag", tag_id)

    def update_settings(self, payload: Any) -> MutationOutcome:
        return self._mutate("update_settings", payload)

    def add_todo(self, payload: Any) -> MutationOutcome:
        return self._mutate("add_todo", payload)

    def toggle_todo(self, todo_id: str) -> MutationOutcome:
        return self._mutate("toggle_todo", todo_id)

    def delete_todo(self, todo_id: str) -> MutationOutcome:
        return self._mutate("delete_todo", todo_id)

    def import_snapshot(self, payload: Union[Snapshot, Mapping[str, Any]]) -> MutationOutcome:
        return self._mutate("import_snapshot", payload)

    def _mutate(self, intent: str, payload: Any) -> MutationOutcome:
        """
        Apply one intent.

        FLOW:
        1. Engine builds the next store (or refuses)
        2. Store reference swapped
        3. Listeners told, push scheduled
        """
        correlation_id = create_correlation_id()

        if self._disposed:
            return MutationOutcome(
                intent=intent,
                applied=False,
                message="Session has been closed",
                correlation_id=correlation_id,
            )

        try:
            result = self._engine.apply(self._store, intent, payload)
        except MutationValidationError as e:
            if self._audit_logger:
                self._audit_logger.log_mutation_rejected(intent, e.issues, correlation_id)
            return MutationOutcome(
                intent=intent,
                applied=False,
                issues=e.issues,
                message=str(e),
                correlation_id=correlation_id,
            )

        if not result.applied:
            if self._audit_logger:
                self._audit_logger.log_mutation_noop(intent, result.entity_id, correlation_id)
            return MutationOutcome(
                intent=intent,
                applied=False,
                entity_id=result.entity_id,
                issues=result.issues,
                message=_noop_message(result),
                correlation_id=correlation_id,
            )

        self._audit_applied(result, correlation_id)
        self._commit(result.store, correlation_id)

        return MutationOutcome(
            intent=intent,
            applied=True,
            entity_id=result.entity_id,
            changed=sorted(c.value for c in result.changed),
            issues=result.issues,
            message="Saved",
            correlation_id=correlation_id,
        )

    def _commit(self, store: RecordStore, correlation_id: UUID) -> None:
        self._store = store
        self._version += 1
        self._notify_store()
        self._schedule_push(correlation_id)

    def _audit_applied(self, result: MutationResult, correlation_id: UUID) -> None:
        if not self._audit_logger:
            return

        entity_type = _entity_type(result)
        self._audit_logger.log_mutation_applied(
            intent=result.intent,
            entity_type=entity_type,
            entity_id=result.entity_id,
            changed=sorted(c.value for c in result.changed),
            correlation_id=correlation_id,
        )
        self._audit_logger.log_referential_warnings(
            entity_type or "snapshot",
            result.entity_id,
            result.issues,
            correlation_id,
        )
        if result.debt_change is not None:
            change = result.debt_change
            self._audit_logger.log_debt_reduced(
                category_id=change.category_id,
                previous=str(change.previous),
                current=str(change.current),
                transaction_id=change.transaction_id,
                correlation_id=correlation_id,
            )
        if result.intent == "import_snapshot":
            self._audit_logger.log_snapshot_imported(
                sorted(c.value for c in result.changed),
                result.store.counts(),
                correlation_id,
            )

    # -------------------------------------------------------------------------
    # Import / export
    # -------------------------------------------------------------------------

    def import_csv(self, text: str) -> ImportReport:
        """
        Add the transactions of a CSV file.

        Rows go through add_transaction one by one (so debt reduction
        applies) and are committed as a single store swap. Rows whose id is
        already in the store are skipped, so importing the same file twice
        adds nothing the second time.
        """
        correlation_id = create_correlation_id()
        try:
            payloads, report = parse_transactions_csv(text, self._store)
        except ExchangeFormatError as e:
            return ImportReport(issues=[ValidationIssue(
                field="file",
                issue_type="invalid_format",
                message=str(e),
                severity="error",
            )])

        if self._disposed:
            report.skipped += len(payloads)
            return report

        working = self._store
        changed: set[Collection] = set()
        for payload in payloads:
            if "id" in payload and working.get_transaction(payload["id"]) is not None:
                report.skipped += 1
                report.issues.append(ValidationIssue(
                    field="id",
                    issue_type="duplicate",
                    message=f"Transaction {payload['id']!r} already exists; row skipped",
                    severity="info",
                ))
                continue
            try:
                result = self._engine.add_transaction(working, payload)
            except MutationValidationError as e:
                report.skipped += 1
                report.issues.extend(e.issues)
                continue
            working = result.store
            changed |= result.changed
            report.imported += 1

        if report.imported:
            if self._audit_logger:
                self._audit_logger.log_mutation_applied(
                    intent="import_csv",
                    entity_type=Collection.TRANSACTIONS.value,
                    entity_id=None,
                    changed=sorted(c.value for c in changed),
                    correlation_id=correlation_id,
                )
            self._commit(working, correlation_id)

        return report

    def export_csv(self, include_bom: bool = True) -> str:
        return export_transactions_csv(self._store, include_bom=include_bom)

    def import_json(self, text: str) -> MutationOutcome:
        """Restore a JSON backup; only the collections in the file are replaced."""
        try:
            document = parse_snapshot_json(text)
        except ExchangeFormatError as e:
            return MutationOutcome(
                intent="import_snapshot",
                applied=False,
                issues=[ValidationIssue(
                    field="file",
                    issue_type="invalid_format",
                    message=str(e),
                    severity="error",
                )],
                message=str(e),
            )
        return self._mutate("import_snapshot", document)

    def export_json(self) -> str:
        return export_snapshot_json(self._store)

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    async def refresh(self) -> SyncResult:
        """
        Pull the remote snapshot and replace the store with it.

        Outstanding pushes finish first, and local changes the remote has
        not confirmed (an earlier push failed) are pushed again. If they
        still cannot be pushed, nothing is pulled and the failed push is
        returned: replacing the store now would lose them. If a mutation
        lands while the pull is in flight, the pulled snapshot is older than
        the local state and is discarded.

        With seeding enabled, a pulled document without categories or tags
        gets the default ones.
        """
        correlation_id = create_correlation_id()
        await self._drain()
        if self.is_dirty and not self._disposed:
            self._schedule_push(correlation_id)
            await self._drain()
            if self.is_dirty and self._last_push is not None and not self._last_push.success:
                if self._audit_logger:
                    self._audit_logger.log_pull_skipped(
                        "local changes could not be pushed",
                        correlation_id,
                    )
                self._settle()
                return self._last_push

        version_at_start = self._version
        self._pulls += 1
        self._settle()
        try:
            result = await self._sync.pull(correlation_id)
        finally:
            self._pulls -= 1

        if result.success:
            self._last_error = None
            if self._version != version_at_start:
                if self._audit_logger:
                    self._audit_logger.log_pull_discarded(
                        "local changes were made while the pull was in flight",
                        correlation_id,
                    )
            elif not self._disposed:
                snapshot = result.snapshot
                if self._app_settings.seed_defaults:
                    snapshot = with_default_lookups(snapshot)
                self._store = self._store.replace_all(snapshot)
                self._version += 1
                self._pushed_version = self._version
                self._notify_store()
        else:
            self._surface_error(result)

        self._settle()
        return result

    async def flush(self) -> Optional[SyncResult]:
        """
        Wait until every scheduled push has finished.

        If local changes are still unconfirmed afterwards (made outside an
        event loop, or their push failed), push once more. Returns the
        result of the last push, if any.
        """
        await self._drain()
        if self.is_dirty and not self._disposed:
            self._schedule_push(create_correlation_id())
            await self._drain()
        return self._last_push

    def resume(self) -> None:
        """Re-enable sync after the session was re-established."""
        self._sync.resume()
        if self._last_error is not None and self._last_error.auth_expired:
            self._last_error = None
        self._settle()

    def reset(self, snapshot: Optional[Union[Snapshot, Mapping[str, Any]]] = None) -> None:
        """
        Replace local state outright, e.g. after a forced logout.

        Only the auth collaborator calls this; the coordinator never clears
        data on its own. A push that has not started yet is dropped so the
        cleared state is never sent to the remote.
        """
        if self._pending_push is not None and not self._pending_push.done():
            self._pending_push.cancel()
        self._pending_push = None

        if snapshot is None:
            store = RecordStore.seeded() if self._app_settings.seed_defaults else RecordStore.empty()
        elif isinstance(snapshot, Snapshot):
            store = RecordStore.from_snapshot(snapshot)
        else:
            store = RecordStore.from_snapshot(Snapshot.from_document(snapshot))

        self._store = store
        self._version += 1
        self._pushed_version = self._version
        self._last_error = None

        if self._audit_logger:
            self._audit_logger.log_store_reset(store.counts())
        self._notify_store()
        self._settle()

    async def dispose(self) -> None:
        """Finish outstanding pushes, stop scheduling and close the transport."""
        if self._disposed:
            return
        await self._drain()
        self._disposed = True
        await self._sync.close()

    def _schedule_push(self, correlation_id: UUID) -> None:
        if self._disposed:
            return
        if self._pending_push is not None and not self._pending_push.done():
            # Coalesced into the push that has not started yet
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the change stays dirty until flush()
            return

        self._pending_push = loop.create_task(self._run_push(correlation_id))
        self._settle()

    async def _run_push(self, correlation_id: UUID) -> None:
        # Yield at least once so a burst of synchronous mutations shares this push
        await asyncio.sleep(self._push_delay)

        task = asyncio.current_task()
        if self._pending_push is task:
            self._pending_push = None
        self._in_flight.add(task)

        version = self._version
        snapshot = self._store.to_snapshot()
        try:
            result = await self._sync.push(snapshot, correlation_id)
        finally:
            self._in_flight.discard(task)

        self._last_push = result
        if result.success:
            self._pushed_version = max(self._pushed_version, version)
            self._last_error = None
        else:
            self._surface_error(result)
        self._settle()

    async def _drain(self) -> None:
        while True:
            tasks = [t for t in (self._pending_push, *self._in_flight) if t is not None and not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def _settle(self) -> None:
        """Derive the state from what is in flight."""
        pushing = bool(self._in_flight) or (
            self._pending_push is not None and not self._pending_push.done()
        )
        if self._pulls:
            state = SyncState.LOADING
        elif pushing:
            state = SyncState.MUTATING
        elif self._last_error is not None:
            state = SyncState.ERROR
        else:
            state = SyncState.IDLE

        if state != self._state:
            previous = self._state
            self._state = state
            if self._audit_logger:
                self._audit_logger.log_state_changed(previous.value, state.value)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Call `listener(store)` after every store change; returns an unsubscribe function."""
        self._store_listeners.append(listener)
        return lambda: _remove(self._store_listeners, listener)

    def on_sync_error(self, listener: SyncErrorListener) -> Callable[[], None]:
        """Call `listener(result)` for every failed pull or push."""
        self._error_listeners.append(listener)
        return lambda: _remove(self._error_listeners, listener)

    def _notify_store(self) -> None:
        for listener in list(self._store_listeners):
            try:
                listener(self._store)
            except Exception as e:
                self._listener_failed("store_listener_failed", e)

    def _surface_error(self, result: SyncResult) -> None:
        self._last_error = result
        for listener in list(self._error_listeners):
            try:
                listener(result)
            except Exception as e:
                self._listener_failed("sync_error_listener_failed", e)

    def _on_auth_expired(self, error: AuthExpired) -> None:
        # The sync client has paused itself; local data stays as it is
        self._settle()

    def _listener_failed(self, error_type: str, error: Exception) -> None:
        if self._audit_logger:
            self._audit_logger.log_error(error_type=error_type, error_message=str(error))


def _remove(listeners: list, listener: Any) -> None:
    if listener in listeners:
        listeners.remove(listener)


ENTITY_TYPES = {
    "transaction": Collection.TRANSACTIONS.value,
    "category": Collection.CATEGORIES.value,
    "tag": Collection.TAGS.value,
    "settings": Collection.SETTINGS.value,
    "todo": Collection.TODOS.value,
}


def _entity_type(result: MutationResult) -> Optional[str]:
    """Collection an intent is about; None for whole-snapshot imports."""
    return ENTITY_TYPES.get(result.intent.split("_", 1)[1])


def _noop_message(result: MutationResult) -> str:
    for issue in result.issues:
        if issue.severity == "warning":
            return issue.message
    return "Nothing to change"


# =============================================================================
# FACTORY
# =============================================================================

def build_transport(settings: Optional[Settings] = None) -> SyncTransport:
    """The transport selected by FINTRACK_SYNC_TRANSPORT."""
    settings = settings or get_settings()
    sync = settings.sync

    if sync.transport == "memory":
        return InMemoryTransport()
    if sync.transport == "http":
        return HttpTransport(
            base_url=sync.base_url,
            token=sync.auth_token,
            timeout=sync.timeout_seconds,
        )
    if sync.transport == "sheets":
        return GoogleSheetsTransport(GoogleSheetsClient(settings.google_sheets))
    return JsonFileTransport(sync.data_file)


def create_coordinator(
    settings: Optional[Settings] = None,
    transport: Optional[SyncTransport] = None,
    initial: Optional[Union[RecordStore, Snapshot, Mapping[str, Any]]] = None,
    audit_logger: Optional[AuditLogger] = None,
    is_authenticated: Optional[Callable[[], bool]] = None,
) -> ReconciliationCoordinator:
    """
    Factory function to create a coordinator and everything it owns.

    Args:
        settings: Defaults to the cached environment settings
        transport: Overrides the configured transport (tests pass one)
        initial: Starting data; without it the store is seeded with the
                 default categories and tags (if enabled) or left empty
        audit_logger: Defaults to a local-only audit logger
        is_authenticated: Session check handed to the sync client

    Returns:
        A coordinator in the idle state
    """
    settings = settings or get_settings()
    app = settings.app
    sync_settings = settings.sync

    configure_logging(app.log_level)
    audit_logger = audit_logger or AuditLogger(buffer_size=app.audit_buffer_size)

    if transport is None:
        transport = build_transport(settings)

    sync_client = SyncClient(
        transport,
        audit_logger=audit_logger,
        settings=sync_settings,
        is_authenticated=is_authenticated,
    )
    engine = MutationEngine(
        validator=MutationValidator(require_category=app.require_category),
        protect_fixed_categories=app.protect_fixed_categories,
    )

    if initial is None:
        store = RecordStore.seeded() if app.seed_defaults else RecordStore.empty()
    elif isinstance(initial, RecordStore):
        store = initial
    elif isinstance(initial, Snapshot):
        store = RecordStore.from_snapshot(initial)
    else:
        store = RecordStore.from_snapshot(Snapshot.from_document(initial))

    return ReconciliationCoordinator(
        sync_client,
        engine=engine,
        store=store,
        audit_logger=audit_logger,
        settings=settings,
    )
