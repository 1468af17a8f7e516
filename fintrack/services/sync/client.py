"""
Sync Client

Moves whole snapshots between the local store and a SyncTransport.

DESIGN DECISION: The client never raises for a sync failure. pull() and
push() always return a SyncResult; failures are data the coordinator
surfaces to the UI, not exceptions that could unwind through it. The
client never clears local state either: on any failure the caller keeps
what it had.

Retries: only SyncConnectionError (network trouble, gateway errors) is
retried, with exponential backoff. Auth, malformed responses and other
backend errors fail on the first attempt.

Auth gate: after an AuthExpired the client refuses to touch the transport
until resume() is called by whoever re-authenticated the session.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fintrack.audit import AuditLogger
from fintrack.config import SyncSettings, get_settings
from fintrack.models.records import Snapshot, SnapshotFormatError
from fintrack.services.sync.interface import (
    AuthExpired,
    MalformedSnapshotError,
    SyncConnectionError,
    SyncFailure,
    SyncTransport,
)


AuthExpiredListener = Callable[[AuthExpired], None]


class SyncResult(BaseModel):
    """Outcome of one pull or push."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    direction: Literal["pull", "push"]
    success: bool
    snapshot: Optional[Snapshot] = Field(
        None,
        description="Pulled snapshot, or the snapshot that was pushed"
    )
    error: Optional[SyncFailure] = None
    attempts: int = Field(0, ge=0, description="Transport calls made (0 when gated)")
    completed_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def auth_expired(self) -> bool:
        return isinstance(self.error, AuthExpired)

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error else None


class SyncClient:
    """
    Owns the transport, the retry policy, the last known good snapshot
    and the auth gate.
    """

    def __init__(
        self,
        transport: SyncTransport,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SyncSettings] = None,
        is_authenticated: Optional[Callable[[], bool]] = None,
    ):
        """
        Args:
            transport: Backend holding the remote document
            audit_logger: Receives sync audit events
            settings: Retry policy; defaults to the global sync settings
            is_authenticated: Session check consulted before every call
        """
        self._transport = transport
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().sync
        self._is_authenticated = is_authenticated
        self._last_known_good: Optional[Snapshot] = None
        self._paused = False
        self._auth_listeners: list[AuthExpiredListener] = []

    @property
    def transport(self) -> SyncTransport:
        return self._transport

    @property
    def last_known_good(self) -> Optional[Snapshot]:
        """The most recent snapshot confirmed to match the remote."""
        return self._last_known_good

    @property
    def is_paused(self) -> bool:
        return self._paused

    def on_auth_expired(self, listener: AuthExpiredListener) -> Callable[[], None]:
        """Register a listener for session expiry; returns an unsubscribe function."""
        self._auth_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._auth_listeners:
                self._auth_listeners.remove(listener)

        return unsubscribe

    def resume(self) -> None:
        """Lift the auth gate after the session was re-established."""
        if not self._paused:
            return
        self._paused = False
        if self._audit_logger:
            self._audit_logger.log_sync_resumed()

    # -------------------------------------------------------------------------
    # Pull / push
    # -------------------------------------------------------------------------

    async def pull(self, correlation_id: Optional[UUID] = None) -> SyncResult:
        """
        Retrieve the authoritative remote snapshot.

        On failure the result carries the error and no snapshot.
        """
        gated = self._gate("pull")
        if gated is not None:
            return gated

        if self._audit_logger:
            self._audit_logger.log_sync_started("pull", correlation_id)

        attempts = [0]
        try:
            document = await self._call(self._transport.pull, attempts)
            snapshot = Snapshot.from_document(document, remote=True)
        except SnapshotFormatError as e:
            return self._failed("pull", MalformedSnapshotError(str(e)), attempts[0], correlation_id)
        except SyncFailure as e:
            return self._failed("pull", e, attempts[0], correlation_id)
        except Exception as e:
            return self._failed("pull", _unexpected(e), attempts[0], correlation_id)

        self._last_known_good = snapshot
        if self._audit_logger:
            self._audit_logger.log_sync_succeeded("pull", snapshot.counts(), correlation_id)

        return SyncResult(direction="pull", success=True, snapshot=snapshot, attempts=attempts[0])

    async def push(
        self,
        snapshot: Snapshot,
        correlation_id: Optional[UUID] = None,
    ) -> SyncResult:
        """
        Overwrite the remote document with `snapshot`.

        A failed push is reported, never rolled back locally.
        """
        gated = self._gate("push")
        if gated is not None:
            return gated

        if self._audit_logger:
            self._audit_logger.log_sync_started("push", correlation_id)

        attempts = [0]
        try:
            document = snapshot.to_document()
            await self._call(self._transport.push, attempts, document)
        except SyncFailure as e:
            return self._failed("push", e, attempts[0], correlation_id, snapshot)
        except Exception as e:
            return self._failed("push", _unexpected(e), attempts[0], correlation_id, snapshot)

        self._last_known_good = snapshot
        if self._audit_logger:
            self._audit_logger.log_sync_succeeded("push", snapshot.counts(), correlation_id)

        return SyncResult(direction="push", success=True, snapshot=snapshot, attempts=attempts[0])

    async def close(self) -> None:
        await self._transport.close()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _call(
        self,
        operation: Callable[..., Awaitable[Any]],
        attempts: list[int],
        *args: Any,
    ) -> Any:
        """Run a transport call, retrying transient failures."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(SyncConnectionError),
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self._settings.retry_wait_min,
                max=self._settings.retry_wait_max,
            ),
            reraise=True,
        ):
            with attempt:
                attempts[0] = attempt.retry_state.attempt_number
                return await operation(*args)

    def _gate(self, direction: Literal["pull", "push"]) -> Optional[SyncResult]:
        """A failed result if sync is paused or the session is gone."""
        if not self._paused and self._is_authenticated is not None and not self._is_authenticated():
            self._paused = True

        if not self._paused:
            return None

        return SyncResult(
            direction=direction,
            success=False,
            error=AuthExpired("Sync is paused until the session is re-established"),
            attempts=0,
        )

    def _failed(
        self,
        direction: Literal["pull", "push"],
        error: SyncFailure,
        attempts: int,
        correlation_id: Optional[UUID],
        snapshot: Optional[Snapshot] = None,
    ) -> SyncResult:
        if isinstance(error, AuthExpired):
            self._paused = True
            if self._audit_logger:
                self._audit_logger.log_auth_expired(direction, str(error), correlation_id)
            for listener in list(self._auth_listeners):
                try:
                    listener(error)
                except Exception as e:
                    if self._audit_logger:
                        self._audit_logger.log_error(
                            error_type="auth_listener_failed",
                            error_message=str(e),
                            correlation_id=correlation_id,
                        )
        elif self._audit_logger:
            self._audit_logger.log_sync_failed(
                direction=direction,
                error_code=error.code,
                error_message=str(error),
                correlation_id=correlation_id,
            )

        return SyncResult(
            direction=direction,
            success=False,
            snapshot=snapshot if direction == "push" else None,
            error=error,
            attempts=attempts,
        )


def _unexpected(error: Exception) -> SyncFailure:
    failure = SyncFailure(f"Unexpected {type(error).__name__}: {error}")
    failure.__cause__ = error
    return failure
