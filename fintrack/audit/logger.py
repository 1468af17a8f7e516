"""
Audit Logger

DESIGN DECISION: Every mutation and every sync exchange is logged.
This provides:
1. Traceability from a UI action to the push that persisted it
2. Debugging capability when the remote and local copies diverge
3. A recent-history buffer the UI can show after a failed save

The audit logger:
- Is synchronous, because mutations are synchronous and must not suspend
- Gracefully handles failures (a broken sink never breaks a mutation)
- Supports correlation IDs to tie a push back to its mutation
"""

import logging
from collections import deque
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from fintrack.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from fintrack.models.validation import ValidationIssue


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route the structured log through the stdlib root logger at `level`."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. A bounded in-memory buffer (for the UI's recent-history view)
    and optionally forwards them to a sink callable.
    """

    def __init__(
        self,
        buffer_size: int = 500,
        sink: Optional[Callable[[AuditEvent], None]] = None,
    ):
        """
        Initialize audit logger.

        Args:
            buffer_size: How many recent events to keep in memory.
            sink: Optional callable receiving every event (e.g. to persist it).
        """
        self._events: deque[AuditEvent] = deque(maxlen=buffer_size)
        self._sink = sink
        self._logger = structlog.get_logger("fintrack.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Returns False only if the sink failed.
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        self._events.append(event)

        if self._sink is not None:
            try:
                self._sink(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_sink_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def recent_events(
        self,
        limit: int = 100,
        event_type: Optional[AuditEventType] = None,
    ) -> list[AuditEvent]:
        """Most recent events first, optionally of one type."""
        events = [
            event for event in reversed(self._events)
            if event_type is None or event.event_type == event_type
        ]
        return events[:limit]

    def events_for_correlation(self, correlation_id: UUID) -> list[AuditEvent]:
        """All buffered events of one flow, in chronological order."""
        return [e for e in self._events if e.correlation_id == correlation_id]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def log_mutation_applied(
        self,
        intent: str,
        entity_type: Optional[str],
        entity_id: Optional[str],
        changed: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.mutation_applied(
            intent=intent,
            entity_type=entity_type,
            entity_id=entity_id,
            changed=changed,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_mutation_noop(
        self,
        intent: str,
        entity_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.mutation_noop(intent, entity_id, correlation_id))

    def log_mutation_rejected(
        self,
        intent: str,
        issues: list[ValidationIssue],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a mutation refused by validation."""
        event = AuditEventBuilder.mutation_rejected(
            intent=intent,
            issues=[
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in issues
            ],
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_referential_warnings(
        self,
        entity_type: str,
        entity_id: Optional[str],
        issues: list[ValidationIssue],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log every dangling-reference warning of one mutation."""
        for issue in issues:
            if not issue.is_referential_warning:
                continue
            self.log(AuditEventBuilder.referential_warning(
                entity_type=entity_type,
                entity_id=entity_id,
                field=issue.field,
                message=issue.message,
                correlation_id=correlation_id,
            ))

    def log_debt_reduced(
        self,
        category_id: str,
        previous: str,
        current: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.debt_reduced(
            category_id=category_id,
            previous=previous,
            current=current,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_snapshot_imported(
        self,
        collections: list[str],
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.snapshot_imported(collections, counts, correlation_id))

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    def log_sync_started(
        self,
        direction: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.sync_started(direction, correlation_id))

    def log_sync_succeeded(
        self,
        direction: str,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.sync_succeeded(direction, counts, correlation_id))

    def log_sync_failed(
        self,
        direction: str,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.sync_failed(
            direction=direction,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_pull_discarded(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.pull_discarded(reason, correlation_id))

    def log_pull_skipped(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.pull_skipped(reason, correlation_id))

    def log_auth_expired(
        self,
        direction: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.auth_expired(direction, error_message, correlation_id))

    def log_sync_resumed(self) -> None:
        self.log(AuditEventBuilder.sync_resumed())

    # -------------------------------------------------------------------------
    # Coordinator lifecycle
    # -------------------------------------------------------------------------

    def log_state_changed(self, previous: str, current: str) -> None:
        self.log(AuditEventBuilder.state_changed(previous, current))

    def log_store_reset(self, counts: dict[str, int]) -> None:
        self.log(AuditEventBuilder.store_reset(counts))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g. a mutation).
    Pass it to the push that persists it.
    """
    return uuid4()
