"""
Audit Models for fintrack

Every mutation and every sync exchange is logged as an audit event.
This provides:
1. Traceability of what changed locally and when it reached the remote
2. Debugging information when a push or pull fails
3. A recent-history view the UI can show after a failed save

DESIGN DECISION: Audit events are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Local mutations
    MUTATION_APPLIED = "mutation_applied"
    MUTATION_REJECTED = "mutation_rejected"
    MUTATION_NOOP = "mutation_noop"
    REFERENTIAL_WARNING = "referential_warning"
    DEBT_REDUCED = "debt_reduced"
    SNAPSHOT_IMPORTED = "snapshot_imported"

    # Sync
    PULL_STARTED = "pull_started"
    PULL_SUCCEEDED = "pull_succeeded"
    PULL_FAILED = "pull_failed"
    PULL_DISCARDED = "pull_discarded"
    PULL_SKIPPED = "pull_skipped"
    PUSH_STARTED = "push_started"
    PUSH_SUCCEEDED = "push_succeeded"
    PUSH_FAILED = "push_failed"
    AUTH_EXPIRED = "auth_expired"
    SYNC_RESUMED = "sync_resumed"

    # Coordinator lifecycle
    STATE_CHANGED = "state_changed"
    STORE_RESET = "store_reset"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection the entity lives in (e.g., 'transactions')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the record this event relates to"
    )

    # Correlation - ties a push back to the mutation that scheduled it
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.mutation_applied("add_transaction", ...)
        event = AuditEventBuilder.sync_failed("push", error_code, message)
    """

    @staticmethod
    def mutation_applied(
        intent: str,
        entity_type: Optional[str],
        entity_id: Optional[str],
        changed: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_APPLIED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Applied {intent}",
            details={
                "intent": intent,
                "changed": changed,
            },
            is_user_action=True,
        )

    @staticmethod
    def mutation_noop(
        intent: str,
        entity_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_NOOP,
            severity=AuditSeverity.DEBUG,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{intent} changed nothing",
            details={"intent": intent},
            is_user_action=True,
        )

    @staticmethod
    def mutation_rejected(
        intent: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Rejected {intent} with {len(issues)} issues",
            details={
                "intent": intent,
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def referential_warning(
        entity_type: str,
        entity_id: Optional[str],
        field: str,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFERENTIAL_WARNING,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=message[:500],
            details={"field": field, "message": message},
        )

    @staticmethod
    def debt_reduced(
        category_id: str,
        previous: str,
        current: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_REDUCED,
            entity_type="categories",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Debt reduced from {previous} to {current}",
            details={
                "previous_debt": previous,
                "debt": current,
                "transaction_id": transaction_id,
            },
        )

    @staticmethod
    def snapshot_imported(
        collections: list[str],
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_IMPORTED,
            correlation_id=correlation_id,
            description=f"Imported {', '.join(collections) or 'nothing'}",
            details={
                "collections": collections,
                "counts": counts,
            },
            is_user_action=True,
        )

    @staticmethod
    def sync_started(
        direction: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.PULL_STARTED
            if direction == "pull"
            else AuditEventType.PUSH_STARTED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.DEBUG,
            correlation_id=correlation_id,
            description=f"{direction.capitalize()} started",
            details={"direction": direction},
        )

    @staticmethod
    def sync_succeeded(
        direction: str,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.PULL_SUCCEEDED
            if direction == "pull"
            else AuditEventType.PUSH_SUCCEEDED
        )
        return AuditEvent(
            event_type=event_type,
            correlation_id=correlation_id,
            description=f"{direction.capitalize()} completed",
            details={
                "direction": direction,
                "counts": counts,
            },
        )

    @staticmethod
    def sync_failed(
        direction: str,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.PULL_FAILED
            if direction == "pull"
            else AuditEventType.PUSH_FAILED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"{direction.capitalize()} failed: {error_code}",
            error_code=error_code,
            error_message=error_message,
            details={"direction": direction},
        )

    @staticmethod
    def pull_discarded(
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PULL_DISCARDED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="Pulled snapshot discarded",
            details={"reason": reason},
        )

    @staticmethod
    def pull_skipped(
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PULL_SKIPPED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="Refresh skipped the pull to keep unpushed local changes",
            details={"reason": reason},
        )

    @staticmethod
    def auth_expired(
        direction: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_EXPIRED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="Session expired; sync paused until re-authentication",
            error_code="auth_expired",
            error_message=error_message,
            details={"direction": direction},
        )

    @staticmethod
    def sync_resumed() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_RESUMED,
            description="Sync resumed after re-authentication",
            is_user_action=True,
        )

    @staticmethod
    def state_changed(previous: str, current: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_CHANGED,
            severity=AuditSeverity.DEBUG,
            description=f"Sync state {previous} -> {current}",
            details={
                "previous": previous,
                "current": current,
            },
        )

    @staticmethod
    def store_reset(counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_RESET,
            severity=AuditSeverity.WARNING,
            description="Local store reset",
            details={"counts": counts},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
