"""
Data Models Package

This package contains all Pydantic models used by fintrack.
All data flowing through the store and across the sync boundary
must conform to these schemas.
"""

from fintrack.models.records import (
    Category,
    Collection,
    Record,
    Snapshot,
    SnapshotFormatError,
    Tag,
    Todo,
    Transaction,
    TransactionKind,
    UserSettings,
    derive_code,
    uncategorized,
    unknown_category,
    untagged,
    utc_timestamp,
)
from fintrack.models.reports import (
    Breakdown,
    BreakdownEntry,
    DebtSummaryEntry,
    Dimension,
    ImportReport,
    Period,
)
from fintrack.models.defaults import (
    DEFAULT_CATEGORIES,
    DEFAULT_TAGS,
    default_snapshot,
    with_default_lookups,
)
from fintrack.models.validation import (
    DANGLING_REFERENCE,
    NOT_FOUND,
    MutationValidationResult,
    ValidationIssue,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "Category",
    "Collection",
    "Record",
    "Snapshot",
    "SnapshotFormatError",
    "Tag",
    "Todo",
    "Transaction",
    "TransactionKind",
    "UserSettings",
    "derive_code",
    "uncategorized",
    "unknown_category",
    "untagged",
    "utc_timestamp",
    # Report models
    "Breakdown",
    "BreakdownEntry",
    "DebtSummaryEntry",
    "Dimension",
    "ImportReport",
    "Period",
    # Seed data
    "DEFAULT_CATEGORIES",
    "DEFAULT_TAGS",
    "default_snapshot",
    "with_default_lookups",
    # Validation models
    "DANGLING_REFERENCE",
    "NOT_FOUND",
    "MutationValidationResult",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
