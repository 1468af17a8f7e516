"""
Report Models

Read-side shapes produced by the report executor. These are derived from
the store on demand and never stored or synced.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from fintrack.models.records import TransactionKind
from fintrack.models.validation import ValidationIssue


class Period(str, Enum):
    """Date windows offered by the transaction list."""
    TODAY = "today"
    YESTERDAY = "yesterday"
    WEEK = "week"          # Monday to Sunday containing `today`
    MONTH = "month"        # Calendar month containing `today`
    ALL = "all"


class Dimension(str, Enum):
    """What a breakdown or drilldown groups by."""
    CATEGORY = "category"
    TAG = "tag"


class BreakdownEntry(BaseModel):
    """One slice of a category or tag breakdown."""

    id: str = Field(..., description="Category/tag id, or a placeholder id")
    name: str
    color: str
    value: Decimal = Field(..., ge=0, description="Sum of absolute amounts")
    count: int = Field(0, ge=0, description="Transactions in this slice")
    is_placeholder: bool = Field(
        False,
        description="True for the unknown / uncategorized / untagged buckets"
    )


class Breakdown(BaseModel):
    """A breakdown of one transaction kind, largest slice first."""

    kind: TransactionKind
    dimension: Dimension
    total: Decimal = Decimal("0")
    entries: list[BreakdownEntry] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.entries


class DebtSummaryEntry(BaseModel):
    """A category that still carries outstanding debt."""

    category_id: str
    name: str
    code: Optional[str] = None
    color: str
    debt: Decimal = Field(..., ge=0)


class ImportReport(BaseModel):
    """What a file import did, row by row summarised."""

    imported: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return self.imported + self.skipped

    def summary(self) -> str:
        text = f"Imported {self.imported} transaction(s)"
        if self.skipped:
            text += f", skipped {self.skipped}"
        return text
