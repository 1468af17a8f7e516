"""
Validation Models

Issues found while checking a mutation, and the result of the two-stage
check. Errors block the mutation; warnings (dangling references, unknown
ids on update) are reported but never block.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


DANGLING_REFERENCE = "dangling_reference"
NOT_FOUND = "not_found"


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'dangling_reference')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )

    @property
    def is_referential_warning(self) -> bool:
        return self.issue_type == DANGLING_REFERENCE and self.severity == "warning"


class MutationValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields)
    Stage 2: Referential validation (foreign keys against the store)
    """

    intent: str = Field(
        ...,
        description="Name of the mutation being validated"
    )
    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    schema_valid: bool
    referential_valid: bool = True

    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def is_valid(self) -> bool:
        """Warnings never block; only errors do."""
        return self.schema_valid and not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]
