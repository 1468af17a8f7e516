"""
Two-Stage Mutation Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence (id, date, amount, name, text)
- Format validation (ISO dates, finite amounts, non-negative debt)
- Optionally: a category is required on every transaction

STAGE 2 - REFERENTIAL VALIDATION:
- categoryId must resolve to a known category
- every tagId must resolve to a known tag
- This stage only produces WARNINGS. Dangling references are accepted
  and resolved to placeholders at read time.

WHY TWO STAGES:
1. Errors (stage 1) reject the mutation before the store is touched
2. Warnings (stage 2) are logged but never block
3. Stage 2 needs the current store, stage 1 does not

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the caller can tell the user why.
"""

from typing import Any, Mapping, Optional, TypeVar, Union

from pydantic import ValidationError

from fintrack.config import get_settings
from fintrack.models.records import Record, Transaction
from fintrack.models.validation import (
    DANGLING_REFERENCE,
    MutationValidationResult,
    ValidationIssue,
)
from fintrack.store import RecordStore


R = TypeVar("R", bound=Record)

Payload = Union[Mapping[str, Any], Record]


def payload_to_dict(payload: Payload) -> dict[str, Any]:
    """Mutation payloads arrive either as mappings or as record models."""
    if isinstance(payload, Record):
        return payload.model_dump(by_alias=True, exclude_unset=True)
    if not isinstance(payload, Mapping):
        raise TypeError(f"Mutation payload must be a mapping, got {type(payload).__name__}")
    return dict(payload)


def issues_from_pydantic(error: ValidationError) -> list[ValidationIssue]:
    """Translate pydantic errors into validation issues."""
    issues = []
    for err in error.errors(include_url=False):
        field = ".".join(str(part) for part in err.get("loc", ())) or "record"
        issue_type = "missing" if err.get("type") == "missing" else "invalid_value"
        issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=f"{field}: {err.get('msg', 'invalid value')}",
            severity="error",
        ))
    return issues


class MutationValidator:
    """
    Validates mutation payloads through a two-stage pipeline.

    Stage 1: Schema validation (no store needed)
    Stage 2: Referential validation (against the current store)
    """

    def __init__(self, require_category: Optional[bool] = None):
        """
        Initialize validator.

        Args:
            require_category: Reject transactions without a category.
                              Defaults to the application setting.
        """
        if require_category is None:
            require_category = get_settings().app.require_category
        self._require_category = require_category

    def _validate_schema(
        self,
        model_cls: type[R],
        data: Mapping[str, Any],
    ) -> tuple[Optional[R], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (record_or_None, list_of_issues)
        """
        try:
            record = model_cls.model_validate(dict(data))
        except ValidationError as e:
            return None, issues_from_pydantic(e)

        issues = []
        if (
            self._require_category
            and isinstance(record, Transaction)
            and not record.category_id
        ):
            issues.append(ValidationIssue(
                field="categoryId",
                issue_type="missing",
                message="A category is required for every transaction",
                severity="error",
                suggested_fix="Pick a category before saving",
            ))
            return None, issues

        return record, issues

    def _validate_references(
        self,
        transaction: Transaction,
        store: RecordStore,
    ) -> list[ValidationIssue]:
        """
        Stage 2: Referential validation.

        Only ever returns warnings.
        """
        issues = []

        if transaction.category_id and store.get_category(transaction.category_id) is None:
            issues.append(ValidationIssue(
                field="categoryId",
                issue_type=DANGLING_REFERENCE,
                message=f"Category {transaction.category_id!r} does not exist",
                severity="warning",
                suggested_fix="It will be shown as an unknown category",
            ))

        missing_tags = [
            tag_id for tag_id in transaction.tag_ids
            if store.get_tag(tag_id) is None
        ]
        if missing_tags:
            issues.append(ValidationIssue(
                field="tagIds",
                issue_type=DANGLING_REFERENCE,
                message=f"Tags {', '.join(repr(t) for t in missing_tags)} do not exist",
                severity="warning",
                suggested_fix="They will be hidden from lists and reports",
            ))

        return issues

    def validate_record(
        self,
        model_cls: type[R],
        data: Mapping[str, Any],
        intent: str,
    ) -> tuple[Optional[R], MutationValidationResult]:
        """Stage 1 only, for records without foreign keys."""
        record, issues = self._validate_schema(model_cls, data)
        result = MutationValidationResult(
            intent=intent,
            schema_valid=record is not None,
            issues=issues,
        )
        return record, result

    def validate_transaction(
        self,
        data: Mapping[str, Any],
        store: RecordStore,
        intent: str,
    ) -> tuple[Optional[Transaction], MutationValidationResult]:
        """
        Run full two-stage validation for a transaction payload.

        Returns:
            (transaction_or_None, result). The transaction is None when
            stage 1 failed.
        """
        transaction, issues = self._validate_schema(Transaction, data)

        # Only run stage 2 if stage 1 passes
        referential_valid = True
        if transaction is not None:
            reference_issues = self._validate_references(transaction, store)
            referential_valid = not reference_issues
            issues.extend(reference_issues)

        result = MutationValidationResult(
            intent=intent,
            schema_valid=transaction is not None,
            referential_valid=referential_valid,
            issues=issues,
        )
        return transaction, result

    def get_user_friendly_summary(
        self,
        result: MutationValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the UI shows in its transient notification.
        """
        if result.is_valid and not result.warnings:
            return "Saved."

        lines = []

        if not result.is_valid:
            lines.append("Could not save; please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Saved with warnings:" if result.is_valid else "Also note:")
            for warning in result.warnings:
                lines.append(f"   • {warning.message}")

        return "\n".join(lines)
