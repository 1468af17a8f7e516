"""Errors raised by the mutation engine."""

from fintrack.models.validation import ValidationIssue


class MutationValidationError(Exception):
    """
    Malformed mutation input. Raised before the store is touched.

    Carries the validation issues so the caller can tell the user why.
    """

    def __init__(self, intent: str, issues: list[ValidationIssue]):
        self.intent = intent
        self.issues = issues
        errors = [issue.message for issue in issues if issue.severity == "error"]
        super().__init__(f"{intent} rejected: {'; '.join(errors) or 'invalid input'}")
