"""Mutation validation package."""

from fintrack.validation.validator import (
    MutationValidator,
    issues_from_pydantic,
    payload_to_dict,
)

__all__ = ["MutationValidator", "issues_from_pydantic", "payload_to_dict"]
