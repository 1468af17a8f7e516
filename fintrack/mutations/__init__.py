"""Mutation engine package."""

from fintrack.mutations.errors import MutationValidationError
from fintrack.mutations.engine import DebtChange, MutationEngine, MutationResult

__all__ = [
    "DebtChange",
    "MutationEngine",
    "MutationResult",
    "MutationValidationError",
]
