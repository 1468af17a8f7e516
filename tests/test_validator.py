"""Tests for two-stage mutation validation."""

from fintrack.models.records import Category, Transaction
from fintrack.models.validation import DANGLING_REFERENCE
from fintrack.validation import MutationValidator, payload_to_dict

import pytest


class TestSchemaStage:
    """Stage 1: types and required fields."""

    def test_valid_transaction(self, store):
        validator = MutationValidator(require_category=False)
        tx, result = validator.validate_transaction(
            {"id": "t9", "date": "2024-03-05", "amount": -10, "categoryId": "c1"},
            store,
            "add_transaction",
        )
        assert isinstance(tx, Transaction)
        assert result.is_valid
        assert result.issues == []

    def test_missing_amount_is_an_error(self, store):
        validator = MutationValidator(require_category=False)
        tx, result = validator.validate_transaction(
            {"id": "t9", "date": "2024-03-05"},
            store,
            "add_transaction",
        )
        assert tx is None
        assert result.is_valid is False
        assert any(i.field == "amount" and i.issue_type == "missing" for i in result.issues)

    def test_require_category(self, store):
        validator = MutationValidator(require_category=True)
        tx, result = validator.validate_transaction(
            {"id": "t9", "date": "2024-03-05", "amount": -10},
            store,
            "add_transaction",
        )
        assert tx is None
        assert result.issues[0].field == "categoryId"
        assert result.issues[0].severity == "error"

    def test_validate_record(self):
        validator = MutationValidator(require_category=False)
        category, result = validator.validate_record(Category, {"id": "c9"}, "add_category")
        assert category is None
        assert result.has_errors


class TestReferentialStage:
    """Stage 2: dangling references are warnings, never errors."""

    def test_dangling_category_is_a_warning(self, store):
        validator = MutationValidator(require_category=False)
        tx, result = validator.validate_transaction(
            {"id": "t9", "date": "2024-03-05", "amount": -10, "categoryId": "nonexistent"},
            store,
            "add_transaction",
        )
        assert tx is not None
        assert result.is_valid is True
        assert result.referential_valid is False
        assert result.warnings[0].issue_type == DANGLING_REFERENCE

    def test_dangling_tags_are_one_warning(self, store):
        validator = MutationValidator(require_category=False)
        _, result = validator.validate_transaction(
            {"id": "t9", "date": "2024-03-05", "amount": -10, "tagIds": ["g1", "x", "y"]},
            store,
            "add_transaction",
        )
        assert len(result.warnings) == 1
        assert "'x'" in result.warnings[0].message

    def test_summary_mentions_warnings(self, store):
        validator = MutationValidator(require_category=False)
        _, result = validator.validate_transaction(
            {"id": "t9", "date": "2024-03-05", "amount": -10, "categoryId": "zzz"},
            store,
            "add_transaction",
        )
        summary = validator.get_user_friendly_summary(result)
        assert "Saved with warnings" in summary


class TestPayloadConversion:
    """Payloads may be mappings or record models."""

    def test_record_payload_uses_wire_keys(self):
        tx = Transaction(id="t1", date="2024-01-01", amount=1, category_id="c1")
        assert payload_to_dict(tx) == {"id": "t1", "date": "2024-01-01", "amount": 1, "categoryId": "c1"}

    def test_other_types_rejected(self):
        with pytest.raises(TypeError):
            payload_to_dict(["not", "a", "mapping"])
