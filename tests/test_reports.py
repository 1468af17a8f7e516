"""Tests for derived reports and read-time reference resolution."""

import pytest
from datetime import date
from decimal import Decimal

from fintrack.config import AppSettings
from fintrack.models import Dimension, Period, Snapshot
from fintrack.queries import QueryExecutionError, ReportExecutor
from fintrack.store import RecordStore


@pytest.fixture
def messy_store(document):
    """The shared document plus transactions with dangling references."""
    document["transactions"] += [
        {"id": "t3", "date": "2024-03-04", "amount": -20, "categoryId": "deleted-1", "tagIds": ["gone"]},
        {"id": "t4", "date": "2024-03-05", "amount": -5, "categoryId": "deleted-2", "tagIds": ["g1", "g2"]},
        {"id": "t5", "date": "2024-03-06", "amount": -7},
    ]
    return RecordStore.from_snapshot(Snapshot.from_document(document))


@pytest.fixture
def executor(messy_store):
    return ReportExecutor(messy_store, AppSettings())


class TestTotals:
    """Balance and per-kind totals."""

    def test_current_balance(self, executor):
        # 500 - 50 + 1200 - 20 - 5 - 7
        assert executor.current_balance() == Decimal("1618")

    def test_totals_are_absolute(self, executor):
        assert executor.total("expense") == Decimal("82")
        assert executor.total("income") == Decimal("1200")

    def test_unknown_kind(self, executor):
        with pytest.raises(QueryExecutionError):
            executor.total("refund")


class TestCategoryBreakdown:
    """Dangling category ids never break a breakdown."""

    def test_largest_first_with_placeholders(self, executor):
        breakdown = executor.category_breakdown("expense")
        assert breakdown.dimension == Dimension.CATEGORY
        assert breakdown.total == Decimal("82")
        assert [(e.id, e.value) for e in breakdown.entries] == [
            ("c1", Decimal("50")),
            ("unknown", Decimal("25")),
            ("other", Decimal("7")),
        ]

    def test_dangling_ids_share_one_bucket(self, executor):
        unknown = executor.category_breakdown("expense").entries[1]
        assert unknown.count == 2
        assert unknown.name == "Desconocido"
        assert unknown.is_placeholder is True

    def test_labels_come_from_settings(self, messy_store):
        settings = AppSettings(unknown_category_label="Unknown", uncategorized_label="Other")
        names = [e.name for e in ReportExecutor(messy_store, settings).category_breakdown("expense").entries]
        assert names == ["Construcción", "Unknown", "Other"]

    def test_empty(self):
        breakdown = ReportExecutor(RecordStore.empty(), AppSettings()).category_breakdown("income")
        assert breakdown.is_empty
        assert breakdown.total == Decimal("0")

    def test_resolve_category_never_none(self, executor, messy_store):
        for transaction in messy_store.transactions():
            assert executor.resolve_category(transaction) is not None


class TestTagBreakdown:
    """Each tag counts the full amount; untagged goes last."""

    def test_tag_slices(self, executor):
        breakdown = executor.tag_breakdown("expense")
        assert [(e.id, e.value) for e in breakdown.entries] == [
            ("g1", Decimal("55")),
            ("g2", Decimal("5")),
            ("untagged", Decimal("27")),
        ]
        assert breakdown.entries[-1].is_placeholder

    def test_slices_can_exceed_total(self, executor):
        breakdown = executor.tag_breakdown("expense")
        assert sum(e.value for e in breakdown.entries) > breakdown.total

    def test_only_dangling_tags_counts_as_untagged(self, executor):
        untagged = executor.tag_breakdown("expense").entries[-1]
        assert untagged.count == 2


class TestDrilldown:
    """The transactions behind one slice."""

    def test_category_slice(self, executor):
        assert [t.id for t in executor.drilldown("expense", "category", "unknown")] == ["t4", "t3"]

    def test_tag_slice(self, executor):
        assert [t.id for t in executor.drilldown("expense", Dimension.TAG, "g1")] == ["t4", "t1"]

    def test_untagged_slice(self, executor):
        assert [t.id for t in executor.drilldown("expense", "tag", "untagged")] == ["t5", "t3"]

    def test_unknown_dimension(self, executor):
        with pytest.raises(QueryExecutionError):
            executor.drilldown("expense", "merchant", "x")


class TestTransactionList:
    """Period filters over the transaction list."""

    today = date(2024, 3, 6)  # a Wednesday

    def test_all_newest_first(self, executor):
        assert [t.id for t in executor.list_transactions()] == ["t5", "t4", "t3", "t2", "t1"]

    def test_today_and_yesterday(self, executor):
        assert [t.id for t in executor.list_transactions("today", self.today)] == ["t5"]
        assert [t.id for t in executor.list_transactions(Period.YESTERDAY, self.today)] == ["t4"]

    def test_week_starts_monday(self, executor):
        # Monday 2024-03-04 .. Sunday 2024-03-10
        assert [t.id for t in executor.list_transactions("week", self.today)] == ["t5", "t4", "t3"]

    def test_month(self, executor):
        assert len(executor.list_transactions("month", self.today)) == 5
        assert executor.list_transactions("month", date(2024, 4, 1)) == []

    def test_pinned_split(self, executor):
        assert [t.id for t in executor.pinned()] == ["t1"]
        assert "t1" not in [t.id for t in executor.unpinned()]

    def test_unknown_period(self, executor):
        with pytest.raises(QueryExecutionError):
            executor.list_transactions("fortnight")


class TestCategoriesAndDebt:
    """Category offers and the debt summary."""

    def test_categories_for(self, document):
        document["categories"][0]["showInExpense"] = False
        document["categories"][1]["showInIncome"] = False
        store = RecordStore.from_snapshot(Snapshot.from_document(document))
        executor = ReportExecutor(store, AppSettings())
        assert [c.id for c in executor.categories_for("expense")] == ["c1"]
        assert [c.id for c in executor.categories_for("income")] == ["c0"]

    def test_debt_summary(self, executor):
        summary = executor.debt_summary()
        assert [(e.category_id, e.debt) for e in summary] == [("c1", Decimal("100"))]
