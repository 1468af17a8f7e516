"""
Report Execution Engine

DESIGN DECISION: Reports are DERIVED, never stored.
Every figure shown to the user (balance, totals, breakdowns, debt) is
computed from the current record store on demand.

Dangling references are resolved here, at read time:
- a category id that does not resolve becomes the "unknown" placeholder
- a missing category becomes the "uncategorized" bucket
- tag ids that do not resolve are dropped; a transaction left without
  tags lands in the "untagged" bucket

Nothing in this module raises because of a dangling reference.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Union

from fintrack.config import AppSettings, get_settings
from fintrack.models.records import (
    UNCATEGORIZED_ID,
    UNKNOWN_ID,
    UNTAGGED_ID,
    Category,
    Tag,
    Transaction,
    TransactionKind,
    uncategorized,
    unknown_category,
    untagged,
)
from fintrack.models.reports import (
    Breakdown,
    BreakdownEntry,
    DebtSummaryEntry,
    Dimension,
    Period,
)
from fintrack.store import RecordStore


class QueryExecutionError(Exception):
    """A report was asked for with arguments it cannot interpret."""
    pass


class ReportExecutor:
    """
    Executes report queries against one record store.

    GUARANTEES:
    - Only returns figures derived from the store
    - Never raises on dangling category or tag references
    - Breakdowns are sorted by value, largest first
    """

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[AppSettings] = None,
    ):
        self._store = store
        app = settings or get_settings().app
        self._unknown = unknown_category(app.unknown_category_label)
        self._uncategorized = uncategorized(app.uncategorized_label)
        self._untagged = untagged(app.untagged_label)

    @property
    def store(self) -> RecordStore:
        return self._store

    # -------------------------------------------------------------------------
    # Reference resolution
    # -------------------------------------------------------------------------

    def resolve_category(self, transaction: Transaction) -> Category:
        """The transaction's category, or a placeholder. Never None."""
        if not transaction.category_id:
            return self._uncategorized
        return self._store.get_category(transaction.category_id) or self._unknown

    def resolve_tags(self, transaction: Transaction) -> list[Tag]:
        """The transaction's tags that exist, in the order it lists them."""
        tags = []
        for tag_id in transaction.tag_ids:
            tag = self._store.get_tag(tag_id)
            if tag is not None:
                tags.append(tag)
        return tags

    # -------------------------------------------------------------------------
    # Totals
    # -------------------------------------------------------------------------

    def current_balance(self) -> Decimal:
        """Initial balance plus the signed sum of every transaction."""
        balance = self._store.settings.initial_balance
        for transaction in self._store.transactions():
            balance += transaction.amount
        return balance

    def total(self, kind: Union[TransactionKind, str]) -> Decimal:
        """Sum of absolute amounts of one kind of transaction."""
        kind = _as_kind(kind)
        return sum(
            (abs(t.amount) for t in self._of_kind(kind)),
            Decimal("0"),
        )

    # -------------------------------------------------------------------------
    # Breakdowns
    # -------------------------------------------------------------------------

    def category_breakdown(self, kind: Union[TransactionKind, str]) -> Breakdown:
        """Absolute amounts per category, dangling ids merged into one bucket."""
        kind = _as_kind(kind)
        slices: dict[str, BreakdownEntry] = {}
        total = Decimal("0")

        for transaction in self._of_kind(kind):
            category = self.resolve_category(transaction)
            amount = abs(transaction.amount)
            total += amount
            self._add_to_slice(slices, category, amount)

        return Breakdown(
            kind=kind,
            dimension=Dimension.CATEGORY,
            total=total,
            entries=_largest_first(slices),
        )

    def tag_breakdown(self, kind: Union[TransactionKind, str]) -> Breakdown:
        """
        Absolute amounts per tag.

        A transaction counts fully towards each of its tags, so slices can
        add up to more than the total. Untagged goes last.
        """
        kind = _as_kind(kind)
        slices: dict[str, BreakdownEntry] = {}
        total = Decimal("0")
        untagged_value = Decimal("0")
        untagged_count = 0

        for transaction in self._of_kind(kind):
            amount = abs(transaction.amount)
            total += amount
            tags = self.resolve_tags(transaction)
            if not tags:
                untagged_value += amount
                untagged_count += 1
                continue
            for tag in tags:
                self._add_to_slice(slices, tag, amount)

        entries = _largest_first(slices)
        if untagged_count:
            entries.append(BreakdownEntry(
                id=self._untagged.id,
                name=self._untagged.name,
                color=self._untagged.color,
                value=untagged_value,
                count=untagged_count,
                is_placeholder=True,
            ))

        return Breakdown(
            kind=kind,
            dimension=Dimension.TAG,
            total=total,
            entries=entries,
        )

    def drilldown(
        self,
        kind: Union[TransactionKind, str],
        dimension: Union[Dimension, str],
        slice_id: str,
    ) -> list[Transaction]:
        """The transactions behind one breakdown slice, newest first."""
        kind = _as_kind(kind)
        try:
            dimension = Dimension(dimension)
        except ValueError:
            raise QueryExecutionError(f"Unknown dimension: {dimension!r}")

        if dimension == Dimension.CATEGORY:
            matches = [
                t for t in self._of_kind(kind)
                if self.resolve_category(t).id == slice_id
            ]
        elif slice_id == UNTAGGED_ID:
            matches = [t for t in self._of_kind(kind) if not self.resolve_tags(t)]
        else:
            matches = [
                t for t in self._of_kind(kind)
                if any(tag.id == slice_id for tag in self.resolve_tags(t))
            ]

        return _newest_first(matches)

    # -------------------------------------------------------------------------
    # Transaction list
    # -------------------------------------------------------------------------

    def list_transactions(
        self,
        period: Union[Period, str] = Period.ALL,
        today: Optional[date] = None,
    ) -> list[Transaction]:
        """Transactions inside `period`, newest first."""
        try:
            period = Period(period)
        except ValueError:
            raise QueryExecutionError(f"Unknown period: {period!r}")

        today = today or date.today()
        start, end = _period_bounds(period, today)

        matches = [
            t for t in self._store.transactions()
            if start is None or start <= t.day <= end
        ]
        return _newest_first(matches)

    def pinned(
        self,
        period: Union[Period, str] = Period.ALL,
        today: Optional[date] = None,
    ) -> list[Transaction]:
        return [t for t in self.list_transactions(period, today) if t.is_pinned]

    def unpinned(
        self,
        period: Union[Period, str] = Period.ALL,
        today: Optional[date] = None,
    ) -> list[Transaction]:
        return [t for t in self.list_transactions(period, today) if not t.is_pinned]

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def categories_for(self, kind: Union[TransactionKind, str]) -> list[Category]:
        """Categories a form for this kind of transaction should offer."""
        kind = _as_kind(kind)
        return [c for c in self._store.categories() if c.offered_for(kind)]

    def debt_summary(self) -> list[DebtSummaryEntry]:
        """Categories with outstanding debt, largest first."""
        entries = [
            DebtSummaryEntry(
                category_id=c.id,
                name=c.name,
                code=c.code,
                color=c.color,
                debt=c.outstanding_debt,
            )
            for c in self._store.categories()
            if c.outstanding_debt > 0
        ]
        return sorted(entries, key=lambda e: e.debt, reverse=True)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _of_kind(self, kind: TransactionKind) -> list[Transaction]:
        return [t for t in self._store.transactions() if t.kind == kind]

    def _add_to_slice(
        self,
        slices: dict[str, BreakdownEntry],
        record: Union[Category, Tag],
        amount: Decimal,
    ) -> None:
        entry = slices.get(record.id)
        if entry is None:
            slices[record.id] = BreakdownEntry(
                id=record.id,
                name=record.name,
                color=record.color,
                value=amount,
                count=1,
                is_placeholder=record.id in (UNKNOWN_ID, UNCATEGORIZED_ID),
            )
        else:
            entry.value += amount
            entry.count += 1


def _as_kind(kind: Union[TransactionKind, str]) -> TransactionKind:
    try:
        return TransactionKind(kind)
    except ValueError:
        raise QueryExecutionError(f"Unknown transaction kind: {kind!r}")


def _largest_first(slices: dict[str, BreakdownEntry]) -> list[BreakdownEntry]:
    # sorted() is stable, so equal slices keep first-seen order
    return sorted(slices.values(), key=lambda e: e.value, reverse=True)


def _newest_first(transactions: list[Transaction]) -> list[Transaction]:
    return sorted(transactions, key=lambda t: t.day, reverse=True)


def _period_bounds(period: Period, today: date) -> tuple[Optional[date], Optional[date]]:
    """Inclusive (start, end) of a period; (None, None) for all time."""
    if period == Period.TODAY:
        return today, today
    if period == Period.YESTERDAY:
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if period == Period.WEEK:
        monday = today - timedelta(days=today.weekday())
        return monday, monday + timedelta(days=6)
    if period == Period.MONTH:
        start = today.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        return start, next_month - timedelta(days=1)
    return None, None
