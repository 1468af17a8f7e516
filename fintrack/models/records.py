"""
Core Data Models for fintrack

These models define the schemas for every record the tracker keeps.
They are designed to:
1. Validate mutation input before it reaches the store
2. Round-trip the remote JSON document without loss
3. Expose snake_case attributes in Python and camelCase keys on the wire

DESIGN DECISION: Remote documents are written by several clients (web,
mobile, restore scripts). Keys we do not know about are kept and re-emitted,
and fields that were absent on input are not invented on output. A pull
followed by a push of the unmodified result therefore leaves the remote
document structurally unchanged.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel


def _decimal_to_number(value: Decimal) -> Union[int, float]:
    """Emit decimals as JSON numbers, integral values as ints."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


Money = Annotated[
    Decimal,
    PlainSerializer(_decimal_to_number, return_type=Union[int, float], when_used="json"),
]


# =============================================================================
# ENUMS
# =============================================================================

class Collection(str, Enum):
    """The five collections that make up a snapshot."""
    TRANSACTIONS = "transactions"
    CATEGORIES = "categories"
    TAGS = "tags"
    SETTINGS = "settings"
    TODOS = "todos"


class TransactionKind(str, Enum):
    """Expense (amount < 0) or income (amount >= 0)."""
    EXPENSE = "expense"
    INCOME = "income"


# =============================================================================
# RECORDS
# =============================================================================

class Record(BaseModel):
    """
    Base for every stored record.

    camelCase aliases on the wire, unknown keys preserved. Records are
    frozen: the store hands out instances, so changes go through
    model_copy() in the mutation engine.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
        str_strip_whitespace=True,
    )

    def to_document(self) -> dict[str, Any]:
        """JSON-shaped dict containing only the keys this record was given."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class Transaction(Record):
    """
    A single income or expense entry.

    `date` is kept as the ISO string the client sent; `day` parses it.
    """

    id: str = Field(..., min_length=1)
    date: str = Field(
        ...,
        description="ISO-8601 calendar date (YYYY-MM-DD, time part ignored)"
    )
    amount: Money = Field(
        ...,
        description="Signed amount, negative for expenses"
    )
    description: Optional[str] = None
    category_id: Optional[str] = None
    tag_ids: list[str] = Field(default_factory=list)
    is_pinned: bool = False

    @field_validator('date', mode='before')
    @classmethod
    def coerce_date(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v.date().isoformat()
        if isinstance(v, date):
            return v.isoformat()
        return v

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        try:
            date.fromisoformat(v[:10])
        except ValueError:
            raise ValueError(f"Invalid date: {v!r} (expected YYYY-MM-DD)")
        return v

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("Amount must be a finite number")
        return v

    @field_validator('category_id', mode='before')
    @classmethod
    def blank_category_is_none(cls, v: Any) -> Any:
        # CSV imports and some clients send "" for "no category"
        if v == "":
            return None
        return v

    @field_validator('tag_ids', mode='before')
    @classmethod
    def coerce_tag_ids(cls, v: Any) -> Any:
        if v is None:
            return []
        return v

    @field_validator('tag_ids')
    @classmethod
    def dedupe_tag_ids(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(tag_id for tag_id in v if tag_id))

    @property
    def day(self) -> date:
        return date.fromisoformat(self.date[:10])

    @property
    def is_expense(self) -> bool:
        return self.amount < 0

    @property
    def kind(self) -> TransactionKind:
        return TransactionKind.EXPENSE if self.is_expense else TransactionKind.INCOME


def derive_code(name: str) -> str:
    """Short display code: first four characters of the name, upper-cased."""
    return name.strip()[:4].upper()


# Validation context for pulled documents: records written by other clients
# skip the domain checks that guard local mutations.
REMOTE_CONTEXT = {"remote": True}


def _from_remote(info: ValidationInfo) -> bool:
    return bool(info.context and info.context.get("remote"))


def _check_name(value: str, info: ValidationInfo) -> str:
    if not value and not _from_remote(info):
        raise ValueError("Name must not be empty")
    return value


class Category(Record):
    """
    A transaction category.

    `debt` is a ceiling being paid down, not a balance. It only ever
    decreases, when an expense is recorded against the category.
    """

    id: str = Field(..., min_length=1)
    code: Optional[str] = None
    name: str = Field(..., max_length=200)
    color: str = "#9e9e9e"
    icon: str = "category"
    is_fixed: bool = False
    debt: Optional[Money] = None
    show_in_expense: bool = True
    show_in_income: bool = True

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str, info: ValidationInfo) -> str:
        return _check_name(v, info)

    @field_validator('debt')
    @classmethod
    def validate_debt(cls, v: Optional[Decimal], info: ValidationInfo) -> Optional[Decimal]:
        if v is not None and v < 0 and not _from_remote(info):
            raise ValueError("Debt cannot be negative")
        return v

    @property
    def outstanding_debt(self) -> Decimal:
        return self.debt or Decimal("0")

    def offered_for(self, kind: TransactionKind) -> bool:
        """Whether the form for this kind of transaction offers the category."""
        if kind == TransactionKind.EXPENSE:
            return self.show_in_expense
        return self.show_in_income


class Tag(Record):
    """A free-form label; many-to-many with transactions."""

    id: str = Field(..., min_length=1)
    code: Optional[str] = None
    name: str = Field(..., max_length=200)
    color: str = "#9e9e9e"

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str, info: ValidationInfo) -> str:
        return _check_name(v, info)


class UserSettings(Record):
    """The singleton settings record. darkMode is presentation-only."""

    initial_balance: Money = Decimal("0")
    dark_mode: bool = False

    @field_validator('initial_balance', mode='before')
    @classmethod
    def blank_balance_is_zero(cls, v: Any) -> Any:
        if v is None or v == "":
            return Decimal("0")
        return v


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")


class Todo(Record):
    """A to-do item. Shares the sync envelope, nothing else."""

    id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1, max_length=1000)
    done: bool = False
    created_at: str = Field(default_factory=utc_timestamp)


# =============================================================================
# SNAPSHOT
# =============================================================================

class SnapshotFormatError(ValueError):
    """A document could not be parsed into a snapshot."""

    def __init__(self, message: str, errors: Optional[list[dict]] = None):
        self.errors = errors or []
        super().__init__(message)


class Snapshot(BaseModel):
    """
    The complete set of five collections at a point in time.

    This is the only unit that crosses the sync boundary.
    """
    model_config = ConfigDict(extra="allow")

    transactions: list[Transaction] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
    settings: UserSettings = Field(default_factory=UserSettings)
    todos: list[Todo] = Field(default_factory=list)

    @field_validator('transactions', 'categories', 'tags', 'todos', mode='before')
    @classmethod
    def null_collection_is_empty(cls, v: Any) -> Any:
        if v is None:
            return []
        return v

    @field_validator('settings', mode='before')
    @classmethod
    def null_settings_is_default(cls, v: Any) -> Any:
        if v is None:
            return {}
        return v

    @classmethod
    def from_document(cls, document: Any, remote: bool = False) -> "Snapshot":
        """
        Parse a JSON-shaped document.

        Absent keys become empty collections / default settings. With
        `remote=True` (pulled documents) the domain checks on names and
        debt are skipped, so one odd record written by another client does
        not reject the whole pull.

        Raises:
            SnapshotFormatError: If the document is not a mapping or any
                record fails validation
        """
        if not isinstance(document, Mapping):
            raise SnapshotFormatError(
                f"Snapshot document must be an object, got {type(document).__name__}"
            )
        try:
            return cls.model_validate(
                dict(document),
                context=REMOTE_CONTEXT if remote else None,
            )
        except ValidationError as e:
            raise SnapshotFormatError(
                f"Snapshot document failed validation ({e.error_count()} errors)",
                errors=e.errors(include_url=False),
            ) from e

    def to_document(self) -> dict[str, Any]:
        """JSON-shaped document with the keys and fields that were set."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")

    def counts(self) -> dict[str, int]:
        return {
            "transactions": len(self.transactions),
            "categories": len(self.categories),
            "tags": len(self.tags),
            "todos": len(self.todos),
        }


# =============================================================================
# PLACEHOLDERS
# =============================================================================

UNKNOWN_ID = "unknown"
UNCATEGORIZED_ID = "other"
UNTAGGED_ID = "untagged"
NEUTRAL_COLOR = "#cccccc"
MUTED_COLOR = "#9e9e9e"


def unknown_category(label: str = "Desconocido") -> Category:
    """Stand-in for a category id that does not resolve."""
    return Category(id=UNKNOWN_ID, code="", name=label, color=NEUTRAL_COLOR, icon="category")


def uncategorized(label: str = "Otros") -> Category:
    """Stand-in for transactions that carry no category at all."""
    return Category(id=UNCATEGORIZED_ID, code="", name=label, color=MUTED_COLOR, icon="category")


def untagged(label: str = "Sin etiqueta") -> Tag:
    """Bucket for transactions without (resolvable) tags."""
    return Tag(id=UNTAGGED_ID, code="", name=label, color=MUTED_COLOR)
