"""
CSV transaction exchange.

Transactions only, keyed by category and tag CODES rather than ids so a
file survives being moved between installations whose ids differ:

    sep=,
    id,date,amount,categoryCode,tagCodes,description,isPinned
    t1,2024-03-01,-12.5,COMI,IMP|DOC,"Lunch, with team",1

The "sep=," line and the leading BOM are there for spreadsheet programs;
both are optional on import. Quoting follows RFC 4180.
"""

import csv
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Any, Optional

from fintrack.exchange.errors import ExchangeFormatError
from fintrack.models.reports import ImportReport
from fintrack.models.validation import ValidationIssue
from fintrack.store import RecordStore


CSV_HEADERS = ["id", "date", "amount", "categoryCode", "tagCodes", "description", "isPinned"]
REQUIRED_HEADERS = {"date", "amount"}
SEP_HINT = "sep=,"
BOM = "\ufeff"
TAG_SEPARATOR = "|"


def export_transactions_csv(
    store: RecordStore,
    include_bom: bool = True,
    include_sep_hint: bool = True,
) -> str:
    """Every transaction in the store as CSV text, in store order."""
    buffer = StringIO()
    if include_bom:
        buffer.write(BOM)
    if include_sep_hint:
        buffer.write(SEP_HINT + "\n")

    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)

    for transaction in store.transactions():
        category = store.get_category(transaction.category_id)
        tag_codes = []
        for tag_id in transaction.tag_ids:
            tag = store.get_tag(tag_id)
            if tag is not None and tag.code:
                tag_codes.append(tag.code)

        writer.writerow([
            transaction.id,
            transaction.date,
            format(transaction.amount, "f"),
            category.code if category and category.code else "",
            TAG_SEPARATOR.join(tag_codes),
            transaction.description or "",
            "1" if transaction.is_pinned else "0",
        ])

    return buffer.getvalue()


def parse_transactions_csv(
    text: str,
    store: RecordStore,
) -> tuple[list[dict[str, Any]], ImportReport]:
    """
    Turn CSV text into add_transaction payloads.

    Codes are resolved against `store`: an unknown category code leaves the
    transaction without a category, unknown tag codes are dropped. Rows whose
    amount is missing, non-numeric or zero are skipped.

    Returns:
        (payloads, report) where report.skipped counts the rows left out here

    Raises:
        ExchangeFormatError: If there is no header row or it lacks date/amount
    """
    reader = csv.DictReader(StringIO(_strip_preamble(text)))
    headers = {h.strip() for h in (reader.fieldnames or []) if h}
    missing = REQUIRED_HEADERS - headers
    if not reader.fieldnames or missing:
        raise ExchangeFormatError(
            f"CSV header must include {', '.join(sorted(REQUIRED_HEADERS))}; "
            f"missing {', '.join(sorted(missing)) or 'header row'}"
        )

    payloads: list[dict[str, Any]] = []
    report = ImportReport()

    for row in reader:
        row = {(k or "").strip(): (v or "").strip() for k, v in row.items() if k is not None}
        if not any(row.values()):
            continue
        line = reader.line_num

        amount = _parse_amount(row.get("amount", ""))
        if amount is None:
            report.skipped += 1
            report.issues.append(ValidationIssue(
                field=f"line {line}.amount",
                issue_type="invalid_amount",
                message=f"Line {line}: amount {row.get('amount')!r} is not a non-zero number",
                severity="warning",
            ))
            continue

        payload: dict[str, Any] = {
            "date": row.get("date", ""),
            "amount": amount,
            "categoryId": _category_id(row.get("categoryCode", ""), store, line, report),
            "tagIds": _tag_ids(row.get("tagCodes", ""), store),
            "isPinned": row.get("isPinned", "") in ("1", "true", "True"),
        }
        if row.get("id"):
            payload["id"] = row["id"]
        if row.get("description"):
            payload["description"] = row["description"]

        payloads.append(payload)

    return payloads, report


def _strip_preamble(text: str) -> str:
    """Drop the BOM, leading blank lines and the optional sep= hint."""
    text = text.lstrip(BOM).lstrip("\r\n")
    first, newline, rest = text.partition("\n")
    if first.strip().lower().startswith("sep="):
        return rest
    return text


def _parse_amount(raw: str) -> Optional[Decimal]:
    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount == 0:
        return None
    return amount


def _category_id(
    code: str,
    store: RecordStore,
    line: int,
    report: ImportReport,
) -> Optional[str]:
    if not code:
        return None
    category = store.get_category_by_code(code)
    if category is None:
        report.issues.append(ValidationIssue(
            field=f"line {line}.categoryCode",
            issue_type="unknown_code",
            message=f"Line {line}: no category with code {code!r}; imported without category",
            severity="info",
        ))
        return None
    return category.id


def _tag_ids(codes: str, store: RecordStore) -> list[str]:
    wanted = [c.strip() for c in codes.split(TAG_SEPARATOR) if c.strip()]
    if not wanted:
        return []
    return [tag.id for tag in store.get_tags_by_codes(wanted)]
