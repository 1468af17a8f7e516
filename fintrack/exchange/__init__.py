"""
Import/Export Package

Translates external files (CSV transaction lists, JSON backups) to and from
the shapes the mutation engine accepts.
"""

from fintrack.exchange.errors import ExchangeFormatError
from fintrack.exchange.csv_format import (
    CSV_HEADERS,
    export_transactions_csv,
    parse_transactions_csv,
)
from fintrack.exchange.json_backup import export_snapshot_json, parse_snapshot_json

__all__ = [
    "CSV_HEADERS",
    "ExchangeFormatError",
    "export_snapshot_json",
    "export_transactions_csv",
    "parse_snapshot_json",
    "parse_transactions_csv",
]
