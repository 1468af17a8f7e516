"""
Google Sheets Transport

DESIGN DECISION: A spreadsheet can hold the remote snapshot because:
1. Users can look at their own data directly in Sheets
2. No database or server setup required
3. Built-in backup (Google's infrastructure)

Each collection lives in its own worksheet named "<prefix><collection>".
Rows are (id, json) pairs: the JSON column holds the record exactly as it
appears in the document, so fields this app does not know about survive a
round trip. The settings worksheet holds a single row with id "settings".
Unknown top-level keys of the document go to "<prefix>extra".

TRADEOFFS:
- A push clears and rewrites every worksheet (full-snapshot semantics)
- No transactions across worksheets; a failed push can leave the remote
  half-written until the next successful push
"""

import asyncio
import json
from typing import Any, Optional

import gspread
import requests
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from fintrack.config import GoogleSheetsSettings, get_settings
from fintrack.models.records import Collection
from fintrack.services.sync.interface import (
    AuthExpired,
    MalformedSnapshotError,
    SyncConnectionError,
    SyncFailure,
    SyncTransport,
)


logger = structlog.get_logger("fintrack.sync.sheets")

SHEET_COLUMNS = ["id", "json"]
SETTINGS_ROW_ID = "settings"
EXTRA_SHEET = "extra"

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(
        self,
        settings: Optional[GoogleSheetsSettings] = None,
        spreadsheet: Optional[gspread.Spreadsheet] = None,
    ):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet = spreadsheet
        self._settings = settings

    @property
    def settings(self) -> GoogleSheetsSettings:
        if self._settings is None:
            self._settings = get_settings().google_sheets
        return self._settings

    @retry(
        retry=retry_if_exception_type(SyncConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self.settings.credentials_path,
                    scopes=SCOPES,
                )
            except FileNotFoundError:
                raise SyncFailure(
                    f"Google credentials file not found: {self.settings.credentials_path}"
                )
            except ValueError as e:
                raise SyncFailure(f"Invalid Google credentials file: {e}")

            try:
                self._client = gspread.authorize(credentials)
            except Exception as e:
                raise SyncConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self.settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise SyncFailure(
                    f"Spreadsheet not found: {self.settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def sheet_title(self, name: str) -> str:
        return f"{self.settings.sheet_prefix}{name}"

    def find_sheet(self, name: str) -> Optional[gspread.Worksheet]:
        """Worksheet for `name`, or None if it was never written."""
        try:
            return self.get_spreadsheet().worksheet(self.sheet_title(name))
        except gspread.WorksheetNotFound:
            return None

    def get_sheet(self, name: str, rows: int) -> gspread.Worksheet:
        """Get or create the worksheet for `name`."""
        sheet = self.find_sheet(name)
        if sheet is None:
            sheet = self.get_spreadsheet().add_worksheet(
                title=self.sheet_title(name),
                rows=max(rows, 1),
                cols=len(SHEET_COLUMNS),
            )
        return sheet


class GoogleSheetsTransport(SyncTransport):
    """Full-document store spread over one worksheet per collection."""

    name = "sheets"

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def pull(self) -> dict[str, Any]:
        # gspread is blocking; keep it off the event loop
        return await asyncio.to_thread(self._guarded, self._read_document)

    async def push(self, document: dict[str, Any]) -> None:
        await asyncio.to_thread(self._guarded, self._write_document, document)

    def _guarded(self, func, *args):
        try:
            return func(*args)
        except SyncFailure:
            raise
        except gspread.exceptions.APIError as e:
            raise _classify_api_error(e)
        except requests.exceptions.RequestException as e:
            raise SyncConnectionError(f"Google Sheets unreachable: {e}")
        except json.JSONDecodeError as e:
            raise MalformedSnapshotError(f"Worksheet row is not valid JSON: {e}")

    def _read_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {}

        for collection in Collection:
            sheet = self._client.find_sheet(collection.value)
            if sheet is None:
                continue
            rows = _data_rows(sheet)
            if collection == Collection.SETTINGS:
                document["settings"] = next(
                    (json.loads(payload) for row_id, payload in rows if row_id == SETTINGS_ROW_ID),
                    None,
                )
            else:
                document[collection.value] = [json.loads(payload) for _, payload in rows]

        extra = self._client.find_sheet(EXTRA_SHEET)
        if extra is not None:
            for key, payload in _data_rows(extra):
                document[key] = json.loads(payload)

        logger.debug("sheets_pulled", keys=sorted(document))
        return document

    def _write_document(self, document: dict[str, Any]) -> None:
        known = {c.value for c in Collection}
        extras: list[list[str]] = []

        for key, value in document.items():
            if key not in known:
                extras.append([key, json.dumps(value, ensure_ascii=False)])
                continue
            if key == Collection.SETTINGS.value:
                rows = [] if value is None else [[SETTINGS_ROW_ID, json.dumps(value, ensure_ascii=False)]]
            else:
                rows = [
                    [str(item.get("id", "")), json.dumps(item, ensure_ascii=False)]
                    for item in (value or [])
                ]
            self._replace_rows(key, rows)

        if extras or self._client.find_sheet(EXTRA_SHEET) is not None:
            self._replace_rows(EXTRA_SHEET, extras)

        logger.debug("sheets_pushed", keys=sorted(document))

    def _replace_rows(self, name: str, rows: list[list[str]]) -> None:
        sheet = self._client.get_sheet(name, rows=len(rows) + 1)
        sheet.clear()
        sheet.update(
            values=[SHEET_COLUMNS] + rows,
            range_name="A1",
            value_input_option="RAW",
        )


def _data_rows(sheet: gspread.Worksheet) -> list[tuple[str, str]]:
    """(id, json) pairs below the header row, skipping blank rows."""
    rows = []
    for row in sheet.get_all_values()[1:]:
        if len(row) < 2 or not row[1]:
            continue
        rows.append((row[0], row[1]))
    return rows


def _classify_api_error(error: gspread.exceptions.APIError) -> SyncFailure:
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)

    if status == 401:
        return AuthExpired(f"Google Sheets rejected the credentials: {error}", status_code=401)
    if status == 429 or (status is not None and status >= 500):
        return SyncConnectionError(f"Google Sheets unavailable: {error}", status_code=status)
    return SyncFailure(f"Google Sheets error: {error}", status_code=status)
