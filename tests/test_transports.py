"""
Tests for the sync transports.

No real network calls: HTTP goes through httpx.MockTransport and Google
Sheets through an in-memory stand-in for the spreadsheet.
"""

import asyncio
import json
from unittest.mock import MagicMock

import gspread
import httpx
import pytest
import requests

from fintrack.config import GoogleSheetsSettings
from fintrack.services.sync import (
    AuthExpired,
    GoogleSheetsClient,
    GoogleSheetsTransport,
    HttpTransport,
    InMemoryTransport,
    JsonFileTransport,
    MalformedSnapshotError,
    RealtimeBridgeTransport,
    SyncConnectionError,
    SyncFailure,
)


class TestInMemoryTransport:
    """The in-process document store."""

    def test_pull_returns_copy(self, document):
        transport = InMemoryTransport(document)
        pulled = asyncio.run(transport.pull())
        pulled["transactions"].clear()
        assert len(transport.document["transactions"]) == 2

    def test_push_replaces_document(self, document):
        transport = InMemoryTransport()
        asyncio.run(transport.push(document))
        assert transport.document == document
        assert transport.push_count == 1
        assert transport.pushed == [document]

    def test_scheduled_failures(self):
        transport = InMemoryTransport({})
        transport.fail_next(SyncConnectionError("down"), times=2)

        for _ in range(2):
            with pytest.raises(SyncConnectionError):
                asyncio.run(transport.pull())
        assert asyncio.run(transport.pull()) == {}
        assert transport.pull_count == 3

    def test_failed_push_keeps_document(self, document):
        transport = InMemoryTransport(document)
        transport.fail_next(SyncFailure("nope"), direction="push")
        with pytest.raises(SyncFailure):
            asyncio.run(transport.push({}))
        assert transport.document == document

    def test_bad_direction(self):
        with pytest.raises(ValueError):
            InMemoryTransport().fail_next(SyncFailure("x"), direction="sideways")


class TestJsonFileTransport:
    """The flat JSON file."""

    def test_missing_file_is_empty(self, tmp_path):
        transport = JsonFileTransport(tmp_path / "db.json")
        assert asyncio.run(transport.pull()) == {}

    def test_push_then_pull(self, tmp_path, document):
        transport = JsonFileTransport(tmp_path / "data" / "db.json")
        asyncio.run(transport.push(document))
        assert asyncio.run(transport.pull()) == document
        # No temp files left behind
        assert [p.name for p in (tmp_path / "data").iterdir()] == ["db.json"]

    def test_file_is_indented_json(self, tmp_path, document):
        path = tmp_path / "db.json"
        asyncio.run(JsonFileTransport(path).push(document))
        text = path.read_text(encoding="utf-8")
        assert text.startswith("{\n  ")
        assert "Construcción" in text

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "db.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(MalformedSnapshotError):
            asyncio.run(JsonFileTransport(path).pull())

    def test_non_object(self, tmp_path):
        path = tmp_path / "db.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(MalformedSnapshotError):
            asyncio.run(JsonFileTransport(path).pull())

    def test_unserializable_document(self, tmp_path):
        path = tmp_path / "db.json"
        with pytest.raises(SyncFailure):
            asyncio.run(JsonFileTransport(path).push({"bad": object()}))
        assert not path.exists()


def http_transport(handler, **kwargs) -> HttpTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpTransport("http://api.test/api/", client=client, **kwargs)


class TestHttpTransport:
    """The REST endpoint."""

    def test_pull(self, document):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=document)

        transport = http_transport(handler, token="abc123")
        assert asyncio.run(transport.pull()) == document
        assert seen == {"method": "GET", "url": "http://api.test/api/data", "auth": "abc123"}

    def test_push_posts_whole_document(self, document):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        asyncio.run(http_transport(handler).push(document))
        assert seen["method"] == "POST"
        assert seen["body"] == document

    def test_token_provider_wins(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={})

        transport = http_transport(handler, token="old", token_provider=lambda: "fresh")
        asyncio.run(transport.pull())
        assert seen["auth"] == "fresh"

    def test_no_token_no_header(self):
        seen = {}

        def handler(request):
            seen["has_auth"] = "Authorization" in request.headers
            return httpx.Response(200, json={})

        asyncio.run(http_transport(handler).pull())
        assert seen["has_auth"] is False

    def test_401_is_auth_expired(self):
        transport = http_transport(lambda request: httpx.Response(401))
        with pytest.raises(AuthExpired) as exc_info:
            asyncio.run(transport.pull())
        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("status", [502, 503, 504])
    def test_gateway_errors_are_transient(self, status):
        transport = http_transport(lambda request: httpx.Response(status))
        with pytest.raises(SyncConnectionError):
            asyncio.run(transport.push({}))

    def test_other_errors_are_plain_failures(self):
        transport = http_transport(lambda request: httpx.Response(500))
        with pytest.raises(SyncFailure) as exc_info:
            asyncio.run(transport.pull())
        assert not isinstance(exc_info.value, SyncConnectionError)
        assert exc_info.value.status_code == 500

    def test_network_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SyncConnectionError):
            asyncio.run(http_transport(handler).pull())

    def test_non_json_body(self):
        transport = http_transport(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(MalformedSnapshotError):
            asyncio.run(transport.pull())

    def test_non_object_body(self):
        transport = http_transport(lambda request: httpx.Response(200, json=[1, 2]))
        with pytest.raises(MalformedSnapshotError):
            asyncio.run(transport.pull())


class FakeWorksheet:
    """Keeps cell values in a list of rows."""

    def __init__(self, title):
        self.title = title
        self.values = []

    def clear(self):
        self.values = []

    def update(self, values, range_name, value_input_option):
        assert range_name == "A1"
        assert value_input_option == "RAW"
        self.values = [list(row) for row in values]

    def get_all_values(self):
        return [list(row) for row in self.values]


def fake_spreadsheet():
    sheets = {}
    spreadsheet = MagicMock()

    def worksheet(title):
        if title not in sheets:
            raise gspread.WorksheetNotFound(title)
        return sheets[title]

    def add_worksheet(title, rows, cols):
        sheets[title] = FakeWorksheet(title)
        return sheets[title]

    spreadsheet.worksheet.side_effect = worksheet
    spreadsheet.add_worksheet.side_effect = add_worksheet
    return spreadsheet, sheets


@pytest.fixture
def sheets_transport(tmp_path):
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}", encoding="utf-8")
    settings = GoogleSheetsSettings(
        credentials_path=str(credentials),
        spreadsheet_id="sheet-123",
        sheet_prefix="ft_",
    )
    spreadsheet, sheets = fake_spreadsheet()
    client = GoogleSheetsClient(settings=settings, spreadsheet=spreadsheet)
    return GoogleSheetsTransport(client=client), sheets


class TestGoogleSheetsTransport:
    """One worksheet per collection, (id, json) rows."""

    def test_never_written_is_empty(self, sheets_transport):
        transport, _ = sheets_transport
        assert asyncio.run(transport.pull()) == {}

    def test_push_then_pull(self, sheets_transport, document):
        transport, sheets = sheets_transport
        document["schemaHint"] = {"v": 1}

        asyncio.run(transport.push(document))
        assert asyncio.run(transport.pull()) == document
        assert set(sheets) == {
            "ft_transactions", "ft_categories", "ft_tags", "ft_settings", "ft_todos", "ft_extra",
        }

    def test_rows_are_id_and_json(self, sheets_transport, document):
        transport, sheets = sheets_transport
        asyncio.run(transport.push(document))

        rows = sheets["ft_tags"].values
        assert rows[0] == ["id", "json"]
        assert rows[1][0] == "g1"
        assert json.loads(rows[1][1]) == document["tags"][0]
        assert sheets["ft_settings"].values[1][0] == "settings"

    def test_push_overwrites(self, sheets_transport, document):
        transport, _ = sheets_transport
        asyncio.run(transport.push(document))
        asyncio.run(transport.push({"tags": []}))

        pulled = asyncio.run(transport.pull())
        assert pulled["tags"] == []
        assert len(pulled["transactions"]) == 2

    def test_blank_rows_skipped(self, sheets_transport):
        transport, sheets = sheets_transport
        asyncio.run(transport.push({"todos": []}))
        sheets["ft_todos"].values.append(["", ""])
        assert asyncio.run(transport.pull()) == {"todos": []}

    def test_corrupt_row(self, sheets_transport):
        transport, sheets = sheets_transport
        asyncio.run(transport.push({"todos": []}))
        sheets["ft_todos"].values.append(["d1", "{oops"])
        with pytest.raises(MalformedSnapshotError):
            asyncio.run(transport.pull())

    @pytest.mark.parametrize("status, expected", [
        (401, AuthExpired),
        (429, SyncConnectionError),
        (503, SyncConnectionError),
    ])
    def test_api_errors_classified(self, sheets_transport, status, expected):
        transport, _ = sheets_transport
        response = MagicMock()
        response.status_code = status
        response.json.return_value = {"error": {"code": status, "message": "x", "status": "X"}}

        transport._client.get_spreadsheet().worksheet.side_effect = gspread.exceptions.APIError(response)
        with pytest.raises(expected):
            asyncio.run(transport.pull())

    def test_client_error_is_plain_failure(self, sheets_transport):
        transport, _ = sheets_transport
        response = MagicMock()
        response.status_code = 400
        response.json.return_value = {"error": {"code": 400, "message": "x", "status": "X"}}

        transport._client.get_spreadsheet().worksheet.side_effect = gspread.exceptions.APIError(response)
        with pytest.raises(SyncFailure) as exc_info:
            asyncio.run(transport.pull())
        assert exc_info.value.code == "sync_failed"

    def test_network_error_is_transient(self, sheets_transport):
        transport, _ = sheets_transport
        transport._client.get_spreadsheet().worksheet.side_effect = requests.exceptions.ConnectionError("reset by peer")

        with pytest.raises(SyncConnectionError):
            asyncio.run(transport.pull())


class TestRealtimeBridgeTransport:
    """Per-collection notifications assembled into one document."""

    def test_notifications_build_document(self):
        transport = RealtimeBridgeTransport()
        transport.collection_changed("transactions", [{"id": "t1", "date": "2024-01-01", "amount": 1}])
        transport.collection_changed("settings", {"initialBalance": 5})
        for name in ("categories", "tags", "todos"):
            transport.collection_changed(name, [])

        pulled = asyncio.run(transport.pull())
        assert set(pulled) == {"transactions", "categories", "tags", "settings", "todos"}
        assert pulled["settings"] == {"initialBalance": 5}

    def test_partial_document_is_not_pulled(self):
        transport = RealtimeBridgeTransport()
        transport.collection_changed("transactions", [])
        transport.collection_changed("tags", [])

        assert transport.pending_collections == ["categories", "settings", "todos"]
        with pytest.raises(SyncFailure, match="categories, settings, todos"):
            asyncio.run(transport.pull())

    def test_subscribers_notified(self):
        transport = RealtimeBridgeTransport()
        heard = []
        unsubscribe = transport.subscribe(heard.append)

        transport.collection_changed("tags", [])
        unsubscribe()
        transport.collection_changed("todos", [])
        assert heard == ["tags"]

    def test_failing_listener_does_not_stop_others(self):
        transport = RealtimeBridgeTransport()
        heard = []

        def broken(name):
            raise RuntimeError("boom")

        transport.subscribe(broken)
        transport.subscribe(heard.append)
        transport.collection_changed("tags", [])
        assert heard == ["tags"]

    def test_push_without_writer(self):
        with pytest.raises(SyncFailure):
            asyncio.run(RealtimeBridgeTransport().push({}))

    def test_push_with_writer(self, document):
        written = []

        async def writer(doc):
            written.append(doc)

        transport = RealtimeBridgeTransport(writer=writer)
        asyncio.run(transport.push(document))
        assert written == [document]
        assert asyncio.run(transport.pull()) == document
