"""Tests for the audit logger and settings helpers."""

import pytest

from fintrack.audit import AuditLogger, create_correlation_id
from fintrack.config import AppSettings, SyncSettings, get_settings, validate_all_settings
from fintrack.models import AuditEventType, ValidationIssue


class TestAuditLogger:
    """Buffered, structured audit events."""

    def test_buffer_is_bounded(self):
        logger = AuditLogger(buffer_size=10)
        for _ in range(15):
            logger.log_sync_started("pull")
        assert len(logger.recent_events(limit=100)) == 10

    def test_recent_events_newest_first(self, audit_logger):
        audit_logger.log_sync_started("push")
        audit_logger.log_sync_succeeded("push", {"transactions": 1})
        events = audit_logger.recent_events()
        assert events[0].event_type == AuditEventType.PUSH_SUCCEEDED
        assert events[1].event_type == AuditEventType.PUSH_STARTED

    def test_events_for_correlation(self, audit_logger):
        correlation_id = create_correlation_id()
        audit_logger.log_mutation_applied(
            "add_todo", "todos", "d9", ["todos"], correlation_id,
        )
        audit_logger.log_sync_started("push", correlation_id)
        audit_logger.log_sync_started("pull")

        flow = audit_logger.events_for_correlation(correlation_id)
        assert [e.event_type for e in flow] == [
            AuditEventType.MUTATION_APPLIED,
            AuditEventType.PUSH_STARTED,
        ]

    def test_only_referential_warnings_logged(self, audit_logger):
        issues = [
            ValidationIssue(field="categoryId", issue_type="dangling_reference", message="x" * 600, severity="warning"),
            ValidationIssue(field="id", issue_type="not_found", message="gone", severity="warning"),
        ]
        audit_logger.log_referential_warnings("transactions", "t1", issues)
        events = audit_logger.recent_events(event_type=AuditEventType.REFERENTIAL_WARNING)
        assert len(events) == 1
        assert len(events[0].details["message"]) == 600

    def test_sink_receives_events(self):
        received = []
        logger = AuditLogger(sink=received.append)
        logger.log_sync_resumed()
        assert received[0].event_type == AuditEventType.SYNC_RESUMED

    def test_failing_sink_does_not_raise(self):
        def broken(event):
            raise RuntimeError("disk full")

        logger = AuditLogger(sink=broken)
        logger.log_store_reset({"transactions": 0})
        assert logger.recent_events()[0].event_type == AuditEventType.STORE_RESET


class TestSettings:
    """Environment-driven configuration."""

    def test_defaults(self):
        sync = SyncSettings()
        assert sync.transport == "file"
        assert sync.retry_attempts == 3
        assert AppSettings().protect_fixed_categories is True

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("FINTRACK_SYNC_BASE_URL", "https://api.example.com/api/")
        monkeypatch.setenv("FINTRACK_REQUIRE_CATEGORY", "true")
        assert SyncSettings().base_url == "https://api.example.com/api"
        assert AppSettings().require_category is True

    def test_invalid_value_rejected(self, monkeypatch):
        monkeypatch.setenv("FINTRACK_SYNC_RETRY_ATTEMPTS", "0")
        with pytest.raises(ValueError):
            SyncSettings()

    def test_validate_all_settings(self, monkeypatch):
        monkeypatch.setenv("FINTRACK_SYNC_TRANSPORT", "memory")
        get_settings.cache_clear()
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert results["sync"] is True
        assert results["app"] is True
        assert "google_sheets" not in results

    def test_sheets_section_checked_when_selected(self, monkeypatch):
        monkeypatch.setenv("FINTRACK_SYNC_TRANSPORT", "sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        get_settings.cache_clear()
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert results["google_sheets"] is False
