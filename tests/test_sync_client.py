"""Tests for the sync client: retries, the auth gate and failure reporting."""

import asyncio
from decimal import Decimal

from fintrack.models import AuditEventType, Snapshot
from fintrack.services.sync import (
    AuthExpired,
    InMemoryTransport,
    MalformedSnapshotError,
    SyncClient,
    SyncConnectionError,
    SyncFailure,
    SyncTransport,
)


class ExplodingTransport(SyncTransport):
    """Raises something that is not a SyncFailure."""

    name = "exploding"

    async def pull(self):
        raise RuntimeError("kaboom")

    async def push(self, document):
        raise RuntimeError("kaboom")


class TestPull:
    """Pulling the remote snapshot."""

    def test_pull_success(self, document, fast_sync_settings, audit_logger):
        client = SyncClient(InMemoryTransport(document), audit_logger, fast_sync_settings)
        result = asyncio.run(client.pull())

        assert result.success is True
        assert result.attempts == 1
        assert result.snapshot.counts()["transactions"] == 2
        assert client.last_known_good is result.snapshot
        assert audit_logger.recent_events(event_type=AuditEventType.PULL_SUCCEEDED)

    def test_empty_document_is_empty_snapshot(self, fast_sync_settings):
        client = SyncClient(InMemoryTransport({}), settings=fast_sync_settings)
        result = asyncio.run(client.pull())
        assert result.success
        assert result.snapshot.transactions == []
        assert result.snapshot.settings.initial_balance == Decimal("0")

    def test_transient_errors_retried(self, document, fast_sync_settings):
        transport = InMemoryTransport(document)
        transport.fail_next(SyncConnectionError("flaky"), times=2)
        client = SyncClient(transport, settings=fast_sync_settings)

        result = asyncio.run(client.pull())
        assert result.success is True
        assert result.attempts == 3
        assert transport.pull_count == 3

    def test_retries_exhausted(self, document, fast_sync_settings, audit_logger):
        transport = InMemoryTransport(document)
        transport.fail_next(SyncConnectionError("down"), times=5)
        client = SyncClient(transport, audit_logger, fast_sync_settings)

        result = asyncio.run(client.pull())
        assert result.success is False
        assert result.error_code == "connection_error"
        assert result.attempts == 3
        assert result.snapshot is None
        failed = audit_logger.recent_events(event_type=AuditEventType.PULL_FAILED)
        assert failed[0].error_code == "connection_error"

    def test_other_failures_not_retried(self, document, fast_sync_settings):
        transport = InMemoryTransport(document)
        transport.fail_next(SyncFailure("500"))
        client = SyncClient(transport, settings=fast_sync_settings)

        result = asyncio.run(client.pull())
        assert result.success is False
        assert transport.pull_count == 1
        assert result.error_code == "sync_failed"

    def test_malformed_document(self, fast_sync_settings):
        bad = {"transactions": [{"id": "t1", "date": "yesterday", "amount": 1}]}
        client = SyncClient(InMemoryTransport(bad), settings=fast_sync_settings)

        result = asyncio.run(client.pull())
        assert isinstance(result.error, MalformedSnapshotError)
        assert client.last_known_good is None

    def test_odd_records_from_other_clients_are_accepted(self, document, fast_sync_settings):
        document["categories"][1]["debt"] = -20
        document["tags"][0]["name"] = ""
        client = SyncClient(InMemoryTransport(document), settings=fast_sync_settings)

        result = asyncio.run(client.pull())
        assert result.success is True
        assert result.snapshot.categories[1].debt == Decimal("-20")
        assert result.snapshot.tags[0].name == ""

    def test_failure_keeps_last_known_good(self, document, fast_sync_settings):
        transport = InMemoryTransport(document)
        client = SyncClient(transport, settings=fast_sync_settings)
        first = asyncio.run(client.pull())

        transport.fail_next(SyncFailure("down"))
        asyncio.run(client.pull())
        assert client.last_known_good is first.snapshot

    def test_never_raises(self, fast_sync_settings):
        client = SyncClient(ExplodingTransport(), settings=fast_sync_settings)
        pulled = asyncio.run(client.pull())
        pushed = asyncio.run(client.push(Snapshot()))

        assert pulled.success is False
        assert pushed.success is False
        assert "RuntimeError" in pulled.error_message


class TestPush:
    """Pushing the local snapshot."""

    def test_push_sends_document(self, document, fast_sync_settings):
        transport = InMemoryTransport()
        client = SyncClient(transport, settings=fast_sync_settings)

        result = asyncio.run(client.push(Snapshot.from_document(document)))
        assert result.success is True
        assert transport.document == document

    def test_pull_then_push_is_identity(self, document, fast_sync_settings):
        """An unchanged pulled snapshot pushes back exactly what was read."""
        document["schemaHint"] = "v2"
        document["transactions"][0]["receipt"] = {"url": "https://example.com/r.jpg"}
        transport = InMemoryTransport(document)
        client = SyncClient(transport, settings=fast_sync_settings)

        pulled = asyncio.run(client.pull())
        asyncio.run(client.push(pulled.snapshot))
        assert transport.pushed[-1] == document

    def test_failed_push_keeps_snapshot(self, fast_sync_settings, audit_logger):
        transport = InMemoryTransport()
        transport.fail_next(SyncFailure("nope"), direction="push")
        client = SyncClient(transport, audit_logger, fast_sync_settings)
        snapshot = Snapshot()

        result = asyncio.run(client.push(snapshot))
        assert result.success is False
        assert result.snapshot is snapshot
        assert audit_logger.recent_events(event_type=AuditEventType.PUSH_FAILED)


class TestAuthGate:
    """Expired sessions pause sync until resume()."""

    def test_auth_expired_pauses(self, document, fast_sync_settings, audit_logger):
        transport = InMemoryTransport(document)
        transport.fail_next(AuthExpired("401", status_code=401))
        client = SyncClient(transport, audit_logger, fast_sync_settings)
        heard = []
        client.on_auth_expired(heard.append)

        result = asyncio.run(client.pull())
        assert result.auth_expired is True
        assert client.is_paused is True
        assert len(heard) == 1
        assert audit_logger.recent_events(event_type=AuditEventType.AUTH_EXPIRED)

        # Gated: the transport is not touched again
        gated = asyncio.run(client.push(Snapshot()))
        assert gated.auth_expired is True
        assert gated.attempts == 0
        assert transport.push_count == 0

    def test_resume(self, document, fast_sync_settings, audit_logger):
        transport = InMemoryTransport(document)
        transport.fail_next(AuthExpired("401"))
        client = SyncClient(transport, audit_logger, fast_sync_settings)
        asyncio.run(client.pull())

        client.resume()
        assert client.is_paused is False
        assert asyncio.run(client.pull()).success is True
        assert audit_logger.recent_events(event_type=AuditEventType.SYNC_RESUMED)

    def test_auth_expired_not_retried(self, document, fast_sync_settings):
        transport = InMemoryTransport(document)
        transport.fail_next(AuthExpired("401"), times=3)
        client = SyncClient(transport, settings=fast_sync_settings)
        asyncio.run(client.pull())
        assert transport.pull_count == 1

    def test_session_check(self, document, fast_sync_settings):
        signed_in = [False]
        transport = InMemoryTransport(document)
        client = SyncClient(transport, settings=fast_sync_settings, is_authenticated=lambda: signed_in[0])

        result = asyncio.run(client.pull())
        assert result.auth_expired
        assert transport.pull_count == 0

        signed_in[0] = True
        client.resume()
        assert asyncio.run(client.pull()).success is True

    def test_unsubscribe(self, fast_sync_settings):
        transport = InMemoryTransport()
        transport.fail_next(AuthExpired("401"))
        client = SyncClient(transport, settings=fast_sync_settings)
        heard = []
        unsubscribe = client.on_auth_expired(heard.append)
        unsubscribe()

        asyncio.run(client.pull())
        assert heard == []

    def test_failing_listener_is_logged(self, fast_sync_settings, audit_logger):
        transport = InMemoryTransport()
        transport.fail_next(AuthExpired("401"))
        client = SyncClient(transport, audit_logger, fast_sync_settings)

        def broken(error):
            raise RuntimeError("listener bug")

        client.on_auth_expired(broken)
        result = asyncio.run(client.pull())
        assert result.auth_expired
        assert audit_logger.recent_events(event_type=AuditEventType.SYSTEM_ERROR)
