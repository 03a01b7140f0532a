"""
Tests for audit sinks, the audit recorder and compliance queries.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from docshield_gateway.audit import (DOCUMENT_ANALYSIS, TEXT_ANALYSIS,
                                     AuditEntry, AuditQueries, AuditRecorder,
                                     InMemoryAuditSink, LoggingAlertHandler,
                                     NullAuditSink, SQLAuditSink,
                                     SQLCrossTenantLogger)
from docshield_gateway.database import (AIAuditLog, CrossTenantAttempt,
                                        DatabaseManager)
from docshield_gateway.errors import (CrossTenantAccessError,
                                      NoTenantContextError)
from docshield_gateway.tenant import CrossTenantEvent, tenant_scope


def make_entry(tenant_id, user_id, **overrides):
    values = {
        "tenant_id": tenant_id,
        "user_id": user_id,
        "request_type": DOCUMENT_ANALYSIS,
        "timestamp": datetime.now(timezone.utc),
    }
    values.update(overrides)
    return AuditEntry(**values)


class FailingSink:
    async def log_ai_request(self, entry):
        raise RuntimeError("sink unavailable")


@pytest.fixture
def db_manager():
    manager = DatabaseManager("sqlite://")
    manager.create_tables()
    yield manager
    manager.close()


class TestAuditEntry:
    def test_entry_is_immutable(self, tenant_id, user_id):
        entry = make_entry(tenant_id, user_id)

        with pytest.raises(ValidationError):
            entry.success = True


class TestInMemoryAuditSink:
    @pytest.mark.asyncio
    async def test_entries_are_recorded_per_tenant(self, tenant_id, user_id):
        sink = InMemoryAuditSink()
        other = uuid.uuid4()

        await sink.log_ai_request(make_entry(tenant_id, user_id))
        await sink.log_ai_request(make_entry(other, user_id))

        assert len(sink.entries) == 2
        assert [entry.tenant_id for entry in sink.for_tenant(other)] == [other]

    @pytest.mark.asyncio
    async def test_null_sink_accepts_anything(self, tenant_id, user_id):
        await NullAuditSink().log_ai_request(make_entry(tenant_id, user_id))


class TestAuditRecorder:
    """Best-effort emission."""

    @pytest.mark.asyncio
    async def test_sink_failure_is_swallowed_and_counted(self, tenant_id, user_id):
        recorder = AuditRecorder(FailingSink())
        before = AuditRecorder.failures()

        await recorder.emit(make_entry(tenant_id, user_id))

        assert AuditRecorder.failures() == before + 1

    @pytest.mark.asyncio
    async def test_track_emits_on_success(self, audit_sink, tenant_id, user_id):
        recorder = AuditRecorder(audit_sink)

        async with recorder.track(tenant_id, user_id, TEXT_ANALYSIS) as audit:
            audit.input_filtered_count = 2
            audit.add_suspicious_types(["credential_pattern", "credential_pattern"])
            audit.succeed()

        [entry] = audit_sink.entries
        assert entry.success
        assert entry.error_message is None
        assert entry.request_type == TEXT_ANALYSIS
        assert entry.input_filtered_count == 2
        assert entry.suspicious_found
        assert entry.suspicious_types == ["credential_pattern"]
        assert entry.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_track_emits_on_error(self, audit_sink, tenant_id, user_id):
        recorder = AuditRecorder(audit_sink)

        with pytest.raises(RuntimeError):
            async with recorder.track(tenant_id, user_id, DOCUMENT_ANALYSIS):
                raise RuntimeError("boom")

        [entry] = audit_sink.entries
        assert not entry.success
        assert entry.error_message == "internal error"

    @pytest.mark.asyncio
    async def test_track_keeps_recorded_failure_message(self, audit_sink, tenant_id, user_id):
        recorder = AuditRecorder(audit_sink)

        with pytest.raises(ValueError):
            async with recorder.track(tenant_id, user_id, DOCUMENT_ANALYSIS) as audit:
                audit.fail("input contained dangerous content")
                raise ValueError()

        assert audit_sink.entries[0].error_message == "input contained dangerous content"

    @pytest.mark.asyncio
    async def test_track_emits_on_cancellation(self, audit_sink, tenant_id, user_id):
        recorder = AuditRecorder(audit_sink)

        with pytest.raises(asyncio.CancelledError):
            async with recorder.track(tenant_id, user_id, DOCUMENT_ANALYSIS):
                raise asyncio.CancelledError()

        [entry] = audit_sink.entries
        assert not entry.success
        assert entry.error_message == "request cancelled"


class TestSQLAuditSink:
    """Persistence through SQLAlchemy."""

    @pytest.mark.asyncio
    async def test_entry_is_persisted(self, db_manager, tenant_id, user_id):
        sink = SQLAuditSink(db_manager)
        entry = make_entry(tenant_id, user_id, success=True, stripped_fields=["debug"])

        with tenant_scope(tenant_id, user_id):
            await sink.log_ai_request(entry)

        session = db_manager.get_session()
        try:
            row = session.query(AIAuditLog).one()
        finally:
            session.close()

        assert row.id == str(entry.id)
        assert row.tenant_id == str(tenant_id)
        assert row.success
        assert row.stripped_fields == ["debug"]

    @pytest.mark.asyncio
    async def test_write_requires_tenant_context(self, db_manager, tenant_id, user_id):
        sink = SQLAuditSink(db_manager)

        with pytest.raises(NoTenantContextError):
            await sink.log_ai_request(make_entry(tenant_id, user_id))

    @pytest.mark.asyncio
    async def test_write_for_other_tenant_is_rejected(self, db_manager, tenant_id, user_id):
        sink = SQLAuditSink(db_manager)

        with tenant_scope(uuid.uuid4(), user_id):
            with pytest.raises(CrossTenantAccessError):
                await sink.log_ai_request(make_entry(tenant_id, user_id))

    @pytest.mark.asyncio
    async def test_recorder_counts_writes_without_context(self, db_manager, tenant_id, user_id):
        recorder = AuditRecorder(SQLAuditSink(db_manager))
        before = AuditRecorder.failures()

        await recorder.emit(make_entry(tenant_id, user_id))

        assert AuditRecorder.failures() == before + 1
        assert AuditQueries(db_manager).recent(tenant_id) == []


class TestAuditQueries:
    """Compliance read side."""

    @pytest.mark.asyncio
    async def test_recent_and_summary(self, db_manager, tenant_id, user_id):
        sink = SQLAuditSink(db_manager)
        with tenant_scope(tenant_id, user_id):
            await sink.log_ai_request(make_entry(tenant_id, user_id, success=True, duration_ms=10))
            await sink.log_ai_request(
                make_entry(
                    tenant_id,
                    user_id,
                    success=False,
                    error_message="output contains sensitive data",
                    suspicious_found=True,
                    suspicious_types=["credential_pattern"],
                    input_filtered_count=1,
                    duration_ms=30,
                )
            )

        queries = AuditQueries(db_manager)

        recent = queries.recent(tenant_id)
        assert len(recent) == 2
        assert queries.recent(uuid.uuid4()) == []

        now = datetime.now(timezone.utc)
        report = queries.summary(tenant_id, now - timedelta(hours=1), now + timedelta(hours=1))
        assert report["summary"]["total_requests"] == 2
        assert report["summary"]["failed_requests"] == 1
        assert report["summary"]["suspicious_requests"] == 1
        assert report["summary"]["filtered_requests"] == 1
        assert report["summary"]["failure_rate"] == 0.5
        assert report["suspicious_types"] == {"credential_pattern": 1}
        assert report["performance"]["avg_duration_ms"] == 20


class TestCrossTenantReporting:
    def test_attempt_is_persisted(self, db_manager, tenant_id, user_id):
        event = CrossTenantEvent(
            requested_tenant_id=uuid.uuid4(),
            actual_tenant_id=tenant_id,
            user_id=user_id,
            operation="read",
            resource_type="document",
        )

        SQLCrossTenantLogger(db_manager).log_cross_tenant_attempt(event)

        session = db_manager.get_session()
        try:
            row = session.query(CrossTenantAttempt).one()
        finally:
            session.close()
        assert row.actual_tenant_id == str(tenant_id)
        assert row.operation == "read"

    def test_alert_is_logged_on_security_logger(self, caplog, tenant_id, user_id):
        event = CrossTenantEvent(
            requested_tenant_id=uuid.uuid4(),
            actual_tenant_id=tenant_id,
            user_id=user_id,
            operation="read",
            resource_type="document",
        )

        with caplog.at_level(logging.ERROR, logger="docshield_gateway.security"):
            LoggingAlertHandler().alert_cross_tenant_access(event)

        [record] = caplog.records
        assert record.name == "docshield_gateway.security"
        assert "cross-tenant" in record.getMessage()
