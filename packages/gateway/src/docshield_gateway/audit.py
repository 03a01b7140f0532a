"""
Audit logging service for DocShield Gateway

One structured entry per gateway call, written best effort. Entries hold
only identifiers, flags, counts and category tags: never document text,
prompts or LLM output.
"""

import asyncio
import logging
import threading
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .database import AIAuditLog, CrossTenantAttempt, DatabaseManager
from .errors import CrossTenantAccessError
from .tenant import CrossTenantEvent, get_tenant_context

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("docshield_gateway.security")

DOCUMENT_ANALYSIS = "document_analysis"
TEXT_ANALYSIS = "text_analysis"


class AuditEntry(BaseModel):
    """Immutable record of one gateway invocation."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid.uuid4)
    tenant_id: UUID
    user_id: UUID
    request_type: str
    input_sanitized: bool = False
    input_filtered_count: int = 0
    output_validated: bool = False
    stripped_fields: List[str] = []
    suspicious_found: bool = False
    suspicious_types: List[str] = []
    success: bool = False
    error_message: Optional[str] = None
    duration_ms: int = 0
    timestamp: datetime


@dataclass
class AuditDraft:
    """Mutable view of an entry while its call is still running."""

    tenant_id: UUID
    user_id: UUID
    request_type: str
    timestamp: datetime
    input_sanitized: bool = False
    input_filtered_count: int = 0
    output_validated: bool = False
    stripped_fields: List[str] = field(default_factory=list)
    suspicious_found: bool = False
    suspicious_types: List[str] = field(default_factory=list)
    success: bool = False
    error_message: Optional[str] = None

    def fail(self, message: str) -> None:
        self.success = False
        self.error_message = message

    def succeed(self) -> None:
        self.success = True
        self.error_message = None

    def add_suspicious_types(self, types: List[str]) -> None:
        if types:
            self.suspicious_found = True
        for suspicious_type in types:
            if suspicious_type not in self.suspicious_types:
                self.suspicious_types.append(suspicious_type)

    def to_entry(self, duration_ms: int) -> AuditEntry:
        return AuditEntry(
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            request_type=self.request_type,
            input_sanitized=self.input_sanitized,
            input_filtered_count=self.input_filtered_count,
            output_validated=self.output_validated,
            stripped_fields=list(self.stripped_fields),
            suspicious_found=self.suspicious_found,
            suspicious_types=list(self.suspicious_types),
            success=self.success,
            error_message=self.error_message,
            duration_ms=max(duration_ms, 0),
            timestamp=self.timestamp,
        )


class AuditSink(Protocol):
    """Destination for gateway audit entries."""

    async def log_ai_request(self, entry: AuditEntry) -> None: ...


class NullAuditSink:
    """No-op sink for tests or when auditing is disabled."""

    async def log_ai_request(self, entry: AuditEntry) -> None:
        return None


class InMemoryAuditSink:
    """Thread-safe in-memory sink."""

    def __init__(self):
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()

    async def log_ai_request(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    @property
    def entries(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def for_tenant(self, tenant_id: UUID) -> List[AuditEntry]:
        return [entry for entry in self.entries if entry.tenant_id == tenant_id]


class SQLAuditSink:
    """Persists entries to ``ai_audit_logs``.

    A write requires an ambient tenant context for the entry's tenant.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    async def log_ai_request(self, entry: AuditEntry) -> None:
        context = get_tenant_context()
        if context.tenant_id != entry.tenant_id:
            raise CrossTenantAccessError()

        await asyncio.to_thread(self._write, entry)

    def _write(self, entry: AuditEntry) -> None:
        session = self.db_manager.get_session()
        try:
            session.add(
                AIAuditLog(
                    id=str(entry.id),
                    tenant_id=str(entry.tenant_id),
                    user_id=str(entry.user_id),
                    request_type=entry.request_type,
                    input_sanitized=entry.input_sanitized,
                    input_filtered_count=entry.input_filtered_count,
                    output_validated=entry.output_validated,
                    stripped_fields=entry.stripped_fields,
                    suspicious_found=entry.suspicious_found,
                    suspicious_types=entry.suspicious_types,
                    success=entry.success,
                    error_message=entry.error_message,
                    duration_ms=entry.duration_ms,
                    timestamp=entry.timestamp,
                )
            )
            session.commit()
            logger.info(f"Audit log created: {entry.id} - success={entry.success}")
        except Exception as e:
            logger.error(f"Failed to create audit log: {e}")
            session.rollback()
            raise
        finally:
            session.close()


class AuditRecorder:
    """Fire-and-continue wrapper around an AuditSink.

    Failures are logged and counted, never raised to the caller.
    """

    _failures = 0
    _failures_lock = threading.Lock()

    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink if sink is not None else NullAuditSink()

    @classmethod
    def failures(cls) -> int:
        """Number of audit writes that failed in this process."""
        with cls._failures_lock:
            return cls._failures

    @classmethod
    def _record_failure(cls) -> None:
        with cls._failures_lock:
            cls._failures += 1

    async def emit(self, entry: AuditEntry) -> None:
        try:
            await self.sink.log_ai_request(entry)
        except Exception as e:
            self._record_failure()
            logger.error(f"Audit logging failed for {entry.id}: {e}")

    @asynccontextmanager
    async def track(
        self, tenant_id: UUID, user_id: UUID, request_type: str
    ) -> AsyncIterator[AuditDraft]:
        """Yield a draft entry and emit it when the block exits, however it exits."""
        started = time.monotonic()
        draft = AuditDraft(
            tenant_id=tenant_id,
            user_id=user_id,
            request_type=request_type,
            timestamp=datetime.now(timezone.utc),
        )
        try:
            yield draft
        except asyncio.CancelledError:
            draft.fail("request cancelled")
            raise
        except Exception:
            if draft.error_message is None:
                draft.fail("internal error")
            raise
        finally:
            duration_ms = int((time.monotonic() - started) * 1000)
            await self.emit(draft.to_entry(duration_ms))


class SQLCrossTenantLogger:
    """Persists cross-tenant attempts to ``cross_tenant_attempts``."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def log_cross_tenant_attempt(self, event: CrossTenantEvent) -> None:
        session = self.db_manager.get_session()
        try:
            session.add(
                CrossTenantAttempt(
                    requested_tenant_id=str(event.requested_tenant_id),
                    actual_tenant_id=str(event.actual_tenant_id),
                    user_id=str(event.user_id),
                    operation=event.operation,
                    resource_type=event.resource_type,
                    resource_id=event.resource_id,
                )
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class LoggingAlertHandler:
    """Raises security alerts through the security logger."""

    def alert_cross_tenant_access(self, event: CrossTenantEvent) -> None:
        security_logger.error(
            f"SECURITY ALERT: cross-tenant access - requested: {event.requested_tenant_id}, "
            f"actual: {event.actual_tenant_id}, user: {event.user_id}, "
            f"operation: {event.operation}, resource: {event.resource_type}"
        )


class AuditQueries:
    """Compliance read side over ``ai_audit_logs``."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def recent(self, tenant_id: UUID, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Get recent audit entries for a tenant, newest first.

        Args:
            tenant_id: Tenant UUID
            limit: Maximum number of entries to return

        Returns:
            List of entries as plain dictionaries
        """
        session = self.db_manager.get_session()
        try:
            logs = (
                session.query(AIAuditLog)
                .filter(AIAuditLog.tenant_id == str(tenant_id))
                .order_by(AIAuditLog.timestamp.desc())
                .limit(limit)
                .all()
            )
            return [
                {
                    "id": log.id,
                    "user_id": log.user_id,
                    "request_type": log.request_type,
                    "input_sanitized": log.input_sanitized,
                    "input_filtered_count": log.input_filtered_count,
                    "output_validated": log.output_validated,
                    "stripped_fields": log.stripped_fields or [],
                    "suspicious_found": log.suspicious_found,
                    "suspicious_types": log.suspicious_types or [],
                    "success": log.success,
                    "error_message": log.error_message,
                    "duration_ms": log.duration_ms,
                    "timestamp": log.timestamp.isoformat(),
                }
                for log in logs
            ]
        finally:
            session.close()

    def summary(self, tenant_id: UUID, start: datetime, end: datetime) -> Dict[str, Any]:
        """Aggregate a tenant's audit entries over a period."""
        session = self.db_manager.get_session()
        try:
            logs = (
                session.query(AIAuditLog)
                .filter(
                    AIAuditLog.tenant_id == str(tenant_id),
                    AIAuditLog.timestamp >= start,
                    AIAuditLog.timestamp <= end,
                )
                .all()
            )
        finally:
            session.close()

        total = len(logs)
        failed = len([log for log in logs if not log.success])
        suspicious = len([log for log in logs if log.suspicious_found])
        filtered = len([log for log in logs if log.input_filtered_count])

        suspicious_types: Dict[str, int] = {}
        for log in logs:
            for suspicious_type in log.suspicious_types or []:
                suspicious_types[suspicious_type] = suspicious_types.get(suspicious_type, 0) + 1

        durations = [log.duration_ms for log in logs]
        return {
            "period": {"start": start.isoformat(), "end": end.isoformat()},
            "summary": {
                "total_requests": total,
                "failed_requests": failed,
                "suspicious_requests": suspicious,
                "filtered_requests": filtered,
                "failure_rate": failed / total if total > 0 else 0,
            },
            "suspicious_types": suspicious_types,
            "performance": {
                "avg_duration_ms": sum(durations) / len(durations) if durations else 0,
            },
        }
