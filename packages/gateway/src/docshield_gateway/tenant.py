"""
Tenant context for DocShield Gateway

Carries ``(tenant_id, user_id)`` through a request scope and detects
cross-tenant access attempts.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional, Protocol, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import CrossTenantAccessError, InvalidTenantIDError, NoTenantContextError

logger = logging.getLogger(__name__)

NIL_UUID = UUID(int=0)


class TenantContext(BaseModel):
    """Immutable identity of the tenant and user behind one request."""

    model_config = ConfigDict(frozen=True)

    tenant_id: UUID
    user_id: UUID

    @field_validator("tenant_id")
    @classmethod
    def _reject_nil_tenant(cls, value: UUID) -> UUID:
        if value == NIL_UUID:
            raise InvalidTenantIDError()
        return value


_current_tenant: ContextVar[Optional[TenantContext]] = ContextVar(
    "docshield_tenant_context", default=None
)


def _as_uuid(value: Union[UUID, str]) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidTenantIDError() from None


@contextmanager
def tenant_scope(
    tenant_id: Union[UUID, str], user_id: Union[UUID, str]
) -> Iterator[TenantContext]:
    """Bind a tenant context for the duration of the block.

    The previous value is restored on every exit path.
    """
    tenant_id = _as_uuid(tenant_id)
    if tenant_id == NIL_UUID:
        raise InvalidTenantIDError()

    context = TenantContext(tenant_id=tenant_id, user_id=_as_uuid(user_id))
    token = _current_tenant.set(context)
    try:
        yield context
    finally:
        _current_tenant.reset(token)


def get_tenant_context() -> TenantContext:
    """Return the ambient tenant context or raise NoTenantContextError."""
    context = _current_tenant.get()
    if context is None:
        raise NoTenantContextError()
    return context


def current_tenant_context() -> Optional[TenantContext]:
    """Return the ambient tenant context, or None outside a tenant scope."""
    return _current_tenant.get()


class CrossTenantEvent(BaseModel):
    """A detected attempt to reach another tenant's data."""

    model_config = ConfigDict(frozen=True)

    requested_tenant_id: UUID
    actual_tenant_id: UUID
    user_id: UUID
    operation: str
    resource_type: str
    resource_id: Optional[str] = None


class CrossTenantAuditLogger(Protocol):
    def log_cross_tenant_attempt(self, event: CrossTenantEvent) -> None: ...


class CrossTenantAlertHandler(Protocol):
    def alert_cross_tenant_access(self, event: CrossTenantEvent) -> None: ...


class TenantGuard:
    """Validates tenant identity and reports violations."""

    def __init__(
        self,
        audit_logger: Optional[CrossTenantAuditLogger] = None,
        alert_handler: Optional[CrossTenantAlertHandler] = None,
    ):
        self.audit_logger = audit_logger
        self.alert_handler = alert_handler

    def validate_access(
        self,
        requested_tenant_id: Union[UUID, str],
        operation: str,
        resource_type: str,
        resource_id: Optional[str] = None,
    ) -> TenantContext:
        """
        Check that the requested tenant is the ambient one.

        Args:
            requested_tenant_id: Tenant the caller claims to act for
            operation: Operation name for the audit trail
            resource_type: Type of the resource being accessed
            resource_id: Optional resource identifier

        Returns:
            The ambient TenantContext

        Raises:
            NoTenantContextError: No tenant scope is active
            CrossTenantAccessError: The tenants differ
        """
        context = get_tenant_context()
        requested = _as_uuid(requested_tenant_id)

        if context.tenant_id != requested:
            self._report(
                CrossTenantEvent(
                    requested_tenant_id=requested,
                    actual_tenant_id=context.tenant_id,
                    user_id=context.user_id,
                    operation=operation,
                    resource_type=resource_type,
                    resource_id=resource_id,
                )
            )
            raise CrossTenantAccessError()

        return context

    def detect_access(
        self,
        expected_tenant_id: Union[UUID, str],
        actual_tenant_id: Union[UUID, str],
        operation: str,
        resource_type: str,
        resource_id: Optional[str] = None,
    ) -> None:
        """Report data that came back for a different tenant than expected."""
        expected = _as_uuid(expected_tenant_id)
        actual = _as_uuid(actual_tenant_id)
        if expected == actual:
            return

        context = current_tenant_context()
        self._report(
            CrossTenantEvent(
                requested_tenant_id=expected,
                actual_tenant_id=actual,
                user_id=context.user_id if context else NIL_UUID,
                operation=operation,
                resource_type=resource_type,
                resource_id=resource_id,
            )
        )
        raise CrossTenantAccessError()

    def _report(self, event: CrossTenantEvent) -> None:
        logger.error(
            f"Cross-tenant access attempt - operation: {event.operation}, "
            f"resource: {event.resource_type}, user: {event.user_id}"
        )

        # Both emissions are best effort
        if self.audit_logger is not None:
            try:
                self.audit_logger.log_cross_tenant_attempt(event)
            except Exception as e:
                logger.error(f"Failed to audit cross-tenant attempt: {e}")

        if self.alert_handler is not None:
            try:
                self.alert_handler.alert_cross_tenant_access(event)
            except Exception as e:
                logger.error(f"Failed to alert on cross-tenant attempt: {e}")
