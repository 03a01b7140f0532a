"""
Tests for tenant context, cross-tenant detection and RLS sessions.
"""

import asyncio
import uuid
from unittest.mock import Mock

import pytest

from docshield_gateway.errors import (CrossTenantAccessError,
                                      InvalidTenantIDError,
                                      NoTenantContextError)
from docshield_gateway.rls import (RESET_TENANT_SQL, SET_TENANT_SQL,
                                   TenantSessionManager)
from docshield_gateway.tenant import (NIL_UUID, TenantContext, TenantGuard,
                                      current_tenant_context,
                                      get_tenant_context, tenant_scope)


class TestTenantScope:
    """Ambient tenant context."""

    def test_scope_binds_and_releases(self, tenant_id, user_id):
        with tenant_scope(tenant_id, user_id) as context:
            assert get_tenant_context() == context
            assert context.tenant_id == tenant_id
            assert context.user_id == user_id

        assert current_tenant_context() is None
        with pytest.raises(NoTenantContextError):
            get_tenant_context()

    def test_scope_is_released_on_error(self, tenant_id, user_id):
        with pytest.raises(RuntimeError):
            with tenant_scope(tenant_id, user_id):
                raise RuntimeError("boom")

        assert current_tenant_context() is None

    def test_nested_scopes_restore_outer(self, tenant_id, user_id):
        other = uuid.uuid4()
        with tenant_scope(tenant_id, user_id):
            with tenant_scope(other, user_id):
                assert get_tenant_context().tenant_id == other
            assert get_tenant_context().tenant_id == tenant_id

    def test_string_ids_are_accepted(self, tenant_id, user_id):
        with tenant_scope(str(tenant_id), str(user_id)) as context:
            assert context.tenant_id == tenant_id

    def test_nil_tenant_is_invalid(self, user_id):
        with pytest.raises(InvalidTenantIDError):
            with tenant_scope(NIL_UUID, user_id):
                pass

        with pytest.raises(InvalidTenantIDError):
            TenantContext(tenant_id=NIL_UUID, user_id=user_id)

    def test_malformed_tenant_is_invalid(self, user_id):
        with pytest.raises(InvalidTenantIDError):
            with tenant_scope("not-a-uuid", user_id):
                pass

    @pytest.mark.asyncio
    async def test_concurrent_tasks_see_their_own_tenant(self, user_id):
        async def worker(tenant):
            with tenant_scope(tenant, user_id):
                await asyncio.sleep(0)
                return get_tenant_context().tenant_id

        tenants = [uuid.uuid4() for _ in range(5)]

        results = await asyncio.gather(*(worker(tenant) for tenant in tenants))

        assert results == tenants


class TestTenantGuard:
    """Cross-tenant detection."""

    @pytest.fixture
    def audit_logger(self):
        return Mock()

    @pytest.fixture
    def alert_handler(self):
        return Mock()

    @pytest.fixture
    def guard(self, audit_logger, alert_handler):
        return TenantGuard(audit_logger, alert_handler)

    def test_matching_tenant_is_allowed(self, guard, audit_logger, alert_handler, tenant_id, user_id):
        with tenant_scope(tenant_id, user_id):
            context = guard.validate_access(tenant_id, "read", "document", "doc-1")

        assert context.tenant_id == tenant_id
        audit_logger.log_cross_tenant_attempt.assert_not_called()
        alert_handler.alert_cross_tenant_access.assert_not_called()

    def test_cross_tenant_access_is_rejected(self, guard, audit_logger, alert_handler, tenant_id, user_id):
        other = uuid.uuid4()

        with tenant_scope(tenant_id, user_id):
            with pytest.raises(CrossTenantAccessError):
                guard.validate_access(other, "read", "document", "doc-1")

        audit_logger.log_cross_tenant_attempt.assert_called_once()
        alert_handler.alert_cross_tenant_access.assert_called_once()

        event = audit_logger.log_cross_tenant_attempt.call_args[0][0]
        assert event.requested_tenant_id == other
        assert event.actual_tenant_id == tenant_id
        assert event.user_id == user_id
        assert event.operation == "read"
        assert event.resource_type == "document"
        assert event.resource_id == "doc-1"

    def test_emission_failures_do_not_change_the_outcome(self, tenant_id, user_id):
        audit_logger = Mock()
        audit_logger.log_cross_tenant_attempt.side_effect = RuntimeError("db down")
        alert_handler = Mock()
        guard = TenantGuard(audit_logger, alert_handler)

        with tenant_scope(tenant_id, user_id):
            with pytest.raises(CrossTenantAccessError):
                guard.validate_access(uuid.uuid4(), "read", "document")

        alert_handler.alert_cross_tenant_access.assert_called_once()

    def test_validate_requires_context(self, guard, tenant_id):
        with pytest.raises(NoTenantContextError):
            guard.validate_access(tenant_id, "read", "document")

    def test_detect_access(self, guard, audit_logger, alert_handler, tenant_id):
        guard.detect_access(tenant_id, tenant_id, "list", "audit_log")
        audit_logger.log_cross_tenant_attempt.assert_not_called()

        with pytest.raises(CrossTenantAccessError):
            guard.detect_access(tenant_id, uuid.uuid4(), "list", "audit_log")

        audit_logger.log_cross_tenant_attempt.assert_called_once()
        alert_handler.alert_cross_tenant_access.assert_called_once()


class TestTenantSessionManager:
    """Session variable discipline for row-level security."""

    @pytest.fixture
    def session(self):
        return Mock()

    @pytest.fixture
    def manager(self, session):
        return TenantSessionManager(Mock(return_value=session))

    def test_exported_from_package(self):
        import docshield_gateway

        assert docshield_gateway.TenantSessionManager is TenantSessionManager
        assert "TenantSessionManager" in docshield_gateway.__all__

    def test_session_sets_and_resets_tenant(self, manager, session, tenant_id, user_id):
        with tenant_scope(tenant_id, user_id):
            with manager.session() as scoped:
                assert scoped is session
                session.execute.assert_called_once_with(
                    SET_TENANT_SQL, {"tenant_id": str(tenant_id), "is_local": False}
                )

        assert session.execute.call_args_list[-1][0][0] is RESET_TENANT_SQL
        session.close.assert_called_once()

    def test_session_resets_on_error(self, manager, session, tenant_id, user_id):
        with tenant_scope(tenant_id, user_id):
            with pytest.raises(RuntimeError):
                with manager.session():
                    raise RuntimeError("query failed")

        assert session.execute.call_args_list[-1][0][0] is RESET_TENANT_SQL
        session.close.assert_called_once()

    def test_failed_reset_invalidates_connection(self, manager, session, tenant_id, user_id):
        session.execute.side_effect = [None, RuntimeError("reset failed")]

        with tenant_scope(tenant_id, user_id):
            with manager.session():
                pass

        session.invalidate.assert_called_once()
        session.close.assert_called_once()

    def test_session_requires_context(self):
        factory = Mock()
        manager = TenantSessionManager(factory)

        with pytest.raises(NoTenantContextError):
            with manager.session():
                pass

        factory.assert_not_called()

    def test_transaction_commits(self, manager, session, tenant_id, user_id):
        with tenant_scope(tenant_id, user_id):
            with manager.transaction():
                pass

        session.execute.assert_called_once_with(
            SET_TENANT_SQL, {"tenant_id": str(tenant_id), "is_local": True}
        )
        session.commit.assert_called_once()
        session.rollback.assert_not_called()
        session.close.assert_called_once()

    def test_transaction_rolls_back_on_error(self, manager, session, tenant_id, user_id):
        with tenant_scope(tenant_id, user_id):
            with pytest.raises(RuntimeError):
                with manager.transaction():
                    raise RuntimeError("insert failed")

        session.commit.assert_not_called()
        session.rollback.assert_called_once()
        session.close.assert_called_once()
