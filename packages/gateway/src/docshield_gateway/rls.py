"""
Row-level security session discipline for DocShield Gateway

PostgreSQL policies read ``current_setting('app.tenant_id', true)::uuid``.
Every session handed out here has that variable set to the ambient tenant
and cleared again before the connection returns to the pool.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session

from .errors import InvalidTenantIDError
from .tenant import NIL_UUID, get_tenant_context

logger = logging.getLogger(__name__)

SET_TENANT_SQL = text("SELECT set_config('app.tenant_id', :tenant_id, :is_local)")
RESET_TENANT_SQL = text("RESET app.tenant_id")


class TenantSessionManager:
    """Hands out tenant-scoped SQLAlchemy sessions."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    @staticmethod
    def _tenant_id() -> str:
        context = get_tenant_context()
        if context.tenant_id == NIL_UUID:
            raise InvalidTenantIDError()
        return str(context.tenant_id)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Yield a session whose connection carries the ambient tenant.

        The variable is set for the whole session and reset before the
        session is closed, on every exit path.

        Raises:
            NoTenantContextError: No tenant scope is active
        """
        tenant_id = self._tenant_id()
        session = self.session_factory()
        try:
            session.execute(SET_TENANT_SQL, {"tenant_id": tenant_id, "is_local": False})
            try:
                yield session
            finally:
                try:
                    session.execute(RESET_TENANT_SQL)
                except Exception as e:
                    logger.error(f"Failed to clear tenant context: {e}")
                    # Never return a connection with a stale tenant to the pool
                    session.invalidate()
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session inside one transaction scoped to the ambient tenant.

        The variable is transaction local, so commit or rollback clears it.
        """
        tenant_id = self._tenant_id()
        session = self.session_factory()
        try:
            session.execute(SET_TENANT_SQL, {"tenant_id": tenant_id, "is_local": True})
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
