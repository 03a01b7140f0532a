"""
Database models and connection for DocShield Gateway

SQLAlchemy models for AI audit entries and cross-tenant access attempts.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import (JSON, Boolean, Column, DateTime, Integer, String, Text,
                        create_engine)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# Use String for UUIDs to support SQLite
UUID_TYPE = String(36)

logger = logging.getLogger(__name__)

Base = declarative_base()


class AIAuditLog(Base):
    """One row per gateway call. Never holds document text or LLM output."""

    __tablename__ = "ai_audit_logs"

    id = Column(UUID_TYPE, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Tenant scope
    tenant_id = Column(UUID_TYPE, nullable=False, index=True)
    user_id = Column(UUID_TYPE, nullable=False)

    request_type = Column(String(32), nullable=False)  # document_analysis, text_analysis

    # Sanitation and validation
    input_sanitized = Column(Boolean, default=False)
    input_filtered_count = Column(Integer, default=0)
    output_validated = Column(Boolean, default=False)
    stripped_fields = Column(JSON, default=list)  # Paths only

    # Output scanning
    suspicious_found = Column(Boolean, default=False)
    suspicious_types = Column(JSON, default=list)

    # Outcome
    success = Column(Boolean, default=False)
    error_message = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=False, default=0)
    timestamp = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )


class CrossTenantAttempt(Base):
    """Recorded cross-tenant access attempt."""

    __tablename__ = "cross_tenant_attempts"

    id = Column(UUID_TYPE, primary_key=True, default=lambda: str(uuid.uuid4()))
    requested_tenant_id = Column(UUID_TYPE, nullable=False)
    actual_tenant_id = Column(UUID_TYPE, nullable=False, index=True)
    user_id = Column(UUID_TYPE, nullable=False)
    operation = Column(String(100), nullable=False)
    resource_type = Column(String(100), nullable=False)
    resource_id = Column(String(255), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class DatabaseManager:
    """Database connection and session management."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        engine_kwargs = {}
        if database_url.startswith("sqlite"):
            # Audit writes run in worker threads
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, echo=False, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

    def create_tables(self):
        """Create all database tables."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created")

    def get_session(self) -> Session:
        """Get a database session."""
        return self.SessionLocal()

    def close(self):
        """Close database connections."""
        self.engine.dispose()
