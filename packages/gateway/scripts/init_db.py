#!/usr/bin/env python3
"""
Database initialization script for DocShield Gateway

Creates the audit schema and, on request, issues a development access token
for a tenant user.
"""

import argparse
import logging
import uuid

from docshield_gateway.auth import AuthManager
from docshield_gateway.config import get_settings
from docshield_gateway.database import DatabaseManager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def issue_dev_token(tenant_id: str, user_id: str) -> str:
    """Issue an access token signed with the configured secret."""
    settings = get_settings()
    auth_manager = AuthManager(settings.jwt_secret, settings.jwt_algorithm)
    return auth_manager.create_access_token(tenant_id, user_id)


def main():
    """Initialize the database."""
    parser = argparse.ArgumentParser(description="Initialize the DocShield database")
    parser.add_argument("--database-url", help="Override DOCSHIELD_DATABASE_URL")
    parser.add_argument("--issue-token", action="store_true", help="Print a dev access token")
    parser.add_argument("--tenant-id", default=None, help="Tenant for the dev token")
    parser.add_argument("--user-id", default=None, help="User for the dev token")
    args = parser.parse_args()

    settings = get_settings()
    database_url = args.database_url or settings.database_url

    logger.info("Initializing DocShield Gateway Database")
    db_manager = DatabaseManager(database_url)
    try:
        db_manager.create_tables()
    finally:
        db_manager.close()
    logger.info(f"Audit tables ready at {database_url}")

    if args.issue_token:
        tenant_id = args.tenant_id or str(uuid.uuid4())
        user_id = args.user_id or str(uuid.uuid4())
        token = issue_dev_token(tenant_id, user_id)
        logger.info(f"Tenant: {tenant_id}  User: {user_id}")
        logger.info(f"Access token: {token}")
        logger.warning("Development token - do not use in production")


if __name__ == "__main__":
    main()
