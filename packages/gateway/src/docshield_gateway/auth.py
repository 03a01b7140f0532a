"""
Authentication for DocShield Gateway

Bearer JWT tokens carrying the tenant and user identity of a request.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from .errors import TenantError
from .tenant import TenantContext

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 30

security = HTTPBearer(auto_error=False)


class AuthenticationError(Exception):
    """Authentication error."""

    pass


class AuthManager:
    """Issues and verifies tenant-scoped access tokens."""

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def create_access_token(
        self,
        tenant_id: Union[UUID, str],
        user_id: Union[UUID, str],
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create a JWT access token for a tenant user."""
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode = {"tenant_id": str(tenant_id), "sub": str(user_id), "exp": expire}
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> dict:
        """Verify and decode a JWT token."""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            raise AuthenticationError("Invalid token")

    def tenant_context(self, token: str) -> TenantContext:
        """Build the tenant context from a token's ``tenant_id`` and ``sub`` claims."""
        payload = self.verify_token(token)

        tenant_id = payload.get("tenant_id")
        user_id = payload.get("sub")
        if not tenant_id or not user_id:
            raise AuthenticationError("Token missing tenant_id or sub claim")

        try:
            return TenantContext(tenant_id=tenant_id, user_id=user_id)
        except (ValidationError, TenantError):
            raise AuthenticationError("Invalid token claims")


def get_tenant_context_dependency(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TenantContext:
    """Get the tenant context of the current request from its bearer token."""
    if credentials is None:
        logger.warning(f"Missing bearer token on {request.url.path}")
        raise AuthenticationError("Missing authentication token")

    auth_manager: AuthManager = request.app.state.auth_manager
    try:
        return auth_manager.tenant_context(credentials.credentials)
    except AuthenticationError as e:
        logger.warning(f"Authentication failed on {request.url.path}: {e}")
        raise
