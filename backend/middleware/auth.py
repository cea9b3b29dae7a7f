"""
Authentication Dependencies

Provides:
- get_current_identity: verified store ids from the session token
- get_token_verifier: shared TokenVerifier

The session token is read from the ``x-auth-token`` header, or from a
standard ``Authorization: Bearer`` header.
"""

from typing import Optional
import logging

from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from logging_config import set_request_context
from sentry_integration import set_principal
from services.tokens import SessionIdentity, TokenVerifier
from utils.errors import TokenMissing

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

_verifier: Optional[TokenVerifier] = None


def get_token_verifier() -> TokenVerifier:
    global _verifier

    if _verifier is None:
        _verifier = TokenVerifier()
    return _verifier


# ==================== DEPENDENCIES ====================

async def get_current_identity(
    x_auth_token: Optional[str] = Header(None, alias="x-auth-token"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> SessionIdentity:
    """
    Verify the session token and return its store ids.
    Raises an AuthenticationFailed subclass (401) when it is missing or invalid.
    """
    token = x_auth_token or (credentials.credentials if credentials else None)
    if not token:
        raise TokenMissing()

    identity = verifier.verify(token)

    set_request_context(mongo_user_id=identity.mongo_id, sql_user_id=identity.sql_id)
    set_principal(identity.mongo_id, identity.sql_id)
    return identity
