"""
Session token issue and verification (HS256 JWT via python-jose).

Payload:
    {"user": {"mongo_id": str|None, "sql_id": str|None}, "iat": ..., "exp": ...}

A token is only valid when it carries at least one store id. Older tokens
with flat claims or the camelCase ``mongoId`` / ``mysqlId`` keys are
still accepted.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError, ExpiredSignatureError

from config import get_settings
from utils.errors import (
    TokenExpired,
    TokenMalformed,
    TokenMissingIdentity,
    TokenSignatureInvalid,
)

logger = logging.getLogger(__name__)

MONGO_CLAIM_KEYS = ("mongo_id", "mongoId")
SQL_CLAIM_KEYS = ("sql_id", "sqlId", "mysqlId", "mysql_id")


@dataclass(frozen=True)
class SessionIdentity:
    """Store-local ids of the authenticated principal."""

    mongo_id: Optional[str] = None
    sql_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.mongo_id and not self.sql_id

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"mongo_id": self.mongo_id, "sql_id": self.sql_id}


def _first_claim(claims: Dict[str, Any], keys) -> Optional[str]:
    for key in keys:
        value = claims.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def identity_from_claims(payload: Dict[str, Any]) -> SessionIdentity:
    """Read the store ids from nested or flat claims."""
    claims = payload.get("user")
    if not isinstance(claims, dict):
        claims = payload
    return SessionIdentity(
        mongo_id=_first_claim(claims, MONGO_CLAIM_KEYS),
        sql_id=_first_claim(claims, SQL_CLAIM_KEYS),
    )


class TokenIssuer:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_minutes: Optional[int] = None,
        remember_me_days: Optional[int] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.access_lifetime = timedelta(
            minutes=access_minutes or settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        )
        self.remember_me_lifetime = timedelta(
            days=remember_me_days or settings.JWT_REMEMBER_ME_EXPIRE_DAYS
        )

    def lifetime(self, remember_me: bool = False) -> timedelta:
        return self.remember_me_lifetime if remember_me else self.access_lifetime

    def issue(
        self,
        mongo_id: Optional[str],
        sql_id: Optional[str],
        remember_me: bool = False,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create a signed session token for the given store ids"""
        identity = SessionIdentity(
            mongo_id=str(mongo_id) if mongo_id else None,
            sql_id=str(sql_id) if sql_id else None,
        )
        if identity.is_empty:
            raise TokenMissingIdentity("Cannot issue a token without a store identity")

        now = datetime.now(timezone.utc)
        to_encode = {
            "user": identity.to_dict(),
            "iat": now,
            "exp": now + (expires_delta or self.lifetime(remember_me)),
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)


class TokenVerifier:
    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        settings = get_settings()
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM

    def verify(self, token: str) -> SessionIdentity:
        """
        Validate a session token and return its identity.

        Raises TokenMalformed, TokenExpired, TokenSignatureInvalid or
        TokenMissingIdentity (all AuthenticationFailed).
        """
        if not token or token.count(".") != 2:
            raise TokenMalformed()

        try:
            header = jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except JWTError:
            raise TokenMalformed()

        alg = header.get("alg")
        if not alg or str(alg).lower() == "none":
            raise TokenMalformed("Unsigned tokens are not accepted")

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise TokenExpired()
        except JWTError as e:
            logger.warning(f"JWT verification failed: {e}")
            raise TokenSignatureInvalid()

        identity = identity_from_claims(payload)
        if identity.is_empty:
            raise TokenMissingIdentity()
        return identity
