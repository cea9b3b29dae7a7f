"""
Error taxonomy for the dual-store core.

Every error carries the HTTP status it is surfaced with, a machine-readable
``error`` code and optional extra payload. A single exception handler in
server.py renders them, so services raise these and never build responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class CoreError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    error: str = "server_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"message": self.message, "error": self.error}
        body.update(self.extra)
        return body


class ValidationError(CoreError):
    """Malformed input. ``errors`` holds field-level detail."""

    status_code = 400
    error = "validation_error"

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None, **extra: Any):
        super().__init__(message, **extra)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFoundOrForbidden(CoreError):
    """Record absent, or caller does not own it, in every store attempted."""

    status_code = 404
    error = "not_found"


class AuthenticationFailed(CoreError):
    """Generic authentication failure. Never says which store or factor failed."""

    status_code = 401
    error = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials", **extra: Any):
        super().__init__(message, **extra)


class TokenMissing(AuthenticationFailed):
    error = "missing_token"

    def __init__(self, message: str = "No token, authorization denied", **extra: Any):
        super().__init__(message, **extra)


class TokenMalformed(AuthenticationFailed):
    error = "invalid_token"

    def __init__(self, message: str = "Invalid token", **extra: Any):
        super().__init__(message, **extra)


class TokenExpired(AuthenticationFailed):
    error = "token_expired"

    def __init__(self, message: str = "Token has expired, please login again", **extra: Any):
        super().__init__(message, **extra)


class TokenSignatureInvalid(AuthenticationFailed):
    error = "invalid_signature"

    def __init__(self, message: str = "Token signature verification failed", **extra: Any):
        super().__init__(message, **extra)


class TokenMissingIdentity(AuthenticationFailed):
    error = "invalid_user_id"

    def __init__(self, message: str = "Invalid user identification", **extra: Any):
        super().__init__(message, **extra)


class AccountLocked(CoreError):
    """Identifier is locked out after repeated failures."""

    status_code = 429
    error = "account_locked"

    def __init__(self, locked_until: datetime, remaining_minutes: int,
                 message: str = "Account temporarily locked due to multiple failed login attempts"):
        super().__init__(
            message,
            lockedUntil=locked_until.isoformat(),
            remainingTime=remaining_minutes,
        )
        self.locked_until = locked_until
        self.remaining_minutes = remaining_minutes


class PartialStoreFailure(CoreError):
    """Exactly one store applied the operation."""

    status_code = 206
    error = "partial_success"

    def __init__(self, message: str, store_status: Dict[str, bool], **payload: Any):
        super().__init__(message, storeStatus=store_status, **payload)
        self.store_status = store_status


class TotalStoreFailure(CoreError):
    """Neither store applied the operation and at least one raised."""

    status_code = 500
    error = "store_failure"

    def __init__(self, message: str, store_status: Optional[Dict[str, bool]] = None):
        super().__init__(message, storeStatus=store_status or {"mongo": False, "sql": False})


class DeliveryFailed(CoreError):
    """The email collaborator reported the message was not sent."""

    status_code = 500
    error = "email_not_sent"
