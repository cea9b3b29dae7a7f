"""
Utils Package

Provides:
- errors: the error taxonomy surfaced by the API
- validation_errors: field-level 400 responses
"""

from .errors import (
    CoreError,
    ValidationError,
    NotFoundOrForbidden,
    AuthenticationFailed,
    TokenMissing,
    TokenMalformed,
    TokenExpired,
    TokenSignatureInvalid,
    TokenMissingIdentity,
    AccountLocked,
    PartialStoreFailure,
    TotalStoreFailure,
    DeliveryFailed,
)
from .validation_errors import (
    ValidationErrorResponse,
    from_pydantic_errors,
)

__all__ = [
    'CoreError',
    'ValidationError',
    'NotFoundOrForbidden',
    'AuthenticationFailed',
    'TokenMissing',
    'TokenMalformed',
    'TokenExpired',
    'TokenSignatureInvalid',
    'TokenMissingIdentity',
    'AccountLocked',
    'PartialStoreFailure',
    'TotalStoreFailure',
    'DeliveryFailed',
    'ValidationErrorResponse',
    'from_pydantic_errors',
]
