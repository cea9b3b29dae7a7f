"""
Credential Verifier

Checks a password against the principal's record in each store, behind the
login attempt tracker. The document store is checked first; when it matches,
the relational record is not re-verified and only its id is reported.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from stores.base import PrincipalRecord, StoreName
from utils.errors import AccountLocked, AuthenticationFailed
from .attempt_tracker import AttemptTracker
from .passwords import verify_password
from .resolver import Resolver

logger = logging.getLogger(__name__)


@dataclass
class VerifiedPrincipal:
    mongo_record: Optional[PrincipalRecord]
    sql_record: Optional[PrincipalRecord]
    # which store's password check succeeded
    verified_by: StoreName

    @property
    def mongo_id(self) -> Optional[str]:
        return self.mongo_record.id if self.mongo_record else None

    @property
    def sql_id(self) -> Optional[str]:
        return self.sql_record.id if self.sql_record else None

    @property
    def primary(self) -> PrincipalRecord:
        return self.mongo_record if self.verified_by is StoreName.MONGO else self.sql_record


class CredentialVerifier:
    def __init__(self, resolver: Resolver, tracker: AttemptTracker):
        self.resolver = resolver
        self.tracker = tracker

    def _check_lock(self, identifier: str) -> None:
        status = self.tracker.check(identifier)
        if status.locked:
            logger.warning("Login rejected: identifier is locked out")
            raise AccountLocked(status.locked_until, status.remaining_minutes)

    async def verify(self, identifier: str, password: str, by_email: bool) -> VerifiedPrincipal:
        """
        Authenticate ``identifier``, an email when ``by_email`` is set and a
        username otherwise.

        Raises AccountLocked before any store is queried when the identifier
        is locked, AuthenticationFailed on a bad identifier or password, and
        AccountLocked when this failure reaches the attempt limit.
        """
        self._check_lock(identifier)

        candidates = await self.resolver.candidates(identifier, by_email)
        mongo_user = candidates.get(StoreName.MONGO)
        sql_user = candidates.get(StoreName.SQL)

        if mongo_user and verify_password(password, mongo_user.password_hash):
            self.tracker.record_success(identifier)
            logger.info(f"Login verified by {StoreName.MONGO.label}")
            return VerifiedPrincipal(mongo_user, sql_user, StoreName.MONGO)

        if sql_user and verify_password(password, sql_user.password_hash):
            self.tracker.record_success(identifier)
            logger.info(f"Login verified by {StoreName.SQL.label}")
            # The document store identity is only carried when its own check passed
            return VerifiedPrincipal(None, sql_user, StoreName.SQL)

        attempt = self.tracker.record_failure(identifier)
        logger.warning(f"Login failed: attempt {attempt.attempts} of {self.tracker.max_attempts}")
        if attempt.locked:
            raise AccountLocked(attempt.locked_until, attempt.remaining_minutes)
        raise AuthenticationFailed(attemptsRemaining=attempt.attempts_remaining)
