"""
Login Attempt Tracker

Counts failed logins per identifier and locks the identifier out once the
limit is reached:

- clear:   no recent failures
- warning: 1 .. max_attempts-1 failures
- locked:  max_attempts failures, until ``locked_until``

A gap longer than the attempt window since the last attempt resets the
counter before the next attempt is processed. An active lockout is still
honoured until its own expiry.

State lives in process memory, so each instance enforces its own lockout
and records are never evicted.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from config import get_settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AttemptRecord:
    attempts: int = 0
    last_attempt: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    successful_logins: int = 0


@dataclass
class LockStatus:
    locked: bool
    locked_until: Optional[datetime] = None
    remaining_minutes: int = 0


@dataclass
class AttemptResult:
    attempts: int
    attempts_remaining: int
    locked: bool = False
    locked_until: Optional[datetime] = None
    remaining_minutes: int = 0


class AttemptTracker:
    """Per-identifier failure counter with time-boxed lockout."""

    def __init__(
        self,
        max_attempts: int = 5,
        lockout: timedelta = timedelta(minutes=15),
        window: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.max_attempts = max_attempts
        self.lockout = lockout
        self.window = window
        self.clock = clock
        self._records: Dict[str, AttemptRecord] = {}

    @staticmethod
    def _key(identifier: str) -> str:
        return identifier.strip().lower()

    def _remaining_minutes(self, locked_until: datetime, now: datetime) -> int:
        return max(0, math.ceil((locked_until - now).total_seconds() / 60))

    def get(self, identifier: str) -> Optional[AttemptRecord]:
        return self._records.get(self._key(identifier))

    def check(self, identifier: str) -> LockStatus:
        """Report whether the identifier is currently locked out."""
        record = self.get(identifier)
        now = self.clock()
        if record and record.locked_until and record.locked_until > now:
            return LockStatus(
                locked=True,
                locked_until=record.locked_until,
                remaining_minutes=self._remaining_minutes(record.locked_until, now),
            )
        return LockStatus(locked=False)

    def record_failure(self, identifier: str) -> AttemptResult:
        now = self.clock()
        record = self._records.setdefault(self._key(identifier), AttemptRecord())

        if record.last_attempt and now - record.last_attempt > self.window:
            record.attempts = 0

        record.attempts += 1
        record.last_attempt = now

        if record.attempts >= self.max_attempts:
            record.locked_until = now + self.lockout
            logger.warning(
                f"Login locked for {self.lockout} after {record.attempts} failed attempts"
            )
            return AttemptResult(
                attempts=record.attempts,
                attempts_remaining=0,
                locked=True,
                locked_until=record.locked_until,
                remaining_minutes=self._remaining_minutes(record.locked_until, now),
            )

        return AttemptResult(
            attempts=record.attempts,
            attempts_remaining=self.max_attempts - record.attempts,
        )

    def record_success(self, identifier: str) -> None:
        record = self._records.setdefault(self._key(identifier), AttemptRecord())
        record.attempts = 0
        record.locked_until = None
        record.last_attempt = self.clock()
        record.successful_logins += 1


_tracker: Optional[AttemptTracker] = None


def get_attempt_tracker() -> AttemptTracker:
    """Process-wide tracker (FastAPI dependency)"""
    global _tracker

    if _tracker is None:
        settings = get_settings()
        _tracker = AttemptTracker(
            max_attempts=settings.LOGIN_MAX_ATTEMPTS,
            lockout=timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES),
            window=timedelta(minutes=settings.LOGIN_ATTEMPT_WINDOW_MINUTES),
        )
    return _tracker
