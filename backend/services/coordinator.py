"""
Dual-Store Write Coordinator

Applies one logical write to the document store and then, independently,
to the relational store. A failure in one store never aborts the other
and nothing is rolled back: the outcome is reported, not repaired.

Outcome policy (``combine``):

    mongo  sql    -> outcome
    True   True   -> FULL      (200)
    True   False  -> PARTIAL   (206, PartialStoreFailure)
    False  True   -> PARTIAL   (206, PartialStoreFailure)
    False  False  -> FAILED    (500, TotalStoreFailure) if either store raised
                     SKIPPED   (operation-specific error) otherwise

This module is the only place store exceptions from writes are caught.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from stores.base import StoreName, StoreResult
from utils.errors import CoreError, PartialStoreFailure, TotalStoreFailure

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    FAILED = "failed"


def combine(mongo: StoreResult, sql: StoreResult) -> OutcomeKind:
    """Classify a pair of per-store results."""
    if mongo.ok and sql.ok:
        return OutcomeKind.FULL
    if mongo.ok or sql.ok:
        return OutcomeKind.PARTIAL
    if mongo.is_error or sql.is_error:
        return OutcomeKind.FAILED
    return OutcomeKind.SKIPPED


@dataclass
class WriteOutcome:
    mongo: StoreResult
    sql: StoreResult

    @property
    def kind(self) -> OutcomeKind:
        return combine(self.mongo, self.sql)

    @property
    def flags(self) -> Dict[str, bool]:
        """Machine-readable per-store status block."""
        return {StoreName.MONGO.value: self.mongo.ok, StoreName.SQL.value: self.sql.ok}

    @property
    def any_ok(self) -> bool:
        return self.mongo.ok or self.sql.ok

    def get(self, name: StoreName) -> StoreResult:
        return self.mongo if name is StoreName.MONGO else self.sql

    def record(self, name: StoreName) -> Any:
        result = self.get(name)
        return result.record if result.ok else None

    def reasons(self) -> Dict[str, Optional[str]]:
        return {StoreName.MONGO.value: self.mongo.reason, StoreName.SQL.value: self.sql.reason}

    def partial_message(self, action: str) -> str:
        stores = [name.label for name in StoreName if self.get(name).ok]
        return f"{action} in {' and '.join(stores)} only"

    def raise_for_status(
        self,
        action: str,
        skipped: Callable[[], CoreError],
        **payload: Any,
    ) -> None:
        """
        Raise the error matching this outcome, or return on full success.

        ``skipped`` builds the operation-specific error used when both stores
        declined the write without failing. ``payload`` is attached to a
        partial result so the caller still receives the operation's data.
        """
        kind = self.kind
        if kind is OutcomeKind.FULL:
            return
        if kind is OutcomeKind.PARTIAL:
            raise PartialStoreFailure(self.partial_message(action), self.flags, **payload)
        if kind is OutcomeKind.FAILED:
            logger.error(f"{action} failed in both stores: {self.reasons()}")
            raise TotalStoreFailure(f"{action} failed in both stores", self.flags)
        raise skipped()


StoreOp = Callable[[], Awaitable[Any]]


async def attempt(store: StoreName, op: StoreOp) -> StoreResult:
    """
    Run one store operation and tag its outcome.

    The operation may return a StoreResult (for explicit skips), a record
    (found), or None / False (absent). Any exception becomes an error result.
    """
    try:
        result = await op()
    except Exception as e:
        logger.error(f"{store.label} operation failed: {type(e).__name__}: {e}")
        return StoreResult.failed(store, type(e).__name__)

    if isinstance(result, StoreResult):
        return result
    if result is None or result is False:
        return StoreResult.absent(store, "not_found")
    return StoreResult.found(store, result)


async def run(
    mongo_op: StoreOp,
    sql_op: Callable[[StoreResult], Awaitable[Any]],
) -> WriteOutcome:
    """
    Attempt the document store, then the relational store. ``sql_op``
    receives the document store result so a successful document write can
    forward its id as a cross-reference.
    """
    mongo_result = await attempt(StoreName.MONGO, mongo_op)

    async def _sql():
        return await sql_op(mongo_result)

    sql_result = await attempt(StoreName.SQL, _sql)
    outcome = WriteOutcome(mongo=mongo_result, sql=sql_result)
    logger.info(f"Dual-store write: {outcome.flags}")
    return outcome
