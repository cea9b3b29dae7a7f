"""
Unit Tests for the dual-store write coordinator

Run with: pytest tests/test_coordinator.py -v
"""

import pytest

from services import coordinator
from services.coordinator import OutcomeKind, WriteOutcome, combine
from stores.base import StoreName, StoreResult
from utils.errors import NotFoundOrForbidden, PartialStoreFailure, TotalStoreFailure

MONGO, SQL = StoreName.MONGO, StoreName.SQL


def found(store):
    return StoreResult.found(store, {"id": "x"})


def skipped(store):
    return StoreResult.absent(store, "not_owner")


def failed(store):
    return StoreResult.failed(store, "ConnectionError")


class TestCombine:

    @pytest.mark.parametrize("mongo,sql,expected", [
        (found(MONGO), found(SQL), OutcomeKind.FULL),
        (found(MONGO), skipped(SQL), OutcomeKind.PARTIAL),
        (found(MONGO), failed(SQL), OutcomeKind.PARTIAL),
        (failed(MONGO), found(SQL), OutcomeKind.PARTIAL),
        (skipped(MONGO), skipped(SQL), OutcomeKind.SKIPPED),
        (failed(MONGO), skipped(SQL), OutcomeKind.FAILED),
        (failed(MONGO), failed(SQL), OutcomeKind.FAILED),
    ])
    def test_classification(self, mongo, sql, expected):
        assert combine(mongo, sql) is expected

    def test_flags_never_claim_success_for_a_failed_store(self):
        outcome = WriteOutcome(failed(MONGO), skipped(SQL))
        assert outcome.flags == {"mongo": False, "sql": False}


class TestRaiseForStatus:

    def test_full_success_returns(self):
        WriteOutcome(found(MONGO), found(SQL)).raise_for_status("Saved", lambda: NotFoundOrForbidden("nope"))

    def test_partial_carries_status_block_and_payload(self):
        outcome = WriteOutcome(found(MONGO), failed(SQL))
        with pytest.raises(PartialStoreFailure) as exc_info:
            outcome.raise_for_status("Comment created", lambda: NotFoundOrForbidden("nope"), comment={"id": "x"})

        error = exc_info.value
        assert error.status_code == 206
        body = error.to_dict()
        assert body["storeStatus"] == {"mongo": True, "sql": False}
        assert body["comment"] == {"id": "x"}
        assert body["message"] == "Comment created in MongoDB only"

    def test_skipped_uses_operation_error(self):
        outcome = WriteOutcome(skipped(MONGO), skipped(SQL))
        with pytest.raises(NotFoundOrForbidden):
            outcome.raise_for_status("Comment update", lambda: NotFoundOrForbidden("Comment not found"))

    def test_any_store_error_is_total_failure(self):
        outcome = WriteOutcome(failed(MONGO), skipped(SQL))
        with pytest.raises(TotalStoreFailure) as exc_info:
            outcome.raise_for_status("Comment update", lambda: NotFoundOrForbidden("Comment not found"))
        assert exc_info.value.status_code == 500


class TestRun:

    @pytest.mark.asyncio
    async def test_failure_in_first_store_does_not_abort_second(self):
        calls = []

        async def mongo_op():
            calls.append("mongo")
            raise ConnectionError("down")

        async def sql_op(previous):
            calls.append("sql")
            return {"id": "1"}

        outcome = await coordinator.run(mongo_op, sql_op)

        assert calls == ["mongo", "sql"]
        assert outcome.mongo.is_error
        assert outcome.mongo.reason == "ConnectionError"
        assert outcome.flags == {"mongo": False, "sql": True}

    @pytest.mark.asyncio
    async def test_second_store_receives_first_result(self):
        async def mongo_op():
            return {"id": "abc"}

        async def sql_op(previous):
            return {"id": "1", "ref": previous.record["id"]}

        outcome = await coordinator.run(mongo_op, sql_op)
        assert outcome.record(SQL) == {"id": "1", "ref": "abc"}

    @pytest.mark.asyncio
    async def test_none_and_false_are_absent(self):
        async def returns_none():
            return None

        async def returns_false(previous):
            return False

        outcome = await coordinator.run(returns_none, returns_false)
        assert outcome.kind is OutcomeKind.SKIPPED
        assert outcome.reasons() == {"mongo": "not_found", "sql": "not_found"}

    @pytest.mark.asyncio
    async def test_explicit_skip_is_preserved(self):
        async def duplicate():
            return StoreResult.absent(MONGO, "duplicate_email")

        result = await coordinator.attempt(MONGO, duplicate)
        assert result.reason == "duplicate_email"
        assert not result.ok
