"""
Shared fixtures: in-memory stand-ins for the MongoDB and PostgreSQL adapters.

The fakes follow the adapter contract (store-local ids, invalid ids are
"absent", unexpired-token lookups) and can be switched to raise like an
unreachable store with ``store.fail = True``.
"""

import os

# Must be set before config is imported anywhere
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from services.attempt_tracker import AttemptTracker
from stores.base import (
    AuthorRef,
    CommentRecord,
    CommentStore,
    PrincipalRecord,
    StoreName,
    StorePair,
    TokenKind,
    UserStore,
)


class StoreUnavailable(ConnectionError):
    pass


def _mongo_ids():
    while True:
        yield str(ObjectId())


def _sql_ids():
    for n in itertools.count(1):
        yield str(n)


class _FakeStore:
    def __init__(self, name: StoreName):
        self.name = name
        self.fail = False
        self._ids = _mongo_ids() if name is StoreName.MONGO else _sql_ids()

    def _check(self):
        if self.fail:
            raise StoreUnavailable(f"{self.name.label} unavailable")

    def _valid_id(self, value: Any) -> bool:
        if value is None:
            return False
        if self.name is StoreName.MONGO:
            return ObjectId.is_valid(str(value))
        return str(value).isdigit()


class FakeUserStore(_FakeStore, UserStore):
    def __init__(self, name: StoreName):
        super().__init__(name)
        self.records: Dict[str, PrincipalRecord] = {}

    def _find(self, predicate) -> Optional[PrincipalRecord]:
        for record in self.records.values():
            if predicate(record):
                return replace(record)
        return None

    async def find_by_email(self, email):
        self._check()
        return self._find(lambda r: r.email == email.lower().strip())

    async def find_by_username(self, username):
        self._check()
        return self._find(lambda r: r.username == username.strip())

    async def find_by_id(self, user_id):
        self._check()
        if not self._valid_id(user_id):
            return None
        record = self.records.get(str(user_id))
        return replace(record) if record else None

    async def find_by_token(self, kind, token):
        self._check()
        now = datetime.now(timezone.utc)
        if kind is TokenKind.VERIFICATION:
            return self._find(lambda r: r.verification_token == token
                              and r.verification_token_expires and r.verification_token_expires > now)
        return self._find(lambda r: r.reset_password_token == token
                          and r.reset_password_expires and r.reset_password_expires > now)

    async def create(self, fields):
        self._check()
        record = PrincipalRecord(
            id=next(self._ids),
            first_name=fields["first_name"],
            last_name=fields["last_name"],
            username=fields["username"],
            email=fields["email"].lower(),
            password_hash=fields["password_hash"],
            verification_token=fields.get("verification_token"),
            verification_token_expires=fields.get("verification_token_expires"),
            external_ref=fields.get("external_ref"),
            created_at=datetime.now(timezone.utc),
        )
        self.records[record.id] = record
        return replace(record)

    async def update_fields(self, user_id, fields):
        self._check()
        record = self.records.get(str(user_id))
        if record is None:
            return None
        for key, value in fields.items():
            setattr(record, key, value)
        return replace(record)

    async def delete(self, user_id):
        self._check()
        return self.records.pop(str(user_id), None) is not None


class FakeCommentStore(_FakeStore, CommentStore):
    def __init__(self, name: StoreName, users: Optional[FakeUserStore] = None):
        super().__init__(name)
        self.users = users
        self.records: Dict[str, CommentRecord] = {}
        # Fixed creation time for the next inserts, when set
        self.now: Optional[datetime] = None

    def _with_author(self, record: CommentRecord) -> CommentRecord:
        record = replace(record)
        owner = self.users.records.get(record.user_id) if self.users and record.user_id else None
        if owner:
            record.author = AuthorRef(owner.id, owner.first_name, owner.last_name, owner.username)
        return record

    def _sorted(self, records):
        ordered = sorted(records, key=lambda r: r.created_at, reverse=True)
        return [self._with_author(r) for r in ordered]

    async def find_by_id(self, comment_id):
        self._check()
        if not self._valid_id(comment_id):
            return None
        record = self.records.get(str(comment_id))
        return self._with_author(record) if record else None

    async def find_by_ref(self, external_ref):
        self._check()
        for record in self.records.values():
            if record.external_ref and record.external_ref == external_ref:
                return self._with_author(record)
        return None

    async def create(self, fields):
        self._check()
        now = self.now or datetime.now(timezone.utc)
        parent_id = fields.get("parent_id")
        record = CommentRecord(
            id=next(self._ids),
            content=fields["content"],
            user_id=str(fields["user_id"]),
            parent_id=str(parent_id) if parent_id is not None else None,
            created_at=now,
            updated_at=now,
            external_ref=fields.get("external_ref"),
            external_user_ref=fields.get("external_user_ref"),
            external_parent_ref=fields.get("external_parent_ref"),
        )
        self.records[record.id] = record
        return self._with_author(record)

    async def update_fields(self, comment_id, fields):
        self._check()
        record = self.records.get(str(comment_id))
        if record is None:
            return None
        for key, value in fields.items():
            setattr(record, key, value)
        record.updated_at = datetime.now(timezone.utc)
        return self._with_author(record)

    async def delete(self, comment_id):
        self._check()
        return self.records.pop(str(comment_id), None) is not None

    async def list_all(self):
        self._check()
        return self._sorted(self.records.values())

    async def list_by_user(self, user_id):
        self._check()
        return self._sorted(
            r for r in self.records.values()
            if r.user_id == str(user_id) or r.external_user_ref == str(user_id)
        )


class FakeClock:
    """Controllable clock for the attempt tracker."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def mongo_users():
    return FakeUserStore(StoreName.MONGO)


@pytest.fixture
def sql_users():
    return FakeUserStore(StoreName.SQL)


@pytest.fixture
def user_stores(mongo_users, sql_users):
    return StorePair(mongo=mongo_users, sql=sql_users)


@pytest.fixture
def mongo_comments(mongo_users):
    return FakeCommentStore(StoreName.MONGO, mongo_users)


@pytest.fixture
def sql_comments(sql_users):
    return FakeCommentStore(StoreName.SQL, sql_users)


@pytest.fixture
def comment_stores(mongo_comments, sql_comments):
    return StorePair(mongo=mongo_comments, sql=sql_comments)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return AttemptTracker(
        max_attempts=5,
        lockout=timedelta(minutes=15),
        window=timedelta(minutes=30),
        clock=clock,
    )


@pytest.fixture
def mailer():
    """Account mailer that always reports delivery."""
    mailer = MagicMock()
    mailer.send = AsyncMock(return_value=True)
    return mailer
