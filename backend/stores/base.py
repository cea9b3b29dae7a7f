"""
Store adapter contract shared by the document and relational stores.

Adapters translate between a store's native representation and the plain
records below. They do not catch store errors; the coordinator and the
resolver wrap every call in a StoreResult.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class StoreName(str, Enum):
    MONGO = "mongo"
    SQL = "sql"

    @property
    def label(self) -> str:
        return "MongoDB" if self is StoreName.MONGO else "PostgreSQL"


class TokenKind(str, Enum):
    VERIFICATION = "verification"
    RESET = "reset"


class ResultKind(str, Enum):
    FOUND = "found"
    ABSENT = "absent"
    ERROR = "error"


@dataclass(frozen=True)
class StoreResult:
    """
    Tagged outcome of one operation against one store.

    For reads FOUND carries the record. For writes FOUND means the write was
    applied, ABSENT means it was skipped (``reason`` says why) and ERROR
    means the store raised (``reason`` holds the exception type).
    """

    store: StoreName
    kind: ResultKind
    record: Any = None
    reason: Optional[str] = None

    @classmethod
    def found(cls, store: StoreName, record: Any = None) -> "StoreResult":
        return cls(store, ResultKind.FOUND, record)

    @classmethod
    def absent(cls, store: StoreName, reason: Optional[str] = None) -> "StoreResult":
        return cls(store, ResultKind.ABSENT, None, reason)

    @classmethod
    def failed(cls, store: StoreName, reason: str) -> "StoreResult":
        return cls(store, ResultKind.ERROR, None, reason)

    @property
    def ok(self) -> bool:
        return self.kind is ResultKind.FOUND

    @property
    def is_error(self) -> bool:
        return self.kind is ResultKind.ERROR


@dataclass
class PrincipalRecord:
    id: str
    first_name: str
    last_name: str
    username: str
    email: str
    password_hash: str
    is_verified: bool = False
    verification_token: Optional[str] = None
    verification_token_expires: Optional[datetime] = None
    reset_password_token: Optional[str] = None
    reset_password_expires: Optional[datetime] = None
    # id of the same principal in the other store, when it was known at creation
    external_ref: Optional[str] = None
    created_at: Optional[datetime] = None

    def public_dict(self) -> Dict[str, Any]:
        """Profile fields safe to return to the caller."""
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "username": self.username,
            "email": self.email,
            "isVerified": self.is_verified,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class AuthorRef:
    id: str
    first_name: str
    last_name: str
    username: str


@dataclass
class CommentRecord:
    id: str
    content: str
    user_id: Optional[str]
    parent_id: Optional[str] = None
    edited: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # the same comment in the document store (relational rows only)
    external_ref: Optional[str] = None
    external_user_ref: Optional[str] = None
    external_parent_ref: Optional[str] = None
    author: Optional[AuthorRef] = None


class UserStore(ABC):
    name: StoreName

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[PrincipalRecord]:
        ...

    @abstractmethod
    async def find_by_username(self, username: str) -> Optional[PrincipalRecord]:
        ...

    @abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[PrincipalRecord]:
        ...

    @abstractmethod
    async def find_by_token(self, kind: TokenKind, token: str) -> Optional[PrincipalRecord]:
        """Find the principal holding an unexpired verification or reset token."""

    @abstractmethod
    async def create(self, fields: Dict[str, Any]) -> PrincipalRecord:
        ...

    @abstractmethod
    async def update_fields(self, user_id: str, fields: Dict[str, Any]) -> Optional[PrincipalRecord]:
        """Apply ``fields`` and return the updated record, or None if absent."""

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        ...


class CommentStore(ABC):
    name: StoreName

    @abstractmethod
    async def find_by_id(self, comment_id: str) -> Optional[CommentRecord]:
        ...

    @abstractmethod
    async def find_by_ref(self, external_ref: str) -> Optional[CommentRecord]:
        """Find the copy of a comment created from the other store's record."""

    @abstractmethod
    async def create(self, fields: Dict[str, Any]) -> CommentRecord:
        ...

    @abstractmethod
    async def update_fields(self, comment_id: str, fields: Dict[str, Any]) -> Optional[CommentRecord]:
        ...

    @abstractmethod
    async def delete(self, comment_id: str) -> bool:
        ...

    @abstractmethod
    async def list_all(self) -> List[CommentRecord]:
        ...

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[CommentRecord]:
        ...


@dataclass
class StorePair:
    """The two adapters for one entity, always iterated document store first."""

    mongo: Any
    sql: Any

    def __iter__(self) -> Iterator[Tuple[StoreName, Any]]:
        yield StoreName.MONGO, self.mongo
        yield StoreName.SQL, self.sql

    def get(self, name: StoreName) -> Any:
        return self.mongo if name is StoreName.MONGO else self.sql
