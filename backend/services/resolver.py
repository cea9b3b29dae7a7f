"""
Cross-Store Identity Resolver and Comment Aggregator

Single lookups ask the document store first and fall back to the relational
store only when the document store has nothing. Listings always ask both
stores and merge the results into one newest-first list.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from stores.base import CommentRecord, PrincipalRecord, StoreName, StorePair, StoreResult
from utils.errors import TotalStoreFailure
from .coordinator import attempt
from .tokens import SessionIdentity

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = {"firstName": "Unknown", "lastName": "User", "username": "unknown"}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class Resolved:
    """A record found in one store, tagged with where it came from."""

    source: StoreName
    record: Any


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return _as_utc(value).isoformat() if value else None


def serialize_comment(record: CommentRecord, source: StoreName) -> Dict[str, Any]:
    """Common response shape for a comment from either store."""
    if record.author is not None:
        author = {
            "id": record.author.id,
            "firstName": record.author.first_name,
            "lastName": record.author.last_name,
            "username": record.author.username,
        }
    else:
        author = {"id": record.user_id or "unknown", **UNKNOWN_AUTHOR}

    return {
        "id": record.id,
        "content": record.content,
        "userId": record.user_id,
        "parentId": record.parent_id or record.external_parent_ref,
        "edited": record.edited,
        "createdAt": _isoformat(record.created_at),
        "updatedAt": _isoformat(record.updated_at),
        "author": author,
        "source": source.value,
    }


def merge_listings(mongo_items: List[CommentRecord], sql_items: List[CommentRecord]) -> List[Dict[str, Any]]:
    """
    Concatenate document then relational items, drop relational copies of
    listed document comments and sort newest first. The sort is stable, so equal timestamps keep
    the document store ahead of the relational store.
    """
    mongo_ids = {item.id for item in mongo_items}
    tagged = [(item, StoreName.MONGO) for item in mongo_items]
    tagged += [
        (item, StoreName.SQL)
        for item in sql_items
        if not (item.external_ref and item.external_ref in mongo_ids)
    ]
    tagged.sort(key=lambda pair: _as_utc(pair[0].created_at), reverse=True)
    return [serialize_comment(item, source) for item, source in tagged]


class Resolver:
    """Locate a principal or a comment across both stores."""

    def __init__(self, users: StorePair, comments: Optional[StorePair] = None):
        self.users = users
        self.comments = comments

    async def _first(self, pair: StorePair, lookups: Dict[StoreName, Callable[[Any], Awaitable[Any]]]) -> Optional[Resolved]:
        results: List[StoreResult] = []
        for name, store in pair:
            lookup = lookups.get(name)
            if lookup is None:
                continue
            result = await attempt(name, lambda: lookup(store))
            if result.ok:
                return Resolved(name, result.record)
            results.append(result)

        if results and all(r.is_error for r in results):
            raise TotalStoreFailure("Lookup failed in both stores")
        return None

    async def find_user_by_email(self, email: str) -> Optional[Resolved]:
        lookup = lambda store: store.find_by_email(email)  # noqa: E731
        return await self._first(self.users, {StoreName.MONGO: lookup, StoreName.SQL: lookup})

    async def find_user_by_username(self, username: str) -> Optional[Resolved]:
        lookup = lambda store: store.find_by_username(username)  # noqa: E731
        return await self._first(self.users, {StoreName.MONGO: lookup, StoreName.SQL: lookup})

    async def find_user_by_id(self, user_id: str) -> Optional[Resolved]:
        lookup = lambda store: store.find_by_id(user_id)  # noqa: E731
        return await self._first(self.users, {StoreName.MONGO: lookup, StoreName.SQL: lookup})

    async def user_for_identity(self, identity: SessionIdentity) -> Optional[Resolved]:
        """Resolve the principal behind a verified session token."""
        lookups = {}
        if identity.mongo_id:
            lookups[StoreName.MONGO] = lambda store: store.find_by_id(identity.mongo_id)
        if identity.sql_id:
            lookups[StoreName.SQL] = lambda store: store.find_by_id(identity.sql_id)
        return await self._first(self.users, lookups)

    async def candidates(
        self, identifier: str, by_email: bool
    ) -> Dict[StoreName, Optional[PrincipalRecord]]:
        """
        The principal's record in each store, looked up by email or by
        username as the caller chose. A store that fails is reported as
        having no candidate.
        """
        found: Dict[StoreName, Optional[PrincipalRecord]] = {}
        for name, store in self.users:
            if by_email:
                result = await attempt(name, lambda: store.find_by_email(identifier))
            else:
                result = await attempt(name, lambda: store.find_by_username(identifier))
            found[name] = result.record if result.ok else None
        return found

    async def find_comment(self, comment_id: str) -> Optional[Resolved]:
        """Document store by id, then relational store by id or by document id reference."""
        async def sql_lookup(store):
            return await store.find_by_id(comment_id) or await store.find_by_ref(comment_id)

        return await self._first(self.comments, {
            StoreName.MONGO: lambda store: store.find_by_id(comment_id),
            StoreName.SQL: sql_lookup,
        })


@dataclass
class Listing:
    items: List[Dict[str, Any]]
    sources: Dict[str, bool]

    def to_dict(self) -> Dict[str, Any]:
        return {"count": len(self.items), "comments": self.items, "sources": self.sources}


class CommentAggregator:
    """Merge comment listings from both stores."""

    def __init__(self, comments: StorePair):
        self.comments = comments

    async def _collect(self, fetch: Callable[[Any], Awaitable[List[CommentRecord]]]) -> Listing:
        results: Dict[StoreName, StoreResult] = {}
        for name, store in self.comments:
            results[name] = await attempt(name, lambda: fetch(store))

        if all(r.is_error for r in results.values()):
            raise TotalStoreFailure("Could not load comments from either store")

        def records(name: StoreName) -> List[CommentRecord]:
            result = results[name]
            return list(result.record) if result.ok else []

        sources = {name.value: not results[name].is_error for name in results}
        items = merge_listings(records(StoreName.MONGO), records(StoreName.SQL))
        return Listing(items=items, sources=sources)

    async def list_all(self) -> Listing:
        return await self._collect(lambda store: store.list_all())

    async def list_by_user(self, user_id: str) -> Listing:
        return await self._collect(lambda store: store.list_by_user(user_id))
