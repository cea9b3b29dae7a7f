"""
Comment workflows across both stores.

A comment created by a principal with identities in both stores is written
to each store; the relational copy carries ``mongo_comment_id`` pointing at
the document store copy. Updates and deletes follow that link so both
copies change together, and ownership is checked in each store separately.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stores.base import CommentRecord, StoreName, StorePair, StoreResult
from stores.sql_store import to_int_id
from utils.errors import NotFoundOrForbidden, ValidationError
from . import coordinator
from .resolver import CommentAggregator, Resolver, serialize_comment
from .tokens import SessionIdentity

logger = logging.getLogger(__name__)


class CommentRequest(BaseModel):
    """Create/update comment body"""
    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(..., min_length=1)
    parent_id: Optional[str] = Field(None, alias="parentId")

    @field_validator('content')
    @classmethod
    def content_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Comment content is required')
        return v


@dataclass
class LinkedComment:
    """The copies of one comment, as far as they could be located."""

    mongo: Optional[CommentRecord] = None
    sql: Optional[CommentRecord] = None

    def get(self, name: StoreName) -> Optional[CommentRecord]:
        return self.mongo if name is StoreName.MONGO else self.sql


def _owned_by(record: CommentRecord, user_id: Optional[str]) -> bool:
    return bool(user_id) and record.user_id is not None and str(record.user_id) == str(user_id)


class CommentService:
    def __init__(self, comments: StorePair, users: Optional[StorePair] = None):
        self.comments = comments
        self.resolver = Resolver(users, comments)
        self.aggregator = CommentAggregator(comments)

    # ---------- reads ----------

    async def list_comments(self) -> Dict[str, Any]:
        return (await self.aggregator.list_all()).to_dict()

    async def list_user_comments(self, user_id: str) -> Dict[str, Any]:
        return (await self.aggregator.list_by_user(user_id)).to_dict()

    async def get_comment(self, comment_id: str) -> Dict[str, Any]:
        resolved = await self.resolver.find_comment(comment_id)
        if resolved is None:
            raise NotFoundOrForbidden("Comment not found")
        return {"comment": serialize_comment(resolved.record, resolved.source)}

    # ---------- writes ----------

    async def create_comment(self, identity: SessionIdentity, data: CommentRequest) -> Dict[str, Any]:
        parent_id = data.parent_id

        async def create_in_mongo():
            if not identity.mongo_id:
                return StoreResult.absent(StoreName.MONGO, "no_identity")
            return await self.comments.mongo.create({
                "content": data.content,
                "user_id": identity.mongo_id,
                "parent_id": parent_id,
            })

        async def create_in_sql(mongo_result: StoreResult):
            if not identity.sql_id:
                return StoreResult.absent(StoreName.SQL, "no_identity")
            numeric_parent = to_int_id(parent_id)
            return await self.comments.sql.create({
                "content": data.content,
                "user_id": identity.sql_id,
                "parent_id": numeric_parent,
                "external_ref": mongo_result.record.id if mongo_result.ok else None,
                "external_user_ref": identity.mongo_id,
                "external_parent_ref": parent_id if numeric_parent is None else None,
            })

        outcome = await coordinator.run(create_in_mongo, create_in_sql)

        def no_identity():
            return ValidationError("No store identity to create the comment with")

        if not outcome.any_ok:
            outcome.raise_for_status("Comment creation", no_identity)

        source = StoreName.MONGO if outcome.mongo.ok else StoreName.SQL
        payload = {
            "comment": serialize_comment(outcome.record(source), source),
            "creationStatus": outcome.flags,
        }
        outcome.raise_for_status("Comment created", no_identity, **payload)
        return {"message": "Comment created successfully in both databases.", **payload}

    async def _locate(self, comment_id: str) -> LinkedComment:
        """
        Find both copies of a comment from either store's id. Store errors
        leave that copy unlocated; the write attempt will surface them.
        """
        mongo_result = await coordinator.attempt(
            StoreName.MONGO, lambda: self.comments.mongo.find_by_id(comment_id)
        )

        async def find_sql():
            if to_int_id(comment_id) is not None:
                return await self.comments.sql.find_by_id(comment_id)
            return await self.comments.sql.find_by_ref(comment_id)

        sql_result = await coordinator.attempt(StoreName.SQL, find_sql)

        linked = LinkedComment(
            mongo=mongo_result.record if mongo_result.ok else None,
            sql=sql_result.record if sql_result.ok else None,
        )

        if linked.mongo is None and linked.sql is not None and linked.sql.external_ref:
            ref = linked.sql.external_ref
            mongo_result = await coordinator.attempt(
                StoreName.MONGO, lambda: self.comments.mongo.find_by_id(ref)
            )
            if mongo_result.ok:
                linked.mongo = mongo_result.record

        return linked

    def _owner_id(self, identity: SessionIdentity, name: StoreName) -> Optional[str]:
        return identity.mongo_id if name is StoreName.MONGO else identity.sql_id

    async def _write_owned(self, name: StoreName, linked: LinkedComment, identity: SessionIdentity, write):
        record = linked.get(name)
        if record is None:
            return StoreResult.absent(name, "not_found")
        if not _owned_by(record, self._owner_id(identity, name)):
            return StoreResult.absent(name, "not_owner")
        return await write(self.comments.get(name), record)

    async def update_comment(self, identity: SessionIdentity, comment_id: str, data: CommentRequest) -> Dict[str, Any]:
        linked = await self._locate(comment_id)

        async def write(store, record):
            return await store.update_fields(record.id, {"content": data.content, "edited": True})

        outcome = await coordinator.run(
            lambda: self._write_owned(StoreName.MONGO, linked, identity, write),
            lambda _: self._write_owned(StoreName.SQL, linked, identity, write),
        )

        def not_found():
            return NotFoundOrForbidden("Comment not found or you are not authorized to edit it")

        if not outcome.any_ok:
            outcome.raise_for_status("Comment update", not_found)

        source = StoreName.MONGO if outcome.mongo.ok else StoreName.SQL
        payload = {
            "comment": serialize_comment(outcome.record(source), source),
            "updateStatus": outcome.flags,
        }
        outcome.raise_for_status("Comment updated", not_found, **payload)
        return {"message": "Comment updated successfully", **payload}

    async def delete_comment(self, identity: SessionIdentity, comment_id: str) -> Dict[str, Any]:
        linked = await self._locate(comment_id)

        async def write(store, record):
            return await store.delete(record.id)

        outcome = await coordinator.run(
            lambda: self._write_owned(StoreName.MONGO, linked, identity, write),
            lambda _: self._write_owned(StoreName.SQL, linked, identity, write),
        )

        def not_found():
            return NotFoundOrForbidden("Comment not found or you are not authorized to delete it")

        payload = {"deletionStatus": outcome.flags}
        outcome.raise_for_status("Comment deleted", not_found, **payload)
        logger.info(f"Comment {comment_id} deleted from both stores")
        return {"message": "Comment deleted successfully", **payload}
