"""
Document store adapters built on motor.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument

from .base import (
    AuthorRef,
    CommentRecord,
    CommentStore,
    PrincipalRecord,
    StoreName,
    TokenKind,
    UserStore,
)

logger = logging.getLogger(__name__)

TOKEN_FIELDS = {
    TokenKind.VERIFICATION: ("verification_token", "verification_token_expires"),
    TokenKind.RESET: ("reset_password_token", "reset_password_expires"),
}

AUTHOR_LOOKUP = [
    {"$lookup": {
        "from": "users",
        "localField": "user_id",
        "foreignField": "_id",
        "as": "author",
    }},
    {"$unwind": {"path": "$author", "preserveNullAndEmptyArrays": True}},
]


def to_object_id(value: Any) -> Optional[ObjectId]:
    """ObjectId for a valid id string, None for anything else."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def _principal_from_doc(doc: Dict[str, Any]) -> PrincipalRecord:
    return PrincipalRecord(
        id=str(doc["_id"]),
        first_name=doc.get("first_name", ""),
        last_name=doc.get("last_name", ""),
        username=doc.get("username", ""),
        email=doc.get("email", ""),
        password_hash=doc.get("password_hash", ""),
        is_verified=bool(doc.get("is_verified", False)),
        verification_token=doc.get("verification_token"),
        verification_token_expires=doc.get("verification_token_expires"),
        reset_password_token=doc.get("reset_password_token"),
        reset_password_expires=doc.get("reset_password_expires"),
        external_ref=doc.get("sql_user_id"),
        created_at=doc.get("created_at"),
    )


def _comment_from_doc(doc: Dict[str, Any]) -> CommentRecord:
    author = None
    author_doc = doc.get("author")
    if isinstance(author_doc, dict):
        author = AuthorRef(
            id=str(author_doc["_id"]),
            first_name=author_doc.get("first_name", ""),
            last_name=author_doc.get("last_name", ""),
            username=author_doc.get("username", ""),
        )

    user_id = doc.get("user_id")
    parent_id = doc.get("parent_id")
    return CommentRecord(
        id=str(doc["_id"]),
        content=doc.get("content", ""),
        user_id=str(user_id) if user_id is not None else None,
        parent_id=str(parent_id) if parent_id is not None else None,
        edited=bool(doc.get("edited", False)),
        created_at=doc.get("created_at"),
        updated_at=doc.get("updated_at"),
        author=author,
    )


class MongoUserStore(UserStore):
    name = StoreName.MONGO

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.users

    async def find_by_email(self, email: str) -> Optional[PrincipalRecord]:
        doc = await self.collection.find_one({"email": email.lower().strip()})
        return _principal_from_doc(doc) if doc else None

    async def find_by_username(self, username: str) -> Optional[PrincipalRecord]:
        doc = await self.collection.find_one({"username": username.strip()})
        return _principal_from_doc(doc) if doc else None

    async def find_by_id(self, user_id: str) -> Optional[PrincipalRecord]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        return _principal_from_doc(doc) if doc else None

    async def find_by_token(self, kind: TokenKind, token: str) -> Optional[PrincipalRecord]:
        token_field, expires_field = TOKEN_FIELDS[kind]
        doc = await self.collection.find_one({
            token_field: token,
            expires_field: {"$gt": datetime.now(timezone.utc)},
        })
        return _principal_from_doc(doc) if doc else None

    async def create(self, fields: Dict[str, Any]) -> PrincipalRecord:
        doc = {
            "first_name": fields["first_name"].strip(),
            "last_name": fields["last_name"].strip(),
            "username": fields["username"].strip(),
            "email": fields["email"].lower().strip(),
            "password_hash": fields["password_hash"],
            "is_verified": False,
            "verification_token": fields.get("verification_token"),
            "verification_token_expires": fields.get("verification_token_expires"),
            "reset_password_token": None,
            "reset_password_expires": None,
            "sql_user_id": fields.get("external_ref"),
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info(f"Created MongoDB user {result.inserted_id}")
        return _principal_from_doc(doc)

    async def update_fields(self, user_id: str, fields: Dict[str, Any]) -> Optional[PrincipalRecord]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        update = dict(fields)
        if "external_ref" in update:
            update["sql_user_id"] = update.pop("external_ref")
        doc = await self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        return _principal_from_doc(doc) if doc else None

    async def delete(self, user_id: str) -> bool:
        oid = to_object_id(user_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count == 1


class MongoCommentStore(CommentStore):
    name = StoreName.MONGO

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.comments

    async def _aggregate(self, match: Dict[str, Any]) -> List[CommentRecord]:
        pipeline = [{"$match": match}, {"$sort": {"created_at": DESCENDING}}] + AUTHOR_LOOKUP
        docs = await self.collection.aggregate(pipeline).to_list(length=None)
        return [_comment_from_doc(doc) for doc in docs]

    async def find_by_id(self, comment_id: str) -> Optional[CommentRecord]:
        oid = to_object_id(comment_id)
        if oid is None:
            return None
        records = await self._aggregate({"_id": oid})
        return records[0] if records else None

    async def find_by_ref(self, external_ref: str) -> Optional[CommentRecord]:
        # Cross-references only point from the relational store to this one
        return None

    async def create(self, fields: Dict[str, Any]) -> CommentRecord:
        now = datetime.now(timezone.utc)
        doc = {
            "content": fields["content"].strip(),
            "user_id": to_object_id(fields["user_id"]),
            "parent_id": to_object_id(fields.get("parent_id")),
            "edited": False,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info(f"Created MongoDB comment {result.inserted_id}")
        return _comment_from_doc(doc)

    async def update_fields(self, comment_id: str, fields: Dict[str, Any]) -> Optional[CommentRecord]:
        oid = to_object_id(comment_id)
        if oid is None:
            return None
        update = dict(fields)
        update.setdefault("updated_at", datetime.now(timezone.utc))
        result = await self.collection.update_one({"_id": oid}, {"$set": update})
        if result.matched_count == 0:
            return None
        return await self.find_by_id(comment_id)

    async def delete(self, comment_id: str) -> bool:
        oid = to_object_id(comment_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count == 1

    async def list_all(self) -> List[CommentRecord]:
        return await self._aggregate({})

    async def list_by_user(self, user_id: str) -> List[CommentRecord]:
        oid = to_object_id(user_id)
        if oid is None:
            return []
        return await self._aggregate({"user_id": oid})
