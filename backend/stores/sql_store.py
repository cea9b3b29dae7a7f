"""
Relational store adapters built on async SQLAlchemy.

Every write commits on its own; on failure the session is rolled back before
the error propagates, so a later call in the same request still has a usable
session.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import SqlUserDB, SqlCommentDB
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

# Record field -> column, where they differ
USER_COLUMNS = {"external_ref": "mongo_user_id"}
COMMENT_COLUMNS = {
    "external_ref": "mongo_comment_id",
    "external_user_ref": "mongo_user_id",
    "external_parent_ref": "mongo_parent_id",
}


def to_int_id(value: Any) -> Optional[int]:
    """Integer primary key for a numeric id, None for anything else."""
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _principal_from_row(row: SqlUserDB) -> PrincipalRecord:
    return PrincipalRecord(**row.to_dict())


def _comment_from_row(row: SqlCommentDB, user: Optional[SqlUserDB] = None) -> CommentRecord:
    author = None
    if user is not None:
        author = AuthorRef(
            id=str(user.id),
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
        )
    elif row.username:
        # Owner row is gone; fall back to the snapshot taken at insert
        author = AuthorRef(
            id=str(row.user_id) if row.user_id is not None else "unknown",
            first_name=row.first_name or "",
            last_name=row.last_name or "",
            username=row.username,
        )

    return CommentRecord(
        id=str(row.id),
        content=row.content,
        user_id=str(row.user_id) if row.user_id is not None else None,
        parent_id=str(row.parent_id) if row.parent_id is not None else None,
        edited=bool(row.edited),
        created_at=row.created_at,
        updated_at=row.updated_at,
        external_ref=row.mongo_comment_id,
        external_user_ref=row.mongo_user_id,
        external_parent_ref=row.mongo_parent_id,
        author=author,
    )


class SqlUserStore(UserStore):
    name = StoreName.SQL

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _one(self, *criteria) -> Optional[PrincipalRecord]:
        result = await self.session.execute(select(SqlUserDB).where(*criteria))
        row = result.scalar_one_or_none()
        return _principal_from_row(row) if row else None

    async def find_by_email(self, email: str) -> Optional[PrincipalRecord]:
        return await self._one(func.lower(SqlUserDB.email) == email.lower().strip())

    async def find_by_username(self, username: str) -> Optional[PrincipalRecord]:
        return await self._one(SqlUserDB.username == username.strip())

    async def find_by_id(self, user_id: str) -> Optional[PrincipalRecord]:
        pk = to_int_id(user_id)
        if pk is None:
            return None
        return await self._one(SqlUserDB.id == pk)

    async def find_by_token(self, kind: TokenKind, token: str) -> Optional[PrincipalRecord]:
        now = datetime.now(timezone.utc)
        if kind is TokenKind.VERIFICATION:
            return await self._one(
                SqlUserDB.verification_token == token,
                SqlUserDB.verification_token_expires > now,
            )
        return await self._one(
            SqlUserDB.reset_password_token == token,
            SqlUserDB.reset_password_expires > now,
        )

    async def create(self, fields: Dict[str, Any]) -> PrincipalRecord:
        row = SqlUserDB(
            first_name=fields["first_name"].strip(),
            last_name=fields["last_name"].strip(),
            username=fields["username"].strip(),
            email=fields["email"].lower().strip(),
            password_hash=fields["password_hash"],
            is_verified=False,
            verification_token=fields.get("verification_token"),
            verification_token_expires=fields.get("verification_token_expires"),
            mongo_user_id=fields.get("external_ref"),
            created_at=datetime.now(timezone.utc),
        )
        try:
            self.session.add(row)
            await self.session.commit()
            await self.session.refresh(row)
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Created PostgreSQL user {row.id}")
        return _principal_from_row(row)

    async def update_fields(self, user_id: str, fields: Dict[str, Any]) -> Optional[PrincipalRecord]:
        pk = to_int_id(user_id)
        if pk is None:
            return None
        try:
            row = await self.session.get(SqlUserDB, pk)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, USER_COLUMNS.get(key, key), value)
            await self.session.commit()
            await self.session.refresh(row)
        except Exception:
            await self.session.rollback()
            raise
        return _principal_from_row(row)

    async def delete(self, user_id: str) -> bool:
        pk = to_int_id(user_id)
        if pk is None:
            return False
        try:
            row = await self.session.get(SqlUserDB, pk)
            if row is None:
                return False
            await self.session.delete(row)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return True


class SqlCommentStore(CommentStore):
    name = StoreName.SQL

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _select(self, *criteria) -> List[CommentRecord]:
        query = (
            select(SqlCommentDB, SqlUserDB)
            .outerjoin(SqlUserDB, SqlCommentDB.user_id == SqlUserDB.id)
            .where(*criteria)
            .order_by(SqlCommentDB.created_at.desc())
        )
        result = await self.session.execute(query)
        return [_comment_from_row(comment, user) for comment, user in result.all()]

    async def find_by_id(self, comment_id: str) -> Optional[CommentRecord]:
        pk = to_int_id(comment_id)
        if pk is None:
            return None
        records = await self._select(SqlCommentDB.id == pk)
        return records[0] if records else None

    async def find_by_ref(self, external_ref: str) -> Optional[CommentRecord]:
        records = await self._select(SqlCommentDB.mongo_comment_id == external_ref)
        return records[0] if records else None

    async def create(self, fields: Dict[str, Any]) -> CommentRecord:
        user_pk = to_int_id(fields["user_id"])
        try:
            owner = await self.session.get(SqlUserDB, user_pk) if user_pk is not None else None
            now = datetime.now(timezone.utc)
            row = SqlCommentDB(
                content=fields["content"].strip(),
                user_id=user_pk,
                parent_id=to_int_id(fields.get("parent_id")),
                mongo_comment_id=fields.get("external_ref"),
                mongo_user_id=fields.get("external_user_ref"),
                mongo_parent_id=fields.get("external_parent_ref"),
                first_name=owner.first_name if owner else None,
                last_name=owner.last_name if owner else None,
                username=owner.username if owner else None,
                edited=False,
                created_at=now,
                updated_at=now,
            )
            self.session.add(row)
            await self.session.commit()
            await self.session.refresh(row)
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Created PostgreSQL comment {row.id}")
        return _comment_from_row(row, owner)

    async def update_fields(self, comment_id: str, fields: Dict[str, Any]) -> Optional[CommentRecord]:
        pk = to_int_id(comment_id)
        if pk is None:
            return None
        try:
            row = await self.session.get(SqlCommentDB, pk)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, COMMENT_COLUMNS.get(key, key), value)
            row.updated_at = datetime.now(timezone.utc)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return await self.find_by_id(comment_id)

    async def delete(self, comment_id: str) -> bool:
        pk = to_int_id(comment_id)
        if pk is None:
            return False
        try:
            row = await self.session.get(SqlCommentDB, pk)
            if row is None:
                return False
            await self.session.delete(row)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return True

    async def list_all(self) -> List[CommentRecord]:
        return await self._select()

    async def list_by_user(self, user_id: str) -> List[CommentRecord]:
        pk = to_int_id(user_id)
        if pk is not None:
            return await self._select(SqlCommentDB.user_id == pk)
        # A document-store user id: rows written on that principal's behalf
        return await self._select(SqlCommentDB.mongo_user_id == user_id)
