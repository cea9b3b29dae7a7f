"""
Relational store - Database Models

Users and comments as stored in PostgreSQL. Columns prefixed ``mongo_`` are
one-way cross-references to the matching document store records; they are
provenance only and carry no foreign key.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Index

from .connection import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlUserDB(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(255), index=True)
    verification_token_expires = Column(DateTime(timezone=True))
    reset_password_token = Column(String(255), index=True)
    reset_password_expires = Column(DateTime(timezone=True))
    mongo_user_id = Column(String(24))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "first_name": self.first_name,
            "last_name": self.last_name,
            "username": self.username,
            "email": self.email,
            "password_hash": self.password_hash,
            "is_verified": bool(self.is_verified),
            "verification_token": self.verification_token,
            "verification_token_expires": self.verification_token_expires,
            "reset_password_token": self.reset_password_token,
            "reset_password_expires": self.reset_password_expires,
            "external_ref": self.mongo_user_id,
            "created_at": self.created_at,
        }


class SqlCommentDB(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    content = Column(Text, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    parent_id = Column(Integer, nullable=True)
    mongo_user_id = Column(String(24))
    mongo_comment_id = Column(String(24), index=True)
    mongo_parent_id = Column(String(24))
    # Author snapshot taken at insert time
    first_name = Column(String(255))
    last_name = Column(String(255))
    username = Column(String(255))
    edited = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_comments_user_created", "user_id", "created_at"),
    )
