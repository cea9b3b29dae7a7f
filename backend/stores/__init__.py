"""
Store adapters for the document store (MongoDB) and the relational store
(PostgreSQL), plus the FastAPI dependencies that pair them per request.
"""

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db, get_mongo_db
from .base import (
    StoreName,
    TokenKind,
    ResultKind,
    StoreResult,
    PrincipalRecord,
    AuthorRef,
    CommentRecord,
    UserStore,
    CommentStore,
    StorePair,
)
from .mongo_store import MongoUserStore, MongoCommentStore
from .sql_store import SqlUserStore, SqlCommentStore


def get_user_stores(
    db: AsyncSession = Depends(get_db),
    mongo_db: AsyncIOMotorDatabase = Depends(get_mongo_db),
) -> StorePair:
    return StorePair(mongo=MongoUserStore(mongo_db), sql=SqlUserStore(db))


def get_comment_stores(
    db: AsyncSession = Depends(get_db),
    mongo_db: AsyncIOMotorDatabase = Depends(get_mongo_db),
) -> StorePair:
    return StorePair(mongo=MongoCommentStore(mongo_db), sql=SqlCommentStore(db))


__all__ = [
    'StoreName', 'TokenKind', 'ResultKind', 'StoreResult',
    'PrincipalRecord', 'AuthorRef', 'CommentRecord',
    'UserStore', 'CommentStore', 'StorePair',
    'MongoUserStore', 'MongoCommentStore', 'SqlUserStore', 'SqlCommentStore',
    'get_user_stores', 'get_comment_stores',
]
