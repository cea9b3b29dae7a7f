"""
Unit Tests for the document store adapters

Tests:
- ObjectId parsing (invalid ids are absent, never queried)
- Document to record mapping, including the relational cross-reference
- Unexpired-token filtering
- Comment author lookup

Run with: pytest tests/test_mongo_store.py -v
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from stores.base import TokenKind
from stores.mongo_store import MongoCommentStore, MongoUserStore, to_object_id

USER_OID = ObjectId("65a1f0c2e4b0a1b2c3d4e5f6")
COMMENT_OID = ObjectId("65a1f0c2e4b0a1b2c3d4e5f7")
CREATED = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def user_doc(**overrides):
    doc = {
        "_id": USER_OID,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "username": "ada",
        "email": "ada@example.com",
        "password_hash": "hash",
        "is_verified": False,
        "sql_user_id": "4",
        "created_at": CREATED,
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def mock_db():
    """Mock motor database"""
    db = MagicMock()
    db.users.find_one = AsyncMock(return_value=None)
    db.users.insert_one = AsyncMock()
    db.users.find_one_and_update = AsyncMock(return_value=None)
    db.users.delete_one = AsyncMock()
    db.comments.insert_one = AsyncMock()
    db.comments.update_one = AsyncMock()
    db.comments.delete_one = AsyncMock()
    db.comments.aggregate.return_value.to_list = AsyncMock(return_value=[])
    return db


@pytest.mark.parametrize("value,expected", [
    (str(USER_OID), USER_OID),
    (USER_OID, USER_OID),
    ("4", None),
    ("not-an-object-id", None),
    (None, None),
    (4, None),
])
def test_to_object_id(value, expected):
    assert to_object_id(value) == expected


class TestMongoUserStore:

    @pytest.mark.asyncio
    async def test_invalid_id_is_absent_without_query(self, mock_db):
        store = MongoUserStore(mock_db)

        assert await store.find_by_id("4") is None
        assert await store.update_fields("4", {"username": "x"}) is None
        assert await store.delete("4") is False
        mock_db.users.find_one.assert_not_awaited()
        mock_db.users.find_one_and_update.assert_not_awaited()
        mock_db.users.delete_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_find_by_id_maps_document(self, mock_db):
        mock_db.users.find_one.return_value = user_doc()

        record = await MongoUserStore(mock_db).find_by_id(str(USER_OID))

        assert record.id == str(USER_OID)
        assert record.external_ref == "4"
        assert record.username == "ada"
        assert mock_db.users.find_one.await_args.args[0] == {"_id": USER_OID}

    @pytest.mark.asyncio
    async def test_email_lookup_is_normalised(self, mock_db):
        await MongoUserStore(mock_db).find_by_email("  Ada@Example.com ")
        assert mock_db.users.find_one.await_args.args[0] == {"email": "ada@example.com"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind,token_field,expires_field", [
        (TokenKind.VERIFICATION, "verification_token", "verification_token_expires"),
        (TokenKind.RESET, "reset_password_token", "reset_password_expires"),
    ])
    async def test_token_lookup_requires_unexpired_token(self, mock_db, kind, token_field, expires_field):
        before = datetime.now(timezone.utc)

        assert await MongoUserStore(mock_db).find_by_token(kind, "abc123") is None

        query = mock_db.users.find_one.await_args.args[0]
        assert query[token_field] == "abc123"
        assert before <= query[expires_field]["$gt"] <= datetime.now(timezone.utc)

    @pytest.mark.asyncio
    async def test_update_maps_cross_reference_field(self, mock_db):
        mock_db.users.find_one_and_update.return_value = user_doc(sql_user_id="7")

        record = await MongoUserStore(mock_db).update_fields(str(USER_OID), {"external_ref": "7"})

        update = mock_db.users.find_one_and_update.await_args.args[1]
        assert update == {"$set": {"sql_user_id": "7"}}
        assert record.external_ref == "7"

    @pytest.mark.asyncio
    async def test_create_normalises_and_links(self, mock_db):
        mock_db.users.insert_one.return_value = MagicMock(inserted_id=USER_OID)

        record = await MongoUserStore(mock_db).create({
            "first_name": " Ada ", "last_name": "Lovelace", "username": "ada",
            "email": "ADA@Example.com", "password_hash": "hash", "external_ref": None,
        })

        doc = mock_db.users.insert_one.await_args.args[0]
        assert doc["email"] == "ada@example.com"
        assert doc["is_verified"] is False
        assert record.id == str(USER_OID)
        assert record.first_name == "Ada"


class TestMongoCommentStore:

    @pytest.mark.asyncio
    async def test_invalid_ids_are_absent_without_query(self, mock_db):
        store = MongoCommentStore(mock_db)

        assert await store.find_by_id("9") is None
        assert await store.list_by_user("4") == []
        assert await store.update_fields("9", {"content": "x"}) is None
        assert await store.delete("9") is False
        mock_db.comments.aggregate.assert_not_called()
        mock_db.comments.update_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_find_by_ref_is_always_absent(self, mock_db):
        assert await MongoCommentStore(mock_db).find_by_ref(str(COMMENT_OID)) is None

    @pytest.mark.asyncio
    async def test_author_joined_from_users(self, mock_db):
        mock_db.comments.aggregate.return_value.to_list.return_value = [{
            "_id": COMMENT_OID,
            "content": "hello",
            "user_id": USER_OID,
            "parent_id": None,
            "created_at": CREATED,
            "author": user_doc(),
        }]

        record = await MongoCommentStore(mock_db).find_by_id(str(COMMENT_OID))

        assert record.user_id == str(USER_OID)
        assert record.author.username == "ada"
        pipeline = mock_db.comments.aggregate.call_args.args[0]
        assert pipeline[0] == {"$match": {"_id": COMMENT_OID}}

    @pytest.mark.asyncio
    async def test_missing_author_is_left_empty(self, mock_db):
        mock_db.comments.aggregate.return_value.to_list.return_value = [{
            "_id": COMMENT_OID, "content": "orphan", "user_id": USER_OID, "created_at": CREATED,
        }]

        records = await MongoCommentStore(mock_db).list_by_user(str(USER_OID))

        assert records[0].author is None
        pipeline = mock_db.comments.aggregate.call_args.args[0]
        assert pipeline[0] == {"$match": {"user_id": USER_OID}}

    @pytest.mark.asyncio
    async def test_create_stores_object_ids(self, mock_db):
        mock_db.comments.insert_one.return_value = MagicMock(inserted_id=COMMENT_OID)

        record = await MongoCommentStore(mock_db).create({
            "content": " hi ", "user_id": str(USER_OID), "parent_id": "12",
        })

        doc = mock_db.comments.insert_one.await_args.args[0]
        assert doc["user_id"] == USER_OID
        assert doc["parent_id"] is None
        assert doc["content"] == "hi"
        assert record.id == str(COMMENT_OID)
