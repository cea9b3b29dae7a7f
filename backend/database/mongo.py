"""
Document store connection.

The motor client is created at startup by init_mongo() and shared by every
request; get_mongo_db() is the FastAPI dependency handing out the database.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from config import get_settings

logger = logging.getLogger(__name__)

mongo_client: Optional[AsyncIOMotorClient] = None


def _create_client() -> AsyncIOMotorClient:
    settings = get_settings()
    return AsyncIOMotorClient(
        settings.MONGO_URL,
        serverSelectionTimeoutMS=settings.MONGO_TIMEOUT_MS,
        tz_aware=True,
    )


async def init_mongo() -> AsyncIOMotorDatabase:
    """Connect, ping and make sure the unique indexes exist."""
    global mongo_client

    if mongo_client is None:
        mongo_client = _create_client()

    db = mongo_client[get_settings().DB_NAME]
    await mongo_client.admin.command("ping")
    logger.info("MongoDB connection successful")

    await db.users.create_index([("email", ASCENDING)], unique=True)
    await db.users.create_index([("username", ASCENDING)], unique=True)
    await db.comments.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    logger.info("MongoDB indexes ensured")

    return db


def get_mongo_db() -> AsyncIOMotorDatabase:
    """Dependency to get the document store database"""
    global mongo_client

    if mongo_client is None:
        # Lazily created so a store outage at startup does not prevent serving
        mongo_client = _create_client()
    return mongo_client[get_settings().DB_NAME]


async def ping_mongo() -> bool:
    db = get_mongo_db()
    await db.client.admin.command("ping")
    return True


def close_mongo():
    global mongo_client

    if mongo_client is not None:
        mongo_client.close()
        mongo_client = None
