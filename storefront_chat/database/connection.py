import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from storefront_chat.config import settings


logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo() -> None:
    global _client, _database
    if _client is not None:
        return
    _client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    _database = _client[settings.MONGODB_DB]
    await ensure_indexes(_database)
    logger.info("Connected to MongoDB database %s", settings.MONGODB_DB)


async def close_mongo_connection() -> None:
    global _client, _database
    if _client is None:
        return
    _client.close()
    _client = None
    _database = None
    logger.info("MongoDB connection closed")


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    from storefront_chat.repositories.conversation_repository import ConversationRepository
    from storefront_chat.repositories.message_repository import MessageRepository

    await ConversationRepository(db).ensure_indexes()
    await MessageRepository(db).ensure_indexes()


def get_database() -> AsyncIOMotorDatabase:
    if _database is None:
        raise RuntimeError("MongoDB is not connected")
    return _database


async def mongo_db_dependency() -> AsyncIOMotorDatabase:
    return get_database()
