import logging

import motor.motor_asyncio

from config import settings

logger = logging.getLogger(__name__)

MONGO_URL = settings.mongo_url or "mongodb://localhost:27017"
if not settings.mongo_url:
    logger.warning("MONGO_URL is not set, falling back to %s", MONGO_URL)

client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_URL)
db = client[settings.mongo_db_name]


async def ensure_indexes(database) -> None:
    """Create the indexes the core relies on for lookups and uniqueness."""
    await database.books.create_index("ownerId")
    await database.books.create_index([("requestedByUserId", 1), ("borrowRequestStatus", 1)])
    await database.books.create_index([("borrowedByUserId", 1), ("borrowRequestStatus", 1)])
    # One session per unordered pair of users
    await database.chat_sessions.create_index("participantKey", unique=True)
    await database.chat_sessions.create_index([("participantIds", 1), ("lastMessageTimestamp", -1)])
    await database.chat_messages.create_index([("sessionId", 1), ("timestamp", 1)])
    await database.notifications.create_index([("userId", 1), ("timestamp", -1)])
