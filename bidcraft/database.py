import logging

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

logger = logging.getLogger(__name__)


class MongoStore:
    """
    Owns the MongoDB client for the lifetime of the process.

    Built once at startup and handed to the app through ``app.state.store``.
    Tests pass in an already constructed client (for example a
    mongomock-motor client) instead of a URI.
    """

    def __init__(self, uri=None, db_name="bidcraft", client=None):
        if client is None:
            client = AsyncIOMotorClient(uri, tz_aware=False)
        self.client = client
        self.db: AsyncIOMotorDatabase = client[db_name]

    @property
    def projects(self):
        return self.db.projects

    @property
    def users(self):
        return self.db.users

    @property
    def mail_logs(self):
        return self.db.mail_logs

    async def connect(self):
        await self.projects.create_index([("id", ASCENDING)], unique=True)
        await self.projects.create_index([("buyer_id", ASCENDING)])
        await self.projects.create_index([("bids.provider_id", ASCENDING)])
        await self.users.create_index([("id", ASCENDING)], unique=True)
        await self.users.create_index([("email", ASCENDING)], unique=True)
        await self.mail_logs.create_index([("id", ASCENDING)], unique=True)
        await self.mail_logs.create_index([("created_at", DESCENDING)])
        logger.info("MongoDB indexes ensured on database %s", self.db.name)

    def close(self):
        self.client.close()


# Dependencies
async def get_mongo_db(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.store.db
