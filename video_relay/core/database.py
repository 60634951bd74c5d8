"""
MongoDB database connection and utilities.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from video_relay.core.config import Settings

logger = logging.getLogger(__name__)


class Database:
    """MongoDB connection manager, created once per application lifespan."""

    def __init__(self, uri: str, db_name: str, *, client=None):
        self.uri = uri
        self.db_name = db_name
        # A pre-built Motor-compatible client is used as-is and left open on disconnect.
        self._external_client = client
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.MONGO_URI, settings.MONGO_DB_NAME)

    async def connect(self) -> AsyncIOMotorDatabase:
        """Connect to MongoDB."""
        self.client = self._external_client or AsyncIOMotorClient(self.uri)
        self.db = self.client[self.db_name]
        logger.info(f"Connected to MongoDB: {self.db_name}")
        return self.db

    async def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client:
            if self.client is not self._external_client:
                self.client.close()
            self.client = None
            self.db = None
            logger.info("Disconnected from MongoDB")

    def get_collection(self, name: str):
        """Get a collection by name."""
        if self.db is None:
            raise RuntimeError("Database is not connected")
        return self.db[name]
