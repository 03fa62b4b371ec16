"""
MongoDB Database Connection Module
"""
import logging
from motor.motor_asyncio import AsyncIOMotorClient
from typing import Optional
from app.config import MONGODB_URI, MONGODB_DATABASE

logger = logging.getLogger(__name__)


class Database:
    """
    MongoDB database connection manager using Motor (async driver).
    """

    def __init__(self, connection_string: Optional[str] = None, database_name: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            connection_string: MongoDB connection string. If not provided,
                              reads MONGODB_URI from the app configuration.
            database_name: Database to use, defaults to MONGODB_DATABASE.
        """
        self.connection_string = connection_string or MONGODB_URI
        if not self.connection_string:
            raise ValueError("MONGODB_URI environment variable is required")
        self.client: Optional[AsyncIOMotorClient] = None
        self.db = None
        self.database_name = database_name or MONGODB_DATABASE

    async def connect(self) -> bool:
        """
        Establish connection to MongoDB.

        Returns:
            True if connected, False otherwise
        """
        try:
            self.client = AsyncIOMotorClient(self.connection_string)
            self.db = self.client[self.database_name]

            # Verify connection
            await self.client.admin.command('ping')
            logger.info(f"Connected to MongoDB database: {self.database_name}")

            await self._create_indexes()

            return True
        except Exception as e:
            logger.error(f"MongoDB connection failed: {e}")
            return False

    async def _create_indexes(self):
        """
        Create necessary indexes for optimal query performance.
        """
        try:
            conversations = self.db.conversations
            await conversations.create_index("id", unique=True)
            await conversations.create_index([("user_id", 1), ("created_at", -1)])

            await self.db.user_plans.create_index("user_id", unique=True)
            await self.db.usage_events.create_index([("user_id", 1), ("created_at", -1)])

            logger.info("MongoDB indexes created")
        except Exception as e:
            logger.warning(f"Index creation warning: {e}")

    async def disconnect(self):
        """
        Close MongoDB connection.
        """
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    @property
    def is_connected(self) -> bool:
        return self.db is not None

    def get_collection(self, collection_name: str):
        """
        Get a collection from the database.

        Args:
            collection_name: Name of the collection

        Returns:
            MongoDB collection object
        """
        if self.db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.db[collection_name]

    @property
    def conversations(self):
        """Get conversations collection."""
        return self.get_collection("conversations")

    @property
    def user_plans(self):
        """Get user plans collection."""
        return self.get_collection("user_plans")

    @property
    def usage_events(self):
        """Get usage events collection."""
        return self.get_collection("usage_events")
