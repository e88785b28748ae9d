"""
# MongoDB Connection Manager

`DatabaseManager` owns the Motor client for the lifetime of the process: it is
constructed by the service container, connected during application startup and
disconnected at shutdown.

## Features

- **Retry with exponential backoff**: connection attempts are retried (1s, 2s, ...)
  when server selection fails.
- **Timezone-aware documents**: the client is created with `tz_aware=True` so stored
  timestamps come back as UTC-aware datetimes.
- **Index management**: `create_indexes()` creates the indexes the repositories rely on
  for uniqueness, including the sparse unique `open_key` index that allows at most one
  open supporter relationship per pair.
- **Health check**: `health_check()` pings the server for the `/health` endpoint.
"""

import asyncio
import time
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from support_spark.config import Settings
from support_spark.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

MEMBERS_COLLECTION = "members"
RELATIONSHIPS_COLLECTION = "supporter_relationships"
CONVERSATIONS_COLLECTION = "conversations"
MESSAGES_COLLECTION = "messages"

# (collection, keys, options)
INDEX_SPECS: List[Tuple[str, list, dict]] = [
    (MEMBERS_COLLECTION, [("member_id", ASCENDING)], {"unique": True}),
    (MEMBERS_COLLECTION, [("email", ASCENDING)], {"unique": True}),
    (RELATIONSHIPS_COLLECTION, [("relationship_id", ASCENDING)], {"unique": True}),
    (RELATIONSHIPS_COLLECTION, [("open_key", ASCENDING)], {"unique": True, "sparse": True}),
    (RELATIONSHIPS_COLLECTION, [("owner_id", ASCENDING), ("status", ASCENDING)], {}),
    (RELATIONSHIPS_COLLECTION, [("supporter_id", ASCENDING), ("status", ASCENDING)], {}),
    (RELATIONSHIPS_COLLECTION, [("supporter_contact", ASCENDING)], {}),
    (CONVERSATIONS_COLLECTION, [("conversation_id", ASCENDING)], {"unique": True}),
    (CONVERSATIONS_COLLECTION, [("owner_id", ASCENDING), ("created_at", DESCENDING)], {}),
    (MESSAGES_COLLECTION, [("message_id", ASCENDING)], {"unique": True}),
    (MESSAGES_COLLECTION, [("conversation_id", ASCENDING), ("sequence", ASCENDING)], {"unique": True}),
    (
        MESSAGES_COLLECTION,
        [("conversation_id", ASCENDING), ("created_at", ASCENDING), ("sequence", ASCENDING)],
        {},
    ),
]


class DatabaseManager:
    """
    Manages the MongoDB connection and collection access.

    Nothing is connected at construction time; call `connect()` from the application
    lifespan before any repository is used.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._connection_retries = 3

    def _connection_string(self) -> str:
        if self.settings.MONGODB_USERNAME and self.settings.MONGODB_PASSWORD:
            password = self.settings.MONGODB_PASSWORD.get_secret_value()
            db_logger.debug("Using authenticated connection to MongoDB")
            return (
                f"mongodb://{self.settings.MONGODB_USERNAME}:{password}@"
                f"{self.settings.MONGODB_URL.replace('mongodb://', '')}"
            )
        db_logger.debug("Using unauthenticated connection to MongoDB")
        return self.settings.MONGODB_URL

    async def connect(self):
        """
        Connect to MongoDB, retrying with exponential backoff on server selection failures.

        Raises:
            ServerSelectionTimeoutError / ConnectionFailure: After the last failed attempt.
        """
        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")

        for attempt in range(self._connection_retries):
            attempt_start = time.time()
            try:
                db_logger.info("Connection attempt %d/%d to MongoDB", attempt + 1, self._connection_retries)
                self.client = AsyncIOMotorClient(
                    self._connection_string(),
                    serverSelectionTimeoutMS=self.settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    connectTimeoutMS=self.settings.MONGODB_CONNECTION_TIMEOUT,
                    tz_aware=True,
                    maxPoolSize=50,
                    minPoolSize=5,
                )
                self.database = self.client[self.settings.MONGODB_DATABASE]

                ping_start = time.time()
                await self.client.admin.command("ping")
                ping_duration = time.time() - ping_start

                perf_logger.info(
                    "MongoDB connection established in %.3fs (ping: %.3fs)", time.time() - start_time, ping_duration
                )
                db_logger.info("Successfully connected to MongoDB database: %s", self.settings.MONGODB_DATABASE)
                return

            except (ServerSelectionTimeoutError, ConnectionFailure) as e:
                perf_logger.warning(
                    "Connection attempt %d failed after %.3fs", attempt + 1, time.time() - attempt_start
                )
                db_logger.warning(
                    "Failed to connect to MongoDB (attempt %d/%d): %s", attempt + 1, self._connection_retries, e
                )
                if attempt == self._connection_retries - 1:
                    db_logger.error("All connection attempts failed after %.3fs", time.time() - start_time)
                    raise

                backoff_time = 2**attempt
                db_logger.info("Waiting %.1fs before retry (exponential backoff)", backoff_time)
                await asyncio.sleep(backoff_time)

    async def disconnect(self):
        """Close the client if one is open."""
        if self.client is None:
            db_logger.warning("Disconnect called but no active MongoDB connection found")
            return
        start = time.time()
        self.client.close()
        self.client = None
        self.database = None
        perf_logger.info("MongoDB disconnection completed in %.3fs", time.time() - start)
        db_logger.info("Successfully disconnected from MongoDB")

    async def health_check(self) -> bool:
        """Return `True` if the server answers a ping."""
        if self.client is None:
            health_logger.warning("Health check failed: No database client available")
            return False
        start = time.time()
        try:
            await self.client.admin.command("ping")
        except PyMongoError as e:
            health_logger.error("Database health check failed after %.3fs: %s", time.time() - start, e)
            return False
        health_logger.debug("Database health check passed in %.3fs", time.time() - start)
        return True

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Return a collection from the connected database.

        Raises:
            ConnectionError: If `connect()` has not been called.
        """
        if self.database is None:
            db_logger.error("Attempted to get collection '%s' without database connection", collection_name)
            raise ConnectionError("Database not connected. Call connect() first.")
        return self.database[collection_name]

    async def create_indexes(self):
        """Create every index in `INDEX_SPECS`; existing identical indexes are left alone."""
        start = time.time()
        db_logger.info("Starting database index creation process")
        for collection_name, keys, options in INDEX_SPECS:
            await self.get_collection(collection_name).create_index(keys, **options)
            db_logger.debug("Ensured index %s on '%s'", keys, collection_name)
        perf_logger.info("Database index creation completed in %.3fs", time.time() - start)
