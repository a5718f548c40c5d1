"""MongoDB connection handling.

:class:`Database` owns the single ``AsyncIOMotorClient`` used by the
service.  It is created in the FastAPI lifespan, verified with a ``ping``
so startup fails fast when the server is unreachable, and closed on
shutdown.  There is no migration or schema-versioning logic; the only
setup performed is ensuring the index that backs newest-first listing.
"""

from __future__ import annotations

import logging

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from promptgallery.core.errors import StorageError

logger = logging.getLogger(__name__)

# Fail fast on an unreachable server instead of the 30 s driver default.
SERVER_SELECTION_TIMEOUT_MS = 5000


class Database:
    """Holds the MongoDB client and exposes the post collection.

    Attributes:
        url: Connection string.
        database_name: Name of the database.
        collection_name: Name of the post collection.
    """

    def __init__(self, url: str, database_name: str, collection_name: str) -> None:
        if not url:
            raise StorageError("MONGODB_URL is not configured")
        self.url = url
        self.database_name = database_name
        self.collection_name = collection_name
        self._client: AsyncIOMotorClient | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Open the client, ping the server, and ensure indexes.

        Calling this on an already connected instance is a no-op.

        Raises:
            StorageError: If the server cannot be reached.
        """
        if self._client is not None:
            return

        client = AsyncIOMotorClient(
            self.url,
            serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS,
            tz_aware=True,
        )
        try:
            await client.admin.command("ping")
            await client[self.database_name][self.collection_name].create_index(
                [("created_at", DESCENDING), ("_id", DESCENDING)],
                name="created_at_desc",
            )
        except PyMongoError as e:
            client.close()
            logger.error(f"Could not connect to MongoDB: {e}")
            raise StorageError("Database is unavailable") from e

        self._client = client
        logger.info(f"Connected to MongoDB database '{self.database_name}'")

    def close(self) -> None:
        """Close the client if it is open."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("MongoDB connection closed")

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._client is None:
            raise StorageError("Database is not connected")
        return self._client[self.database_name]

    @property
    def posts(self) -> AsyncIOMotorCollection:
        """The collection of generated-image posts."""
        return self.database[self.collection_name]
