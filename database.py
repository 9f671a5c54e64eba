"""
Document store

Owns the single MongoDB connection used by the API.
- Primary: real MongoDB via MONGO_URI + DB_NAME
- Fallback: Mongita (embedded MongoDB-compatible) when no connection string is configured
"""

import logging
from typing import Optional

from pymongo import MongoClient
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

POSTS = "posts"


class DatabaseNotConnected(RuntimeError):
    """Raised when the database is used before connect() completed"""


class DocumentStore:
    def __init__(self, url: Optional[str], name: str, client=None):
        self.url = url
        self.name = name
        self._client = client
        self._db = None

    def connect(self):
        if self._client is None:
            if self.url:
                self._client = MongoClient(self.url, serverSelectionTimeoutMS=5000)
                self._client.admin.command("ping")  # ensure reachable now
            else:
                from mongita import MongitaClientDisk

                logger.warning("MONGO_URI not set, using embedded Mongita storage")
                self._client = MongitaClientDisk()
        self._db = self._client[self.name]
        logger.info("Connected to database %r", self.name)
        return self._db

    def close(self):
        close = getattr(self._client, "close", None)  # Mongita clients may not have close()
        if close is not None:
            close()
            logger.info("Database connection closed")
        self._client = None
        self._db = None

    @property
    def connected(self) -> bool:
        return self._db is not None

    @property
    def db(self):
        if self._db is None:
            raise DatabaseNotConnected("Database not connected")
        return self._db

    @property
    def posts(self):
        return self.db[POSTS]


def connect_or_exit(store: DocumentStore):
    """Connect at startup; a failure here is fatal, there is no retry"""
    try:
        return store.connect()
    except PyMongoError as e:
        logger.critical("Failed to connect to MongoDB: %s", e)
        raise SystemExit(1)
