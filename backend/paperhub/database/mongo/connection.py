import logging
from typing import Callable, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from paperhub.database.errors import RepositoryFailure

logger = logging.getLogger(__name__)


class DocumentConnection:
    """
    Live handle on the document engine.

    Owns the MongoClient and exposes the three collections the document
    repositories work on. Indexes are ensured on connect.
    """

    def __init__(
        self,
        uri: str,
        database: str,
        server_selection_timeout_ms: int = 5000,
        client_factory: Optional[Callable[..., MongoClient]] = None,
    ):
        self.uri = uri
        self.database_name = database
        self._timeout_ms = server_selection_timeout_ms
        self._client_factory = client_factory or MongoClient
        self.client: Optional[MongoClient] = None
        self._db: Optional[Database] = None

    def connect(self) -> "DocumentConnection":
        if self.client is not None:
            return self
        try:
            self.client = self._client_factory(self.uri, serverSelectionTimeoutMS=self._timeout_ms)
            self._db = self.client[self.database_name]
            self.ensure_indexes()
        except PyMongoError as e:
            self.close()
            logger.error(f"❌ Document database connection failed: {e}")
            raise RepositoryFailure("connect to document database", e) from e

        logger.info(f"🍃 Document database connected: {self.database_name}")
        return self

    def is_connected(self) -> bool:
        return self.client is not None

    @property
    def db(self) -> Database:
        if self._db is None:
            raise RepositoryFailure("access document database (not connected)")
        return self._db

    @property
    def papers(self) -> Collection:
        return self.db["papers"]

    @property
    def notes(self) -> Collection:
        return self.db["notes"]

    @property
    def citations(self) -> Collection:
        return self.db["citations"]

    def ensure_indexes(self) -> None:
        # papers without a DOI leave the field out, so sparse keeps them apart
        self.papers.create_index([("doi", ASCENDING)], unique=True, sparse=True, name="doi_unique")
        self.papers.create_index([("created_at", DESCENDING)], name="created_at_desc")
        self.papers.create_index([("publication_date", DESCENDING)], name="publication_date_desc")
        self.papers.create_index([("keywords", ASCENDING)], name="keywords")
        self.papers.create_index([("authors.name", ASCENDING)], name="author_names")

        self.notes.create_index([("paper_id", ASCENDING)], name="paper_id")
        self.notes.create_index([("tags", ASCENDING)], name="tags")
        self.notes.create_index([("created_at", DESCENDING)], name="created_at_desc")

        self.citations.create_index(
            [("source_paper_id", ASCENDING), ("target_paper_id", ASCENDING)],
            unique=True,
            name="citation_pair_unique",
        )
        self.citations.create_index([("target_paper_id", ASCENDING)], name="target_paper_id")

    def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            self.client.admin.command("ping")
            return True
        except Exception as e:
            logger.warning(f"⚠️ Document ping failed: {e}")
            return False

    def close(self) -> None:
        if self.client is None:
            return
        self.client.close()
        self.client = None
        self._db = None
        logger.info("🍃 Document database disconnected")
