import json
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from paperhub.database.db.models import Base
from paperhub.database.errors import RepositoryFailure

logger = logging.getLogger(__name__)


def _json_serializer(value) -> str:
    # keep non-ASCII readable so keyword/tag LIKE filters match the stored text
    return json.dumps(value, ensure_ascii=False)


def build_engine(url: str, echo: bool = False, pool_pre_ping: bool = True) -> Engine:
    kwargs = {
        "echo": echo,
        "pool_pre_ping": pool_pre_ping,
        "json_serializer": _json_serializer,
    }
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


class RelationalConnection:
    """
    Live handle on the relational engine.

    Owns the SQLAlchemy engine and the session factory the relational
    repositories open their sessions from.
    """

    def __init__(self, url: str, echo: bool = False, pool_pre_ping: bool = True):
        self.url = url
        self._echo = echo
        self._pool_pre_ping = pool_pre_ping
        self.engine = None
        self.SessionLocal = None

    def connect(self) -> "RelationalConnection":
        if self.engine is not None:
            return self
        try:
            self.engine = build_engine(self.url, echo=self._echo, pool_pre_ping=self._pool_pre_ping)
            self.SessionLocal = sessionmaker(
                bind=self.engine,
                autoflush=False,
                expire_on_commit=False,
            )
            # Create any missing tables on first connect
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            self.close()
            logger.error(f"❌ Relational database connection failed: {e}")
            raise RepositoryFailure("connect to relational database", e) from e

        logger.info(f"🐘 Relational database connected: {self.engine.url.render_as_string(hide_password=True)}")
        return self

    def is_connected(self) -> bool:
        return self.engine is not None

    def ping(self) -> bool:
        if self.engine is None:
            return False
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Relational ping failed: {e}")
            return False

    def close(self) -> None:
        if self.engine is None:
            return
        self.engine.dispose()
        self.engine = None
        self.SessionLocal = None
        logger.info("🐘 Relational database disconnected")
