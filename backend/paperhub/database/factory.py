"""
Repository factory and runtime engine switch.

The factory owns the *active* RepositoryContext. A context is an explicit
handle bundling the paper / note / citation repositories with the
connections they are bound to; request handlers resolve it once and keep
using that handle, so an engine switch never changes the engine underneath
a running request. Migration and stats open their own standalone contexts
through ``open_context`` instead of switching the active one.

Engine modes:
- relational: papers, notes and citations on SQLAlchemy
- document:   papers and notes on MongoDB (no citation repository)
- hybrid:     papers on SQLAlchemy, notes on MongoDB (no citation repository)
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, Optional, Union

from pymongo import MongoClient

from paperhub.config import Config, Settings
from paperhub.database.base import CitationRepository, NoteRepository, PaperRepository
from paperhub.database.db.session import RelationalConnection
from paperhub.database.errors import (
    EngineBusyError,
    FactoryNotInitializedError,
    NotImplementedRepositoryError,
    ValidationError,
)
from paperhub.database.mongo import DocumentConnection, MongoNoteRepository, MongoPaperRepository
from paperhub.database.postgres import (
    PostgresCitationRepository,
    PostgresNoteRepository,
    PostgresPaperRepository,
)

logger = logging.getLogger(__name__)


class EngineType(str, Enum):
    RELATIONAL = "relational"
    DOCUMENT = "document"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: Union["EngineType", str]) -> "EngineType":
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        name = _ENGINE_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError as e:
            raise ValidationError(f"Unknown database type: {value!r}") from e


_ENGINE_ALIASES = {
    "postgres": "relational",
    "postgresql": "relational",
    "mongodb": "document",
    "mongo": "document",
}


@dataclass
class RepositoryContext:
    """Repositories of one engine mode plus the connections backing them."""

    engine_type: EngineType
    papers: PaperRepository
    notes: NoteRepository
    citations: Optional[CitationRepository] = None
    relational: Optional[RelationalConnection] = None
    document: Optional[DocumentConnection] = None

    def citation_repository(self) -> CitationRepository:
        if self.citations is None:
            raise NotImplementedRepositoryError(
                f"Citation repository not implemented for {self.engine_type.value} mode"
            )
        return self.citations

    def health(self) -> Dict[str, bool]:
        status = {}
        if self.relational is not None:
            status["relational"] = self.relational.ping()
        if self.document is not None:
            status["document"] = self.document.ping()
        return status

    def close(self) -> None:
        if self.relational is not None:
            self.relational.close()
        if self.document is not None:
            self.document.close()


class EngineGate:
    """
    Admission gate for engine switches and migrations.

    Only one such operation runs at a time; a second caller fails fast
    with EngineBusyError instead of queueing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._running: Optional[str] = None

    @property
    def running(self) -> Optional[str]:
        return self._running

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise EngineBusyError(self._running or "unknown")
        self._running = operation
        try:
            yield
        finally:
            self._running = None
            self._lock.release()


class RepositoryFactory:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        mongo_client_factory: Optional[Callable[..., MongoClient]] = None,
    ):
        self.settings = settings or Config
        self._mongo_client_factory = mongo_client_factory
        self._lock = threading.Lock()
        self._context: Optional[RepositoryContext] = None
        self.gate = EngineGate()

    # =====================================================
    # Lifecycle
    # =====================================================

    def initialize(self, engine_type: Union[EngineType, str, None] = None) -> EngineType:
        """
        Build a context for ``engine_type`` (configured selector when None)
        and make it the active one. The previous context is closed after the
        swap.
        """
        context = self.build_context(engine_type or self.settings.database_type)

        with self._lock:
            previous, self._context = self._context, context
        if previous is not None:
            previous.close()

        logger.info(f"✅ Repository factory initialized: {context.engine_type.value}")
        return context.engine_type

    def switch(self, engine_type: Union[EngineType, str]) -> EngineType:
        """Live engine switch, serialized with migrations."""
        target = EngineType.parse(engine_type)
        with self.gate.hold(f"switch to {target.value}"):
            logger.info(f"🔄 Switching database engine to {target.value}")
            return self.initialize(target)

    def cleanup(self) -> None:
        with self._lock:
            context, self._context = self._context, None
        if context is not None:
            context.close()
            logger.info("🗑️ Repository factory cleaned up")

    # =====================================================
    # Contexts
    # =====================================================

    def build_context(self, engine_type: Union[EngineType, str]) -> RepositoryContext:
        engine = EngineType.parse(engine_type)
        relational = document = None

        try:
            if engine in (EngineType.RELATIONAL, EngineType.HYBRID):
                relational = RelationalConnection(
                    self.settings.postgres.url,
                    echo=self.settings.postgres.echo,
                    pool_pre_ping=self.settings.postgres.pool_pre_ping,
                ).connect()
            if engine in (EngineType.DOCUMENT, EngineType.HYBRID):
                document = DocumentConnection(
                    self.settings.mongodb.uri,
                    self.settings.mongodb.database,
                    server_selection_timeout_ms=self.settings.mongodb.server_selection_timeout_ms,
                    client_factory=self._mongo_client_factory,
                ).connect()
        except Exception:
            if relational is not None:
                relational.close()
            raise

        if engine == EngineType.RELATIONAL:
            return RepositoryContext(
                engine_type=engine,
                papers=PostgresPaperRepository(relational),
                notes=PostgresNoteRepository(relational),
                citations=PostgresCitationRepository(relational),
                relational=relational,
            )
        if engine == EngineType.DOCUMENT:
            return RepositoryContext(
                engine_type=engine,
                papers=MongoPaperRepository(document),
                notes=MongoNoteRepository(document),
                document=document,
            )
        notes = MongoNoteRepository(document)
        return RepositoryContext(
            engine_type=engine,
            # notes live in the other store, so a paper delete detaches them there
            papers=PostgresPaperRepository(relational, detach_notes=notes.detach_paper),
            notes=notes,
            relational=relational,
            document=document,
        )

    @contextmanager
    def open_context(self, engine_type: Union[EngineType, str]) -> Iterator[RepositoryContext]:
        """Standalone context on ``engine_type``; the active one is untouched."""
        context = self.build_context(engine_type)
        try:
            yield context
        finally:
            context.close()

    def context(self) -> RepositoryContext:
        with self._lock:
            context = self._context
        if context is None:
            raise FactoryNotInitializedError()
        return context

    # =====================================================
    # Accessors
    # =====================================================

    def is_initialized(self) -> bool:
        return self._context is not None

    def get_active_engine(self) -> EngineType:
        return self.context().engine_type

    def get_paper_repository(self) -> PaperRepository:
        return self.context().papers

    def get_note_repository(self) -> NoteRepository:
        return self.context().notes

    def get_citation_repository(self) -> CitationRepository:
        return self.context().citation_repository()

    def health(self) -> dict:
        context = self._context
        if context is None:
            return {"initialized": False, "engine": None, "connections": {}}
        return {
            "initialized": True,
            "engine": context.engine_type.value,
            "connections": context.health(),
        }
