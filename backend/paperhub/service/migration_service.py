# paperhub/service/migration_service.py

"""
Migration Service - 跨引擎数据迁移

Copies papers, notes and citations from one engine to another:
- duplicates already present in the target are skipped, not copied
- every record is accounted for (migrated + skipped == source count)
  before anything is deleted from the source
- a partial or aborted run leaves the source untouched, so it can
  simply be re-run
"""

from __future__ import annotations

import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

import pydantic

from paperhub.config import MigrationConfig
from paperhub.database.base import BaseRepository
from paperhub.database.errors import DuplicateEntityError, RepositoryError, RepositoryFailure, ValidationError
from paperhub.database.factory import EngineType, RepositoryContext, RepositoryFactory
from paperhub.model import (
    Citation,
    EntityMigrationStats,
    MigrationResult,
    MigrationStatus,
    Note,
    NoteCreate,
    Paper,
    PaperCreate,
    SearchParams,
)

logger = logging.getLogger(__name__)

_FAILED = object()
_SEARCH_PAGE_LIMIT = 1000  # SearchParams upper bound


class MigrationAborted(Exception):
    """Raised inside a run when its cancel event is set."""


class MigrationService:
    def __init__(
        self,
        factory: RepositoryFactory,
        config: Optional[MigrationConfig] = None,
        max_workers: int = 4,
    ):
        self.factory = factory
        self.config = config or factory.settings.migration
        self.max_workers = max_workers

    def migrate(
        self,
        from_engine: Union[EngineType, str],
        to_engine: Union[EngineType, str],
        switch_after: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> MigrationResult:
        """
        Move every paper and note from ``from_engine`` to ``to_engine``.

        The active engine is only changed when ``switch_after`` is set and
        the run completed.

        Raises:
            ValidationError: unknown, hybrid or identical engines
            EngineBusyError: another switch or migration is running
        """
        source, target = self._check_engines(from_engine, to_engine)
        cancel_event = cancel_event or threading.Event()

        with self.factory.gate.hold(f"migration {source.value} -> {target.value}"):
            logger.info(f"🔄 Migration started: {source.value} -> {target.value}")

            executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="migration")
            try:
                with self.factory.open_context(source) as src, self.factory.open_context(target) as dst:
                    run = _MigrationRun(src, dst, self.config, executor, cancel_event)
                    result = run.execute()
            finally:
                # a hung record must not hold the caller
                executor.shutdown(wait=False, cancel_futures=True)

            if switch_after and result.status == MigrationStatus.COMPLETE:
                self.factory.initialize(target)
                logger.info(f"🔄 Active engine switched to {target.value}")

            result.active_engine = (
                self.factory.get_active_engine().value if self.factory.is_initialized() else None
            )

        logger.info(f"✅ Migration finished [{result.status.value}]: {result.message}")
        return result

    @staticmethod
    def _check_engines(from_engine, to_engine) -> Tuple[EngineType, EngineType]:
        source = EngineType.parse(from_engine)
        target = EngineType.parse(to_engine)
        if EngineType.HYBRID in (source, target):
            raise ValidationError("Migration only runs between the relational and document engines")
        if source == target:
            raise ValidationError(f"Source and target engine are both {source.value}")
        return source, target


class _MigrationRun:
    """State of a single migration between two open contexts."""

    def __init__(
        self,
        source: RepositoryContext,
        target: RepositoryContext,
        config: MigrationConfig,
        executor: ThreadPoolExecutor,
        cancel_event: threading.Event,
    ):
        self.source = source
        self.target = target
        self.config = config
        self.executor = executor
        self.cancel_event = cancel_event

        self.papers = EntityMigrationStats()
        self.notes = EntityMigrationStats()
        self.citations_replayed = 0
        self.paper_ids: Dict[str, str] = {}  # source id -> target id
        self.source_paper_ids: Set[str] = set()

    # =====================================================
    # Run
    # =====================================================

    def execute(self) -> MigrationResult:
        try:
            source_papers, source_notes, source_citations = self._read_source()
            self._migrate_papers(source_papers)
            self._replay_citations(source_citations)
            self._migrate_notes(source_notes)
            self._check_cancelled()
        except MigrationAborted:
            logger.warning("⚠️ Migration aborted before reconciliation, source untouched")
            return self._result(MigrationStatus.ABORTED, "Migration aborted, source untouched")

        if not (self.papers.reconciled and self.notes.reconciled):
            logger.warning(
                f"⚠️ Reconciliation failed (papers {self.papers.processed}/{self.papers.source}, "
                f"notes {self.notes.processed}/{self.notes.source}), source preserved"
            )
            return self._result(
                MigrationStatus.PARTIAL,
                f"Partial migration: papers {self.papers.processed}/{self.papers.source}, "
                f"notes {self.notes.processed}/{self.notes.source} accounted for; source preserved",
            )

        # notes first, so deleting a paper never orphans a note we still hold
        for note in source_notes:
            if self._delete(self.source.notes, note.id, f"note {note.id}"):
                self.notes.deleted += 1
        for paper in source_papers:
            if self._delete(self.source.papers, paper.id, f"paper {paper.title!r}"):
                self.papers.deleted += 1

        cleared = self.papers.deleted == len(source_papers) and self.notes.deleted == len(source_notes)
        return self._result(
            MigrationStatus.COMPLETE,
            f"Migrated {self.papers.migrated} papers ({self.papers.skipped} already present) and "
            f"{self.notes.migrated} notes ({self.notes.skipped} already present); "
            + ("source cleared" if cleared else "some source records could not be deleted"),
            source_cleared=cleared,
        )

    def _result(self, status: MigrationStatus, message: str, source_cleared: bool = False) -> MigrationResult:
        self.papers.target = self.target.papers.count()
        self.notes.target = self.target.notes.count()
        return MigrationResult(
            status=status,
            from_engine=self.source.engine_type.value,
            to_engine=self.target.engine_type.value,
            message=message,
            papers=self.papers,
            notes=self.notes,
            citations_replayed=self.citations_replayed,
            source_cleared=source_cleared,
        )

    # =====================================================
    # Source side
    # =====================================================

    def _read_source(self) -> Tuple[List[Paper], List[Note], List[Citation]]:
        self.papers.source = self.source.papers.count()
        self.notes.source = self.source.notes.count()

        papers = self._read_all(self.source.papers)
        notes = self._read_all(self.source.notes)
        if self.papers.source > len(papers) or self.notes.source > len(notes):
            logger.warning(
                f"⚠️ Source holds more than migration.max_records={self.config.max_records} "
                f"records per entity; the rest stays for a later run"
            )

        citations: List[Citation] = []
        for paper in papers:
            citations.extend(self.source.papers.get_citations(paper.id))

        self.source_paper_ids = {p.id for p in papers}
        logger.info(f"📥 Read {len(papers)} papers, {len(notes)} notes, {len(citations)} citations from source")
        return papers, notes, citations

    def _read_all(self, repository: BaseRepository) -> list:
        """Page through a repository, oldest first, deduplicated by id."""
        records: Dict[str, object] = {}
        offset = 0
        while len(records) < self.config.max_records:
            self._check_cancelled()
            limit = min(self.config.batch_size, self.config.max_records - len(records))
            page = repository.find_all(limit=limit, offset=offset)
            for record in page:
                records.setdefault(record.id, record)
            offset += len(page)
            if len(page) < limit:
                break
        # find_all lists newest first
        return list(reversed(list(records.values())))

    # =====================================================
    # Papers
    # =====================================================

    def _migrate_papers(self, papers: List[Paper]) -> None:
        for paper in papers:
            self._check_cancelled()
            outcome = self._attempt(f"paper {paper.title!r}", functools.partial(self._migrate_paper, paper))
            if outcome is _FAILED:
                self.papers.failed += 1
                continue

            created, target_id = outcome
            self.paper_ids[paper.id] = target_id
            if created:
                self.papers.migrated += 1
            else:
                self.papers.skipped += 1

    def _migrate_paper(self, paper: Paper) -> Tuple[bool, str]:
        existing = self._find_duplicate_paper(paper)
        if existing is not None:
            logger.info(f"⏭️ Paper already in target, skipped: {paper.title}")
            return False, existing.id

        created = self.target.papers.create(PaperCreate.from_paper(paper))
        logger.info(f"✅ Paper migrated: {paper.title}")
        return True, created.id

    def _find_duplicate_paper(self, paper: Paper) -> Optional[Paper]:
        if paper.doi:
            match = self.target.papers.find_by_doi(paper.doi)
            if match is not None:
                return match

        title = paper.title.lower()
        page = 1
        while True:
            result = self.target.papers.search(
                SearchParams(query=paper.title, page=page, limit=min(self.config.batch_size, _SEARCH_PAGE_LIMIT))
            )
            for candidate in result.data:
                if candidate.title.lower() == title:
                    return candidate
            if page >= result.pagination.total_pages:
                return None
            page += 1

    # =====================================================
    # Citations
    # =====================================================

    def _replay_citations(self, citations: List[Citation]) -> None:
        for citation in citations:
            self._check_cancelled()
            source_id = self.paper_ids.get(citation.source_paper_id)
            target_id = self.paper_ids.get(citation.target_paper_id)
            if source_id is None or target_id is None or source_id == target_id:
                continue

            outcome = self._attempt(
                f"citation {citation.source_paper_id} -> {citation.target_paper_id}",
                functools.partial(self._replay_citation, citation, source_id, target_id),
            )
            if outcome is True:
                self.citations_replayed += 1

    def _replay_citation(self, citation: Citation, source_id: str, target_id: str) -> bool:
        try:
            self.target.papers.add_citation(
                source_id,
                target_id,
                context=citation.context,
                citation_type=citation.citation_type,
                page_number=citation.page_number,
            )
        except DuplicateEntityError:
            return False
        return True

    # =====================================================
    # Notes
    # =====================================================

    def _migrate_notes(self, notes: List[Note]) -> None:
        for note in notes:
            self._check_cancelled()
            outcome = self._attempt(f"note {note.id}", functools.partial(self._migrate_note, note))
            if outcome is _FAILED:
                self.notes.failed += 1
            elif outcome:
                self.notes.migrated += 1
            else:
                self.notes.skipped += 1

    def _migrate_note(self, note: Note) -> bool:
        paper_id = self._remap_paper_id(note)

        if self._find_duplicate_note(note, paper_id) is not None:
            logger.info(f"⏭️ Note already in target, skipped: {note.id}")
            return False

        payload = NoteCreate.from_note(note)
        payload.paper_id = paper_id
        created = self.target.notes.create(payload)
        logger.info(f"✅ Note migrated: {note.id} -> {created.id}")
        return True

    def _remap_paper_id(self, note: Note) -> Optional[str]:
        if note.paper_id is None:
            return None
        if note.paper_id in self.paper_ids:
            return self.paper_ids[note.paper_id]
        if note.paper_id in self.source_paper_ids:
            raise RepositoryFailure(f"migrate note {note.id}: its paper {note.paper_id} was not migrated")
        logger.warning(f"⚠️ Note {note.id} references missing paper {note.paper_id}, migrated as standalone")
        return None

    def _find_duplicate_note(self, note: Note, paper_id: Optional[str]) -> Optional[Note]:
        if paper_id is not None:
            candidates = self.target.notes.find_by_paper_id(paper_id)
        else:
            candidates = self.target.notes.find_by_content(note.content[: self.config.content_prefix_length])

        tags = sorted(note.tags)
        for candidate in candidates:
            if candidate.content == note.content and sorted(candidate.tags) == tags:
                return candidate
        return None

    # =====================================================
    # Helpers
    # =====================================================

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise MigrationAborted()

    def _attempt(self, label: str, operation: Callable[[], object]) -> object:
        """Run one record operation with a bounded wait; failures are logged, never raised."""
        future = self.executor.submit(operation)
        try:
            return future.result(timeout=self.config.record_timeout_seconds)
        except FuturesTimeout:
            future.cancel()
            logger.error(f"❌ {label} timed out after {self.config.record_timeout_seconds}s")
        except (RepositoryError, pydantic.ValidationError) as e:
            logger.error(f"❌ {label} failed: {e}")
        except Exception:
            logger.exception(f"❌ {label} failed unexpectedly")
        return _FAILED

    def _delete(self, repository: BaseRepository, entity_id: str, label: str) -> bool:
        outcome = self._attempt(f"delete {label}", functools.partial(repository.delete, entity_id))
        if outcome is True:
            logger.info(f"🗑️ Deleted from source: {label}")
            return True
        if outcome is False:
            logger.warning(f"⚠️ Already gone from source: {label}")
        return False
