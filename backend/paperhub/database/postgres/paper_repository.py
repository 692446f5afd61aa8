from __future__ import annotations

import logging
import uuid
from typing import Callable, Iterable, List, Optional, Set, Union

from sqlalchemy import delete, func, or_, select
from sqlalchemy import update as update_stmt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paperhub.database.base import PaperRepository
from paperhub.database.db.models import AuthorRow, CitationRow, NoteRow, PaperAuthorRow, PaperRow
from paperhub.database.db.session import RelationalConnection
from paperhub.database.errors import (
    DuplicateEntityError,
    EntityNotFoundError,
    RepositoryFailure,
    ValidationError,
    coerce,
)
from paperhub.database.graph import Edge, check_depth, parse_date_range, walk_citations
from paperhub.database.postgres.utils import (
    LIKE_ESCAPE,
    PAPER_LOAD_OPTIONS,
    contains_pattern,
    json_member_pattern,
    json_text,
    row_to_citation,
    row_to_paper,
    sql_errors,
)
from paperhub.model import (
    Author,
    Citation,
    CitationType,
    PaginatedResult,
    Pagination,
    Paper,
    PaperCreate,
    PaperUpdate,
    SearchParams,
    SortKey,
    SortOrder,
    utcnow,
)

# columns that can be left out of an update but never cleared
_REQUIRED_FIELDS = ("title", "abstract", "keywords", "publication_date", "metadata")

logger = logging.getLogger(__name__)


class PostgresPaperRepository(PaperRepository):
    """
    Relational repository for Paper.

    Authors are shared rows matched on (name, email) and linked through
    ``paper_authors``; paper + author writes commit in one transaction.

    Notes kept in the same database are detached inside the delete
    transaction. When notes live elsewhere (hybrid mode) ``detach_notes``
    is called with the deleted paper id after the commit.
    """

    def __init__(
        self,
        connection: RelationalConnection,
        detach_notes: Optional[Callable[[str], object]] = None,
    ):
        self._connection = connection
        self._detach_notes = detach_notes

    @property
    def SessionLocal(self):
        if self._connection.SessionLocal is None:
            raise RepositoryFailure("open relational session (not connected)")
        return self._connection.SessionLocal

    # =====================================================
    # Basic CRUD
    # =====================================================

    @sql_errors("create paper")
    def create(self, data: Union[PaperCreate, dict]) -> Paper:
        payload = coerce(PaperCreate, data)
        paper_id = str(uuid.uuid4())
        now = utcnow()

        with self.SessionLocal() as db:
            if payload.doi and self._doi_taken(db, payload.doi):
                raise DuplicateEntityError("Paper", "doi", payload.doi)

            db.add(
                PaperRow(
                    id=paper_id,
                    title=payload.title,
                    abstract=payload.abstract,
                    keywords=list(payload.keywords),
                    publication_date=payload.publication_date,
                    journal=payload.journal,
                    conference=payload.conference,
                    doi=payload.doi,
                    url=payload.url,
                    file_path=payload.file_path,
                    metadata_=dict(payload.metadata),
                    created_at=now,
                    updated_at=now,
                )
            )
            try:
                db.flush()
                self._link_authors(db, paper_id, payload.authors)
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise self._integrity_error(e, payload.doi) from e

        return self.find_by_id(paper_id)

    @sql_errors("find paper by id")
    def find_by_id(self, entity_id: str) -> Optional[Paper]:
        with self.SessionLocal() as db:
            row = db.execute(
                select(PaperRow).where(PaperRow.id == entity_id).options(*PAPER_LOAD_OPTIONS)
            ).scalar_one_or_none()
            return row_to_paper(row) if row else None

    @sql_errors("list papers")
    def find_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Paper]:
        stmt = (
            select(PaperRow)
            .options(*PAPER_LOAD_OPTIONS)
            .order_by(PaperRow.created_at.desc(), PaperRow.id.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._fetch(stmt)

    @sql_errors("update paper")
    def update(self, entity_id: str, data: Union[PaperUpdate, dict]) -> Optional[Paper]:
        changes = coerce(PaperUpdate, data).changes()

        with self.SessionLocal() as db:
            row = db.get(PaperRow, entity_id)
            if row is None:
                return None

            for field in _REQUIRED_FIELDS:
                if field in changes and changes[field] is None:
                    changes.pop(field)

            authors = changes.pop("authors", None)
            if "metadata" in changes:
                changes["metadata_"] = changes.pop("metadata")
            if "doi" in changes:
                changes["doi"] = changes["doi"] or None
                doi = changes["doi"]
                if doi and doi != row.doi and self._doi_taken(db, doi):
                    raise DuplicateEntityError("Paper", "doi", doi)

            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = utcnow()

            try:
                if authors is not None:
                    # the author list is always rewritten as a whole
                    db.execute(delete(PaperAuthorRow).where(PaperAuthorRow.paper_id == entity_id))
                    self._link_authors(db, entity_id, [Author.model_validate(a) for a in authors])
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise self._integrity_error(e, changes.get("doi")) from e

        return self.find_by_id(entity_id)

    @sql_errors("delete paper")
    def delete(self, entity_id: str) -> bool:
        with self.SessionLocal() as db:
            row = db.get(PaperRow, entity_id)
            if row is None:
                return False

            db.execute(
                update_stmt(NoteRow).where(NoteRow.paper_id == entity_id).values(paper_id=None)
            )
            db.execute(
                delete(CitationRow).where(
                    or_(
                        CitationRow.source_paper_id == entity_id,
                        CitationRow.target_paper_id == entity_id,
                    )
                )
            )
            db.execute(delete(PaperAuthorRow).where(PaperAuthorRow.paper_id == entity_id))
            db.delete(row)
            db.commit()
        if self._detach_notes is not None:
            self._detach_notes(entity_id)
        return True

    @sql_errors("count papers")
    def count(self) -> int:
        with self.SessionLocal() as db:
            return db.scalar(select(func.count()).select_from(PaperRow)) or 0

    # =====================================================
    # Queries
    # =====================================================

    @sql_errors("search papers")
    def search(self, params: Union[SearchParams, dict]) -> PaginatedResult[Paper]:
        params = coerce(SearchParams, params)
        conditions = self._search_conditions(params)

        with self.SessionLocal() as db:
            total = db.scalar(select(func.count()).select_from(PaperRow).where(*conditions)) or 0
            rows = db.execute(
                select(PaperRow)
                .where(*conditions)
                .options(*PAPER_LOAD_OPTIONS)
                .order_by(*self._search_order(params))
                .offset(params.offset)
                .limit(params.limit)
            ).scalars().all()
            data = [row_to_paper(r) for r in rows]

        return PaginatedResult[Paper](
            data=data,
            pagination=Pagination.build(params.page, params.limit, total),
        )

    @sql_errors("find paper by doi")
    def find_by_doi(self, doi: str) -> Optional[Paper]:
        with self.SessionLocal() as db:
            row = db.execute(
                select(PaperRow).where(PaperRow.doi == doi).options(*PAPER_LOAD_OPTIONS)
            ).scalar_one_or_none()
            return row_to_paper(row) if row else None

    @sql_errors("find papers by author")
    def find_by_author(self, author_name: str) -> List[Paper]:
        return self._fetch(
            select(PaperRow)
            .where(PaperRow.id.in_(self._papers_by_author_names([author_name])))
            .options(*PAPER_LOAD_OPTIONS)
            .order_by(PaperRow.created_at.desc(), PaperRow.id.desc())
        )

    @sql_errors("find papers by keyword")
    def find_by_keyword(self, keyword: str) -> List[Paper]:
        # LIKE narrows the candidates, membership is checked exactly
        papers = self._fetch(
            select(PaperRow)
            .where(json_text(PaperRow.keywords).like(json_member_pattern(keyword), escape=LIKE_ESCAPE))
            .options(*PAPER_LOAD_OPTIONS)
            .order_by(PaperRow.created_at.desc(), PaperRow.id.desc())
        )
        return [p for p in papers if keyword in p.keywords]

    @sql_errors("find papers by journal")
    def find_by_journal(self, journal: str) -> List[Paper]:
        return self._fetch(
            select(PaperRow)
            .where(PaperRow.journal.ilike(contains_pattern(journal), escape=LIKE_ESCAPE))
            .options(*PAPER_LOAD_OPTIONS)
            .order_by(PaperRow.created_at.desc(), PaperRow.id.desc())
        )

    @sql_errors("find papers by date range")
    def find_by_date_range(self, start, end) -> List[Paper]:
        start_date, end_date = parse_date_range(start, end)
        return self._fetch(
            select(PaperRow)
            .where(PaperRow.publication_date.between(start_date, end_date))
            .options(*PAPER_LOAD_OPTIONS)
            .order_by(PaperRow.publication_date.desc(), PaperRow.created_at.desc())
        )

    # =====================================================
    # Citation graph
    # =====================================================

    @sql_errors("get citations")
    def get_citations(self, paper_id: str) -> List[Citation]:
        with self.SessionLocal() as db:
            rows = db.execute(
                select(CitationRow)
                .where(CitationRow.source_paper_id == paper_id)
                .order_by(CitationRow.created_at, CitationRow.id)
            ).scalars().all()
            return [row_to_citation(r) for r in rows]

    @sql_errors("get citing papers")
    def get_cited_by(self, paper_id: str) -> List[Paper]:
        citing = select(CitationRow.source_paper_id).where(CitationRow.target_paper_id == paper_id)
        return self._fetch(
            select(PaperRow)
            .where(PaperRow.id.in_(citing))
            .options(*PAPER_LOAD_OPTIONS)
            .order_by(PaperRow.created_at.desc(), PaperRow.id.desc())
        )

    @sql_errors("add citation")
    def add_citation(
        self,
        source_paper_id: str,
        target_paper_id: str,
        context: str = "",
        citation_type: CitationType = CitationType.DIRECT,
        page_number: Optional[int] = None,
    ) -> Citation:
        if source_paper_id == target_paper_id:
            raise ValidationError("A paper cannot cite itself")

        with self.SessionLocal() as db:
            for paper_id in (source_paper_id, target_paper_id):
                if db.get(PaperRow, paper_id) is None:
                    raise EntityNotFoundError("Paper", paper_id)

            if self._citation_exists(db, source_paper_id, target_paper_id):
                raise DuplicateEntityError("Citation", "pair", f"{source_paper_id} -> {target_paper_id}")

            row = CitationRow(
                id=str(uuid.uuid4()),
                source_paper_id=source_paper_id,
                target_paper_id=target_paper_id,
                context=context or "",
                citation_type=CitationType(citation_type).value,
                page_number=page_number,
                created_at=utcnow(),
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise DuplicateEntityError(
                    "Citation", "pair", f"{source_paper_id} -> {target_paper_id}"
                ) from e
            return row_to_citation(row)

    @sql_errors("remove citation")
    def remove_citation(self, source_paper_id: str, target_paper_id: str) -> bool:
        with self.SessionLocal() as db:
            result = db.execute(
                delete(CitationRow).where(
                    CitationRow.source_paper_id == source_paper_id,
                    CitationRow.target_paper_id == target_paper_id,
                )
            )
            db.commit()
            return result.rowcount > 0

    @sql_errors("count citations")
    def get_citation_count(self, paper_id: str) -> int:
        with self.SessionLocal() as db:
            return db.scalar(
                select(func.count())
                .select_from(CitationRow)
                .where(CitationRow.target_paper_id == paper_id)
            ) or 0

    @sql_errors("get citation network")
    def get_citation_network(self, paper_id: str, depth: int = 1) -> List[Paper]:
        check_depth(depth)
        with self.SessionLocal() as db:
            reached = walk_citations(paper_id, depth, lambda frontier: self._edges_touching(db, frontier))
            if not reached:
                return []
            rows = db.execute(
                select(PaperRow)
                .where(PaperRow.id.in_(list(reached)))
                .options(*PAPER_LOAD_OPTIONS)
                .order_by(PaperRow.created_at.desc(), PaperRow.id.desc())
            ).scalars().all()
            return [row_to_paper(r) for r in rows]

    # =====================================================
    # Internal helpers
    # =====================================================

    def _fetch(self, stmt) -> List[Paper]:
        with self.SessionLocal() as db:
            return [row_to_paper(r) for r in db.execute(stmt).scalars().all()]

    @staticmethod
    def _doi_taken(db: Session, doi: str) -> bool:
        return db.scalar(select(PaperRow.id).where(PaperRow.doi == doi)) is not None

    @staticmethod
    def _citation_exists(db: Session, source_paper_id: str, target_paper_id: str) -> bool:
        return db.scalar(
            select(CitationRow.id).where(
                CitationRow.source_paper_id == source_paper_id,
                CitationRow.target_paper_id == target_paper_id,
            )
        ) is not None

    @staticmethod
    def _integrity_error(e: IntegrityError, doi: Optional[str]):
        if doi:
            return DuplicateEntityError("Paper", "doi", doi)
        logger.error(f"❌ Failed to write paper: {e}")
        return RepositoryFailure("write paper", e)

    @staticmethod
    def _link_authors(db: Session, paper_id: str, authors: Iterable[Author]) -> None:
        """Find-or-create each author by (name, email) and link it in input order."""
        linked: Set[str] = set()
        for position, author in enumerate(authors):
            row = db.execute(
                select(AuthorRow)
                .where(AuthorRow.name == author.name, AuthorRow.email == author.email)
                .order_by(AuthorRow.created_at)
                .limit(1)
            ).scalar_one_or_none()

            if row is None:
                now = utcnow()
                row = AuthorRow(
                    id=str(uuid.uuid4()),
                    name=author.name,
                    affiliation=author.affiliation,
                    email=author.email,
                    created_at=now,
                    updated_at=now,
                )
                db.add(row)
                db.flush()

            if row.id in linked:
                raise ValidationError(f"Author {author.name!r} is listed more than once")
            linked.add(row.id)

            db.add(PaperAuthorRow(paper_id=paper_id, author_id=row.id, position=position))
        db.flush()

    @staticmethod
    def _papers_by_author_names(names: List[str]):
        return (
            select(PaperAuthorRow.paper_id)
            .join(AuthorRow, AuthorRow.id == PaperAuthorRow.author_id)
            .where(or_(*[AuthorRow.name.ilike(contains_pattern(n), escape=LIKE_ESCAPE) for n in names]))
        )

    @staticmethod
    def _edges_touching(db: Session, frontier: Set[str]) -> List[Edge]:
        # one query per direction, ids deduplicated by the walk
        outgoing = db.execute(
            select(CitationRow.source_paper_id, CitationRow.target_paper_id)
            .where(CitationRow.source_paper_id.in_(list(frontier)))
        ).all()
        incoming = db.execute(
            select(CitationRow.source_paper_id, CitationRow.target_paper_id)
            .where(CitationRow.target_paper_id.in_(list(frontier)))
        ).all()
        return [(s, t) for s, t in outgoing] + [(s, t) for s, t in incoming]

    def _search_conditions(self, params: SearchParams) -> list:
        conditions = []

        if params.query:
            pattern = contains_pattern(params.query)
            conditions.append(
                or_(
                    PaperRow.title.ilike(pattern, escape=LIKE_ESCAPE),
                    PaperRow.abstract.ilike(pattern, escape=LIKE_ESCAPE),
                    json_text(PaperRow.keywords).ilike(pattern, escape=LIKE_ESCAPE),
                )
            )
        if params.authors:
            conditions.append(PaperRow.id.in_(self._papers_by_author_names(params.authors)))
        if params.keywords:
            conditions.append(
                or_(
                    *[
                        json_text(PaperRow.keywords).like(json_member_pattern(k), escape=LIKE_ESCAPE)
                        for k in params.keywords
                    ]
                )
            )
        if params.journal:
            conditions.append(PaperRow.journal.ilike(contains_pattern(params.journal), escape=LIKE_ESCAPE))
        if params.conference:
            conditions.append(
                PaperRow.conference.ilike(contains_pattern(params.conference), escape=LIKE_ESCAPE)
            )
        if params.date_from:
            conditions.append(PaperRow.publication_date >= params.date_from)
        if params.date_to:
            conditions.append(PaperRow.publication_date <= params.date_to)

        return conditions

    @staticmethod
    def _search_order(params: SearchParams) -> list:
        newest = [PaperRow.created_at.desc(), PaperRow.id.desc()]
        if params.sort_by is None:
            return newest

        ascending = params.direction() == SortOrder.ASC

        def directed(column):
            return column.asc() if ascending else column.desc()

        if params.sort_by == SortKey.DATE:
            return [directed(PaperRow.publication_date)] + newest
        if params.sort_by == SortKey.TITLE:
            return [directed(PaperRow.title)] + newest
        if params.sort_by == SortKey.CITATIONS:
            incoming = (
                select(func.count(CitationRow.id))
                .where(CitationRow.target_paper_id == PaperRow.id)
                .correlate(PaperRow)
                .scalar_subquery()
            )
            return [directed(incoming)] + newest
        # relevance: no ranking model, creation order stands in
        return [directed(PaperRow.created_at), directed(PaperRow.id)]
