from __future__ import annotations

import uuid
from typing import List, Optional, Set, Union

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from paperhub.database.base import CitationRepository
from paperhub.database.db.models import CitationRow, PaperRow
from paperhub.database.db.session import RelationalConnection
from paperhub.database.errors import (
    DuplicateEntityError,
    EntityNotFoundError,
    RepositoryFailure,
    ValidationError,
    coerce,
)
from paperhub.database.graph import Edge, shortest_path, walk_citations
from paperhub.database.postgres.utils import PAPER_LOAD_OPTIONS, row_to_citation, row_to_paper, sql_errors
from paperhub.model import (
    Citation,
    CitationCreate,
    CitationGraph,
    CitationStatistics,
    CitationUpdate,
    utcnow,
)


class PostgresCitationRepository(CitationRepository):
    """Citations as first-class rows; only the relational engine has one."""

    def __init__(self, connection: RelationalConnection):
        self._connection = connection

    @property
    def SessionLocal(self):
        if self._connection.SessionLocal is None:
            raise RepositoryFailure("open relational session (not connected)")
        return self._connection.SessionLocal

    # =====================================================
    # Basic CRUD
    # =====================================================

    @sql_errors("create citation")
    def create(self, data: Union[CitationCreate, dict]) -> Citation:
        payload = coerce(CitationCreate, data)
        if payload.source_paper_id == payload.target_paper_id:
            raise ValidationError("A paper cannot cite itself")
        pair = f"{payload.source_paper_id} -> {payload.target_paper_id}"

        with self.SessionLocal() as db:
            for paper_id in (payload.source_paper_id, payload.target_paper_id):
                if db.get(PaperRow, paper_id) is None:
                    raise EntityNotFoundError("Paper", paper_id)

            row = CitationRow(
                id=str(uuid.uuid4()),
                source_paper_id=payload.source_paper_id,
                target_paper_id=payload.target_paper_id,
                context=payload.context,
                citation_type=payload.citation_type.value,
                page_number=payload.page_number,
                created_at=utcnow(),
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise DuplicateEntityError("Citation", "pair", pair) from e
            return row_to_citation(row)

    @sql_errors("find citation by id")
    def find_by_id(self, entity_id: str) -> Optional[Citation]:
        with self.SessionLocal() as db:
            row = db.get(CitationRow, entity_id)
            return row_to_citation(row) if row else None

    @sql_errors("list citations")
    def find_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Citation]:
        stmt = select(CitationRow).order_by(CitationRow.created_at.desc(), CitationRow.id.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._fetch(stmt)

    @sql_errors("update citation")
    def update(self, entity_id: str, data: Union[CitationUpdate, dict]) -> Optional[Citation]:
        changes = coerce(CitationUpdate, data).changes()

        with self.SessionLocal() as db:
            row = db.get(CitationRow, entity_id)
            if row is None:
                return None
            if changes.get("context") is not None:
                row.context = changes["context"]
            if changes.get("citation_type") is not None:
                row.citation_type = changes["citation_type"].value
            if "page_number" in changes:
                row.page_number = changes["page_number"]
            db.commit()
            return row_to_citation(row)

    @sql_errors("delete citation")
    def delete(self, entity_id: str) -> bool:
        with self.SessionLocal() as db:
            row = db.get(CitationRow, entity_id)
            if row is None:
                return False
            db.delete(row)
            db.commit()
        return True

    @sql_errors("count citations")
    def count(self) -> int:
        with self.SessionLocal() as db:
            return db.scalar(select(func.count()).select_from(CitationRow)) or 0

    # =====================================================
    # Queries
    # =====================================================

    @sql_errors("find citations by source")
    def find_by_source_paper(self, source_paper_id: str) -> List[Citation]:
        return self._fetch(
            select(CitationRow)
            .where(CitationRow.source_paper_id == source_paper_id)
            .order_by(CitationRow.created_at, CitationRow.id)
        )

    @sql_errors("find citations by target")
    def find_by_target_paper(self, target_paper_id: str) -> List[Citation]:
        return self._fetch(
            select(CitationRow)
            .where(CitationRow.target_paper_id == target_paper_id)
            .order_by(CitationRow.created_at, CitationRow.id)
        )

    @sql_errors("find citation by pair")
    def find_by_paper_pair(self, source_paper_id: str, target_paper_id: str) -> Optional[Citation]:
        with self.SessionLocal() as db:
            row = db.execute(
                select(CitationRow).where(
                    CitationRow.source_paper_id == source_paper_id,
                    CitationRow.target_paper_id == target_paper_id,
                )
            ).scalar_one_or_none()
            return row_to_citation(row) if row else None

    @sql_errors("build citation graph")
    def get_citation_graph(self, paper_id: str, depth: int = 1) -> CitationGraph:
        with self.SessionLocal() as db:
            if db.get(PaperRow, paper_id) is None:
                raise EntityNotFoundError("Paper", paper_id)

            node_ids = walk_citations(paper_id, depth, lambda frontier: self._edges(db, frontier))
            node_ids.add(paper_id)

            papers = db.execute(
                select(PaperRow)
                .where(PaperRow.id.in_(list(node_ids)))
                .options(*PAPER_LOAD_OPTIONS)
                .order_by(PaperRow.created_at, PaperRow.id)
            ).scalars().all()
            edges = db.execute(
                select(CitationRow)
                .where(
                    CitationRow.source_paper_id.in_(list(node_ids)),
                    CitationRow.target_paper_id.in_(list(node_ids)),
                )
                .order_by(CitationRow.created_at, CitationRow.id)
            ).scalars().all()

            return CitationGraph(
                nodes=[row_to_paper(p) for p in papers],
                edges=[row_to_citation(c) for c in edges],
            )

    @sql_errors("find citation path")
    def get_citation_path(self, source_paper_id: str, target_paper_id: str) -> List[Citation]:
        with self.SessionLocal() as db:
            hops = shortest_path(
                source_paper_id,
                target_paper_id,
                lambda frontier: self._edges(db, frontier, incoming=False),
            )
            path = []
            for source, target in hops:
                row = db.execute(
                    select(CitationRow).where(
                        CitationRow.source_paper_id == source,
                        CitationRow.target_paper_id == target,
                    )
                ).scalar_one()
                path.append(row_to_citation(row))
            return path

    @sql_errors("compute citation statistics")
    def get_citation_statistics(self, paper_id: str) -> CitationStatistics:
        with self.SessionLocal() as db:
            incoming = db.scalar(
                select(func.count()).select_from(CitationRow).where(CitationRow.target_paper_id == paper_id)
            ) or 0
            outgoing = db.scalar(
                select(func.count()).select_from(CitationRow).where(CitationRow.source_paper_id == paper_id)
            ) or 0
        return CitationStatistics(incoming=incoming, outgoing=outgoing, total=incoming + outgoing)

    # =====================================================
    # Internal helpers
    # =====================================================

    def _fetch(self, stmt) -> List[Citation]:
        with self.SessionLocal() as db:
            return [row_to_citation(r) for r in db.execute(stmt).scalars().all()]

    @staticmethod
    def _edges(db, frontier: Set[str], incoming: bool = True) -> List[Edge]:
        condition = CitationRow.source_paper_id.in_(list(frontier))
        if incoming:
            condition = or_(condition, CitationRow.target_paper_id.in_(list(frontier)))
        rows = db.execute(
            select(CitationRow.source_paper_id, CitationRow.target_paper_id)
            .where(condition)
            .order_by(CitationRow.created_at, CitationRow.id)
        ).all()
        return [(s, t) for s, t in rows]
