from __future__ import annotations

import uuid
from typing import Iterable, List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy import update as update_stmt

from paperhub.database.base import NoteRepository, merge_annotation
from paperhub.database.db.models import AnnotationRow, NoteRow, PaperRow
from paperhub.database.db.session import RelationalConnection
from paperhub.database.errors import EntityNotFoundError, RepositoryFailure, coerce
from paperhub.database.postgres.utils import (
    LIKE_ESCAPE,
    NOTE_LOAD_OPTIONS,
    contains_pattern,
    json_text,
    row_to_annotation,
    row_to_note,
    sql_errors,
)
from paperhub.model import (
    AnnotationCreate,
    AnnotationUpdate,
    Note,
    NoteCreate,
    NoteUpdate,
    utcnow,
)


def _annotation_row(annotation: AnnotationCreate, index: int) -> AnnotationRow:
    return AnnotationRow(
        id=str(uuid.uuid4()),
        position_index=index,
        type=annotation.type.value,
        page_number=annotation.page_number,
        position=annotation.position.model_dump(),
        content=annotation.content,
        color=annotation.color,
    )


class PostgresNoteRepository(NoteRepository):
    """Relational repository for Note; annotations live in their own table."""

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

    @sql_errors("create note")
    def create(self, data: Union[NoteCreate, dict]) -> Note:
        payload = coerce(NoteCreate, data)
        note_id = str(uuid.uuid4())
        now = utcnow()

        with self.SessionLocal() as db:
            if payload.paper_id is not None and db.get(PaperRow, payload.paper_id) is None:
                raise EntityNotFoundError("Paper", payload.paper_id)

            row = NoteRow(
                id=note_id,
                paper_id=payload.paper_id,
                content=payload.content,
                tags=list(payload.tags),
                created_at=now,
                updated_at=now,
            )
            row.annotations = self._annotation_rows(payload.annotations)
            db.add(row)
            db.commit()

        return self.find_by_id(note_id)

    @sql_errors("find note by id")
    def find_by_id(self, entity_id: str) -> Optional[Note]:
        with self.SessionLocal() as db:
            row = self._load(db, entity_id)
            return row_to_note(row) if row else None

    @sql_errors("list notes")
    def find_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Note]:
        stmt = self._newest_first(select(NoteRow)).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._fetch(stmt)

    @sql_errors("update note")
    def update(self, entity_id: str, data: Union[NoteUpdate, dict]) -> Optional[Note]:
        changes = coerce(NoteUpdate, data).changes()

        with self.SessionLocal() as db:
            row = self._load(db, entity_id)
            if row is None:
                return None

            if changes.get("content") is not None:
                row.content = changes["content"]
            if changes.get("tags") is not None:
                row.tags = list(changes["tags"])
            if changes.get("annotations") is not None:
                annotations = [AnnotationCreate.model_validate(a) for a in changes["annotations"]]
                row.annotations = self._annotation_rows(annotations)
            row.updated_at = utcnow()
            db.commit()

        return self.find_by_id(entity_id)

    @sql_errors("delete note")
    def delete(self, entity_id: str) -> bool:
        with self.SessionLocal() as db:
            row = db.get(NoteRow, entity_id)
            if row is None:
                return False
            db.execute(delete(AnnotationRow).where(AnnotationRow.note_id == entity_id))
            db.delete(row)
            db.commit()
        return True

    @sql_errors("count notes")
    def count(self) -> int:
        with self.SessionLocal() as db:
            return db.scalar(select(func.count()).select_from(NoteRow)) or 0

    # =====================================================
    # Queries
    # =====================================================

    @sql_errors("find notes by paper")
    def find_by_paper_id(self, paper_id: str) -> List[Note]:
        return self._fetch(self._newest_first(select(NoteRow).where(NoteRow.paper_id == paper_id)))

    @sql_errors("find notes by tag")
    def find_by_tag(self, tag: str) -> List[Note]:
        notes = self._fetch(
            self._newest_first(
                select(NoteRow).where(json_text(NoteRow.tags).ilike(contains_pattern(tag), escape=LIKE_ESCAPE))
            )
        )
        # the prefilter also matches across tag boundaries
        needle = tag.lower()
        return [n for n in notes if any(needle in t.lower() for t in n.tags)]

    @sql_errors("search notes")
    def find_by_content(self, query: str) -> List[Note]:
        return self._fetch(
            self._newest_first(
                select(NoteRow).where(NoteRow.content.ilike(contains_pattern(query), escape=LIKE_ESCAPE))
            )
        )

    @sql_errors("list annotated notes")
    def get_notes_with_annotations(self, paper_id: str) -> List[Note]:
        annotated = select(AnnotationRow.note_id)
        return self._fetch(
            self._newest_first(
                select(NoteRow).where(NoteRow.paper_id == paper_id, NoteRow.id.in_(annotated))
            )
        )

    @sql_errors("detach notes from paper")
    def detach_paper(self, paper_id: str) -> int:
        with self.SessionLocal() as db:
            result = db.execute(
                update_stmt(NoteRow).where(NoteRow.paper_id == paper_id).values(paper_id=None, updated_at=utcnow())
            )
            db.commit()
            return result.rowcount

    # =====================================================
    # Annotations
    # =====================================================

    @sql_errors("add annotation")
    def add_annotation(self, note_id: str, annotation: Union[AnnotationCreate, dict]) -> Note:
        payload = coerce(AnnotationCreate, annotation)

        with self.SessionLocal() as db:
            row = self._require(db, note_id)
            row.annotations.append(_annotation_row(payload, len(row.annotations)))
            row.updated_at = utcnow()
            db.commit()

        return self.find_by_id(note_id)

    @sql_errors("remove annotation")
    def remove_annotation(self, note_id: str, annotation_id: str) -> Note:
        with self.SessionLocal() as db:
            row = self._require(db, note_id)
            target = self._require_annotation(row, annotation_id)
            row.annotations.remove(target)
            for index, remaining in enumerate(row.annotations):
                remaining.position_index = index
            row.updated_at = utcnow()
            db.commit()

        return self.find_by_id(note_id)

    @sql_errors("update annotation")
    def update_annotation(
        self,
        note_id: str,
        annotation_id: str,
        annotation: Union[AnnotationUpdate, dict],
    ) -> Note:
        changes = coerce(AnnotationUpdate, annotation).changes()

        with self.SessionLocal() as db:
            row = self._require(db, note_id)
            target = self._require_annotation(row, annotation_id)

            merged = merge_annotation(row_to_annotation(target), changes)
            target.type = merged.type.value
            target.page_number = merged.page_number
            target.position = merged.position.model_dump()
            target.content = merged.content
            target.color = merged.color
            row.updated_at = utcnow()
            db.commit()

        return self.find_by_id(note_id)

    # =====================================================
    # Internal helpers
    # =====================================================

    def _fetch(self, stmt) -> List[Note]:
        with self.SessionLocal() as db:
            return [row_to_note(r) for r in db.execute(stmt.options(*NOTE_LOAD_OPTIONS)).scalars().all()]

    @staticmethod
    def _newest_first(stmt):
        return stmt.order_by(NoteRow.created_at.desc(), NoteRow.id.desc())

    @staticmethod
    def _load(db, note_id: str) -> Optional[NoteRow]:
        return db.execute(
            select(NoteRow).where(NoteRow.id == note_id).options(*NOTE_LOAD_OPTIONS)
        ).scalar_one_or_none()

    def _require(self, db, note_id: str) -> NoteRow:
        row = self._load(db, note_id)
        if row is None:
            raise EntityNotFoundError("Note", note_id)
        return row

    @staticmethod
    def _require_annotation(row: NoteRow, annotation_id: str) -> AnnotationRow:
        for annotation in row.annotations:
            if annotation.id == annotation_id:
                return annotation
        raise EntityNotFoundError("Annotation", annotation_id)

    @staticmethod
    def _annotation_rows(annotations: Iterable[AnnotationCreate]) -> List[AnnotationRow]:
        return [_annotation_row(a, i) for i, a in enumerate(annotations)]
