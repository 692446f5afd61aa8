from __future__ import annotations

import functools
import json
import logging
from typing import Callable, TypeVar

from sqlalchemy import String, cast
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from paperhub.database.db.models import AnnotationRow, CitationRow, NoteRow, PaperAuthorRow, PaperRow
from paperhub.database.errors import RepositoryError, RepositoryFailure, ValidationError
from paperhub.model import Annotation, Author, Citation, Note, Paper

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)

LIKE_ESCAPE = "\\"


def sql_errors(operation: str) -> Callable[[F], F]:
    """Translate SQLAlchemy errors raised by a repository method."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except RepositoryError:
                raise
            except OverflowError as e:
                # raised by the driver while binding parameters, outside SQLAlchemyError
                raise ValidationError(f"Cannot {operation}: {e}") from e
            except SQLAlchemyError as e:
                logger.error(f"❌ Failed to {operation}: {e}")
                raise RepositoryFailure(operation, e) from e

        return wrapper  # type: ignore[return-value]

    return decorator


def like_escape(value: str) -> str:
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def contains_pattern(value: str) -> str:
    return f"%{like_escape(value)}%"


def json_text(column):
    """JSON column as text, for LIKE based prefilters on list columns."""
    return cast(column, String)


def json_member_pattern(value: str) -> str:
    """LIKE pattern matching one exact string element of a serialized JSON list."""
    return contains_pattern(json.dumps(value, ensure_ascii=False))


PAPER_LOAD_OPTIONS = (
    selectinload(PaperRow.author_links).joinedload(PaperAuthorRow.author),
    selectinload(PaperRow.outgoing_citations),
)

NOTE_LOAD_OPTIONS = (selectinload(NoteRow.annotations),)


# =====================================================
# Row -> model
# =====================================================

def row_to_paper(row: PaperRow) -> Paper:
    return Paper(
        id=row.id,
        title=row.title,
        abstract=row.abstract or "",
        keywords=list(row.keywords or []),
        publication_date=row.publication_date,
        journal=row.journal,
        conference=row.conference,
        doi=row.doi,
        url=row.url,
        file_path=row.file_path,
        authors=[
            Author(
                id=link.author.id,
                name=link.author.name,
                affiliation=link.author.affiliation,
                email=link.author.email,
            )
            for link in row.author_links
        ],
        citations=[c.target_paper_id for c in row.outgoing_citations],
        metadata=dict(row.metadata_ or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def row_to_citation(row: CitationRow) -> Citation:
    return Citation(
        id=row.id,
        source_paper_id=row.source_paper_id,
        target_paper_id=row.target_paper_id,
        context=row.context or "",
        citation_type=row.citation_type,
        page_number=row.page_number,
        created_at=row.created_at,
    )


def row_to_annotation(row: AnnotationRow) -> Annotation:
    return Annotation(
        id=row.id,
        type=row.type,
        page_number=row.page_number,
        position=row.position,
        content=row.content or "",
        color=row.color,
    )


def row_to_note(row: NoteRow) -> Note:
    return Note(
        id=row.id,
        paper_id=row.paper_id,
        content=row.content,
        tags=list(row.tags or []),
        annotations=[row_to_annotation(a) for a in row.annotations],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
