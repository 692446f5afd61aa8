from __future__ import annotations

import functools
import logging
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from bson import ObjectId
from bson.errors import BSONError
from pymongo.errors import PyMongoError

from paperhub.database.errors import RepositoryError, RepositoryFailure, ValidationError
from paperhub.model import Annotation, AnnotationCreate, Author, Citation, Note, Paper

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)

NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


def mongo_errors(operation: str) -> Callable[[F], F]:
    """
    Translate pymongo errors raised by a repository method.

    Values BSON cannot encode (oversized ints, unsupported types) are
    rejected as ValidationError.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except RepositoryError:
                raise
            except (BSONError, OverflowError) as e:
                raise ValidationError(f"Cannot {operation}: {e}") from e
            except PyMongoError as e:
                logger.error(f"❌ Failed to {operation}: {e}")
                raise RepositoryFailure(operation, e) from e

        return wrapper  # type: ignore[return-value]

    return decorator


def object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id; anything that is not a valid ObjectId maps to None."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def object_ids(values) -> List[ObjectId]:
    return [oid for oid in (object_id(v) for v in values) if oid is not None]


def icontains(value: str) -> Dict[str, str]:
    return {"$regex": re.escape(value), "$options": "i"}


def to_datetime(value: date) -> datetime:
    # BSON has no date type
    return datetime(value.year, value.month, value.day)


def to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


# =====================================================
# Document <-> model
# =====================================================

def author_document(author: Author) -> Dict[str, Any]:
    return {"name": author.name, "affiliation": author.affiliation, "email": author.email}


def annotation_document(annotation: AnnotationCreate, annotation_id: Optional[ObjectId] = None) -> Dict[str, Any]:
    return {
        "_id": annotation_id or ObjectId(),
        "type": annotation.type.value,
        "page_number": annotation.page_number,
        "position": annotation.position.model_dump(),
        "content": annotation.content,
        "color": annotation.color,
    }


def doc_to_paper(doc: Dict[str, Any], citations: Optional[List[str]] = None) -> Paper:
    return Paper(
        id=str(doc["_id"]),
        title=doc["title"],
        abstract=doc.get("abstract") or "",
        keywords=list(doc.get("keywords") or []),
        publication_date=to_date(doc["publication_date"]),
        journal=doc.get("journal"),
        conference=doc.get("conference"),
        doi=doc.get("doi"),
        url=doc.get("url"),
        file_path=doc.get("file_path"),
        authors=[Author(**a) for a in doc.get("authors") or []],
        citations=citations or [],
        metadata=dict(doc.get("metadata") or {}),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def doc_to_citation(doc: Dict[str, Any]) -> Citation:
    return Citation(
        id=str(doc["_id"]),
        source_paper_id=doc["source_paper_id"],
        target_paper_id=doc["target_paper_id"],
        context=doc.get("context") or "",
        citation_type=doc.get("citation_type") or "direct",
        page_number=doc.get("page_number"),
        created_at=doc["created_at"],
    )


def doc_to_annotation(doc: Dict[str, Any]) -> Annotation:
    return Annotation(
        id=str(doc["_id"]),
        type=doc["type"],
        page_number=doc["page_number"],
        position=doc["position"],
        content=doc.get("content") or "",
        color=doc.get("color"),
    )


def doc_to_note(doc: Dict[str, Any]) -> Note:
    return Note(
        id=str(doc["_id"]),
        paper_id=doc.get("paper_id"),
        content=doc["content"],
        tags=list(doc.get("tags") or []),
        annotations=[doc_to_annotation(a) for a in doc.get("annotations") or []],
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )
