from .paper import (
    Author,
    Citation,
    CitationCreate,
    CitationGraph,
    CitationStatistics,
    CitationType,
    CitationUpdate,
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
from .note import (
    Annotation,
    AnnotationCreate,
    AnnotationType,
    AnnotationUpdate,
    Note,
    NoteCreate,
    NoteUpdate,
    Position,
)
from .migration import DatabaseStats, EntityMigrationStats, MigrationResult, MigrationStatus

__all__ = [
    "Annotation",
    "AnnotationCreate",
    "AnnotationType",
    "AnnotationUpdate",
    "Author",
    "Citation",
    "CitationCreate",
    "CitationGraph",
    "CitationStatistics",
    "CitationType",
    "CitationUpdate",
    "DatabaseStats",
    "EntityMigrationStats",
    "MigrationResult",
    "MigrationStatus",
    "Note",
    "NoteCreate",
    "NoteUpdate",
    "PaginatedResult",
    "Pagination",
    "Paper",
    "PaperCreate",
    "PaperUpdate",
    "Position",
    "SearchParams",
    "SortKey",
    "SortOrder",
    "utcnow",
]
