from .models import AnnotationRow, AuthorRow, Base, CitationRow, NoteRow, PaperAuthorRow, PaperRow
from .session import RelationalConnection, build_engine

__all__ = [
    "AnnotationRow",
    "AuthorRow",
    "Base",
    "CitationRow",
    "NoteRow",
    "PaperAuthorRow",
    "PaperRow",
    "RelationalConnection",
    "build_engine",
]
