from .citation_repository import PostgresCitationRepository
from .note_repository import PostgresNoteRepository
from .paper_repository import PostgresPaperRepository

__all__ = [
    "PostgresCitationRepository",
    "PostgresNoteRepository",
    "PostgresPaperRepository",
]
