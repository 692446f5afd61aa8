from .connection import DocumentConnection
from .note_repository import MongoNoteRepository
from .paper_repository import MongoPaperRepository

__all__ = [
    "DocumentConnection",
    "MongoNoteRepository",
    "MongoPaperRepository",
]
