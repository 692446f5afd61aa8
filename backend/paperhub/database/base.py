"""
Repository Interface Definitions

Storage-agnostic contracts implemented once per engine:
- relational (SQLAlchemy): paperhub.database.postgres
- document (pymongo): paperhub.database.mongo

Consumers only ever hold these abstract types; the factory decides which
implementation backs them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar, Union

from paperhub.model import (
    Annotation,
    AnnotationCreate,
    AnnotationUpdate,
    Citation,
    CitationCreate,
    CitationGraph,
    CitationStatistics,
    CitationType,
    CitationUpdate,
    Note,
    NoteCreate,
    NoteUpdate,
    PaginatedResult,
    Paper,
    PaperCreate,
    PaperUpdate,
    SearchParams,
)

T = TypeVar("T")
C = TypeVar("C")
U = TypeVar("U")


class BaseRepository(ABC, Generic[T, C, U]):
    """
    Common CRUD contract.

    ``update`` / ``delete`` on an unknown id return None / False instead of
    raising, so callers can tell "not found" apart from "operation failed"
    (which raises RepositoryFailure).
    """

    @abstractmethod
    def create(self, data: Union[C, dict]) -> T:
        pass

    @abstractmethod
    def find_by_id(self, entity_id: str) -> Optional[T]:
        pass

    @abstractmethod
    def find_all(self, limit: Optional[int] = None, offset: int = 0) -> List[T]:
        """
        List entities, newest first.

        Args:
            limit: Maximum number of entities (None = no limit)
            offset: Number of entities to skip
        """
        pass

    @abstractmethod
    def update(self, entity_id: str, data: Union[U, dict]) -> Optional[T]:
        pass

    @abstractmethod
    def delete(self, entity_id: str) -> bool:
        pass

    @abstractmethod
    def count(self) -> int:
        pass


class PaperRepository(BaseRepository[Paper, PaperCreate, PaperUpdate]):
    """
    Paper contract.

    Raises:
        DuplicateEntityError: DOI already used (create / update)
        ValidationError: malformed input
        RepositoryFailure: any storage failure
    """

    @abstractmethod
    def search(self, params: Union[SearchParams, dict]) -> PaginatedResult[Paper]:
        """
        Filtered, paginated search.

        ``query`` matches title, abstract and keywords (case-insensitive
        substring). Sort keys and their tie-breaks:
        - date: publication date, then newest creation
        - title: title, then newest creation
        - relevance: newest creation
        - citations: incoming citation count, then newest creation
        With no sort key the relational engine lists newest creation first
        and the document engine newest publication date first.
        """
        pass

    @abstractmethod
    def find_by_doi(self, doi: str) -> Optional[Paper]:
        pass

    @abstractmethod
    def find_by_author(self, author_name: str) -> List[Paper]:
        """Case-insensitive substring match on any author name."""
        pass

    @abstractmethod
    def find_by_keyword(self, keyword: str) -> List[Paper]:
        """Exact keyword membership."""
        pass

    @abstractmethod
    def find_by_journal(self, journal: str) -> List[Paper]:
        """Case-insensitive substring match on the journal."""
        pass

    @abstractmethod
    def find_by_date_range(self, start: str, end: str) -> List[Paper]:
        """Inclusive publication date range (ISO dates or date objects)."""
        pass

    # ---------- citation graph ----------

    @abstractmethod
    def get_citations(self, paper_id: str) -> List[Citation]:
        """Outgoing citations of a paper."""
        pass

    @abstractmethod
    def get_cited_by(self, paper_id: str) -> List[Paper]:
        """Papers citing this paper."""
        pass

    @abstractmethod
    def add_citation(
        self,
        source_paper_id: str,
        target_paper_id: str,
        context: str = "",
        citation_type: CitationType = CitationType.DIRECT,
        page_number: Optional[int] = None,
    ) -> Citation:
        """
        Raises:
            EntityNotFoundError: source or target paper does not exist
            DuplicateEntityError: the (source, target) pair already exists
        """
        pass

    @abstractmethod
    def remove_citation(self, source_paper_id: str, target_paper_id: str) -> bool:
        pass

    @abstractmethod
    def get_citation_count(self, paper_id: str) -> int:
        """Number of papers citing this paper."""
        pass

    @abstractmethod
    def get_citation_network(self, paper_id: str, depth: int = 1) -> List[Paper]:
        """
        Papers reachable through citations in either direction.

        Breadth-first up to ``depth`` hops; depth 1 is direct citations plus
        direct citers. The paper itself is never included.
        """
        pass


class NoteRepository(BaseRepository[Note, NoteCreate, NoteUpdate]):

    @abstractmethod
    def find_by_paper_id(self, paper_id: str) -> List[Note]:
        pass

    @abstractmethod
    def find_by_tag(self, tag: str) -> List[Note]:
        """Case-insensitive substring match on any tag."""
        pass

    @abstractmethod
    def find_by_content(self, query: str) -> List[Note]:
        """Case-insensitive substring match on the content."""
        pass

    @abstractmethod
    def add_annotation(self, note_id: str, annotation: Union[AnnotationCreate, dict]) -> Note:
        """
        Returns:
            The whole updated note

        Raises:
            EntityNotFoundError: note does not exist
        """
        pass

    @abstractmethod
    def remove_annotation(self, note_id: str, annotation_id: str) -> Note:
        """
        Raises:
            EntityNotFoundError: note or annotation does not exist
        """
        pass

    @abstractmethod
    def update_annotation(
        self,
        note_id: str,
        annotation_id: str,
        annotation: Union[AnnotationUpdate, dict],
    ) -> Note:
        """
        Raises:
            EntityNotFoundError: note or annotation does not exist
        """
        pass

    @abstractmethod
    def get_notes_with_annotations(self, paper_id: str) -> List[Note]:
        pass

    @abstractmethod
    def detach_paper(self, paper_id: str) -> int:
        """Turn every note of ``paper_id`` into a standalone note; returns how many changed."""
        pass


class CitationRepository(BaseRepository[Citation, CitationCreate, CitationUpdate]):

    @abstractmethod
    def find_by_source_paper(self, source_paper_id: str) -> List[Citation]:
        pass

    @abstractmethod
    def find_by_target_paper(self, target_paper_id: str) -> List[Citation]:
        pass

    @abstractmethod
    def find_by_paper_pair(self, source_paper_id: str, target_paper_id: str) -> Optional[Citation]:
        pass

    @abstractmethod
    def get_citation_graph(self, paper_id: str, depth: int = 1) -> CitationGraph:
        """Papers within ``depth`` hops (root included) and the citations between them."""
        pass

    @abstractmethod
    def get_citation_path(self, source_paper_id: str, target_paper_id: str) -> List[Citation]:
        """Shortest chain of outgoing citations from source to target ([] if none)."""
        pass

    @abstractmethod
    def get_citation_statistics(self, paper_id: str) -> CitationStatistics:
        pass


def merge_annotation(existing: Annotation, changes: dict) -> Annotation:
    """Apply an annotation diff without touching unspecified fields."""
    return Annotation.model_validate({**existing.model_dump(), **changes})
