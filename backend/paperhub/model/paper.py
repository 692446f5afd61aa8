from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what both drivers hand back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Author(BaseModel):
    """
    Paper author.

    Identity differs between engines:
    - relational: authors are rows shared across papers, matched on
      (name, email); ``id`` is the shared row id
    - document: authors are embedded copies per paper; ``id`` is None
    """

    id: Optional[str] = None
    name: str = Field(min_length=1)
    affiliation: Optional[str] = None
    email: Optional[str] = None

    model_config = {
        "str_strip_whitespace": True,
    }


class CitationType(str, Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"
    SUPPORTIVE = "supportive"
    CRITICAL = "critical"
    BACKGROUND = "background"


class Paper(BaseModel):
    """
    Paper 数据模型
    - engine independent shape returned by every PaperRepository
    """

    id: str

    title: str
    abstract: str = ""
    keywords: List[str] = Field(default_factory=list)
    publication_date: date

    journal: Optional[str] = None
    conference: Optional[str] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None

    authors: List[Author] = Field(default_factory=list)
    citations: List[str] = Field(default_factory=list)  # outgoing target ids
    metadata: Dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {
        "str_strip_whitespace": True,
        "extra": "ignore",
    }


class PaperCreate(BaseModel):
    title: str = Field(min_length=1)
    abstract: str = ""
    keywords: List[str] = Field(default_factory=list)
    publication_date: date
    journal: Optional[str] = None
    conference: Optional[str] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None
    authors: List[Author] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "str_strip_whitespace": True,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _blank_doi_is_none(self) -> "PaperCreate":
        if self.doi is not None and not self.doi:
            self.doi = None
        return self

    @classmethod
    def from_paper(cls, paper: Paper) -> PaperCreate:
        """Copy every field except identity and timestamps."""
        return cls(
            title=paper.title,
            abstract=paper.abstract,
            keywords=list(paper.keywords),
            publication_date=paper.publication_date,
            journal=paper.journal,
            conference=paper.conference,
            doi=paper.doi,
            url=paper.url,
            file_path=paper.file_path,
            authors=[
                Author(name=a.name, affiliation=a.affiliation, email=a.email)
                for a in paper.authors
            ],
            metadata=dict(paper.metadata),
        )


class PaperUpdate(BaseModel):
    """
    Partial paper update. Only fields explicitly set by the caller are
    applied; ``authors``, when given, replaces the whole author list.
    """

    title: Optional[str] = Field(default=None, min_length=1)
    abstract: Optional[str] = None
    keywords: Optional[List[str]] = None
    publication_date: Optional[date] = None
    journal: Optional[str] = None
    conference: Optional[str] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None
    authors: Optional[List[Author]] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = {
        "str_strip_whitespace": True,
        "extra": "ignore",
    }

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class Citation(BaseModel):
    id: str
    source_paper_id: str
    target_paper_id: str
    context: str = ""
    citation_type: CitationType = CitationType.DIRECT
    page_number: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class CitationCreate(BaseModel):
    source_paper_id: str = Field(min_length=1)
    target_paper_id: str = Field(min_length=1)
    context: str = ""
    citation_type: CitationType = CitationType.DIRECT
    page_number: Optional[int] = Field(default=None, ge=0)


class CitationUpdate(BaseModel):
    context: Optional[str] = None
    citation_type: Optional[CitationType] = None
    page_number: Optional[int] = Field(default=None, ge=0)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CitationGraph(BaseModel):
    nodes: List[Paper] = Field(default_factory=list)
    edges: List[Citation] = Field(default_factory=list)


class CitationStatistics(BaseModel):
    incoming: int
    outgoing: int
    total: int


# =====================================================
# Search
# =====================================================

class SortKey(str, Enum):
    DATE = "date"
    TITLE = "title"
    RELEVANCE = "relevance"
    CITATIONS = "citations"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SearchParams(BaseModel):
    query: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    journal: Optional[str] = None
    conference: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=1000)

    # None -> engine default (see PaperRepository.search)
    sort_by: Optional[SortKey] = None
    sort_order: Optional[SortOrder] = None

    model_config = {
        "str_strip_whitespace": True,
    }

    @model_validator(mode="after")
    def _check_range(self) -> "SearchParams":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def direction(self) -> SortOrder:
        """Requested order, or the natural one for the sort key."""
        if self.sort_order is not None:
            return self.sort_order
        if self.sort_by == SortKey.TITLE:
            return SortOrder.ASC
        return SortOrder.DESC


T = TypeVar("T")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> Pagination:
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=-(-total // limit) if total else 0,
        )


class PaginatedResult(BaseModel, Generic[T]):
    data: List[T]
    pagination: Pagination
