from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from paperhub.model.paper import utcnow


class AnnotationType(str, Enum):
    HIGHLIGHT = "highlight"
    COMMENT = "comment"
    BOOKMARK = "bookmark"


class Position(BaseModel):
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None


class Annotation(BaseModel):
    """An annotation only ever exists inside its owning note."""

    id: str
    type: AnnotationType
    page_number: int = Field(ge=0)
    position: Position
    content: str = ""
    color: Optional[str] = None


class AnnotationCreate(BaseModel):
    type: AnnotationType
    page_number: int = Field(ge=0)
    position: Position
    content: str = ""
    color: Optional[str] = None

    @classmethod
    def from_annotation(cls, annotation: Annotation) -> AnnotationCreate:
        return cls(**annotation.model_dump(exclude={"id"}))


class AnnotationUpdate(BaseModel):
    type: Optional[AnnotationType] = None
    page_number: Optional[int] = Field(default=None, ge=0)
    position: Optional[Position] = None
    content: Optional[str] = None
    color: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class Note(BaseModel):
    id: str
    paper_id: Optional[str] = None  # None -> standalone note
    content: str
    tags: List[str] = Field(default_factory=list)
    annotations: List[Annotation] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class NoteCreate(BaseModel):
    paper_id: Optional[str] = None
    content: str = Field(min_length=1)
    tags: List[str] = Field(default_factory=list)
    annotations: List[AnnotationCreate] = Field(default_factory=list)

    @classmethod
    def from_note(cls, note: Note, paper_id: Optional[str] = None) -> NoteCreate:
        return cls(
            paper_id=paper_id if paper_id is not None else note.paper_id,
            content=note.content,
            tags=list(note.tags),
            annotations=[AnnotationCreate.from_annotation(a) for a in note.annotations],
        )


class NoteUpdate(BaseModel):
    """``annotations``, when given, replaces the whole annotation list."""

    content: Optional[str] = Field(default=None, min_length=1)
    tags: Optional[List[str]] = None
    annotations: Optional[List[AnnotationCreate]] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)
