from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from paperhub.model import utcnow


Base = declarative_base()


class PaperRow(Base):
    __tablename__ = "papers"

    id = Column(Text, primary_key=True)

    title = Column(Text, nullable=False, index=True)
    abstract = Column(Text, nullable=False, default="")
    keywords = Column(JSON, nullable=False, default=list)
    publication_date = Column(Date, nullable=False, index=True)

    journal = Column(Text, index=True)
    conference = Column(Text, index=True)
    doi = Column(Text, unique=True)  # NULLs never collide
    url = Column(Text)
    file_path = Column(Text)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    author_links = relationship(
        "PaperAuthorRow",
        back_populates="paper",
        order_by="PaperAuthorRow.position",
        cascade="all, delete-orphan",
    )
    outgoing_citations = relationship(
        "CitationRow",
        foreign_keys="CitationRow.source_paper_id",
        viewonly=True,
    )


class AuthorRow(Base):
    """Shared across papers; matched on (name, email)."""
    __tablename__ = "authors"

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False, index=True)
    affiliation = Column(Text)
    email = Column(Text)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class PaperAuthorRow(Base):
    __tablename__ = "paper_authors"
    __table_args__ = (UniqueConstraint("paper_id", "author_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    paper_id = Column(Text, ForeignKey("papers.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Text, ForeignKey("authors.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    paper = relationship("PaperRow", back_populates="author_links")
    author = relationship("AuthorRow", lazy="joined")


class CitationRow(Base):
    __tablename__ = "citations"
    __table_args__ = (UniqueConstraint("source_paper_id", "target_paper_id"),)

    id = Column(Text, primary_key=True)
    source_paper_id = Column(Text, ForeignKey("papers.id", ondelete="CASCADE"), nullable=False, index=True)
    target_paper_id = Column(Text, ForeignKey("papers.id", ondelete="CASCADE"), nullable=False, index=True)

    context = Column(Text, nullable=False, default="")
    citation_type = Column(Text, nullable=False, default="direct")
    page_number = Column(Integer)

    created_at = Column(DateTime, default=utcnow)


class NoteRow(Base):
    __tablename__ = "notes"

    id = Column(Text, primary_key=True)
    # a deleted paper leaves its notes behind as standalone notes
    paper_id = Column(Text, ForeignKey("papers.id", ondelete="SET NULL"), nullable=True, index=True)
    content = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    annotations = relationship(
        "AnnotationRow",
        back_populates="note",
        order_by="AnnotationRow.position_index",
        cascade="all, delete-orphan",
    )


class AnnotationRow(Base):
    __tablename__ = "annotations"

    id = Column(Text, primary_key=True)
    note_id = Column(Text, ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True)
    position_index = Column(Integer, nullable=False, default=0)

    type = Column(Text, nullable=False)  # highlight | comment | bookmark
    page_number = Column(Integer, nullable=False)
    position = Column(JSON, nullable=False)  # {x, y, width?, height?}
    content = Column(Text, nullable=False, default="")
    color = Column(Text)

    note = relationship("NoteRow", back_populates="annotations")
