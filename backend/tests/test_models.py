"""
Tests for the entity models and the pure helpers next to them.
"""

from datetime import date

import pytest

from paperhub.database.errors import ValidationError, coerce
from paperhub.database.factory import EngineType
from paperhub.database.graph import check_depth, parse_date_range, shortest_path, walk_citations
from paperhub.model import (
    Author,
    EntityMigrationStats,
    NoteCreate,
    Note,
    Pagination,
    Paper,
    PaperCreate,
    PaperUpdate,
    SearchParams,
    SortKey,
    SortOrder,
)


def _edges_of(edges):
    """fetch_edges callback over a static edge list."""

    def fetch(frontier):
        return [(s, t) for s, t in edges if s in frontier or t in frontier]

    return fetch


class TestPaperModels:
    def test_blank_doi_becomes_none(self):
        """Should treat an empty DOI as no DOI."""
        payload = PaperCreate(title="T", publication_date=date(2020, 1, 1), doi="   ")
        assert payload.doi is None

    def test_from_paper_drops_identity(self):
        """Should copy every field except ids and timestamps."""
        paper = Paper(
            id="p1",
            title="Paper",
            publication_date=date(2020, 1, 1),
            doi="10.1/x",
            keywords=["a"],
            authors=[Author(id="a1", name="Jane", email="jane@example.org")],
            metadata={"pages": 12},
        )

        payload = PaperCreate.from_paper(paper)

        assert payload.doi == "10.1/x"
        assert payload.keywords == ["a"]
        assert payload.metadata == {"pages": 12}
        assert payload.authors[0].id is None
        assert payload.authors[0].email == "jane@example.org"

    def test_update_only_reports_set_fields(self):
        """Should leave unspecified fields out of the change set."""
        update = PaperUpdate(title="New title")
        assert update.changes() == {"title": "New title"}

    def test_update_keeps_explicit_null(self):
        """Should keep an explicitly cleared optional field."""
        assert PaperUpdate.model_validate({"journal": None}).changes() == {"journal": None}


class TestNoteModels:
    def test_from_note_overrides_paper_id(self):
        """Should rebind the note to the given paper id."""
        note = Note(id="n1", paper_id="old", content="text", tags=["x"])
        assert NoteCreate.from_note(note, paper_id="new").paper_id == "new"
        assert NoteCreate.from_note(note).paper_id == "old"


class TestSearchParams:
    def test_rejects_inverted_date_range(self):
        """Should refuse date_from after date_to."""
        with pytest.raises(ValidationError):
            coerce(SearchParams, {"date_from": "2021-01-01", "date_to": "2020-01-01"})

    def test_offset(self):
        assert SearchParams(page=3, limit=20).offset == 40

    def test_natural_direction(self):
        """Should sort titles ascending and everything else descending by default."""
        assert SearchParams(sort_by=SortKey.TITLE).direction() == SortOrder.ASC
        assert SearchParams(sort_by=SortKey.CITATIONS).direction() == SortOrder.DESC
        assert SearchParams(sort_by=SortKey.TITLE, sort_order="desc").direction() == SortOrder.DESC

    def test_limit_bounds(self):
        with pytest.raises(ValidationError):
            coerce(SearchParams, {"limit": 0})


class TestPagination:
    def test_total_pages(self):
        assert Pagination.build(page=1, limit=10, total=25).total_pages == 3
        assert Pagination.build(page=1, limit=10, total=0).total_pages == 0


class TestMigrationStats:
    def test_reconciled(self):
        stats = EntityMigrationStats(source=3, migrated=2, skipped=1)
        assert stats.processed == 3
        assert stats.reconciled

    def test_not_reconciled_with_failures(self):
        assert not EntityMigrationStats(source=3, migrated=2, failed=1).reconciled


class TestEngineType:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("relational", EngineType.RELATIONAL),
            ("postgres", EngineType.RELATIONAL),
            ("MongoDB", EngineType.DOCUMENT),
            ("hybrid", EngineType.HYBRID),
        ],
    )
    def test_parse(self, value, expected):
        assert EngineType.parse(value) == expected

    def test_unknown(self):
        with pytest.raises(ValidationError):
            EngineType.parse("oracle")


class TestCitationWalk:
    # A -> B -> C -> D, E -> B
    EDGES = [("A", "B"), ("B", "C"), ("C", "D"), ("E", "B")]

    def test_depth_one_is_direct_neighbours(self):
        """Should return direct citations plus direct citers."""
        assert walk_citations("B", 1, _edges_of(self.EDGES)) == {"A", "C", "E"}

    def test_deeper_walk(self):
        assert walk_citations("A", 2, _edges_of(self.EDGES)) == {"B", "C", "E"}
        assert walk_citations("A", 3, _edges_of(self.EDGES)) == {"B", "C", "D", "E"}

    def test_root_never_included(self):
        edges = [("A", "B"), ("B", "A")]
        assert walk_citations("A", 3, _edges_of(edges)) == {"B"}

    def test_depth_must_be_positive(self):
        with pytest.raises(ValidationError):
            check_depth(0)

    def test_shortest_path_follows_outgoing_edges(self):
        def outgoing(frontier):
            return [(s, t) for s, t in self.EDGES if s in frontier]

        assert shortest_path("A", "D", outgoing) == [("A", "B"), ("B", "C"), ("C", "D")]
        assert shortest_path("D", "A", outgoing) == []


class TestDateRange:
    def test_parses_iso_strings(self):
        assert parse_date_range("2020-01-01", "2020-12-31") == (date(2020, 1, 1), date(2020, 12, 31))

    def test_rejects_garbage(self):
        with pytest.raises(ValidationError):
            parse_date_range("yesterday", "2020-12-31")
