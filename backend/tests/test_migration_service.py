"""
Migration between the relational and document engines.
"""

import threading
from datetime import date

import pytest

from paperhub.database.errors import EngineBusyError, RepositoryFailure, ValidationError
from paperhub.database.factory import EngineType
from paperhub.database.mongo import MongoPaperRepository
from paperhub.model import MigrationStatus
from paperhub.service import MigrationService


@pytest.fixture
def service(factory):
    return MigrationService(factory)


@pytest.fixture
def seed(factory, new_paper):
    """Create papers on an engine; returns their ids by title."""

    def create(engine, *titles, **overrides):
        with factory.open_context(engine) as ctx:
            return {title: ctx.papers.create(new_paper(title=title, **overrides)).id for title in titles}

    return create


def counts(factory, engine):
    with factory.open_context(engine) as ctx:
        return ctx.papers.count(), ctx.notes.count()


class TestMigrationRoundTrip:
    def test_paper_moves_and_source_is_cleared(self, factory, service):
        """Should move a paper to the target and clear the source once everything is accounted for."""
        with factory.open_context("relational") as ctx:
            ctx.papers.create(
                {
                    "title": "Test Paper Title",
                    "publication_date": date(2023, 1, 1),
                    "doi": "10.1000/test.2023.001",
                    "authors": [{"name": "John Doe"}],
                }
            )
        factory.initialize("relational")
        factory.switch("document")

        result = service.migrate("relational", "document")

        assert result.status == MigrationStatus.COMPLETE
        assert result.source_cleared is True
        assert (result.papers.source, result.papers.migrated, result.papers.deleted) == (1, 1, 1)

        moved = factory.get_paper_repository().find_by_doi("10.1000/test.2023.001")
        assert moved.title == "Test Paper Title"
        assert [a.name for a in moved.authors] == ["John Doe"]
        with factory.open_context("relational") as ctx:
            assert ctx.papers.find_by_doi("10.1000/test.2023.001") is None

    def test_document_to_relational(self, factory, service, seed):
        seed("document", "alpha", "beta")

        result = service.migrate("mongodb", "postgres")

        assert result.status == MigrationStatus.COMPLETE
        assert (result.from_engine, result.to_engine) == ("document", "relational")
        assert counts(factory, "relational") == (2, 0)
        assert counts(factory, "document") == (0, 0)

    def test_empty_source(self, service):
        result = service.migrate("relational", "document")
        assert result.status == MigrationStatus.COMPLETE
        assert result.papers.source == 0

    def test_reads_every_batch(self, factory, service, seed):
        """Should page through sources larger than one batch."""
        seed("relational", *[f"paper {i}" for i in range(5)])

        result = service.migrate("relational", "document")

        assert result.papers.migrated == 5
        with factory.open_context("document") as ctx:
            assert sorted(p.title for p in ctx.papers.find_all()) == [f"paper {i}" for i in range(5)]

    def test_citations_are_replayed(self, factory, service, seed):
        ids = seed("relational", "citing", "cited")
        with factory.open_context("relational") as ctx:
            ctx.papers.add_citation(ids["citing"], ids["cited"], context="related work", page_number=2)

        result = service.migrate("relational", "document")

        assert result.citations_replayed == 1
        with factory.open_context("document") as ctx:
            citing = ctx.papers.search({"query": "citing"}).data[0]
            cited = ctx.papers.search({"query": "cited"}).data[0]
            citations = ctx.papers.get_citations(citing.id)
            assert [c.target_paper_id for c in citations] == [cited.id]
            assert citations[0].context == "related work"
            assert citations[0].page_number == 2


class TestNoteMigration:
    def test_note_follows_its_paper(self, factory, service, seed, new_annotation):
        ids = seed("relational", "annotated paper")
        with factory.open_context("relational") as ctx:
            ctx.notes.create(
                {"paper_id": ids["annotated paper"], "content": "margin notes", "tags": ["ml"], "annotations": [new_annotation()]}
            )

        result = service.migrate("relational", "document")

        assert result.notes.migrated == 1
        with factory.open_context("document") as ctx:
            paper = ctx.papers.find_all()[0]
            notes = ctx.notes.find_by_paper_id(paper.id)
            assert [n.content for n in notes] == ["margin notes"]
            assert notes[0].annotations[0].content == "key sentence"

    def test_standalone_note(self, factory, service):
        with factory.open_context("document") as ctx:
            ctx.notes.create({"content": "free-floating", "tags": ["b", "a"]})

        result = service.migrate("document", "relational")

        assert result.status == MigrationStatus.COMPLETE
        with factory.open_context("relational") as ctx:
            assert [n.paper_id for n in ctx.notes.find_all()] == [None]

    def test_note_on_missing_paper_becomes_standalone(self, factory, service):
        """Should keep a note whose paper never existed in the source, without its paper link."""
        with factory.open_context("document") as ctx:
            ctx.notes.create({"paper_id": "0" * 24, "content": "dangling"})

        result = service.migrate("document", "relational")

        assert result.status == MigrationStatus.COMPLETE
        with factory.open_context("relational") as ctx:
            assert ctx.notes.find_all()[0].paper_id is None


class TestDeduplication:
    def test_rerun_is_idempotent(self, factory, service, seed):
        """Should skip records already present in the target."""
        seed("relational", "kept", doi="10.1000/kept")
        seed("document", "kept", doi="10.1000/kept")

        result = service.migrate("relational", "document")

        assert (result.papers.migrated, result.papers.skipped) == (0, 1)
        assert result.status == MigrationStatus.COMPLETE
        assert counts(factory, "document") == (1, 0)
        assert counts(factory, "relational") == (0, 0)

    def test_title_match_ignores_case(self, factory, service, seed):
        seed("document", "deep learning")
        seed("relational", "Deep Learning")

        result = service.migrate("relational", "document")

        assert result.papers.skipped == 1
        assert counts(factory, "document") == (1, 0)

    def test_title_match_is_exact(self, factory, service, seed):
        seed("document", "Deep Learning for Graphs")
        seed("relational", "Deep Learning")

        assert service.migrate("relational", "document").papers.migrated == 1
        assert counts(factory, "document") == (2, 0)

    def test_duplicate_standalone_note(self, factory, service):
        for engine in ("relational", "document"):
            with factory.open_context(engine) as ctx:
                ctx.notes.create({"content": "same words", "tags": ["x", "y"]})

        result = service.migrate("relational", "document")

        assert result.notes.skipped == 1
        assert counts(factory, "document") == (0, 1)

    def test_note_with_other_tags_is_not_a_duplicate(self, factory, service):
        with factory.open_context("relational") as ctx:
            ctx.notes.create({"content": "same words", "tags": ["x"]})
        with factory.open_context("document") as ctx:
            ctx.notes.create({"content": "same words", "tags": ["y"]})

        assert service.migrate("relational", "document").notes.migrated == 1


class TestSourceSafety:
    def test_failed_record_keeps_source(self, factory, service, seed, monkeypatch):
        """Should leave the source untouched when any record fails."""
        ids = seed("relational", "a", "b")
        with factory.open_context("relational") as ctx:
            ctx.notes.create({"paper_id": ids["b"], "content": "on b"})

        original = MongoPaperRepository.create

        def failing_create(self, data):
            if data.title == "b":
                raise RepositoryFailure("create paper")
            return original(self, data)

        monkeypatch.setattr(MongoPaperRepository, "create", failing_create)

        result = service.migrate("relational", "document")

        assert result.status == MigrationStatus.PARTIAL
        assert result.source_cleared is False
        assert (result.papers.migrated, result.papers.failed) == (1, 1)
        # the note cannot follow a paper that did not make it
        assert result.notes.failed == 1
        assert counts(factory, "relational") == (2, 1)

    def test_unexpected_error_is_counted_as_failed(self, factory, service, seed, monkeypatch):
        """Should count a record that raises outside the error taxonomy as failed and keep going."""
        seed("relational", "a", "b")
        original = MongoPaperRepository.create

        def broken_create(self, data):
            if data.title == "a":
                raise RuntimeError("driver bug")
            return original(self, data)

        monkeypatch.setattr(MongoPaperRepository, "create", broken_create)

        result = service.migrate("relational", "document")

        assert result.status == MigrationStatus.PARTIAL
        assert (result.papers.migrated, result.papers.failed) == (1, 1)
        assert result.source_cleared is False
        assert counts(factory, "relational") == (2, 0)

    def test_unstorable_record_keeps_source(self, factory, service, seed):
        seed("relational", "Fine")
        seed("relational", "Big", metadata={"n": 2**70})

        result = service.migrate("relational", "document")

        assert result.status == MigrationStatus.PARTIAL
        assert (result.papers.migrated, result.papers.failed) == (1, 1)
        assert counts(factory, "relational") == (2, 0)
        assert counts(factory, "document") == (1, 0)

    def test_rerun_after_partial(self, factory, service, seed, monkeypatch):
        seed("relational", "a", "b", "c")
        original = MongoPaperRepository.create

        def failing_create(self, data):
            if data.title == "b":
                raise RepositoryFailure("create paper")
            return original(self, data)

        monkeypatch.setattr(MongoPaperRepository, "create", failing_create)
        assert service.migrate("relational", "document").status == MigrationStatus.PARTIAL
        monkeypatch.undo()

        result = service.migrate("relational", "document")

        assert result.status == MigrationStatus.COMPLETE
        assert (result.papers.migrated, result.papers.skipped) == (1, 2)
        assert counts(factory, "document") == (3, 0)

    def test_record_cap_keeps_source(self, factory, seed):
        seed("relational", "a", "b", "c")
        config = factory.settings.migration.model_copy(update={"max_records": 2})

        result = MigrationService(factory, config=config).migrate("relational", "document")

        assert result.status == MigrationStatus.PARTIAL
        assert result.papers.source == 3
        assert counts(factory, "relational") == (3, 0)
        assert counts(factory, "document") == (2, 0)

    def test_slow_record_times_out(self, factory, seed, monkeypatch):
        seed("relational", "slow")
        release = threading.Event()

        def hanging_create(self, data):
            release.wait(5)
            raise RepositoryFailure("create paper")

        monkeypatch.setattr(MongoPaperRepository, "create", hanging_create)
        config = factory.settings.migration.model_copy(update={"record_timeout_seconds": 0.1})

        try:
            result = MigrationService(factory, config=config).migrate("relational", "document")
        finally:
            release.set()

        assert result.status == MigrationStatus.PARTIAL
        assert result.papers.failed == 1
        assert counts(factory, "relational") == (1, 0)


class TestAbort:
    def test_cancel_before_start(self, factory, service, seed):
        seed("relational", "a")
        cancel = threading.Event()
        cancel.set()

        result = service.migrate("relational", "document", cancel_event=cancel)

        assert result.status == MigrationStatus.ABORTED
        assert counts(factory, "relational") == (1, 0)
        assert counts(factory, "document") == (0, 0)

    def test_cancel_mid_run(self, factory, service, seed, monkeypatch):
        """Should stop between records and leave the source intact."""
        seed("relational", "a", "b", "c")
        cancel = threading.Event()
        original = MongoPaperRepository.create

        def create_then_cancel(self, data):
            paper = original(self, data)
            cancel.set()
            return paper

        monkeypatch.setattr(MongoPaperRepository, "create", create_then_cancel)

        result = service.migrate("relational", "document", cancel_event=cancel)

        assert result.status == MigrationStatus.ABORTED
        assert result.papers.migrated == 1
        assert result.papers.target == 1
        assert counts(factory, "relational") == (3, 0)


class TestEngineHandling:
    @pytest.mark.parametrize(
        "source,target",
        [("relational", "relational"), ("postgres", "relational"), ("hybrid", "document"), ("relational", "oracle")],
    )
    def test_invalid_engine_pairs(self, service, source, target):
        with pytest.raises(ValidationError):
            service.migrate(source, target)

    def test_busy(self, factory, service):
        with factory.gate.hold("switch to document"):
            with pytest.raises(EngineBusyError):
                service.migrate("relational", "document")

    def test_gate_released_afterwards(self, factory, service):
        service.migrate("relational", "document")
        assert factory.gate.running is None
        factory.initialize("relational")
        factory.switch("document")

    def test_switch_after_complete(self, factory, service, seed):
        seed("relational", "a")
        factory.initialize("relational")

        result = service.migrate("relational", "document", switch_after=True)

        assert result.active_engine == "document"
        assert factory.get_active_engine() == EngineType.DOCUMENT
        assert factory.get_paper_repository().count() == 1

    def test_no_switch_after_partial(self, factory, seed, monkeypatch):
        seed("relational", "a")
        factory.initialize("relational")

        def failing_create(self, data):
            raise RepositoryFailure("create paper")

        monkeypatch.setattr(MongoPaperRepository, "create", failing_create)

        result = MigrationService(factory).migrate("relational", "document", switch_after=True)

        assert result.status == MigrationStatus.PARTIAL
        assert result.active_engine == "relational"
        assert factory.get_active_engine() == EngineType.RELATIONAL

    def test_active_engine_untouched_without_switch(self, factory, service):
        factory.initialize("relational")
        result = service.migrate("relational", "document")
        assert result.active_engine == "relational"

    def test_without_initialized_factory(self, service):
        assert service.migrate("relational", "document").active_engine is None
