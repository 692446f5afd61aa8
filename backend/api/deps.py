from fastapi import Depends, Request

from paperhub.database.base import CitationRepository, NoteRepository, PaperRepository
from paperhub.database.factory import RepositoryContext, RepositoryFactory
from paperhub.service import MigrationService, StatsService


def get_factory(request: Request) -> RepositoryFactory:
    return request.app.state.factory


def get_context(factory: RepositoryFactory = Depends(get_factory)) -> RepositoryContext:
    """Resolve the active context once per request; a later switch does not affect it."""
    return factory.context()


def get_paper_repo(context: RepositoryContext = Depends(get_context)) -> PaperRepository:
    return context.papers


def get_note_repo(context: RepositoryContext = Depends(get_context)) -> NoteRepository:
    return context.notes


def get_citation_repo(context: RepositoryContext = Depends(get_context)) -> CitationRepository:
    return context.citation_repository()


def get_migration_service(factory: RepositoryFactory = Depends(get_factory)) -> MigrationService:
    return MigrationService(factory)


def get_stats_service(factory: RepositoryFactory = Depends(get_factory)) -> StatsService:
    return StatsService(factory)
