import logging
from contextlib import nullcontext
from typing import Optional, Union

from paperhub.database.factory import EngineType, RepositoryFactory
from paperhub.model import DatabaseStats

logger = logging.getLogger(__name__)


class StatsService:
    """Per-engine record counts, read without switching the active engine."""

    def __init__(self, factory: RepositoryFactory):
        self.factory = factory

    def get_stats(self, engine_type: Union[EngineType, str, None] = None) -> DatabaseStats:
        active = self.factory.get_active_engine()
        engine = EngineType.parse(engine_type) if engine_type else active

        # the active context is reused, any other engine gets a short-lived one
        scope = nullcontext(self.factory.context()) if engine == active else self.factory.open_context(engine)
        with scope as context:
            stats = DatabaseStats(
                database_type=engine.value,
                papers=context.papers.count(),
                notes=context.notes.count(),
                citations=context.citations.count() if context.citations is not None else None,
            )

        logger.debug(f"📊 Stats for {engine.value}: {stats.papers} papers, {stats.notes} notes")
        return stats
