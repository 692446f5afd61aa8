from .migration_service import MigrationAborted, MigrationService
from .stats_service import StatsService

__all__ = ["MigrationAborted", "MigrationService", "StatsService"]
