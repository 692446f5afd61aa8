from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.deps import get_factory, get_migration_service, get_stats_service
from api.schemas.common import DataResponse
from api.schemas.database import MigrateRequest, SwitchRequest, SwitchResponse
from paperhub.database.factory import RepositoryFactory
from paperhub.model import DatabaseStats, MigrationResult
from paperhub.service import MigrationService, StatsService

router = APIRouter(prefix="/api/database", tags=["database"])


@router.post("/switch", response_model=SwitchResponse)
def switch_database(
    body: SwitchRequest,
    factory: RepositoryFactory = Depends(get_factory),
):
    """Switch the active engine; 409 while a migration or another switch runs."""
    engine = factory.switch(body.database_type)
    return SwitchResponse(database_type=engine.value, message=f"Switched to {engine.value}")


@router.post("/migrate", response_model=DataResponse[MigrationResult])
def migrate_database(
    body: MigrateRequest,
    service: MigrationService = Depends(get_migration_service),
):
    """
    Copy everything from one engine to the other.

    A partial or aborted run is a normal outcome and is reported in the
    body (``data.status``), not as an HTTP error.
    """
    result = service.migrate(body.from_database, body.to_database, switch_after=body.switch_after)
    return DataResponse[MigrationResult](data=result)


@router.get("/stats", response_model=DataResponse[DatabaseStats])
def database_stats(
    engine_type: Optional[str] = Query(default=None, alias="type"),
    service: StatsService = Depends(get_stats_service),
):
    return DataResponse[DatabaseStats](data=service.get_stats(engine_type))
