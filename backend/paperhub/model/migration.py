from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class MigrationStatus(str, Enum):
    COMPLETE = "complete"  # every record accounted for, source cleared
    PARTIAL = "partial"    # reconciliation failed, source preserved
    ABORTED = "aborted"    # cancelled before reconciliation, source preserved


class EntityMigrationStats(BaseModel):
    source: int = 0
    target: int = 0
    migrated: int = 0
    skipped: int = 0
    failed: int = 0
    deleted: int = 0

    @property
    def processed(self) -> int:
        return self.migrated + self.skipped

    @property
    def reconciled(self) -> bool:
        return self.processed == self.source


class MigrationResult(BaseModel):
    status: MigrationStatus
    from_engine: str
    to_engine: str
    message: str
    papers: EntityMigrationStats
    notes: EntityMigrationStats
    citations_replayed: int = 0
    source_cleared: bool = False
    active_engine: Optional[str] = None  # engine serving requests once the run ended

    @property
    def moved(self) -> bool:
        return self.status == MigrationStatus.COMPLETE


class DatabaseStats(BaseModel):
    database_type: str
    papers: int
    notes: int
    citations: Optional[int] = None  # only the relational engine tracks citations separately
