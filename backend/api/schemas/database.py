from __future__ import annotations

from pydantic import BaseModel, Field


class SwitchRequest(BaseModel):
    database_type: str = Field(alias="databaseType")

    model_config = {
        "populate_by_name": True,
    }


class SwitchResponse(BaseModel):
    status: str = "success"
    database_type: str = Field(serialization_alias="databaseType")
    message: str


class MigrateRequest(BaseModel):
    from_database: str = Field(alias="fromDatabase")
    to_database: str = Field(alias="toDatabase")
    switch_after: bool = Field(default=False, alias="switchAfter")

    model_config = {
        "populate_by_name": True,
    }
