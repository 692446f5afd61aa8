"""
Repository error taxonomy.

Every storage-engine error is translated into one of these at the
repository boundary; SQLAlchemy / pymongo exception types never reach the
factory or the API layer.
"""

from __future__ import annotations

from typing import Optional, Type, TypeVar

import pydantic


class RepositoryError(Exception):
    code = "REPOSITORY_ERROR"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class EntityNotFoundError(RepositoryError):
    code = "ENTITY_NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} with id {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class DuplicateEntityError(RepositoryError):
    code = "DUPLICATE_ENTITY"
    status_code = 409

    def __init__(self, entity: str, field: str, value: str):
        super().__init__(f"{entity} with {field} {value} already exists")
        self.entity = entity
        self.field = field
        self.value = value


class ValidationError(RepositoryError):
    code = "VALIDATION_ERROR"
    status_code = 400


class RepositoryFailure(RepositoryError):
    """Underlying storage failure, wrapped with an operation-specific message."""

    code = "REPOSITORY_FAILURE"
    status_code = 500

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        # driver detail stays on .cause and in the log, never in the message
        super().__init__(f"Failed to {operation}")
        self.operation = operation
        self.cause = cause


class FactoryNotInitializedError(RepositoryError):
    code = "FACTORY_NOT_INITIALIZED"
    status_code = 503

    def __init__(self, message: str = "Repository factory not initialized"):
        super().__init__(message)


class NotImplementedRepositoryError(RepositoryError):
    code = "NOT_IMPLEMENTED"
    status_code = 501


class EngineBusyError(RepositoryError):
    code = "ENGINE_BUSY"
    status_code = 409

    def __init__(self, running: str):
        super().__init__(f"Another database operation is in progress: {running}")
        self.running = running


M = TypeVar("M", bound=pydantic.BaseModel)


def coerce(model_cls: Type[M], data) -> M:
    """Validate a dict (or pass through a model) before it reaches storage."""
    if isinstance(data, model_cls):
        return data
    if isinstance(data, pydantic.BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {model_cls.__name__}: {e}") from e
