from __future__ import annotations

from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    status: str = "success"
    data: T


class ListResponse(BaseModel, Generic[T]):
    status: str = "success"
    data: List[T]
    count: int

    @classmethod
    def of(cls, items: List[T]) -> "ListResponse[T]":
        return cls(data=items, count=len(items))


class MessageResponse(BaseModel):
    status: str = "success"
    message: str
