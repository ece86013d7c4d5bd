"""Response envelopes and the camelCase base model.

Every endpoint answers with one of:
- ``{success, count, pagination, data}`` for lists
- ``{success, data}`` for single reads
- ``{success, message, data}`` for mutations
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from blogapi.core.pagination import Page


T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, accepting both spellings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(BaseModel):
    """Pagination block of list responses."""

    page: int
    limit: int
    pages: int
    total: int


class ListResponse(BaseModel, Generic[T]):
    """Paginated list envelope."""

    success: bool = True
    count: int
    pagination: Pagination
    data: list[T]

    @classmethod
    def from_page(cls, page: Page, data: list[T]) -> "ListResponse[T]":
        return cls(
            count=len(data),
            pagination=Pagination(
                page=page.page,
                limit=page.limit,
                pages=page.pages,
                total=page.total,
            ),
            data=data,
        )


class DataResponse(BaseModel, Generic[T]):
    """Single resource envelope."""

    success: bool = True
    data: T


class MutationResponse(BaseModel, Generic[T]):
    """Envelope for create/update/delete results."""

    success: bool = True
    message: str
    data: T | None = None


class MessageResponse(BaseModel):
    """Envelope for mutations without a body."""

    success: bool = True
    message: str


class LikeResult(CamelModel):
    """Result of a like toggle."""

    likes: int = Field(..., ge=0)
    is_liked: bool
