"""Pydantic schemas for categories and tags."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import Field, StringConstraints

from blogapi.core.schemas import CamelModel
from blogapi.taxonomy.models import DEFAULT_CATEGORY_COLOR, DEFAULT_TAG_COLOR


COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"

CategoryName = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50)
]
TagName = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=2, max_length=30)
]


# ==============================================================================
# Request Schemas
# ==============================================================================


class CategoryCreate(CamelModel):
    name: CategoryName
    description: str | None = Field(None, max_length=200)
    color: str = Field(DEFAULT_CATEGORY_COLOR, pattern=COLOR_PATTERN)
    is_active: bool = True


class CategoryUpdate(CamelModel):
    """Partial category update. Omitted fields are left unchanged."""

    name: CategoryName | None = None
    description: str | None = Field(None, max_length=200)
    color: str | None = Field(None, pattern=COLOR_PATTERN)
    is_active: bool | None = None


class TagCreate(CamelModel):
    name: TagName
    color: str = Field(DEFAULT_TAG_COLOR, pattern=COLOR_PATTERN)
    is_active: bool = True


class TagUpdate(CamelModel):
    """Partial tag update. Omitted fields are left unchanged."""

    name: TagName | None = None
    color: str | None = Field(None, pattern=COLOR_PATTERN)
    is_active: bool | None = None


# ==============================================================================
# Response Schemas
# ==============================================================================


class TagResponse(CamelModel):
    id: UUID
    name: str
    slug: str
    color: str
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None
    post_count: int | None = None


class CategoryResponse(TagResponse):
    description: str | None = None


class TermSummary(CamelModel):
    """Compact form embedded in posts."""

    id: UUID
    name: str
    slug: str
    color: str


class TermStats(CamelModel):
    """Usage counts of one category or tag."""

    id: UUID
    name: str
    slug: str
    color: str
    post_count: int
    published_post_count: int


class PopularTag(CamelModel):
    id: UUID
    name: str
    slug: str
    color: str
    published_post_count: int
