"""Pydantic schemas for posts."""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field, StringConstraints, field_validator

from blogapi.auth.schemas import AuthorSummary
from blogapi.core.schemas import CamelModel
from blogapi.posts.models import PostStatus
from blogapi.taxonomy.schemas import TermSummary


_URL_PATTERN = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)

# Surrounding whitespace is dropped before length checks
PostTitle = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=5, max_length=200)
]
PostContent = Annotated[str, StringConstraints(strip_whitespace=True, min_length=50)]


def validate_image_url(v: str | None) -> str | None:
    """Accept empty values or an http(s) URL."""
    if v is None:
        return None
    v = v.strip()
    if v and not _URL_PATTERN.match(v):
        msg = "Featured image must be a valid URL"
        raise ValueError(msg)
    return v


class PostSort(str, Enum):
    """Sort orders for post listings."""

    NEWEST = "newest"
    OLDEST = "oldest"
    POPULAR = "popular"
    LIKED = "liked"
    TITLE = "title"


# ==============================================================================
# Request Schemas
# ==============================================================================


class PostCreate(CamelModel):
    """New post. The author is always the caller."""

    title: PostTitle
    content: PostContent
    excerpt: str | None = Field(None, max_length=300)
    category: UUID
    tags: list[UUID] = Field(default_factory=list)
    status: PostStatus = PostStatus.DRAFT
    featured_image: str | None = None

    @field_validator("featured_image")
    @classmethod
    def validate_featured_image(cls, v: str | None) -> str | None:
        return validate_image_url(v)


class PostUpdate(CamelModel):
    """Partial post update. Omitted fields are left unchanged."""

    title: PostTitle | None = None
    content: PostContent | None = None
    excerpt: str | None = Field(None, max_length=300)
    category: UUID | None = None
    tags: list[UUID] | None = None
    status: PostStatus | None = None
    featured_image: str | None = None
    is_active: bool | None = None

    @field_validator("featured_image")
    @classmethod
    def validate_featured_image(cls, v: str | None) -> str | None:
        return validate_image_url(v)


class PostFilters(BaseModel):
    """Query parameters of the post listing."""

    category: UUID | None = None
    tags: list[UUID] = Field(default_factory=list)
    author: UUID | None = None
    search: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: PostStatus | None = None
    is_active: bool | None = None
    sort: PostSort = PostSort.NEWEST


# ==============================================================================
# Response Schemas
# ==============================================================================


class PostListItem(CamelModel):
    """Post without its content, as shown in listings."""

    id: UUID
    title: str
    slug: str
    excerpt: str | None = None
    featured_image: str = ""
    author: AuthorSummary | None = None
    category: TermSummary | None = None
    tags: list[TermSummary] = Field(default_factory=list)
    status: PostStatus
    published_at: datetime | None = None
    views: int = 0
    likes: int = 0
    read_time: int = 1
    is_active: bool = True
    created_at: datetime
    updated_at: datetime | None = None


class PostResponse(PostListItem):
    content: str


class PostReference(CamelModel):
    """Compact form embedded in comments."""

    id: UUID
    title: str
    slug: str


class StatusStat(CamelModel):
    status: PostStatus
    count: int
    total_views: int
    total_likes: int


class CategoryPostStat(CamelModel):
    id: UUID
    name: str
    count: int
    total_views: int


class RecentPost(CamelModel):
    id: UUID
    title: str
    views: int
    likes: int
    published_at: datetime | None = None


class PostStats(CamelModel):
    """Dashboard aggregates over all posts."""

    status_stats: list[StatusStat]
    category_stats: list[CategoryPostStat]
    recent_posts: list[RecentPost]
