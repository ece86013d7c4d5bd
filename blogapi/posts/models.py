"""Database models for posts.

Posts live in one table keyed by id. View counts are kept in a separate
counter table, since Cassandra counters cannot share a table with regular
columns. Likes are a set of user ids on the post row, so the like count is
always ``len(liked_by)``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from blogapi.utils.dates import ensure_utc_aware, utcnow
from blogapi.utils.text import estimate_read_time, generate_post_slug


class PostStatus(str, Enum):
    """Publication lifecycle of a post."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

POST_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.posts (
    id UUID PRIMARY KEY,
    title TEXT,
    slug TEXT,
    content TEXT,
    excerpt TEXT,
    featured_image TEXT,
    author_id UUID,
    category_id UUID,
    tag_ids SET<UUID>,
    status TEXT,
    published_at TIMESTAMP,
    liked_by SET<UUID>,
    read_time INT,
    is_active BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

POST_SLUG_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS posts_slug_idx ON {keyspace}.posts (slug)
"""

POST_AUTHOR_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS posts_author_idx ON {keyspace}.posts (author_id)
"""

POST_CATEGORY_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS posts_category_idx ON {keyspace}.posts (category_id)
"""

POST_STATUS_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS posts_status_idx ON {keyspace}.posts (status)
"""

# Supports "tag_ids CONTAINS ?" lookups
POST_TAGS_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS posts_tags_idx ON {keyspace}.posts (VALUES(tag_ids))
"""

POST_VIEWS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.post_views (
    post_id UUID PRIMARY KEY,
    views COUNTER
)
"""

POSTS_TABLES_CQL = [
    POST_TABLE_CQL,
    POST_SLUG_INDEX_CQL,
    POST_AUTHOR_INDEX_CQL,
    POST_CATEGORY_INDEX_CQL,
    POST_STATUS_INDEX_CQL,
    POST_TAGS_INDEX_CQL,
    POST_VIEWS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Post:
    """Blog post entity."""

    title: str
    content: str
    author_id: UUID
    category_id: UUID
    id: UUID = field(default_factory=uuid4)
    slug: str = ""
    excerpt: str | None = None
    featured_image: str = ""
    tag_ids: set[UUID] = field(default_factory=set)
    status: str = PostStatus.DRAFT.value
    published_at: datetime | None = None
    liked_by: set[UUID] = field(default_factory=set)
    read_time: int = 1
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None
    views: int = 0

    @property
    def likes(self) -> int:
        return len(self.liked_by)

    @property
    def is_public(self) -> bool:
        """Visible to anonymous and ``user`` callers."""
        return self.status == PostStatus.PUBLISHED.value and self.is_active

    @property
    def sort_date(self) -> datetime:
        return self.published_at or self.created_at

    def set_title(self, title: str, timestamp_ms: int | None = None) -> None:
        """Change the title and regenerate the slug."""
        self.title = title
        self.slug = generate_post_slug(title, timestamp_ms)

    def set_content(self, content: str) -> None:
        """Change the content and recompute the read time."""
        self.content = content
        self.read_time = estimate_read_time(content)

    def set_status(self, status: PostStatus | str) -> None:
        """Change the status. The first publish stamps ``published_at``."""
        self.status = PostStatus(status).value
        if self.status == PostStatus.PUBLISHED.value and self.published_at is None:
            self.published_at = utcnow()

    def is_liked_by(self, user_id: UUID) -> bool:
        return user_id in self.liked_by

    @classmethod
    def from_row(cls, row: Any, views: int = 0) -> "Post":
        """Create Post from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title,
            slug=row.slug or "",
            content=row.content or "",
            excerpt=row.excerpt,
            featured_image=row.featured_image or "",
            author_id=row.author_id,
            category_id=row.category_id,
            tag_ids=set(row.tag_ids or ()),
            status=row.status or PostStatus.DRAFT.value,
            published_at=ensure_utc_aware(row.published_at),
            liked_by=set(row.liked_by or ()),
            read_time=row.read_time or 1,
            is_active=bool(row.is_active),
            created_at=ensure_utc_aware(row.created_at) or utcnow(),
            updated_at=ensure_utc_aware(row.updated_at),
            views=views,
        )


def create_post(
    title: str,
    content: str,
    author_id: UUID,
    category_id: UUID,
    tag_ids: set[UUID] | None = None,
    status: PostStatus | str = PostStatus.DRAFT,
    excerpt: str | None = None,
    featured_image: str = "",
    timestamp_ms: int | None = None,
) -> Post:
    """Create a new post with slug, read time and publish date derived."""
    post = Post(
        title=title,
        content=content,
        author_id=author_id,
        category_id=category_id,
        tag_ids=set(tag_ids or ()),
        excerpt=excerpt,
        featured_image=featured_image,
    )
    post.set_title(title, timestamp_ms)
    post.set_content(content)
    post.set_status(status)
    return post
