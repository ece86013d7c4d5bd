"""Database models for threaded comments.

Architecture: adjacency list
- ``parent_id`` references the parent comment (NULL for top-level comments)
- replies are never stored on the parent; they are read back through the
  ``parent_id`` index
- likes are a set of user ids, the like count is its size
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from blogapi.utils.dates import ensure_utc_aware, utcnow


class CommentStatus(str, Enum):
    """Moderation state of a comment."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Pending is only ever a starting state
MODERATION_TRANSITIONS: dict[CommentStatus, frozenset[CommentStatus]] = {
    CommentStatus.PENDING: frozenset({CommentStatus.APPROVED, CommentStatus.REJECTED}),
    CommentStatus.APPROVED: frozenset({CommentStatus.APPROVED, CommentStatus.REJECTED}),
    CommentStatus.REJECTED: frozenset({CommentStatus.APPROVED, CommentStatus.REJECTED}),
}


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COMMENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments (
    id UUID PRIMARY KEY,
    post_id UUID,
    parent_id UUID,
    author_id UUID,
    content TEXT,
    status TEXT,
    liked_by SET<UUID>,
    is_edited BOOLEAN,
    edited_at TIMESTAMP,
    is_active BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

COMMENT_POST_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_post_idx ON {keyspace}.comments (post_id)
"""

# Index for fetching replies of a comment
COMMENT_PARENT_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_parent_idx ON {keyspace}.comments (parent_id)
"""

COMMENT_AUTHOR_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_author_idx ON {keyspace}.comments (author_id)
"""

COMMENT_STATUS_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_status_idx ON {keyspace}.comments (status)
"""

COMMENTS_TABLES_CQL = [
    COMMENT_TABLE_CQL,
    COMMENT_POST_INDEX_CQL,
    COMMENT_PARENT_INDEX_CQL,
    COMMENT_AUTHOR_INDEX_CQL,
    COMMENT_STATUS_INDEX_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Comment:
    """Comment entity."""

    post_id: UUID
    author_id: UUID
    content: str
    id: UUID = field(default_factory=uuid4)
    parent_id: UUID | None = None
    status: str = CommentStatus.APPROVED.value
    liked_by: set[UUID] = field(default_factory=set)
    is_edited: bool = False
    edited_at: datetime | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None
    # Not persisted, filled in at read time
    replies: list["Comment"] = field(default_factory=list, repr=False)

    @property
    def likes(self) -> int:
        return len(self.liked_by)

    @property
    def is_visible(self) -> bool:
        """Visible to anonymous and ``user`` callers."""
        return self.is_active and self.status == CommentStatus.APPROVED.value

    def edit(self, content: str) -> None:
        """Replace the content, marking the comment as edited on change."""
        if content == self.content:
            return
        self.content = content
        self.is_edited = True
        self.edited_at = utcnow()

    def can_transition_to(self, status: CommentStatus | str) -> bool:
        return CommentStatus(status) in MODERATION_TRANSITIONS[CommentStatus(self.status)]

    @classmethod
    def from_row(cls, row: Any) -> "Comment":
        """Create Comment from Cassandra row."""
        return cls(
            id=row.id,
            post_id=row.post_id,
            parent_id=row.parent_id,
            author_id=row.author_id,
            content=row.content or "",
            status=row.status or CommentStatus.APPROVED.value,
            liked_by=set(row.liked_by or ()),
            is_edited=row.is_edited or False,
            edited_at=ensure_utc_aware(row.edited_at),
            is_active=bool(row.is_active),
            created_at=ensure_utc_aware(row.created_at) or utcnow(),
            updated_at=ensure_utc_aware(row.updated_at),
        )
