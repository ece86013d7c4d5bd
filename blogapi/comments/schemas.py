"""Pydantic schemas for comments."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field, StringConstraints

from blogapi.auth.schemas import AuthorSummary
from blogapi.comments.models import CommentStatus
from blogapi.core.schemas import CamelModel
from blogapi.posts.schemas import PostReference


CommentContent = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)
]


# ==============================================================================
# Request Schemas
# ==============================================================================


class CommentCreate(CamelModel):
    """New comment, optionally replying to ``parentComment``."""

    content: CommentContent
    parent_comment: UUID | None = None


class CommentUpdate(CamelModel):
    """Comment edit. ``status`` only applies to editors and admins."""

    content: CommentContent | None = None
    status: CommentStatus | None = None


class ModerateRequest(CamelModel):
    """Moderation target. Checked against approved/rejected by the service."""

    status: str


class CommentFilters(BaseModel):
    """Query parameters of the admin comment listing."""

    status: CommentStatus | None = None
    post: UUID | None = None
    author: UUID | None = None
    search: str | None = None


# ==============================================================================
# Response Schemas
# ==============================================================================


class CommentReply(CamelModel):
    """Direct reply embedded under its parent."""

    id: UUID
    content: str
    author: AuthorSummary | None = None
    parent_comment: UUID | None = None
    status: CommentStatus
    likes: int = 0
    is_edited: bool = False
    edited_at: datetime | None = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime | None = None


class CommentResponse(CommentReply):
    """Comment with its post and visible direct replies."""

    post: PostReference | UUID
    replies: list[CommentReply] = Field(default_factory=list)
