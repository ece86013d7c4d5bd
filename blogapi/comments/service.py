"""Comment service for threaded discussions.

Business logic for:
- Top-level listing per post with visible direct replies
- Reply creation with same-post parent validation
- Edits, likes and moderation (approved/rejected)
- Recursive deletion of a comment and its whole reply subtree
- Staff listing across all posts
"""

from collections import defaultdict, deque
from collections.abc import Iterable
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from blogapi.auth.permissions import (
    Action,
    Identity,
    Resource,
    authorize,
    can_view_hidden,
    evaluate,
)
from blogapi.comments.models import Comment, CommentStatus
from blogapi.comments.schemas import (
    CommentCreate,
    CommentFilters,
    CommentReply,
    CommentResponse,
    CommentUpdate,
)
from blogapi.core.exceptions import (
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)
from blogapi.utils.dates import utcnow


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from blogapi.auth.service import AuthService
    from blogapi.posts.service import PostService


logger = structlog.get_logger(__name__)

MODERATION_TARGETS = (CommentStatus.APPROVED.value, CommentStatus.REJECTED.value)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CommentNotFoundError(NotFoundError):
    def __init__(self, comment_id: UUID | str):
        super().__init__(f"Comment not found with id of {comment_id}")


class InvalidParentCommentError(ReferentialIntegrityError):
    """Parent missing, inactive or on another post."""

    def __init__(self, message: str = "Invalid parent comment ID"):
        super().__init__(message)


class InvalidModerationStatusError(ValidationError):
    def __init__(self, message: str = "Status must be either approved or rejected"):
        super().__init__(message)


def check_moderation_target(status: str | CommentStatus) -> CommentStatus:
    """Return the target status, rejecting anything but approved/rejected."""
    value = status.value if isinstance(status, CommentStatus) else status
    if value not in MODERATION_TARGETS:
        raise InvalidModerationStatusError
    return CommentStatus(value)


# ==============================================================================
# Threading Helpers
# ==============================================================================


def visible_replies(replies: Iterable[Comment]) -> list[Comment]:
    """Active, approved replies, oldest first."""
    return sorted(
        (r for r in replies if r.is_visible),
        key=lambda r: r.created_at,
    )


def group_replies(comments: Iterable[Comment]) -> dict[UUID, list[Comment]]:
    """Index direct replies by their parent id."""
    grouped: dict[UUID, list[Comment]] = defaultdict(list)
    for comment in comments:
        if comment.parent_id is not None:
            grouped[comment.parent_id].append(comment)
    return grouped


def top_level_comments(
    comments: Iterable[Comment],
    include_hidden: bool = False,
    status: CommentStatus | None = None,
) -> list[Comment]:
    """Active comments without a parent, newest first.

    Without ``include_hidden`` only approved comments pass and ``status`` is
    ignored.
    """
    result = [c for c in comments if c.parent_id is None and c.is_active]
    if not include_hidden:
        result = [c for c in result if c.status == CommentStatus.APPROVED.value]
    elif status is not None:
        result = [c for c in result if c.status == status.value]
    result.sort(key=lambda c: c.created_at, reverse=True)
    return result


def filter_comments(comments: Iterable[Comment], filters: CommentFilters) -> list[Comment]:
    """Staff listing filters, newest first."""
    result = list(comments)
    if filters.status is not None:
        result = [c for c in result if c.status == filters.status.value]
    if filters.post:
        result = [c for c in result if c.post_id == filters.post]
    if filters.author:
        result = [c for c in result if c.author_id == filters.author]
    if filters.search:
        needle = filters.search.lower()
        result = [c for c in result if needle in c.content.lower()]
    result.sort(key=lambda c: c.created_at, reverse=True)
    return result


# ==============================================================================
# Comment Service
# ==============================================================================


class CommentService:
    """Threaded comments on posts."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        auth_service: "AuthService",
        post_service: "PostService",
    ):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra session with aexecute() support
            keyspace: Keyspace name for queries
            auth_service: Resolves comment authors
            post_service: Post existence and visibility checks
        """
        self.session = session
        self.keyspace = keyspace
        self.auth_service = auth_service
        self.post_service = post_service
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for better performance."""
        ks = self.keyspace
        self._get_comment = self.session.prepare(
            f"SELECT * FROM {ks}.comments WHERE id = ?"
        )
        self._get_comments_by_post = self.session.prepare(
            f"SELECT * FROM {ks}.comments WHERE post_id = ?"
        )
        self._get_replies = self.session.prepare(
            f"SELECT * FROM {ks}.comments WHERE parent_id = ?"
        )
        self._list_comments = self.session.prepare(f"SELECT * FROM {ks}.comments")
        self._insert_comment = self.session.prepare(f"""
            INSERT INTO {ks}.comments
            (id, post_id, parent_id, author_id, content, status, liked_by,
             is_edited, edited_at, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._update_comment = self.session.prepare(f"""
            UPDATE {ks}.comments
            SET content = ?, status = ?, is_edited = ?, edited_at = ?,
                updated_at = ?
            WHERE id = ?
        """)
        self._delete_comment = self.session.prepare(
            f"DELETE FROM {ks}.comments WHERE id = ?"
        )
        self._add_like = self.session.prepare(
            f"UPDATE {ks}.comments SET liked_by = liked_by + ? WHERE id = ?"
        )
        self._remove_like = self.session.prepare(
            f"UPDATE {ks}.comments SET liked_by = liked_by - ? WHERE id = ?"
        )

    # ==========================================================================
    # Data Access
    # ==========================================================================

    async def get_comment_by_id(self, comment_id: UUID) -> Comment | None:
        rows = await self.session.aexecute(self._get_comment, [comment_id])
        row = rows.one()
        return Comment.from_row(row) if row else None

    async def require_comment(self, comment_id: UUID) -> Comment:
        """Find comment by ID or raise CommentNotFoundError."""
        comment = await self.get_comment_by_id(comment_id)
        if not comment:
            raise CommentNotFoundError(comment_id)
        return comment

    async def _fetch_post_comments(self, post_id: UUID) -> list[Comment]:
        rows = await self.session.aexecute(self._get_comments_by_post, [post_id])
        return [Comment.from_row(row) for row in rows]

    async def _fetch_replies(self, parent_id: UUID) -> list[Comment]:
        rows = await self.session.aexecute(self._get_replies, [parent_id])
        return [Comment.from_row(row) for row in rows]

    async def _fetch_all(self) -> list[Comment]:
        rows = await self.session.aexecute(self._list_comments)
        return [Comment.from_row(row) for row in rows]

    async def _save(self, comment: Comment) -> None:
        comment.updated_at = utcnow()
        await self.session.aexecute(
            self._update_comment,
            [
                comment.content,
                comment.status,
                comment.is_edited,
                comment.edited_at,
                comment.updated_at,
                comment.id,
            ],
        )

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def list_post_comments(
        self,
        post_id: UUID,
        caller: Identity | None = None,
        status: CommentStatus | None = None,
    ) -> list[Comment]:
        """Top-level comments of a post, newest first, replies attached.

        Raises:
            PostNotFoundError: If the post doesn't exist
        """
        await self.post_service.require_post(post_id)

        comments = await self._fetch_post_comments(post_id)
        replies = group_replies(comments)
        top_level = top_level_comments(
            comments,
            include_hidden=can_view_hidden(caller, Resource.COMMENT),
            status=status,
        )
        for comment in top_level:
            comment.replies = visible_replies(replies.get(comment.id, ()))
        return top_level

    async def get_comment(
        self,
        comment_id: UUID,
        caller: Identity | None = None,
    ) -> Comment:
        """Read one comment with its visible direct replies.

        Raises:
            CommentNotFoundError: If missing, or hidden from the caller
        """
        comment = await self.require_comment(comment_id)
        if not comment.is_visible and not can_view_hidden(caller, Resource.COMMENT):
            raise CommentNotFoundError(comment_id)

        comment.replies = visible_replies(await self._fetch_replies(comment_id))
        return comment

    async def list_all_comments(
        self,
        filters: CommentFilters,
        caller: Identity,
    ) -> list[Comment]:
        """Every comment matching ``filters`` (editor/admin)."""
        authorize(caller, Action.LIST_ALL, Resource.COMMENT)
        return filter_comments(await self._fetch_all(), filters)

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def create_comment(
        self,
        post_id: UUID,
        data: CommentCreate,
        caller: Identity,
    ) -> Comment:
        """Comment on a published post, optionally as a reply.

        Raises:
            PostNotFoundError: If the post is missing or unpublished
            InvalidParentCommentError: If the parent is missing, inactive or
                on another post
        """
        authorize(caller, Action.CREATE, Resource.COMMENT)
        await self.post_service.require_published_post(post_id)

        if data.parent_comment is not None:
            parent = await self.get_comment_by_id(data.parent_comment)
            if parent is None or parent.post_id != post_id or not parent.is_active:
                raise InvalidParentCommentError

        comment = Comment(
            post_id=post_id,
            author_id=caller.id,
            content=data.content,
            parent_id=data.parent_comment,
        )
        await self.session.aexecute(
            self._insert_comment,
            [
                comment.id,
                comment.post_id,
                comment.parent_id,
                comment.author_id,
                comment.content,
                comment.status,
                comment.liked_by,
                comment.is_edited,
                comment.edited_at,
                comment.is_active,
                comment.created_at,
                comment.updated_at,
            ],
        )
        logger.info(
            "comment_created",
            comment_id=str(comment.id),
            post_id=str(post_id),
            parent_id=str(comment.parent_id) if comment.parent_id else None,
        )
        return comment

    async def update_comment(
        self,
        comment_id: UUID,
        data: CommentUpdate,
        caller: Identity,
    ) -> Comment:
        """Edit content; editors and admins may also set the status.

        Raises:
            CommentNotFoundError: If the comment doesn't exist
            AuthorizationError: If the caller is neither owner nor staff
            InvalidModerationStatusError: If a moderator asks for ``pending``
        """
        comment = await self.require_comment(comment_id)
        authorize(caller, Action.UPDATE, Resource.COMMENT, owner_id=comment.author_id)

        may_moderate = evaluate(caller, Action.MODERATE, Resource.COMMENT).allowed
        if data.status is not None and may_moderate:
            comment.status = check_moderation_target(data.status).value
        if data.content is not None:
            comment.edit(data.content)

        await self._save(comment)
        logger.info("comment_updated", comment_id=str(comment.id))
        return comment

    async def moderate_comment(
        self,
        comment_id: UUID,
        status: str,
        caller: Identity,
    ) -> Comment:
        """Approve or reject a comment.

        The target status is checked before anything is read or written.

        Raises:
            InvalidModerationStatusError: If status is not approved/rejected
            CommentNotFoundError: If the comment doesn't exist
        """
        authorize(caller, Action.MODERATE, Resource.COMMENT)
        target = check_moderation_target(status)

        comment = await self.require_comment(comment_id)
        if not comment.can_transition_to(target):
            raise InvalidModerationStatusError
        comment.status = target.value
        await self._save(comment)
        logger.info(
            "comment_moderated",
            comment_id=str(comment.id),
            status=comment.status,
            moderator_id=str(caller.id),
        )
        return comment

    async def collect_subtree(self, root_id: UUID) -> list[UUID]:
        """Ids of ``root_id`` and every descendant, breadth-first."""
        collected = [root_id]
        seen = {root_id}
        queue = deque([root_id])
        while queue:
            for reply in await self._fetch_replies(queue.popleft()):
                if reply.id not in seen:
                    seen.add(reply.id)
                    collected.append(reply.id)
                    queue.append(reply.id)
        return collected

    async def delete_comment(self, comment_id: UUID, caller: Identity) -> int:
        """Delete a comment and all replies below it.

        Returns:
            Number of comments deleted

        Raises:
            CommentNotFoundError: If the comment doesn't exist
            AuthorizationError: If the caller is neither owner nor admin
        """
        comment = await self.require_comment(comment_id)
        authorize(caller, Action.DELETE, Resource.COMMENT, owner_id=comment.author_id)

        subtree = await self.collect_subtree(comment_id)
        for cid in reversed(subtree):
            await self.session.aexecute(self._delete_comment, [cid])

        logger.info(
            "comment_deleted",
            comment_id=str(comment_id),
            post_id=str(comment.post_id),
            deleted=len(subtree),
        )
        return len(subtree)

    async def toggle_like(self, comment_id: UUID, caller: Identity) -> tuple[int, bool]:
        """Like or unlike a comment.

        Returns:
            Tuple of (like count, whether the caller now likes the comment)
        """
        authorize(caller, Action.LIKE, Resource.COMMENT)
        comment = await self.require_comment(comment_id)

        liked = caller.id in comment.liked_by
        statement = self._remove_like if liked else self._add_like
        await self.session.aexecute(statement, [{caller.id}, comment_id])

        if liked:
            comment.liked_by.discard(caller.id)
        else:
            comment.liked_by.add(caller.id)
        return comment.likes, not liked

    # ==========================================================================
    # Responses
    # ==========================================================================

    @staticmethod
    def _reply(comment: Comment, authors: dict) -> CommentReply:
        return CommentReply(
            id=comment.id,
            content=comment.content,
            author=authors.get(comment.author_id),
            parent_comment=comment.parent_id,
            status=comment.status,
            likes=comment.likes,
            is_edited=comment.is_edited,
            edited_at=comment.edited_at,
            is_active=comment.is_active,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )

    async def to_responses(self, comments: list[Comment]) -> list[CommentResponse]:
        """Embed authors, post references and replies."""
        everyone = [*comments, *(r for c in comments for r in c.replies)]
        authors = await self.auth_service.get_author_summaries(
            c.author_id for c in everyone
        )
        posts = await self.post_service.get_post_references(c.post_id for c in comments)
        return [
            CommentResponse(
                **self._reply(c, authors).model_dump(),
                post=posts.get(c.post_id, c.post_id),
                replies=[self._reply(r, authors) for r in c.replies],
            )
            for c in comments
        ]

    async def to_response(self, comment: Comment) -> CommentResponse:
        (response,) = await self.to_responses([comment])
        return response
