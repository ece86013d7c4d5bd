"""Tests for comment threading, moderation and recursive deletion."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, Mock
from uuid import UUID, uuid4

import pytest
from cassandra.cluster import Session

from blogapi.auth.permissions import UserRole
from blogapi.comments.models import Comment, CommentStatus
from blogapi.comments.schemas import CommentCreate, CommentFilters, CommentUpdate
from blogapi.comments.service import (
    CommentNotFoundError,
    CommentService,
    InvalidModerationStatusError,
    InvalidParentCommentError,
    check_moderation_target,
    filter_comments,
    group_replies,
    top_level_comments,
    visible_replies,
)
from blogapi.core.exceptions import AuthenticationError, AuthorizationError
from blogapi.posts.service import PostNotFoundError


BASE_DATE = datetime(2024, 1, 1, tzinfo=UTC)


def make_comment(
    post_id: UUID | None = None,
    parent_id: UUID | None = None,
    status: CommentStatus = CommentStatus.APPROVED,
    is_active: bool = True,
    minutes: int = 0,
    author_id: UUID | None = None,
    content: str = "Nice post",
) -> Comment:
    return Comment(
        post_id=post_id or uuid4(),
        author_id=author_id or uuid4(),
        content=content,
        parent_id=parent_id,
        status=status.value,
        is_active=is_active,
        created_at=BASE_DATE + timedelta(minutes=minutes),
    )


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: Mock(query=query))
    session.aexecute = AsyncMock(return_value=Mock())
    return session


@pytest.fixture
def post_service():
    service = MagicMock()
    service.require_post = AsyncMock()
    service.require_published_post = AsyncMock()
    service.get_post_references = AsyncMock(return_value={})
    return service


@pytest.fixture
def comment_service(mock_session, post_service) -> CommentService:
    auth_service = MagicMock()
    auth_service.get_author_summaries = AsyncMock(return_value={})
    return CommentService(
        session=mock_session,
        keyspace="test_keyspace",
        auth_service=auth_service,
        post_service=post_service,
    )


# ==============================================================================
# Threading helpers
# ==============================================================================


class TestThreadingHelpers:
    def test_visible_replies_oldest_first(self) -> None:
        parent = uuid4()
        late = make_comment(parent_id=parent, minutes=5)
        early = make_comment(parent_id=parent, minutes=1)
        hidden = make_comment(parent_id=parent, status=CommentStatus.REJECTED)
        inactive = make_comment(parent_id=parent, is_active=False)

        assert visible_replies([late, hidden, early, inactive]) == [early, late]

    def test_group_replies_by_parent(self) -> None:
        root = make_comment()
        reply = make_comment(parent_id=root.id)
        grouped = group_replies([root, reply])
        assert grouped == {root.id: [reply]}

    def test_top_level_for_public(self) -> None:
        older = make_comment(minutes=1)
        newer = make_comment(minutes=2)
        pending = make_comment(status=CommentStatus.PENDING)
        reply = make_comment(parent_id=older.id)

        result = top_level_comments(
            [older, newer, pending, reply], status=CommentStatus.PENDING
        )

        assert result == [newer, older]

    def test_top_level_for_staff_with_status(self) -> None:
        pending = make_comment(status=CommentStatus.PENDING)
        comments = [make_comment(), pending, make_comment(is_active=False)]

        assert len(top_level_comments(comments, include_hidden=True)) == 2
        assert top_level_comments(
            comments, include_hidden=True, status=CommentStatus.PENDING
        ) == [pending]

    def test_filter_comments(self) -> None:
        post = uuid4()
        match = make_comment(post_id=post, content="Great ARTICLE", minutes=1)
        comments = [match, make_comment(post_id=post), make_comment(content="article")]

        assert filter_comments(comments, CommentFilters(post=post, search="article")) == [
            match
        ]


class TestModerationTargets:
    @pytest.mark.parametrize("status", ["approved", "rejected", CommentStatus.APPROVED])
    def test_allowed(self, status) -> None:
        assert check_moderation_target(status).value in ("approved", "rejected")

    @pytest.mark.parametrize("status", ["pending", "spam", ""])
    def test_rejected(self, status: str) -> None:
        with pytest.raises(InvalidModerationStatusError):
            check_moderation_target(status)

    def test_edit_marks_comment(self) -> None:
        comment = make_comment()
        comment.edit("Nice post")
        assert comment.is_edited is False
        comment.edit("Changed")
        assert comment.is_edited is True
        assert comment.edited_at is not None


# ==============================================================================
# Service
# ==============================================================================


class TestCreateComment:
    @pytest.mark.asyncio
    async def test_top_level_comment(
        self, comment_service, mock_session, make_identity
    ) -> None:
        user = make_identity(UserRole.USER)
        post_id = uuid4()

        comment = await comment_service.create_comment(
            post_id, CommentCreate(content="  Hello  "), user
        )

        assert comment.content == "Hello"
        assert comment.status == CommentStatus.APPROVED.value
        assert comment.parent_id is None
        assert comment.author_id == user.id
        mock_session.aexecute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_anonymous_rejected(self, comment_service) -> None:
        with pytest.raises(AuthenticationError):
            await comment_service.create_comment(uuid4(), CommentCreate(content="Hi"), None)

    @pytest.mark.asyncio
    async def test_unpublished_post(
        self, comment_service, post_service, mock_session, make_identity
    ) -> None:
        post_service.require_published_post = AsyncMock(
            side_effect=PostNotFoundError("x", published_only=True)
        )
        with pytest.raises(PostNotFoundError, match="Published post not found"):
            await comment_service.create_comment(
                uuid4(), CommentCreate(content="Hi"), make_identity()
            )
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_parent_on_another_post(
        self, comment_service, mock_session, make_identity
    ) -> None:
        parent = make_comment(post_id=uuid4())
        comment_service.get_comment_by_id = AsyncMock(return_value=parent)

        with pytest.raises(InvalidParentCommentError):
            await comment_service.create_comment(
                uuid4(), CommentCreate(content="Hi", parent_comment=parent.id), make_identity()
            )
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_parent(
        self, comment_service, mock_session, make_identity
    ) -> None:
        comment_service.get_comment_by_id = AsyncMock(return_value=None)

        with pytest.raises(InvalidParentCommentError, match="Invalid parent comment ID"):
            await comment_service.create_comment(
                uuid4(), CommentCreate(content="Hi", parent_comment=uuid4()), make_identity()
            )
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reply_on_same_post(self, comment_service, make_identity) -> None:
        post_id = uuid4()
        parent = make_comment(post_id=post_id)
        comment_service.get_comment_by_id = AsyncMock(return_value=parent)

        reply = await comment_service.create_comment(
            post_id, CommentCreate(content="Agreed", parent_comment=parent.id), make_identity()
        )

        assert reply.parent_id == parent.id


class TestReadComments:
    @pytest.mark.asyncio
    async def test_list_attaches_visible_replies(self, comment_service) -> None:
        post_id = uuid4()
        root = make_comment(post_id=post_id)
        good = make_comment(post_id=post_id, parent_id=root.id, minutes=1)
        rejected = make_comment(
            post_id=post_id, parent_id=root.id, status=CommentStatus.REJECTED
        )
        comment_service._fetch_post_comments = AsyncMock(return_value=[root, good, rejected])

        result = await comment_service.list_post_comments(post_id, None)

        assert result == [root]
        assert root.replies == [good]

    @pytest.mark.asyncio
    async def test_missing_post(self, comment_service, post_service) -> None:
        post_service.require_post = AsyncMock(side_effect=PostNotFoundError("x"))
        with pytest.raises(PostNotFoundError):
            await comment_service.list_post_comments(uuid4(), None)

    @pytest.mark.asyncio
    async def test_hidden_comment_missing_for_user(
        self, comment_service, make_identity
    ) -> None:
        comment_service.require_comment = AsyncMock(
            return_value=make_comment(status=CommentStatus.REJECTED)
        )
        with pytest.raises(CommentNotFoundError):
            await comment_service.get_comment(uuid4(), make_identity(UserRole.USER))

    @pytest.mark.asyncio
    async def test_hidden_comment_visible_to_editor(
        self, comment_service, make_identity
    ) -> None:
        comment = make_comment(status=CommentStatus.REJECTED)
        comment_service.require_comment = AsyncMock(return_value=comment)
        comment_service._fetch_replies = AsyncMock(return_value=[])

        result = await comment_service.get_comment(
            comment.id, make_identity(UserRole.EDITOR)
        )

        assert result is comment

    @pytest.mark.asyncio
    async def test_list_all_requires_staff(self, comment_service, make_identity) -> None:
        with pytest.raises(AuthorizationError):
            await comment_service.list_all_comments(
                CommentFilters(), make_identity(UserRole.USER)
            )


class TestModerateComment:
    @pytest.mark.asyncio
    async def test_invalid_status_checked_before_any_read(
        self, comment_service, mock_session, make_identity
    ) -> None:
        with pytest.raises(InvalidModerationStatusError):
            await comment_service.moderate_comment(
                uuid4(), "spam", make_identity(UserRole.EDITOR)
            )
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_user_cannot_moderate(self, comment_service, make_identity) -> None:
        with pytest.raises(AuthorizationError):
            await comment_service.moderate_comment(
                uuid4(), "approved", make_identity(UserRole.USER)
            )

    @pytest.mark.asyncio
    async def test_reject_then_approve(self, comment_service, make_identity) -> None:
        comment = make_comment(status=CommentStatus.PENDING)
        comment_service.require_comment = AsyncMock(return_value=comment)
        editor = make_identity(UserRole.EDITOR)

        await comment_service.moderate_comment(comment.id, "rejected", editor)
        assert comment.status == "rejected"
        await comment_service.moderate_comment(comment.id, "approved", editor)
        assert comment.status == "approved"


class TestUpdateComment:
    @pytest.mark.asyncio
    async def test_non_owner_user_forbidden(self, comment_service, make_identity) -> None:
        comment_service.require_comment = AsyncMock(return_value=make_comment())
        with pytest.raises(AuthorizationError, match="Not authorized to update this comment"):
            await comment_service.update_comment(
                uuid4(), CommentUpdate(content="Hijack"), make_identity(UserRole.USER)
            )

    @pytest.mark.asyncio
    async def test_owner_status_change_ignored(self, comment_service, make_identity) -> None:
        owner = make_identity(UserRole.USER)
        comment = make_comment(author_id=owner.id)
        comment_service.require_comment = AsyncMock(return_value=comment)

        await comment_service.update_comment(
            comment.id,
            CommentUpdate(content="Edited", status=CommentStatus.REJECTED),
            owner,
        )

        assert comment.status == "approved"
        assert comment.content == "Edited"
        assert comment.is_edited is True

    @pytest.mark.asyncio
    async def test_editor_cannot_set_pending(self, comment_service, make_identity) -> None:
        comment_service.require_comment = AsyncMock(return_value=make_comment())
        with pytest.raises(InvalidModerationStatusError):
            await comment_service.update_comment(
                uuid4(),
                CommentUpdate(status=CommentStatus.PENDING),
                make_identity(UserRole.EDITOR),
            )


class TestDeleteComment:
    @pytest.mark.asyncio
    async def test_deletes_whole_subtree(
        self, comment_service, mock_session, make_identity
    ) -> None:
        owner = make_identity(UserRole.USER)
        root = make_comment(author_id=owner.id)
        child_a, child_b, grandchild = uuid4(), uuid4(), uuid4()
        tree = {
            root.id: [make_comment(parent_id=root.id), make_comment(parent_id=root.id)],
        }
        tree[root.id][0].id = child_a
        tree[root.id][1].id = child_b
        tree[child_a] = [make_comment(parent_id=child_a)]
        tree[child_a][0].id = grandchild

        comment_service.require_comment = AsyncMock(return_value=root)
        comment_service._fetch_replies = AsyncMock(
            side_effect=lambda parent_id: tree.get(parent_id, [])
        )

        deleted = await comment_service.delete_comment(root.id, owner)

        assert deleted == 4
        deleted_ids = [c.args[1][0] for c in mock_session.aexecute.await_args_list]
        assert set(deleted_ids) == {root.id, child_a, child_b, grandchild}
        assert deleted_ids[-1] == root.id

    @pytest.mark.asyncio
    async def test_editor_cannot_delete_foreign(self, comment_service, make_identity) -> None:
        comment_service.require_comment = AsyncMock(return_value=make_comment())
        with pytest.raises(AuthorizationError):
            await comment_service.delete_comment(uuid4(), make_identity(UserRole.EDITOR))

    @pytest.mark.asyncio
    async def test_toggle_like_twice_is_identity(
        self, comment_service, mock_session, make_identity
    ) -> None:
        user = make_identity()
        comment = make_comment()
        comment_service.require_comment = AsyncMock(return_value=comment)

        assert await comment_service.toggle_like(comment.id, user) == (1, True)
        assert await comment_service.toggle_like(comment.id, user) == (0, False)
        first, second = mock_session.aexecute.await_args_list
        assert "liked_by + ?" in first.args[0].query
        assert "liked_by - ?" in second.args[0].query
