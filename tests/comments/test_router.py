"""Tests for comment endpoints."""

from unittest.mock import AsyncMock, MagicMock, Mock
from uuid import UUID, uuid4

import pytest
from cassandra.cluster import Session
from fastapi.testclient import TestClient

from blogapi.auth.schemas import AuthorSummary
from blogapi.comments.dependencies import set_comment_service_getter
from blogapi.comments.service import (
    CommentService,
    InvalidModerationStatusError,
    InvalidParentCommentError,
)
from blogapi.posts.schemas import PostReference
from blogapi.posts.service import PostNotFoundError

from tests.comments.test_service import make_comment


@pytest.fixture
def mock_comment_service() -> MagicMock:
    service = MagicMock()
    service.moderate_comment = AsyncMock(side_effect=InvalidModerationStatusError)
    service.create_comment = AsyncMock(side_effect=InvalidParentCommentError)
    service.delete_comment = AsyncMock(return_value=3)
    service.toggle_like = AsyncMock(return_value=(0, False))
    set_comment_service_getter(lambda: service)
    return service


@pytest.fixture
def real_comment_service() -> CommentService:
    """CommentService over a mocked session, with embeds resolved."""
    session = Mock(spec=Session)
    session.prepare = Mock(return_value=Mock())
    session.aexecute = AsyncMock(return_value=Mock())
    auth_service = MagicMock()
    post_service = MagicMock()
    post_service.require_post = AsyncMock()
    service = CommentService(
        session=session,
        keyspace="test_keyspace",
        auth_service=auth_service,
        post_service=post_service,
    )
    set_comment_service_getter(lambda: service)
    return service


class TestModerationEndpoint:
    def test_spam_status_rejected(
        self, client: TestClient, mock_comment_service: MagicMock, editor_headers: dict
    ) -> None:
        response = client.put(
            f"/api/comments/{uuid4()}/moderate",
            json={"status": "spam"},
            headers=editor_headers,
        )
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Status must be either approved or rejected",
        }

    def test_user_cannot_moderate(
        self, client: TestClient, mock_comment_service: MagicMock, user_headers: dict
    ) -> None:
        response = client.put(
            f"/api/comments/{uuid4()}/moderate",
            json={"status": "approved"},
            headers=user_headers,
        )
        assert response.status_code == 403
        mock_comment_service.moderate_comment.assert_not_awaited()

    def test_staff_listing_requires_staff(
        self, client: TestClient, mock_comment_service: MagicMock, user_headers: dict
    ) -> None:
        response = client.get("/api/comments", headers=user_headers)
        assert response.status_code == 403


class TestCommentMutations:
    def test_invalid_parent(
        self, client: TestClient, mock_comment_service: MagicMock, user_headers: dict
    ) -> None:
        response = client.post(
            f"/api/posts/{uuid4()}/comments",
            json={"content": "Reply", "parentComment": str(uuid4())},
            headers=user_headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid parent comment ID"

    def test_blank_content_rejected(
        self, client: TestClient, mock_comment_service: MagicMock, user_headers: dict
    ) -> None:
        response = client.post(
            f"/api/posts/{uuid4()}/comments",
            json={"content": "   "},
            headers=user_headers,
        )
        assert response.status_code == 400
        mock_comment_service.create_comment.assert_not_awaited()

    def test_delete(
        self, client: TestClient, mock_comment_service: MagicMock, user_headers: dict
    ) -> None:
        response = client.delete(f"/api/comments/{uuid4()}", headers=user_headers)
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Comment deleted successfully",
        }

    def test_unlike(
        self, client: TestClient, mock_comment_service: MagicMock, user_headers: dict
    ) -> None:
        response = client.put(f"/api/comments/{uuid4()}/like", headers=user_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Comment unliked successfully"
        assert body["data"] == {"likes": 0, "isLiked": False}


class TestPostCommentListing:
    def test_thread_shape(
        self, client: TestClient, real_comment_service: CommentService
    ) -> None:
        post_id = uuid4()
        author_id = uuid4()
        root = make_comment(post_id=post_id, author_id=author_id)
        reply = make_comment(post_id=post_id, parent_id=root.id, author_id=author_id)
        real_comment_service._fetch_post_comments = AsyncMock(return_value=[root, reply])
        real_comment_service.auth_service.get_author_summaries = AsyncMock(
            return_value={author_id: AuthorSummary(id=author_id, name="Jane Doe")}
        )
        real_comment_service.post_service.get_post_references = AsyncMock(
            return_value={
                post_id: PostReference(id=post_id, title="A post", slug="a-post-1")
            }
        )

        response = client.get(f"/api/posts/{post_id}/comments")

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        (item,) = body["data"]
        assert item["id"] == str(root.id)
        assert item["author"]["name"] == "Jane Doe"
        assert item["post"]["slug"] == "a-post-1"
        assert item["parentComment"] is None
        assert [r["id"] for r in item["replies"]] == [str(reply.id)]
        assert item["replies"][0]["parentComment"] == str(root.id)

    def test_missing_post(
        self, client: TestClient, real_comment_service: CommentService
    ) -> None:
        missing: UUID = uuid4()
        real_comment_service.post_service.require_post = AsyncMock(
            side_effect=PostNotFoundError(missing)
        )
        response = client.get(f"/api/posts/{missing}/comments")
        assert response.status_code == 404
        assert response.json()["message"] == f"Post not found with id of {missing}"
