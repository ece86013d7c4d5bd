"""Tests for post filtering, sorting, stats and PostService mutations."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock
from uuid import UUID, uuid4

import pytest
from cassandra.cluster import Session
from pydantic import ValidationError as PydanticValidationError

from blogapi.auth.permissions import UserRole
from blogapi.core.exceptions import AuthorizationError
from blogapi.posts.models import Post, PostStatus, create_post
from blogapi.posts.schemas import PostCreate, PostFilters, PostSort, PostUpdate
from blogapi.posts.service import (
    InvalidCategoryError,
    InvalidTagsError,
    PostNotFoundError,
    PostService,
    compute_post_stats,
    filter_posts,
    related_posts,
    sort_posts,
)


CONTENT = "Lorem ipsum dolor sit amet, consectetur adipiscing elit, sed do eiusmod."
BASE_DATE = datetime(2024, 1, 1, tzinfo=UTC)


def make_post(
    title: str = "A post title",
    status: PostStatus = PostStatus.PUBLISHED,
    is_active: bool = True,
    days: int = 0,
    category_id: UUID | None = None,
    tag_ids: set[UUID] | None = None,
    author_id: UUID | None = None,
    views: int = 0,
    likes: int = 0,
    content: str = CONTENT,
) -> Post:
    published = status == PostStatus.PUBLISHED
    return Post(
        title=title,
        content=content,
        author_id=author_id or uuid4(),
        category_id=category_id or uuid4(),
        tag_ids=set(tag_ids or ()),
        status=status.value,
        published_at=BASE_DATE + timedelta(days=days) if published else None,
        is_active=is_active,
        created_at=BASE_DATE + timedelta(days=days),
        views=views,
        liked_by={uuid4() for _ in range(likes)},
    )


def make_result(rows: list) -> MagicMock:
    result = MagicMock()
    result.one.return_value = rows[0] if rows else None
    result.__iter__.return_value = iter(rows)
    return result


# ==============================================================================
# Pure helpers
# ==============================================================================


class TestFilterPosts:
    def test_anonymous_sees_only_published_active(self) -> None:
        visible = make_post("Visible")
        posts = [
            visible,
            make_post("Draft", status=PostStatus.DRAFT),
            make_post("Archived", status=PostStatus.ARCHIVED),
            make_post("Inactive", is_active=False),
        ]

        result = filter_posts(posts, PostFilters(status=PostStatus.DRAFT))

        assert result == [visible]

    def test_staff_sees_hidden_and_can_filter_status(self) -> None:
        draft = make_post("Draft", status=PostStatus.DRAFT)
        posts = [make_post("Visible"), draft, make_post("Inactive", is_active=False)]

        assert len(filter_posts(posts, PostFilters(), include_hidden=True)) == 3
        assert filter_posts(
            posts, PostFilters(status=PostStatus.DRAFT), include_hidden=True
        ) == [draft]
        assert len(
            filter_posts(posts, PostFilters(is_active=False), include_hidden=True)
        ) == 1

    def test_category_author_and_tags(self) -> None:
        category, author, tag = uuid4(), uuid4(), uuid4()
        match = make_post(category_id=category, author_id=author, tag_ids={tag, uuid4()})
        posts = [match, make_post(category_id=category), make_post(tag_ids={tag})]

        assert filter_posts(
            posts, PostFilters(category=category, author=author, tags=[tag])
        ) == [match]

    def test_search_requires_every_term(self) -> None:
        both = make_post("Python tips", content=CONTENT + " asyncio")
        one = make_post("Python basics")

        result = filter_posts([both, one], PostFilters(search="PYTHON asyncio"))

        assert result == [both]

    def test_date_range_uses_published_at(self) -> None:
        early, middle, late = make_post(days=0), make_post(days=5), make_post(days=10)
        filters = PostFilters(
            start_date=BASE_DATE + timedelta(days=1),
            end_date=BASE_DATE + timedelta(days=9),
        )

        assert filter_posts([early, middle, late], filters) == [middle]


class TestSortPosts:
    @pytest.fixture
    def posts(self) -> list[Post]:
        return [
            make_post("Bravo", days=1, views=10, likes=1),
            make_post("alpha", days=3, views=5, likes=3),
            make_post("Charlie", days=2, views=10, likes=0),
        ]

    @pytest.mark.parametrize(
        "sort,expected",
        [
            (PostSort.NEWEST, ["alpha", "Charlie", "Bravo"]),
            (PostSort.OLDEST, ["Bravo", "Charlie", "alpha"]),
            (PostSort.POPULAR, ["Charlie", "Bravo", "alpha"]),
            (PostSort.LIKED, ["alpha", "Bravo", "Charlie"]),
            (PostSort.TITLE, ["alpha", "Bravo", "Charlie"]),
        ],
    )
    def test_orders(self, posts: list[Post], sort: PostSort, expected: list[str]) -> None:
        assert [p.title for p in sort_posts(posts, sort)] == expected


class TestRelatedPosts:
    def test_shares_category_or_tag(self) -> None:
        category, tag = uuid4(), uuid4()
        post = make_post(category_id=category, tag_ids={tag})
        same_category = make_post("Same category", category_id=category, days=1)
        same_tag = make_post("Same tag", tag_ids={tag}, days=2)
        unrelated = make_post("Unrelated")
        hidden = make_post("Draft", category_id=category, status=PostStatus.DRAFT)

        result = related_posts(
            post, [post, same_category, same_tag, unrelated, hidden], limit=5
        )

        assert [p.title for p in result] == ["Same tag", "Same category"]

    def test_limit(self) -> None:
        category = uuid4()
        post = make_post(category_id=category)
        others = [make_post(category_id=category, days=i) for i in range(4)]
        assert len(related_posts(post, others, limit=2)) == 2


class TestComputePostStats:
    def test_groups_by_status_and_category(self) -> None:
        category = uuid4()
        posts = [
            make_post(category_id=category, views=3, likes=1, days=1),
            make_post(category_id=category, views=2, days=2),
            make_post(status=PostStatus.DRAFT, views=7),
        ]

        stats = compute_post_stats(posts, {category: "Tech"})

        by_status = {s.status: s for s in stats.status_stats}
        assert by_status["published"].count == 2
        assert by_status["published"].total_views == 5
        assert by_status["published"].total_likes == 1
        assert by_status["draft"].count == 1
        assert stats.category_stats[0].name == "Tech"
        assert stats.category_stats[0].count == 2
        assert [r.views for r in stats.recent_posts] == [2, 3]

    def test_recent_posts_exclude_inactive(self) -> None:
        category = uuid4()
        hidden = make_post(title="Hidden post", category_id=category, is_active=False, days=5)
        shown = make_post(title="Shown post", category_id=category, days=1)

        stats = compute_post_stats([hidden, shown], {category: "Tech"})

        assert [r.id for r in stats.recent_posts] == [shown.id]

    def test_deleted_category_left_out(self) -> None:
        known = uuid4()
        posts = [make_post(category_id=known), make_post(category_id=uuid4())]

        stats = compute_post_stats(posts, {known: "Tech"})

        assert [(s.id, s.name, s.count) for s in stats.category_stats] == [
            (known, "Tech", 1)
        ]
        assert len(stats.recent_posts) == 2


class TestPostSchemas:
    def test_title_and_content_trimmed(self) -> None:
        data = PostCreate(
            title="   Padded title   ", content=f"  {CONTENT}  ", category=uuid4()
        )
        assert data.title == "Padded title"
        assert data.content == CONTENT

    @pytest.mark.parametrize("title", ["       ", "  abc   "])
    def test_blank_or_short_title_rejected(self, title: str) -> None:
        with pytest.raises(PydanticValidationError):
            PostCreate(title=title, content=CONTENT, category=uuid4())
        with pytest.raises(PydanticValidationError):
            PostUpdate(title=title)

    def test_content_length_counted_after_trim(self) -> None:
        with pytest.raises(PydanticValidationError):
            PostCreate(title="A post title", content=" " * 40 + "x" * 20, category=uuid4())


# ==============================================================================
# Model behaviour
# ==============================================================================


class TestPostModel:
    def test_create_post_derives_fields(self) -> None:
        post = create_post(
            title="My First Post",
            content=CONTENT,
            author_id=uuid4(),
            category_id=uuid4(),
            status=PostStatus.PUBLISHED,
            timestamp_ms=1700000000000,
        )
        assert post.slug == "my-first-post-1700000000000"
        assert post.read_time == 1
        assert post.published_at is not None

    def test_draft_has_no_published_at(self) -> None:
        post = create_post("Draft post", CONTENT, uuid4(), uuid4())
        assert post.published_at is None

    def test_republish_keeps_first_published_at(self) -> None:
        post = create_post("A post title", CONTENT, uuid4(), uuid4())
        post.set_status(PostStatus.PUBLISHED)
        first = post.published_at
        post.set_status(PostStatus.ARCHIVED)
        post.set_status(PostStatus.PUBLISHED)
        assert post.published_at == first

    def test_likes_is_set_size(self) -> None:
        post = make_post(likes=3)
        assert post.likes == 3


# ==============================================================================
# Service
# ==============================================================================


@pytest.fixture
def mock_session():
    """Mock Cassandra session with distinct prepared statements."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: Mock(query=query))
    session.aexecute = AsyncMock(return_value=make_result([]))
    return session


@pytest.fixture
def category_service():
    service = MagicMock()
    service.get_term = AsyncMock(return_value=SimpleNamespace(name="Tech"))
    service.get_terms = AsyncMock(return_value={})
    service.get_summaries = AsyncMock(return_value={})
    return service


@pytest.fixture
def tag_service():
    service = MagicMock()
    service.get_terms = AsyncMock(return_value={})
    service.get_summaries = AsyncMock(return_value={})
    return service


@pytest.fixture
def post_service(mock_session, category_service, tag_service) -> PostService:
    auth_service = MagicMock()
    auth_service.get_author_summaries = AsyncMock(return_value={})
    return PostService(
        session=mock_session,
        keyspace="test_keyspace",
        auth_service=auth_service,
        category_service=category_service,
        tag_service=tag_service,
    )


def post_create(**overrides) -> PostCreate:
    data = {"title": "A fresh post", "content": CONTENT, "category": uuid4()}
    data.update(overrides)
    return PostCreate(**data)


class TestCreatePost:
    @pytest.mark.asyncio
    async def test_user_role_cannot_create(
        self, post_service, mock_session, make_identity
    ) -> None:
        with pytest.raises(AuthorizationError):
            await post_service.create_post(post_create(), make_identity(UserRole.USER))
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_category_inserts_nothing(
        self, post_service, mock_session, category_service, make_identity
    ) -> None:
        category_service.get_term = AsyncMock(return_value=None)

        with pytest.raises(InvalidCategoryError, match="Invalid category ID"):
            await post_service.create_post(post_create(), make_identity(UserRole.EDITOR))
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_tag_rejected(
        self, post_service, mock_session, tag_service, make_identity
    ) -> None:
        known = uuid4()
        tag_service.get_terms = AsyncMock(return_value={known: Mock()})

        with pytest.raises(InvalidTagsError):
            await post_service.create_post(
                post_create(tags=[known, uuid4()]), make_identity(UserRole.EDITOR)
            )
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_editor_creates_post(
        self, post_service, mock_session, make_identity
    ) -> None:
        editor = make_identity(UserRole.EDITOR)

        post = await post_service.create_post(
            post_create(status=PostStatus.PUBLISHED), editor
        )

        assert post.author_id == editor.id
        assert post.slug.startswith("a-fresh-post-")
        assert post.published_at is not None
        assert post.likes == 0
        # slug lookup + insert
        assert mock_session.aexecute.await_count == 2

    @pytest.mark.asyncio
    async def test_slug_collision_bumps_suffix(
        self, post_service, mock_session, make_identity
    ) -> None:
        taken = make_result([SimpleNamespace(id=uuid4())])
        free = make_result([])
        mock_session.aexecute = AsyncMock(side_effect=[taken, free, free])

        post = await post_service.create_post(post_create(), make_identity(UserRole.ADMIN))

        first_slug = mock_session.aexecute.await_args_list[0].args[1][0]
        assert post.slug != first_slug


class TestUpdatePost:
    @pytest.mark.asyncio
    async def test_non_owner_user_forbidden(
        self, post_service, mock_session, make_identity
    ) -> None:
        post = make_post()
        post_service.require_post = AsyncMock(return_value=post)

        with pytest.raises(AuthorizationError, match="Not authorized to update this post"):
            await post_service.update_post(
                post.id, PostUpdate(title="New title here"), make_identity(UserRole.USER)
            )
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owner_may_update(self, post_service, make_identity) -> None:
        owner = make_identity(UserRole.USER)
        post = make_post(author_id=owner.id)
        post_service.require_post = AsyncMock(return_value=post)

        updated = await post_service.update_post(
            post.id, PostUpdate(excerpt="Short summary"), owner
        )

        assert updated.excerpt == "Short summary"
        assert updated.updated_at is not None

    @pytest.mark.asyncio
    async def test_publish_then_edit_keeps_published_at(
        self, post_service, make_identity
    ) -> None:
        editor = make_identity(UserRole.EDITOR)
        post = make_post(status=PostStatus.DRAFT, author_id=editor.id)
        post_service.require_post = AsyncMock(return_value=post)

        await post_service.update_post(
            post.id, PostUpdate(status=PostStatus.PUBLISHED), editor
        )
        published_at = post.published_at
        assert published_at is not None

        await post_service.update_post(
            post.id, PostUpdate(title="Edited title", content=CONTENT * 2), editor
        )
        assert post.published_at == published_at
        assert post.slug.startswith("edited-title-")

    @pytest.mark.asyncio
    async def test_update_does_not_write_likes(
        self, post_service, mock_session, make_identity
    ) -> None:
        admin = make_identity(UserRole.ADMIN)
        post = make_post(likes=2)
        post_service.require_post = AsyncMock(return_value=post)

        await post_service.update_post(post.id, PostUpdate(is_active=False), admin)

        statement = mock_session.aexecute.await_args.args[0]
        assert "liked_by" not in statement.query


class TestDeletePost:
    @pytest.mark.asyncio
    async def test_editor_cannot_delete_foreign_post(
        self, post_service, make_identity
    ) -> None:
        post_service.require_post = AsyncMock(return_value=make_post())
        with pytest.raises(AuthorizationError):
            await post_service.delete_post(uuid4(), make_identity(UserRole.EDITOR))

    @pytest.mark.asyncio
    async def test_delete_cascades_comments(
        self, post_service, mock_session, make_identity
    ) -> None:
        owner = make_identity(UserRole.USER)
        post = make_post(author_id=owner.id)
        post_service.require_post = AsyncMock(return_value=post)
        comment_rows = make_result([SimpleNamespace(id=uuid4()), SimpleNamespace(id=uuid4())])
        mock_session.aexecute = AsyncMock(return_value=comment_rows)

        await post_service.delete_post(post.id, owner)

        # comment lookup + 2 comment deletes + views + post
        assert mock_session.aexecute.await_count == 5


class TestReadAndLike:
    @pytest.mark.asyncio
    async def test_hidden_post_is_missing_for_user(
        self, post_service, make_identity
    ) -> None:
        post_service.require_post = AsyncMock(
            return_value=make_post(status=PostStatus.DRAFT)
        )
        with pytest.raises(PostNotFoundError):
            await post_service.get_post(uuid4(), make_identity(UserRole.USER))

    @pytest.mark.asyncio
    async def test_staff_read_does_not_count_view(
        self, post_service, mock_session, make_identity
    ) -> None:
        post = make_post(status=PostStatus.DRAFT, views=4)
        post_service.require_post = AsyncMock(return_value=post)

        result = await post_service.get_post(post.id, make_identity(UserRole.EDITOR))

        assert result.views == 4
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_public_read_counts_view(self, post_service, mock_session) -> None:
        post = make_post(views=4)
        post_service.require_post = AsyncMock(return_value=post)

        result = await post_service.get_post(post.id, None)

        assert result.views == 5
        mock_session.aexecute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_toggle_like_twice_is_identity(
        self, post_service, mock_session, make_identity
    ) -> None:
        user = make_identity(UserRole.USER)
        post = make_post(likes=2)
        post_service.require_post = AsyncMock(return_value=post)

        assert await post_service.toggle_like(post.id, user) == (3, True)
        assert await post_service.toggle_like(post.id, user) == (2, False)

        first, second = mock_session.aexecute.await_args_list
        assert "liked_by + ?" in first.args[0].query
        assert "liked_by - ?" in second.args[0].query
        assert first.args[1] == [{user.id}, post.id]
