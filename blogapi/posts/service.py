"""Post service.

Business logic for:
- Role-aware listing with filters, full-text search and sorting
- Post CRUD with category/tag validation and ownership checks
- View counting and like toggling
- Related posts and dashboard statistics

Filtering and sorting run in memory over the posts table; the helpers doing
it are plain functions so they can be exercised without a database.
"""

import time
from collections import defaultdict
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from blogapi.auth.permissions import Action, Identity, Resource, authorize, can_view_hidden
from blogapi.core.exceptions import NotFoundError, ReferentialIntegrityError
from blogapi.posts.models import Post, create_post
from blogapi.posts.schemas import (
    CategoryPostStat,
    PostCreate,
    PostFilters,
    PostListItem,
    PostReference,
    PostResponse,
    PostSort,
    PostStats,
    PostUpdate,
    RecentPost,
    StatusStat,
)
from blogapi.utils.dates import ensure_utc_aware, utcnow


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from blogapi.auth.service import AuthService
    from blogapi.taxonomy.service import CategoryService, TagService


logger = structlog.get_logger(__name__)

RELATED_POSTS_LIMIT = 5
RECENT_POSTS_LIMIT = 5


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class PostNotFoundError(NotFoundError):
    """Post missing or hidden from the caller."""

    def __init__(self, post_id: UUID | str, published_only: bool = False):
        prefix = "Published post" if published_only else "Post"
        super().__init__(f"{prefix} not found with id of {post_id}")


class InvalidCategoryError(ReferentialIntegrityError):
    def __init__(self, message: str = "Invalid category ID"):
        super().__init__(message)


class InvalidTagsError(ReferentialIntegrityError):
    def __init__(self, message: str = "One or more tag IDs are invalid"):
        super().__init__(message)


# ==============================================================================
# Filtering & Sorting
# ==============================================================================


def _matches_search(post: Post, terms: list[str]) -> bool:
    haystack = f"{post.title} {post.content}".lower()
    return all(term in haystack for term in terms)


def filter_posts(
    posts: Iterable[Post],
    filters: PostFilters,
    include_hidden: bool = False,
) -> list[Post]:
    """Apply listing filters.

    Without ``include_hidden`` only published, active posts pass and the
    ``status``/``is_active`` filters are ignored.
    """
    result = list(posts)

    if include_hidden:
        if filters.status is not None:
            result = [p for p in result if p.status == filters.status.value]
        if filters.is_active is not None:
            result = [p for p in result if p.is_active == filters.is_active]
    else:
        result = [p for p in result if p.is_public]

    if filters.category:
        result = [p for p in result if p.category_id == filters.category]
    if filters.tags:
        wanted = set(filters.tags)
        result = [p for p in result if p.tag_ids & wanted]
    if filters.author:
        result = [p for p in result if p.author_id == filters.author]
    if filters.search:
        terms = filters.search.lower().split()
        result = [p for p in result if _matches_search(p, terms)]

    start = ensure_utc_aware(filters.start_date)
    end = ensure_utc_aware(filters.end_date)
    if start:
        result = [p for p in result if p.published_at and p.published_at >= start]
    if end:
        result = [p for p in result if p.published_at and p.published_at <= end]

    return result


def sort_posts(posts: list[Post], sort: PostSort = PostSort.NEWEST) -> list[Post]:
    """Return ``posts`` in the requested order.

    Ties fall back to newest first.
    """
    by_date = sorted(posts, key=lambda p: p.sort_date, reverse=True)
    if sort == PostSort.OLDEST:
        return sorted(posts, key=lambda p: p.sort_date)
    if sort == PostSort.POPULAR:
        return sorted(by_date, key=lambda p: p.views, reverse=True)
    if sort == PostSort.LIKED:
        return sorted(by_date, key=lambda p: p.likes, reverse=True)
    if sort == PostSort.TITLE:
        return sorted(posts, key=lambda p: p.title.lower())
    return by_date


def related_posts(post: Post, candidates: Iterable[Post], limit: int) -> list[Post]:
    """Public posts sharing the category or any tag with ``post``."""
    related = [
        p
        for p in candidates
        if p.id != post.id
        and p.is_public
        and (p.category_id == post.category_id or p.tag_ids & post.tag_ids)
    ]
    return sort_posts(related, PostSort.NEWEST)[:limit]


def compute_post_stats(
    posts: list[Post],
    category_names: dict[UUID, str],
) -> PostStats:
    """Aggregate status, category and recency figures."""
    by_status: dict[str, list[Post]] = defaultdict(list)
    for post in posts:
        by_status[post.status].append(post)

    status_stats = [
        StatusStat(
            status=status,
            count=len(group),
            total_views=sum(p.views for p in group),
            total_likes=sum(p.likes for p in group),
        )
        for status, group in by_status.items()
    ]

    public = [p for p in posts if p.is_public]
    by_category: dict[UUID, list[Post]] = defaultdict(list)
    for post in public:
        # Posts whose category was deleted are left out
        if post.category_id in category_names:
            by_category[post.category_id].append(post)

    category_stats = [
        CategoryPostStat(
            id=category_id,
            name=category_names[category_id],
            count=len(group),
            total_views=sum(p.views for p in group),
        )
        for category_id, group in by_category.items()
    ]
    category_stats.sort(key=lambda s: s.count, reverse=True)

    recent = sorted(
        public,
        key=lambda p: p.sort_date,
        reverse=True,
    )[:RECENT_POSTS_LIMIT]

    return PostStats(
        status_stats=status_stats,
        category_stats=category_stats,
        recent_posts=[
            RecentPost(
                id=p.id,
                title=p.title,
                views=p.views,
                likes=p.likes,
                published_at=p.published_at,
            )
            for p in recent
        ],
    )


# ==============================================================================
# Post Service
# ==============================================================================


class PostService:
    """Posts, their view counters and likes."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        auth_service: "AuthService",
        category_service: "CategoryService",
        tag_service: "TagService",
    ):
        """Initialize with Cassandra session and collaborating services.

        Args:
            session: Cassandra session with aexecute() support
            keyspace: Keyspace name for queries
            auth_service: Resolves post authors
            category_service: Validates and resolves categories
            tag_service: Validates and resolves tags
        """
        self.session = session
        self.keyspace = keyspace
        self.auth_service = auth_service
        self.category_service = category_service
        self.tag_service = tag_service
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for better performance."""
        ks = self.keyspace
        self._get_post = self.session.prepare(f"SELECT * FROM {ks}.posts WHERE id = ?")
        self._list_posts = self.session.prepare(f"SELECT * FROM {ks}.posts")
        self._get_post_references = self.session.prepare(
            f"SELECT id, title, slug FROM {ks}.posts WHERE id IN ?"
        )
        self._get_post_by_slug = self.session.prepare(
            f"SELECT id FROM {ks}.posts WHERE slug = ?"
        )
        self._insert_post = self.session.prepare(f"""
            INSERT INTO {ks}.posts
            (id, title, slug, content, excerpt, featured_image, author_id,
             category_id, tag_ids, status, published_at, liked_by, read_time,
             is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        # liked_by is left alone so concurrent likes survive an edit
        self._update_post = self.session.prepare(f"""
            UPDATE {ks}.posts
            SET title = ?, slug = ?, content = ?, excerpt = ?,
                featured_image = ?, category_id = ?, tag_ids = ?, status = ?,
                published_at = ?, read_time = ?, is_active = ?, updated_at = ?
            WHERE id = ?
        """)
        self._delete_post = self.session.prepare(f"DELETE FROM {ks}.posts WHERE id = ?")
        self._add_like = self.session.prepare(
            f"UPDATE {ks}.posts SET liked_by = liked_by + ? WHERE id = ?"
        )
        self._remove_like = self.session.prepare(
            f"UPDATE {ks}.posts SET liked_by = liked_by - ? WHERE id = ?"
        )
        self._get_views = self.session.prepare(
            f"SELECT post_id, views FROM {ks}.post_views WHERE post_id IN ?"
        )
        self._list_views = self.session.prepare(
            f"SELECT post_id, views FROM {ks}.post_views"
        )
        self._increment_views = self.session.prepare(
            f"UPDATE {ks}.post_views SET views = views + 1 WHERE post_id = ?"
        )
        self._delete_views = self.session.prepare(
            f"DELETE FROM {ks}.post_views WHERE post_id = ?"
        )
        self._get_comment_ids = self.session.prepare(
            f"SELECT id FROM {ks}.comments WHERE post_id = ?"
        )
        self._delete_comment = self.session.prepare(
            f"DELETE FROM {ks}.comments WHERE id = ?"
        )

    # ==========================================================================
    # Data Access
    # ==========================================================================

    async def _fetch_views(self, post_ids: list[UUID] | None = None) -> dict[UUID, int]:
        """View counts by post id; all posts when ``post_ids`` is None."""
        if post_ids is None:
            rows = await self.session.aexecute(self._list_views)
        elif not post_ids:
            return {}
        else:
            rows = await self.session.aexecute(self._get_views, [post_ids])
        return {row.post_id: row.views or 0 for row in rows}

    async def _fetch_posts(self) -> list[Post]:
        """Every post with its view count."""
        rows = await self.session.aexecute(self._list_posts)
        views = await self._fetch_views()
        return [Post.from_row(row, views.get(row.id, 0)) for row in rows]

    async def get_post_by_id(self, post_id: UUID) -> Post | None:
        rows = await self.session.aexecute(self._get_post, [post_id])
        row = rows.one()
        if not row:
            return None
        views = await self._fetch_views([post_id])
        return Post.from_row(row, views.get(post_id, 0))

    async def require_post(self, post_id: UUID) -> Post:
        """Find post by ID or raise PostNotFoundError."""
        post = await self.get_post_by_id(post_id)
        if not post:
            raise PostNotFoundError(post_id)
        return post

    async def require_published_post(self, post_id: UUID) -> Post:
        """Find a published, active post or raise PostNotFoundError."""
        post = await self.get_post_by_id(post_id)
        if not post or not post.is_public:
            raise PostNotFoundError(post_id, published_only=True)
        return post

    async def get_post_references(
        self, post_ids: Iterable[UUID]
    ) -> dict[UUID, PostReference]:
        """Resolve ids to ``{id, title, slug}``; unknown ids are absent."""
        ids = list({pid for pid in post_ids if pid is not None})
        if not ids:
            return {}
        rows = await self.session.aexecute(self._get_post_references, [ids])
        return {
            row.id: PostReference(id=row.id, title=row.title, slug=row.slug)
            for row in rows
        }

    async def _slug_taken(self, slug: str) -> bool:
        rows = await self.session.aexecute(self._get_post_by_slug, [slug])
        return rows.one() is not None

    async def _assign_slug(self, post: Post, title: str) -> None:
        """Set a title-derived slug, bumping the timestamp suffix on collision."""
        timestamp_ms = int(time.time() * 1000)
        post.set_title(title, timestamp_ms)
        while await self._slug_taken(post.slug):
            timestamp_ms += 1
            post.set_title(title, timestamp_ms)

    async def _validate_references(
        self,
        category_id: UUID | None,
        tag_ids: list[UUID] | None,
    ) -> None:
        """Raise unless the category and every tag exist."""
        if category_id is not None and not await self.category_service.get_term(
            category_id
        ):
            raise InvalidCategoryError
        if tag_ids:
            wanted = set(tag_ids)
            found = await self.tag_service.get_terms(wanted)
            if len(found) != len(wanted):
                raise InvalidTagsError

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def list_posts(
        self,
        filters: PostFilters,
        caller: Identity | None = None,
    ) -> list[Post]:
        """Filtered and sorted posts visible to ``caller``."""
        posts = await self._fetch_posts()
        visible = filter_posts(
            posts, filters, include_hidden=can_view_hidden(caller, Resource.POST)
        )
        return sort_posts(visible, filters.sort)

    async def get_post(self, post_id: UUID, caller: Identity | None = None) -> Post:
        """Read one post.

        Hidden posts look missing to anonymous and ``user`` callers, and
        their reads bump the view counter.

        Raises:
            PostNotFoundError: If the post is missing or hidden
        """
        post = await self.require_post(post_id)
        if can_view_hidden(caller, Resource.POST):
            return post

        if not post.is_public:
            raise PostNotFoundError(post_id)

        await self.session.aexecute(self._increment_views, [post_id])
        post.views += 1
        return post

    async def get_related_posts(
        self,
        post_id: UUID,
        limit: int = RELATED_POSTS_LIMIT,
    ) -> list[Post]:
        """Published posts sharing the category or a tag, newest first."""
        post = await self.require_post(post_id)
        return related_posts(post, await self._fetch_posts(), limit)

    async def get_post_stats(self) -> PostStats:
        posts = await self._fetch_posts()
        categories = await self.category_service.get_terms(
            p.category_id for p in posts if p.is_public
        )
        names = {cid: c.name for cid, c in categories.items()}
        return compute_post_stats(posts, names)

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def create_post(self, data: PostCreate, caller: Identity) -> Post:
        """Create a post authored by ``caller``.

        Raises:
            AuthorizationError: If the caller may not create posts
            InvalidCategoryError: If the category doesn't exist
            InvalidTagsError: If any tag doesn't exist
        """
        authorize(caller, Action.CREATE, Resource.POST)
        await self._validate_references(data.category, data.tags)

        post = create_post(
            title=data.title,
            content=data.content,
            author_id=caller.id,
            category_id=data.category,
            tag_ids=set(data.tags),
            status=data.status,
            excerpt=data.excerpt,
            featured_image=data.featured_image or "",
        )
        await self._assign_slug(post, data.title)

        await self.session.aexecute(
            self._insert_post,
            [
                post.id,
                post.title,
                post.slug,
                post.content,
                post.excerpt,
                post.featured_image,
                post.author_id,
                post.category_id,
                post.tag_ids,
                post.status,
                post.published_at,
                post.liked_by,
                post.read_time,
                post.is_active,
                post.created_at,
                post.updated_at,
            ],
        )
        logger.info(
            "post_created",
            post_id=str(post.id),
            author_id=str(post.author_id),
            status=post.status,
        )
        return post

    async def update_post(
        self,
        post_id: UUID,
        data: PostUpdate,
        caller: Identity,
    ) -> Post:
        """Apply a partial update.

        A title change regenerates the slug, a content change recomputes the
        read time and the first publish stamps ``published_at``.

        Raises:
            PostNotFoundError: If the post doesn't exist
            AuthorizationError: If the caller is neither owner nor staff
            InvalidCategoryError: If a new category doesn't exist
            InvalidTagsError: If any new tag doesn't exist
        """
        post = await self.require_post(post_id)
        authorize(caller, Action.UPDATE, Resource.POST, owner_id=post.author_id)

        category_id = data.category if data.category != post.category_id else None
        await self._validate_references(category_id, data.tags)

        if data.title is not None and data.title != post.title:
            await self._assign_slug(post, data.title)
        if data.content is not None:
            post.set_content(data.content)
        if data.excerpt is not None:
            post.excerpt = data.excerpt
        if data.featured_image is not None:
            post.featured_image = data.featured_image
        if data.category is not None:
            post.category_id = data.category
        if data.tags is not None:
            post.tag_ids = set(data.tags)
        if data.is_active is not None:
            post.is_active = data.is_active
        if data.status is not None:
            post.set_status(data.status)

        post.updated_at = utcnow()
        await self.session.aexecute(
            self._update_post,
            [
                post.title,
                post.slug,
                post.content,
                post.excerpt,
                post.featured_image,
                post.category_id,
                post.tag_ids,
                post.status,
                post.published_at,
                post.read_time,
                post.is_active,
                post.updated_at,
                post.id,
            ],
        )
        logger.info("post_updated", post_id=str(post.id), status=post.status)
        return post

    async def delete_post(self, post_id: UUID, caller: Identity) -> None:
        """Delete a post with its comments and view counter.

        Raises:
            PostNotFoundError: If the post doesn't exist
            AuthorizationError: If the caller is neither owner nor admin
        """
        post = await self.require_post(post_id)
        authorize(caller, Action.DELETE, Resource.POST, owner_id=post.author_id)

        comment_rows = await self.session.aexecute(self._get_comment_ids, [post_id])
        comment_ids = [row.id for row in comment_rows]
        for comment_id in comment_ids:
            await self.session.aexecute(self._delete_comment, [comment_id])

        await self.session.aexecute(self._delete_views, [post_id])
        await self.session.aexecute(self._delete_post, [post_id])
        logger.info(
            "post_deleted",
            post_id=str(post_id),
            comments_deleted=len(comment_ids),
        )

    async def toggle_like(self, post_id: UUID, caller: Identity) -> tuple[int, bool]:
        """Like or unlike a post.

        Returns:
            Tuple of (like count, whether the caller now likes the post)
        """
        authorize(caller, Action.LIKE, Resource.POST)
        post = await self.require_post(post_id)

        liked = post.is_liked_by(caller.id)
        statement = self._remove_like if liked else self._add_like
        await self.session.aexecute(statement, [{caller.id}, post_id])

        if liked:
            post.liked_by.discard(caller.id)
        else:
            post.liked_by.add(caller.id)

        logger.info("post_like_toggled", post_id=str(post_id), liked=not liked)
        return post.likes, not liked

    # ==========================================================================
    # Responses
    # ==========================================================================

    async def _embeds(
        self, posts: list[Post]
    ) -> tuple[dict[UUID, Any], dict[UUID, Any], dict[UUID, Any]]:
        authors = await self.auth_service.get_author_summaries(
            p.author_id for p in posts
        )
        categories = await self.category_service.get_summaries(
            p.category_id for p in posts
        )
        tags = await self.tag_service.get_summaries(
            tid for p in posts for tid in p.tag_ids
        )
        return authors, categories, tags

    @staticmethod
    def _item_fields(
        post: Post,
        authors: dict[UUID, Any],
        categories: dict[UUID, Any],
        tags: dict[UUID, Any],
    ) -> dict[str, Any]:
        return {
            "id": post.id,
            "title": post.title,
            "slug": post.slug,
            "excerpt": post.excerpt,
            "featured_image": post.featured_image,
            "author": authors.get(post.author_id),
            "category": categories.get(post.category_id),
            "tags": [tags[tid] for tid in sorted(post.tag_ids, key=str) if tid in tags],
            "status": post.status,
            "published_at": post.published_at,
            "views": post.views,
            "likes": post.likes,
            "read_time": post.read_time,
            "is_active": post.is_active,
            "created_at": post.created_at,
            "updated_at": post.updated_at,
        }

    async def to_list_items(self, posts: list[Post]) -> list[PostListItem]:
        """Listing form, with author, category and tags embedded."""
        authors, categories, tags = await self._embeds(posts)
        return [
            PostListItem(**self._item_fields(p, authors, categories, tags))
            for p in posts
        ]

    async def to_response(self, post: Post) -> PostResponse:
        """Full form including content."""
        authors, categories, tags = await self._embeds([post])
        return PostResponse(
            **self._item_fields(post, authors, categories, tags),
            content=post.content,
        )

