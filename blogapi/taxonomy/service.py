"""Category and tag service.

Business logic for:
- Term CRUD with case-insensitive unique names
- Delete guard while posts still reference a term
- Usage statistics and popular tags
- Bulk lookups used by the post service for validation and embedding
"""

from collections import Counter
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, ClassVar
from uuid import UUID

import structlog

from blogapi.core.exceptions import ConflictError, NotFoundError, ReferenceInUseError
from blogapi.taxonomy.models import Category, Tag, Term
from blogapi.taxonomy.schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    PopularTag,
    TagCreate,
    TagResponse,
    TagUpdate,
    TermStats,
    TermSummary,
)
from blogapi.utils.dates import utcnow


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

PUBLISHED = "published"


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class TermNotFoundError(NotFoundError):
    """Category or tag not found."""

    def __init__(self, label: str, term_id: UUID | str):
        super().__init__(f"{label} not found with id of {term_id}")


class TermExistsError(ConflictError):
    """Another category or tag already uses the name."""

    def __init__(self, label: str):
        super().__init__(f"{label} already exists with this name")


class TermInUseError(ReferenceInUseError):
    """Delete blocked by referencing posts."""

    def __init__(self, label: str, post_count: int):
        self.post_count = post_count
        super().__init__(
            f"Cannot delete {label.lower()}. It is being used by {post_count} post(s)"
        )


def _is_public(row: Any) -> bool:
    return row.status == PUBLISHED and bool(row.is_active)


# ==============================================================================
# Term Service
# ==============================================================================


class TermService:
    """Shared CRUD for categories and tags.

    Subclasses name the table, the entity class and the posts column that
    references the term: a single ``category_id`` or the ``tag_ids`` set.
    """

    table: ClassVar[str]
    label: ClassVar[str]
    entity: ClassVar[type[Term]]
    response_model: ClassVar[type[TagResponse]]
    reference_column: ClassVar[str]
    multi_valued: ClassVar[bool] = False

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        table = f"{self.keyspace}.{self.table}"
        columns = self.entity.COLUMNS
        self._get_term = self.session.prepare(f"SELECT * FROM {table} WHERE id = ?")
        self._get_terms = self.session.prepare(f"SELECT * FROM {table} WHERE id IN ?")
        self._get_by_name = self.session.prepare(
            f"SELECT * FROM {table} WHERE name_lower = ?"
        )
        self._list_terms = self.session.prepare(f"SELECT * FROM {table}")
        self._upsert_term = self.session.prepare(
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        self._delete_term = self.session.prepare(f"DELETE FROM {table} WHERE id = ?")
        operator = "CONTAINS" if self.multi_valued else "="
        self._referencing_posts = self.session.prepare(
            f"SELECT id, status, is_active FROM {self.keyspace}.posts "
            f"WHERE {self.reference_column} {operator} ?"
        )
        self._post_refs = self.session.prepare(
            f"SELECT category_id, tag_ids, status, is_active FROM {self.keyspace}.posts"
        )

    @property
    def event_prefix(self) -> str:
        return self.label.lower()

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def get_term(self, term_id: UUID) -> Term | None:
        rows = await self.session.aexecute(self._get_term, [term_id])
        row = rows.one()
        return self.entity.from_row(row) if row else None

    async def require_term(self, term_id: UUID) -> Term:
        """Find term by ID or raise TermNotFoundError."""
        term = await self.get_term(term_id)
        if not term:
            raise TermNotFoundError(self.label, term_id)
        return term

    async def get_terms(self, term_ids: Iterable[UUID]) -> dict[UUID, Term]:
        """Resolve ids to terms. Unknown ids are absent from the result."""
        ids = list({tid for tid in term_ids if tid is not None})
        if not ids:
            return {}
        rows = await self.session.aexecute(self._get_terms, [ids])
        return {row.id: self.entity.from_row(row) for row in rows}

    async def get_summaries(self, term_ids: Iterable[UUID]) -> dict[UUID, TermSummary]:
        terms = await self.get_terms(term_ids)
        return {tid: TermSummary.model_validate(t) for tid, t in terms.items()}

    async def get_by_name(self, name: str) -> Term | None:
        rows = await self.session.aexecute(self._get_by_name, [name.strip().lower()])
        row = rows.one()
        return self.entity.from_row(row) if row else None

    async def _fetch_terms(self) -> list[Term]:
        rows = await self.session.aexecute(self._list_terms)
        return [self.entity.from_row(row) for row in rows]

    async def _fetch_referencing_posts(self, term_id: UUID) -> list[Any]:
        rows = await self.session.aexecute(self._referencing_posts, [term_id])
        return list(rows)

    async def _fetch_post_refs(self) -> list[Any]:
        rows = await self.session.aexecute(self._post_refs)
        return list(rows)

    def _term_ids_of(self, post_row: Any) -> Iterable[UUID]:
        ref = getattr(post_row, self.reference_column)
        if not ref:
            return []
        return ref if self.multi_valued else [ref]

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def list_terms(
        self,
        is_active: bool | None = True,
        search: str | None = None,
    ) -> list[Term]:
        """Filter in memory, sorted by name.

        ``search`` is a case-insensitive substring match on the name.
        """
        terms = await self._fetch_terms()
        if is_active is not None:
            terms = [t for t in terms if t.is_active == is_active]
        if search:
            needle = search.strip().lower()
            terms = [t for t in terms if needle in t.name_lower]
        terms.sort(key=lambda t: t.name_lower)
        return terms

    async def count_posts(self, term_id: UUID) -> tuple[int, int]:
        """Return ``(all referencing posts, published and active ones)``."""
        rows = await self._fetch_referencing_posts(term_id)
        return len(rows), sum(1 for row in rows if _is_public(row))

    async def get_term_with_count(self, term_id: UUID) -> TagResponse:
        """Term with ``postCount`` of its published, active posts."""
        term = await self.require_term(term_id)
        _, published = await self.count_posts(term_id)
        return self.to_response(term, post_count=published)

    async def get_term_stats(self) -> list[TermStats]:
        """Usage of every term, most published first."""
        terms = await self._fetch_terms()
        totals: Counter[UUID] = Counter()
        published: Counter[UUID] = Counter()
        for row in await self._fetch_post_refs():
            for term_id in self._term_ids_of(row):
                totals[term_id] += 1
                if _is_public(row):
                    published[term_id] += 1

        stats = [
            TermStats(
                id=t.id,
                name=t.name,
                slug=t.slug,
                color=t.color,
                post_count=totals[t.id],
                published_post_count=published[t.id],
            )
            for t in terms
        ]
        stats.sort(key=lambda s: s.published_post_count, reverse=True)
        return stats

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def _ensure_name_free(self, name: str, term_id: UUID | None = None) -> None:
        existing = await self.get_by_name(name)
        if existing and existing.id != term_id:
            raise TermExistsError(self.label)

    async def create_term(self, data: CategoryCreate | TagCreate) -> Term:
        """Create a term.

        Raises:
            TermExistsError: If the name is taken (case-insensitive)
        """
        await self._ensure_name_free(data.name)
        term = self.entity(**data.model_dump())
        await self._save(term)
        logger.info(f"{self.event_prefix}_created", term_id=str(term.id), name=term.name)
        return term

    async def update_term(
        self,
        term_id: UUID,
        data: CategoryUpdate | TagUpdate,
    ) -> Term:
        """Apply a partial update. A rename re-derives the slug.

        Raises:
            TermNotFoundError: If the term doesn't exist
            TermExistsError: If the new name belongs to another term
        """
        term = await self.require_term(term_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        name = changes.pop("name", None)
        if name is not None and name.lower() != term.name_lower:
            await self._ensure_name_free(name, term.id)
        if name is not None:
            term.rename(name)
        for key, value in changes.items():
            setattr(term, key, value)

        term.updated_at = utcnow()
        await self._save(term)
        logger.info(f"{self.event_prefix}_updated", term_id=str(term.id))
        return term

    async def delete_term(self, term_id: UUID) -> None:
        """Delete a term nothing references.

        Raises:
            TermNotFoundError: If the term doesn't exist
            TermInUseError: If any post still references it
        """
        await self.require_term(term_id)
        total, _ = await self.count_posts(term_id)
        if total > 0:
            logger.warning(
                f"{self.event_prefix}_delete_blocked",
                term_id=str(term_id),
                post_count=total,
            )
            raise TermInUseError(self.label, total)

        await self.session.aexecute(self._delete_term, [term_id])
        logger.info(f"{self.event_prefix}_deleted", term_id=str(term_id))

    async def _save(self, term: Term) -> None:
        await self.session.aexecute(self._upsert_term, term.column_values())

    def to_response(self, term: Term, post_count: int | None = None) -> TagResponse:
        response = self.response_model.model_validate(term)
        response.post_count = post_count
        return response


class CategoryService(TermService):
    table = "categories"
    label = "Category"
    entity = Category
    response_model = CategoryResponse
    reference_column = "category_id"


class TagService(TermService):
    table = "tags"
    label = "Tag"
    entity = Tag
    response_model = TagResponse
    reference_column = "tag_ids"
    multi_valued = True

    async def get_popular_tags(self, limit: int = 10) -> list[PopularTag]:
        """Active tags with published posts, most used first."""
        published: Counter[UUID] = Counter()
        for row in await self._fetch_post_refs():
            if _is_public(row):
                for tag_id in self._term_ids_of(row):
                    published[tag_id] += 1

        popular = [
            PopularTag(
                id=t.id,
                name=t.name,
                slug=t.slug,
                color=t.color,
                published_post_count=published[t.id],
            )
            for t in await self.list_terms(is_active=True)
            if published[t.id] > 0
        ]
        popular.sort(key=lambda p: p.published_post_count, reverse=True)
        return popular[:limit]
