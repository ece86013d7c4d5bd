"""Database models for categories and tags.

Both are "terms": a unique name, a slug derived from it, a display color and
an active flag. Name uniqueness is case-insensitive and enforced through the
indexed ``name_lower`` column.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID, uuid4

from blogapi.utils.dates import ensure_utc_aware, utcnow
from blogapi.utils.text import generate_slug


DEFAULT_CATEGORY_COLOR = "#3B82F6"
DEFAULT_TAG_COLOR = "#10B981"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

CATEGORY_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.categories (
    id UUID PRIMARY KEY,
    name TEXT,
    name_lower TEXT,
    slug TEXT,
    description TEXT,
    color TEXT,
    is_active BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

CATEGORY_NAME_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS categories_name_lower_idx
ON {keyspace}.categories (name_lower)
"""

CATEGORY_SLUG_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS categories_slug_idx ON {keyspace}.categories (slug)
"""

TAG_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.tags (
    id UUID PRIMARY KEY,
    name TEXT,
    name_lower TEXT,
    slug TEXT,
    color TEXT,
    is_active BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

TAG_NAME_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS tags_name_lower_idx ON {keyspace}.tags (name_lower)
"""

TAG_SLUG_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS tags_slug_idx ON {keyspace}.tags (slug)
"""

TAXONOMY_TABLES_CQL = [
    CATEGORY_TABLE_CQL,
    CATEGORY_NAME_INDEX_CQL,
    CATEGORY_SLUG_INDEX_CQL,
    TAG_TABLE_CQL,
    TAG_NAME_INDEX_CQL,
    TAG_SLUG_INDEX_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Term:
    """Common fields of categories and tags."""

    COLUMNS: ClassVar[tuple[str, ...]] = (
        "id",
        "name",
        "name_lower",
        "slug",
        "color",
        "is_active",
        "created_at",
        "updated_at",
    )

    name: str
    color: str
    id: UUID = field(default_factory=uuid4)
    slug: str = ""
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.slug:
            self.slug = generate_slug(self.name)

    @property
    def name_lower(self) -> str:
        return self.name.strip().lower()

    def rename(self, name: str) -> None:
        """Change the name and re-derive the slug."""
        self.name = name
        self.slug = generate_slug(name)

    def column_values(self) -> list[Any]:
        """Values in ``COLUMNS`` order, for inserts."""
        return [getattr(self, column) for column in self.COLUMNS]

    @classmethod
    def _row_fields(cls, row: Any) -> dict[str, Any]:
        return {
            "id": row.id,
            "name": row.name,
            "slug": row.slug,
            "color": row.color,
            "is_active": bool(row.is_active),
            "created_at": ensure_utc_aware(row.created_at) or utcnow(),
            "updated_at": ensure_utc_aware(row.updated_at),
        }


@dataclass
class Category(Term):
    """Post category. Every post belongs to exactly one."""

    COLUMNS: ClassVar[tuple[str, ...]] = (*Term.COLUMNS, "description")

    color: str = DEFAULT_CATEGORY_COLOR
    description: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Category":
        return cls(**cls._row_fields(row), description=row.description)


@dataclass
class Tag(Term):
    """Post tag. A post may carry any number of tags."""

    color: str = DEFAULT_TAG_COLOR

    @classmethod
    def from_row(cls, row: Any) -> "Tag":
        return cls(**cls._row_fields(row))
