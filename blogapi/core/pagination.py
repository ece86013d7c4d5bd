"""Offset pagination over in-memory result sets."""

import math
from dataclasses import dataclass
from typing import Generic, TypeVar

from blogapi.config import get_settings


T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of a filtered, sorted result set."""

    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def paginate(items: list[T], page: int, limit: int) -> Page[T]:
    """Slice ``items`` to the requested 1-based page.

    ``limit`` is capped at ``pagination_max_limit``.
    """
    page = max(page, 1)
    limit = max(1, min(limit, get_settings().pagination_max_limit))
    start = (page - 1) * limit
    return Page(items=items[start : start + limit], total=len(items), page=page, limit=limit)
