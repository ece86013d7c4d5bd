"""FastAPI dependencies for the taxonomy services."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from blogapi.taxonomy.service import CategoryService, TagService


_category_service_getter: Callable[[], CategoryService] | None = None
_tag_service_getter: Callable[[], TagService] | None = None


def set_category_service_getter(getter: Callable[[], CategoryService]) -> None:
    """Set the category service getter function."""
    global _category_service_getter  # noqa: PLW0603 - Required for DI pattern
    _category_service_getter = getter


def set_tag_service_getter(getter: Callable[[], TagService]) -> None:
    """Set the tag service getter function."""
    global _tag_service_getter  # noqa: PLW0603 - Required for DI pattern
    _tag_service_getter = getter


def get_category_service() -> CategoryService:
    if _category_service_getter is None:
        msg = "CategoryService not configured - call set_category_service_getter first"
        raise RuntimeError(msg)
    return _category_service_getter()


def get_tag_service() -> TagService:
    if _tag_service_getter is None:
        msg = "TagService not configured - call set_tag_service_getter first"
        raise RuntimeError(msg)
    return _tag_service_getter()


CategoryServiceDep = Annotated[CategoryService, Depends(get_category_service)]
TagServiceDep = Annotated[TagService, Depends(get_tag_service)]
