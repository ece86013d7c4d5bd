"""FastAPI dependencies for the post service."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from blogapi.posts.service import PostService


_post_service_getter: Callable[[], PostService] | None = None


def set_post_service_getter(getter: Callable[[], PostService]) -> None:
    """Set the post service getter function."""
    global _post_service_getter  # noqa: PLW0603 - Required for DI pattern
    _post_service_getter = getter


def get_post_service() -> PostService:
    """Get PostService instance from app state."""
    if _post_service_getter is None:
        msg = "PostService not configured - call set_post_service_getter first"
        raise RuntimeError(msg)
    return _post_service_getter()


PostServiceDep = Annotated[PostService, Depends(get_post_service)]
