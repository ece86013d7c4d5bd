"""FastAPI dependencies for the comment service."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from blogapi.comments.service import CommentService


_comment_service_getter: Callable[[], CommentService] | None = None


def set_comment_service_getter(getter: Callable[[], CommentService]) -> None:
    """Set the comment service getter function."""
    global _comment_service_getter  # noqa: PLW0603 - Required for DI pattern
    _comment_service_getter = getter


def get_comment_service() -> CommentService:
    """Get CommentService instance from app state."""
    if _comment_service_getter is None:
        msg = "CommentService not configured - call set_comment_service_getter first"
        raise RuntimeError(msg)
    return _comment_service_getter()


CommentServiceDep = Annotated[CommentService, Depends(get_comment_service)]
