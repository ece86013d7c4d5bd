"""Comment API endpoints.

Two routers:
- ``post_comments_router``: ``/posts/{post_id}/comments`` listing and creation
- ``router``: ``/comments`` reads, edits, likes, moderation and staff listing
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from blogapi.auth.dependencies import CurrentUser, OptionalUser, require_policy
from blogapi.auth.permissions import Action, Resource
from blogapi.auth.schemas import UserResponse
from blogapi.comments.dependencies import CommentServiceDep
from blogapi.comments.models import CommentStatus
from blogapi.comments.schemas import (
    CommentCreate,
    CommentFilters,
    CommentResponse,
    CommentUpdate,
    ModerateRequest,
)
from blogapi.core.exceptions import BlogError, handle_blog_error
from blogapi.core.pagination import paginate
from blogapi.core.schemas import (
    DataResponse,
    LikeResult,
    ListResponse,
    MessageResponse,
    MutationResponse,
)


post_comments_router = APIRouter(prefix="/posts/{post_id}/comments", tags=["comments"])
router = APIRouter(prefix="/comments", tags=["comments"])

CommentStaff = Annotated[
    UserResponse, Depends(require_policy(Resource.COMMENT, Action.LIST_ALL))
]
CommentModerator = Annotated[
    UserResponse, Depends(require_policy(Resource.COMMENT, Action.MODERATE))
]


# ==============================================================================
# Comments of a post
# ==============================================================================


@post_comments_router.get(
    "",
    response_model=ListResponse[CommentResponse],
    summary="List comments of a post",
)
async def list_post_comments(
    post_id: UUID,
    caller: OptionalUser,
    comment_service: CommentServiceDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    comment_status: CommentStatus | None = Query(default=None, alias="status"),
) -> ListResponse[CommentResponse]:
    """Top-level comments, newest first, each with its visible replies.

    ``status`` applies to editors and admins; everyone else sees approved
    comments only.
    """
    try:
        comments = await comment_service.list_post_comments(
            post_id, caller, comment_status
        )
    except BlogError as e:
        raise handle_blog_error(e) from e

    result = paginate(comments, page, limit)
    return ListResponse.from_page(
        result, await comment_service.to_responses(result.items)
    )


@post_comments_router.post(
    "",
    response_model=MutationResponse[CommentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a post",
)
async def create_comment(
    post_id: UUID,
    data: CommentCreate,
    user: CurrentUser,
    comment_service: CommentServiceDep,
) -> MutationResponse[CommentResponse]:
    try:
        comment = await comment_service.create_comment(post_id, data, user)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Comment created successfully",
        data=await comment_service.to_response(comment),
    )


# ==============================================================================
# Single comments
# ==============================================================================


@router.get(
    "",
    response_model=ListResponse[CommentResponse],
    summary="List all comments",
)
async def list_all_comments(
    user: CommentStaff,
    comment_service: CommentServiceDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    comment_status: CommentStatus | None = Query(default=None, alias="status"),
    post: UUID | None = None,
    author: UUID | None = None,
    search: str | None = Query(default=None, max_length=200),
) -> ListResponse[CommentResponse]:
    filters = CommentFilters(
        status=comment_status, post=post, author=author, search=search
    )
    try:
        comments = await comment_service.list_all_comments(filters, user)
    except BlogError as e:
        raise handle_blog_error(e) from e

    result = paginate(comments, page, limit)
    return ListResponse.from_page(
        result, await comment_service.to_responses(result.items)
    )


@router.get(
    "/{comment_id}",
    response_model=DataResponse[CommentResponse],
    summary="Get comment",
)
async def get_comment(
    comment_id: UUID,
    caller: OptionalUser,
    comment_service: CommentServiceDep,
) -> DataResponse[CommentResponse]:
    try:
        comment = await comment_service.get_comment(comment_id, caller)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return DataResponse(data=await comment_service.to_response(comment))


@router.put(
    "/{comment_id}",
    response_model=MutationResponse[CommentResponse],
    summary="Edit comment",
)
async def update_comment(
    comment_id: UUID,
    data: CommentUpdate,
    user: CurrentUser,
    comment_service: CommentServiceDep,
) -> MutationResponse[CommentResponse]:
    try:
        comment = await comment_service.update_comment(comment_id, data, user)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Comment updated successfully",
        data=await comment_service.to_response(comment),
    )


@router.delete(
    "/{comment_id}",
    response_model=MessageResponse,
    summary="Delete comment and its replies",
)
async def delete_comment(
    comment_id: UUID,
    user: CurrentUser,
    comment_service: CommentServiceDep,
) -> MessageResponse:
    try:
        await comment_service.delete_comment(comment_id, user)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MessageResponse(message="Comment deleted successfully")


@router.put(
    "/{comment_id}/like",
    response_model=MutationResponse[LikeResult],
    summary="Like or unlike comment",
)
async def toggle_like(
    comment_id: UUID,
    user: CurrentUser,
    comment_service: CommentServiceDep,
) -> MutationResponse[LikeResult]:
    try:
        likes, is_liked = await comment_service.toggle_like(comment_id, user)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message=(
            "Comment liked successfully" if is_liked else "Comment unliked successfully"
        ),
        data=LikeResult(likes=likes, is_liked=is_liked),
    )


@router.put(
    "/{comment_id}/moderate",
    response_model=MutationResponse[CommentResponse],
    summary="Approve or reject comment",
    responses={400: {"description": "Status must be either approved or rejected"}},
)
async def moderate_comment(
    comment_id: UUID,
    data: ModerateRequest,
    user: CommentModerator,
    comment_service: CommentServiceDep,
) -> MutationResponse[CommentResponse]:
    try:
        comment = await comment_service.moderate_comment(comment_id, data.status, user)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message=f"Comment {comment.status} successfully",
        data=await comment_service.to_response(comment),
    )
