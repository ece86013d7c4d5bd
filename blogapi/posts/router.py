"""Post API endpoints.

Provides routes for:
- Role-aware listing, reading and related posts (public)
- Create (editor/admin), update and delete (owner or policy)
- Like toggling (authenticated)
- Dashboard statistics (editor/admin)
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from blogapi.auth.dependencies import CurrentUser, OptionalUser, require_policy
from blogapi.auth.permissions import Action, Resource
from blogapi.auth.schemas import UserResponse
from blogapi.core.exceptions import BlogError, ValidationError, handle_blog_error
from blogapi.core.pagination import paginate
from blogapi.core.schemas import (
    DataResponse,
    LikeResult,
    ListResponse,
    MessageResponse,
    MutationResponse,
)
from blogapi.posts.dependencies import PostServiceDep
from blogapi.posts.models import PostStatus
from blogapi.posts.schemas import (
    PostCreate,
    PostFilters,
    PostListItem,
    PostResponse,
    PostSort,
    PostStats,
    PostUpdate,
)


router = APIRouter(prefix="/posts", tags=["posts"])

StatsViewer = Annotated[
    UserResponse, Depends(require_policy(Resource.POST, Action.VIEW_STATS))
]


def parse_id_list(value: str | None, field: str) -> list[UUID]:
    """Split a comma separated id list, rejecting malformed ids."""
    if not value:
        return []
    try:
        return [UUID(part.strip()) for part in value.split(",") if part.strip()]
    except ValueError as e:
        raise ValidationError(
            errors=[{"field": field, "message": f"Invalid id in {field}"}]
        ) from e


@router.get("", response_model=ListResponse[PostListItem], summary="List posts")
async def list_posts(
    caller: OptionalUser,
    post_service: PostServiceDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    category: UUID | None = None,
    tags: str | None = Query(default=None, description="Comma separated tag ids"),
    author: UUID | None = None,
    search: str | None = Query(default=None, max_length=200),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    post_status: PostStatus | None = Query(default=None, alias="status"),
    is_active: bool | None = Query(default=None, alias="isActive"),
    sort: PostSort = PostSort.NEWEST,
) -> ListResponse[PostListItem]:
    """List posts.

    Anonymous and ``user`` callers only see published, active posts;
    ``status`` and ``isActive`` apply to editors and admins.
    """
    try:
        filters = PostFilters(
            category=category,
            tags=parse_id_list(tags, "tags"),
            author=author,
            search=search,
            start_date=start_date,
            end_date=end_date,
            status=post_status,
            is_active=is_active,
            sort=sort,
        )
    except BlogError as e:
        raise handle_blog_error(e) from e

    posts = await post_service.list_posts(filters, caller)
    result = paginate(posts, page, limit)
    return ListResponse.from_page(result, await post_service.to_list_items(result.items))


@router.get("/stats", response_model=DataResponse[PostStats], summary="Post statistics")
async def get_post_stats(
    _user: StatsViewer,
    post_service: PostServiceDep,
) -> DataResponse[PostStats]:
    return DataResponse(data=await post_service.get_post_stats())


@router.get("/{post_id}", response_model=DataResponse[PostResponse], summary="Get post")
async def get_post(
    post_id: UUID,
    caller: OptionalUser,
    post_service: PostServiceDep,
) -> DataResponse[PostResponse]:
    try:
        post = await post_service.get_post(post_id, caller)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return DataResponse(data=await post_service.to_response(post))


@router.get(
    "/{post_id}/related",
    response_model=DataResponse[list[PostListItem]],
    summary="Related posts",
)
async def get_related_posts(
    post_id: UUID,
    post_service: PostServiceDep,
    limit: int = Query(default=5, ge=1, le=20),
) -> DataResponse[list[PostListItem]]:
    try:
        posts = await post_service.get_related_posts(post_id, limit)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return DataResponse(data=await post_service.to_list_items(posts))


@router.post(
    "",
    response_model=MutationResponse[PostResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create post",
)
async def create_post(
    data: PostCreate,
    user: CurrentUser,
    post_service: PostServiceDep,
) -> MutationResponse[PostResponse]:
    try:
        post = await post_service.create_post(data, user)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Post created successfully",
        data=await post_service.to_response(post),
    )


@router.put(
    "/{post_id}",
    response_model=MutationResponse[PostResponse],
    summary="Update post",
)
async def update_post(
    post_id: UUID,
    data: PostUpdate,
    user: CurrentUser,
    post_service: PostServiceDep,
) -> MutationResponse[PostResponse]:
    try:
        post = await post_service.update_post(post_id, data, user)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Post updated successfully",
        data=await post_service.to_response(post),
    )


@router.delete("/{post_id}", response_model=MessageResponse, summary="Delete post")
async def delete_post(
    post_id: UUID,
    user: CurrentUser,
    post_service: PostServiceDep,
) -> MessageResponse:
    """Delete a post together with its comments."""
    try:
        await post_service.delete_post(post_id, user)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MessageResponse(message="Post deleted successfully")


@router.put(
    "/{post_id}/like",
    response_model=MutationResponse[LikeResult],
    summary="Like or unlike post",
)
async def toggle_like(
    post_id: UUID,
    user: CurrentUser,
    post_service: PostServiceDep,
) -> MutationResponse[LikeResult]:
    try:
        likes, is_liked = await post_service.toggle_like(post_id, user)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Post liked successfully" if is_liked else "Post unliked successfully",
        data=LikeResult(likes=likes, is_liked=is_liked),
    )
