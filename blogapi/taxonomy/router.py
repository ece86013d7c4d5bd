"""Category and tag API endpoints.

Reads are public; create/update need editor or admin, delete needs admin.
Static paths (``/stats``, ``/popular``) are declared before ``/{id}``.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from blogapi.auth.dependencies import require_policy
from blogapi.auth.permissions import Action, Resource
from blogapi.auth.schemas import UserResponse
from blogapi.core.exceptions import BlogError, handle_blog_error
from blogapi.core.pagination import paginate
from blogapi.core.schemas import (
    DataResponse,
    ListResponse,
    MessageResponse,
    MutationResponse,
)
from blogapi.taxonomy.dependencies import CategoryServiceDep, TagServiceDep
from blogapi.taxonomy.schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    PopularTag,
    TagCreate,
    TagResponse,
    TagUpdate,
    TermStats,
)


router_categories = APIRouter(prefix="/categories", tags=["categories"])
router_tags = APIRouter(prefix="/tags", tags=["tags"])


CategoryStatsViewer = Annotated[
    UserResponse, Depends(require_policy(Resource.CATEGORY, Action.VIEW_STATS))
]
CategoryCreator = Annotated[
    UserResponse, Depends(require_policy(Resource.CATEGORY, Action.CREATE))
]
CategoryEditor = Annotated[
    UserResponse, Depends(require_policy(Resource.CATEGORY, Action.UPDATE))
]
CategoryDeleter = Annotated[
    UserResponse, Depends(require_policy(Resource.CATEGORY, Action.DELETE))
]
TagStatsViewer = Annotated[
    UserResponse, Depends(require_policy(Resource.TAG, Action.VIEW_STATS))
]
TagCreator = Annotated[UserResponse, Depends(require_policy(Resource.TAG, Action.CREATE))]
TagEditor = Annotated[UserResponse, Depends(require_policy(Resource.TAG, Action.UPDATE))]
TagDeleter = Annotated[UserResponse, Depends(require_policy(Resource.TAG, Action.DELETE))]


# ==============================================================================
# Categories
# ==============================================================================


@router_categories.get("", response_model=ListResponse[CategoryResponse])
async def list_categories(
    service: CategoryServiceDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    search: str | None = Query(default=None, max_length=100),
    is_active: bool | None = Query(default=True, alias="isActive"),
) -> ListResponse[CategoryResponse]:
    """List categories sorted by name."""
    terms = await service.list_terms(is_active=is_active, search=search)
    result = paginate(terms, page, limit)
    return ListResponse.from_page(result, [service.to_response(t) for t in result.items])


@router_categories.get("/stats", response_model=DataResponse[list[TermStats]])
async def category_stats(
    _user: CategoryStatsViewer,
    service: CategoryServiceDep,
) -> DataResponse[list[TermStats]]:
    return DataResponse(data=await service.get_term_stats())


@router_categories.get("/{category_id}", response_model=DataResponse[CategoryResponse])
async def get_category(
    category_id: UUID,
    service: CategoryServiceDep,
) -> DataResponse[CategoryResponse]:
    try:
        response = await service.get_term_with_count(category_id)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return DataResponse(data=response)


@router_categories.post(
    "",
    response_model=MutationResponse[CategoryResponse],
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Category already exists with this name"}},
)
async def create_category(
    data: CategoryCreate,
    _user: CategoryCreator,
    service: CategoryServiceDep,
) -> MutationResponse[CategoryResponse]:
    try:
        term = await service.create_term(data)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Category created successfully", data=service.to_response(term)
    )


@router_categories.put(
    "/{category_id}", response_model=MutationResponse[CategoryResponse]
)
async def update_category(
    category_id: UUID,
    data: CategoryUpdate,
    _user: CategoryEditor,
    service: CategoryServiceDep,
) -> MutationResponse[CategoryResponse]:
    try:
        term = await service.update_term(category_id, data)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Category updated successfully", data=service.to_response(term)
    )


@router_categories.delete(
    "/{category_id}",
    response_model=MessageResponse,
    responses={409: {"description": "Category is used by posts"}},
)
async def delete_category(
    category_id: UUID,
    _user: CategoryDeleter,
    service: CategoryServiceDep,
) -> MessageResponse:
    try:
        await service.delete_term(category_id)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MessageResponse(message="Category deleted successfully")


# ==============================================================================
# Tags
# ==============================================================================


@router_tags.get("", response_model=ListResponse[TagResponse])
async def list_tags(
    service: TagServiceDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    search: str | None = Query(default=None, max_length=100),
    is_active: bool | None = Query(default=True, alias="isActive"),
) -> ListResponse[TagResponse]:
    """List tags sorted by name."""
    terms = await service.list_terms(is_active=is_active, search=search)
    result = paginate(terms, page, limit)
    return ListResponse.from_page(result, [service.to_response(t) for t in result.items])


@router_tags.get("/popular", response_model=DataResponse[list[PopularTag]])
async def popular_tags(
    service: TagServiceDep,
    limit: int = Query(default=10, ge=1, le=100),
) -> DataResponse[list[PopularTag]]:
    """Active tags ranked by published post count."""
    return DataResponse(data=await service.get_popular_tags(limit))


@router_tags.get("/stats", response_model=DataResponse[list[TermStats]])
async def tag_stats(
    _user: TagStatsViewer,
    service: TagServiceDep,
) -> DataResponse[list[TermStats]]:
    return DataResponse(data=await service.get_term_stats())


@router_tags.get("/{tag_id}", response_model=DataResponse[TagResponse])
async def get_tag(tag_id: UUID, service: TagServiceDep) -> DataResponse[TagResponse]:
    try:
        response = await service.get_term_with_count(tag_id)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return DataResponse(data=response)


@router_tags.post(
    "",
    response_model=MutationResponse[TagResponse],
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Tag already exists with this name"}},
)
async def create_tag(
    data: TagCreate,
    _user: TagCreator,
    service: TagServiceDep,
) -> MutationResponse[TagResponse]:
    try:
        term = await service.create_term(data)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Tag created successfully", data=service.to_response(term)
    )


@router_tags.put("/{tag_id}", response_model=MutationResponse[TagResponse])
async def update_tag(
    tag_id: UUID,
    data: TagUpdate,
    _user: TagEditor,
    service: TagServiceDep,
) -> MutationResponse[TagResponse]:
    try:
        term = await service.update_term(tag_id, data)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Tag updated successfully", data=service.to_response(term)
    )


@router_tags.delete(
    "/{tag_id}",
    response_model=MessageResponse,
    responses={409: {"description": "Tag is used by posts"}},
)
async def delete_tag(
    tag_id: UUID,
    _user: TagDeleter,
    service: TagServiceDep,
) -> MessageResponse:
    try:
        await service.delete_term(tag_id)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MessageResponse(message="Tag deleted successfully")
