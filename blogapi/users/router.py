"""User administration endpoints (admin only)."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Query, status

from blogapi.auth.dependencies import AdminUser, AuthServiceDep
from blogapi.auth.permissions import Action, Resource, UserRole, authorize
from blogapi.auth.schemas import (
    AdminCreateUserRequest,
    AdminUpdateUserRequest,
    UserResponse,
)
from blogapi.core.exceptions import BlogError, handle_blog_error
from blogapi.core.pagination import paginate
from blogapi.core.schemas import (
    DataResponse,
    ListResponse,
    MessageResponse,
    MutationResponse,
)


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "",
    response_model=ListResponse[UserResponse],
    summary="List users",
)
async def list_users(
    _admin: AdminUser,
    auth_service: AuthServiceDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    role: UserRole | None = None,
    is_active: bool | None = Query(default=None, alias="isActive"),
    search: str | None = Query(default=None, max_length=100),
) -> ListResponse[UserResponse]:
    """Filter by role, active flag and name/email search; newest first."""
    users = await auth_service.list_users(role=role, is_active=is_active, search=search)
    result = paginate(users, page, limit)
    return ListResponse.from_page(
        result, [auth_service.to_response(u) for u in result.items]
    )


@router.post(
    "",
    response_model=MutationResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
)
async def create_user(
    data: AdminCreateUserRequest,
    admin: AdminUser,
    auth_service: AuthServiceDep,
) -> MutationResponse[UserResponse]:
    try:
        authorize(admin, Action.CREATE, Resource.USER)
        user = await auth_service.create_user(data)
    except BlogError as e:
        raise handle_blog_error(e) from e

    logger.info("admin_created_user", admin_id=str(admin.id), user_id=str(user.id))
    return MutationResponse(
        message="User created successfully", data=auth_service.to_response(user)
    )


@router.get(
    "/{user_id}",
    response_model=DataResponse[UserResponse],
    summary="Get user",
)
async def get_user(
    user_id: UUID,
    _admin: AdminUser,
    auth_service: AuthServiceDep,
) -> DataResponse[UserResponse]:
    try:
        user = await auth_service.require_user(user_id)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return DataResponse(data=auth_service.to_response(user))


@router.put(
    "/{user_id}",
    response_model=MutationResponse[UserResponse],
    summary="Update user",
)
async def update_user(
    user_id: UUID,
    data: AdminUpdateUserRequest,
    admin: AdminUser,
    auth_service: AuthServiceDep,
) -> MutationResponse[UserResponse]:
    """Update profile, role and active flag. Passwords are not changed here."""
    try:
        authorize(admin, Action.UPDATE, Resource.USER, target_id=user_id)
        if data.is_active is False:
            authorize(admin, Action.DEACTIVATE, Resource.USER, target_id=user_id)
        user = await auth_service.update_user(user_id, data)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="User updated successfully", data=auth_service.to_response(user)
    )


@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    summary="Delete user",
    responses={403: {"description": "Admin cannot delete their own account"}},
)
async def delete_user(
    user_id: UUID,
    admin: AdminUser,
    auth_service: AuthServiceDep,
) -> MessageResponse:
    try:
        authorize(admin, Action.DELETE, Resource.USER, target_id=user_id)
        await auth_service.delete_user(user_id)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MessageResponse(message="User deleted successfully")


@router.put(
    "/{user_id}/toggle-status",
    response_model=MutationResponse[UserResponse],
    summary="Activate or deactivate user",
    responses={403: {"description": "Admin cannot deactivate their own account"}},
)
async def toggle_user_status(
    user_id: UUID,
    admin: AdminUser,
    auth_service: AuthServiceDep,
) -> MutationResponse[UserResponse]:
    try:
        authorize(admin, Action.DEACTIVATE, Resource.USER, target_id=user_id)
        user = await auth_service.toggle_user_status(user_id)
    except BlogError as e:
        raise handle_blog_error(e) from e

    state = "activated" if user.is_active else "deactivated"
    return MutationResponse(
        message=f"User {state} successfully", data=auth_service.to_response(user)
    )
