"""Authentication API endpoints.

Provides routes for:
- Registration and login (both return a token)
- Current user profile
- Password change
"""

from fastapi import APIRouter, status

from blogapi.auth.dependencies import AuthServiceDep, CurrentUser
from blogapi.auth.schemas import (
    AuthPayload,
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
    UserResponse,
)
from blogapi.core.exceptions import BlogError, handle_blog_error
from blogapi.core.schemas import DataResponse, MessageResponse, MutationResponse


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=MutationResponse[AuthPayload],
    status_code=status.HTTP_201_CREATED,
    summary="Register new user",
    responses={409: {"description": "Email already registered"}},
)
async def register(
    data: RegisterRequest,
    auth_service: AuthServiceDep,
) -> MutationResponse[AuthPayload]:
    """Register a new account with role ``user`` and return a token."""
    try:
        user = await auth_service.register_user(data)
    except BlogError as e:
        raise handle_blog_error(e) from e

    return MutationResponse(
        message="User registered successfully",
        data=AuthPayload(
            user=auth_service.to_response(user),
            token=auth_service.issue_token(user),
        ),
    )


@router.post(
    "/login",
    response_model=MutationResponse[AuthPayload],
    summary="User login",
    responses={401: {"description": "Invalid credentials or deactivated account"}},
)
async def login(
    data: LoginRequest,
    auth_service: AuthServiceDep,
) -> MutationResponse[AuthPayload]:
    """Authenticate with email and password."""
    try:
        user = await auth_service.authenticate_user(data.email, data.password)
    except BlogError as e:
        raise handle_blog_error(e) from e

    return MutationResponse(
        message="Login successful",
        data=AuthPayload(
            user=auth_service.to_response(user),
            token=auth_service.issue_token(user),
        ),
    )


@router.get(
    "/me",
    response_model=DataResponse[UserResponse],
    summary="Get current user",
)
async def get_me(
    user: CurrentUser,
    auth_service: AuthServiceDep,
) -> DataResponse[UserResponse]:
    try:
        record = await auth_service.require_user(user.id)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return DataResponse(data=auth_service.to_response(record))


@router.put(
    "/profile",
    response_model=MutationResponse[UserResponse],
    summary="Update own profile",
)
async def update_profile(
    data: UpdateProfileRequest,
    user: CurrentUser,
    auth_service: AuthServiceDep,
) -> MutationResponse[UserResponse]:
    """Update name, avatar and bio."""
    try:
        record = await auth_service.update_profile(user.id, data)
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MutationResponse(
        message="Profile updated successfully",
        data=auth_service.to_response(record),
    )


@router.put(
    "/change-password",
    response_model=MessageResponse,
    summary="Change password",
    responses={401: {"description": "Current password is incorrect"}},
)
async def change_password(
    data: ChangePasswordRequest,
    user: CurrentUser,
    auth_service: AuthServiceDep,
) -> MessageResponse:
    try:
        await auth_service.change_password(
            user.id, data.current_password, data.new_password
        )
    except BlogError as e:
        raise handle_blog_error(e) from e
    return MessageResponse(message="Password changed successfully")
