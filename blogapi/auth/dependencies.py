"""FastAPI dependencies for authentication and policy checks.

Provides dependency injection for:
- Current user extraction from the bearer token
- Optional user for public endpoints with role-aware visibility
- Policy-table gates for role-only actions
"""

from collections.abc import Callable
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from jose import JWTError

from blogapi.auth.permissions import Action, Resource, authorize
from blogapi.auth.schemas import UserResponse
from blogapi.auth.security import decode_access_token
from blogapi.auth.service import AuthService
from blogapi.core.context import set_user_id
from blogapi.core.exceptions import AuthenticationError, BlogError, handle_blog_error


# ==============================================================================
# Service Getter (set by main.py)
# ==============================================================================

_auth_service_getter: Callable[[], AuthService] | None = None


def set_auth_service_getter(getter: Callable[[], AuthService]) -> None:
    """Set the auth service getter function."""
    global _auth_service_getter  # noqa: PLW0603 - Required for DI pattern
    _auth_service_getter = getter


def get_auth_service() -> AuthService:
    """Get AuthService instance from app state."""
    if _auth_service_getter is None:
        msg = "AuthService not configured - call set_auth_service_getter first"
        raise RuntimeError(msg)
    return _auth_service_getter()


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


# ==============================================================================
# Token Resolution
# ==============================================================================


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Returns:
        Token string or None if absent or malformed
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


async def resolve_token_user(token: str, auth_service: AuthService) -> UserResponse:
    """Load the account a token was issued for.

    The stored record is authoritative: role changes, deactivation and
    deletion take effect on the next request, whatever the token claims.

    Raises:
        AuthenticationError: Invalid token, deleted account or deactivated account
    """
    try:
        payload = decode_access_token(token)
        user_id = UUID(payload["sub"])
    except (JWTError, ValueError) as e:
        raise AuthenticationError("Invalid or expired token") from e

    user = await auth_service.get_user_by_id(user_id)
    if user is None:
        raise AuthenticationError("User no longer exists")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    set_user_id(user.id)
    return auth_service.to_response(user)


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
    auth_service: AuthServiceDep,
) -> UserResponse:
    """Get the authenticated, active user behind the access token.

    Raises:
        HTTPException(401): If the token is missing, invalid or expired, or the
            account is gone or deactivated
    """
    try:
        if not token:
            raise AuthenticationError()
        return await resolve_token_user(token, auth_service)
    except BlogError as e:
        raise handle_blog_error(e) from e


async def get_current_user_optional(
    token: Annotated[str | None, Depends(get_token_from_header)],
    auth_service: AuthServiceDep,
) -> UserResponse | None:
    """Get current user if authenticated, None otherwise.

    An invalid token, or one whose account is gone or deactivated, is
    treated as anonymous.
    """
    if not token:
        return None

    try:
        return await resolve_token_user(token, auth_service)
    except AuthenticationError:
        return None


def require_policy(resource: Resource, action: Action):
    """Create a dependency that checks the policy table for a role-only action.

    Ownership-dependent actions are checked in the services, once the owner
    of the target resource is known.

    Example:
        @router.get("/stats")
        async def stats(
            user: Annotated[
                UserResponse,
                Depends(require_policy(Resource.POST, Action.VIEW_STATS)),
            ],
        ): ...
    """

    async def policy_checker(
        user: Annotated[UserResponse, Depends(get_current_user)],
    ) -> UserResponse:
        try:
            authorize(user, action, resource)
        except BlogError as e:
            raise handle_blog_error(e) from e
        return user

    return policy_checker


# ==============================================================================
# Type Aliases for Cleaner Code
# ==============================================================================

CurrentUser = Annotated[UserResponse, Depends(get_current_user)]

OptionalUser = Annotated[UserResponse | None, Depends(get_current_user_optional)]

AdminUser = Annotated[UserResponse, Depends(require_policy(Resource.USER, Action.READ))]
