"""Error taxonomy shared by every service.

Services raise subclasses of ``BlogError``; routers convert them with
``handle_blog_error`` and the app-level handlers render the JSON error body.
"""

from typing import Any

from fastapi import HTTPException, status


# ==============================================================================
# Base Errors
# ==============================================================================


class BlogError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str = "blog_error",
        errors: list[dict[str, Any]] | None = None,
    ):
        self.message = message
        self.code = code
        self.errors = errors
        super().__init__(message)


class ValidationError(BlogError):
    """Malformed or out-of-range input."""

    def __init__(
        self,
        message: str = "Validation errors",
        errors: list[dict[str, Any]] | None = None,
    ):
        super().__init__(message, "validation_error", errors)


class AuthenticationError(BlogError):
    """Missing or invalid credentials."""

    def __init__(self, message: str = "Not authorized to access this route"):
        super().__init__(message, "authentication_error")


class AuthorizationError(BlogError):
    """Authenticated but not allowed to perform the action."""

    def __init__(self, message: str = "Not authorized to perform this action"):
        super().__init__(message, "authorization_error")


class NotFoundError(BlogError):
    """Resource does not exist or is not visible to the caller."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "not_found")


class ConflictError(BlogError):
    """Duplicate unique key (email, name, slug)."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, "conflict")


class ReferentialIntegrityError(BlogError):
    """A referenced entity is missing."""

    def __init__(
        self,
        message: str = "Invalid reference",
        code: str = "referential_integrity",
    ):
        super().__init__(message, code)


class ReferenceInUseError(ReferentialIntegrityError):
    """Delete blocked because other entities still reference the target."""

    def __init__(self, message: str = "Resource is still referenced"):
        super().__init__(message, "reference_in_use")


# ==============================================================================
# HTTP Mapping
# ==============================================================================


ERROR_STATUS_MAP: dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "authentication_error": status.HTTP_401_UNAUTHORIZED,
    "authorization_error": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "referential_integrity": status.HTTP_400_BAD_REQUEST,
    "reference_in_use": status.HTTP_409_CONFLICT,
}


def handle_blog_error(error: BlogError) -> HTTPException:
    """Convert a BlogError into an HTTPException.

    Field-level errors travel in the detail so the exception handler can
    render them under ``errors``.
    """
    detail: str | dict[str, Any] = error.message
    if error.errors:
        detail = {"message": error.message, "errors": error.errors}

    headers = None
    if error.code == "authentication_error":
        headers = {"WWW-Authenticate": "Bearer"}

    return HTTPException(
        status_code=ERROR_STATUS_MAP.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail=detail,
        headers=headers,
    )
