"""Blog API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from blogapi.auth.dependencies import set_auth_service_getter
from blogapi.auth.router import router as auth_router
from blogapi.auth.service import AuthService
from blogapi.comments.dependencies import set_comment_service_getter
from blogapi.comments.router import post_comments_router
from blogapi.comments.router import router as comments_router
from blogapi.comments.service import CommentService
from blogapi.config import get_settings
from blogapi.core.context import get_request_id
from blogapi.core.database import init_async_cassandra, shutdown_async_cassandra
from blogapi.core.logging import configure_structlog, get_logger
from blogapi.core.middleware import RequestContextMiddleware
from blogapi.health import router as health_router
from blogapi.posts.dependencies import set_post_service_getter
from blogapi.posts.router import router as posts_router
from blogapi.posts.service import PostService
from blogapi.taxonomy.dependencies import (
    set_category_service_getter,
    set_tag_service_getter,
)
from blogapi.taxonomy.router import router_categories, router_tags
from blogapi.taxonomy.service import CategoryService, TagService
from blogapi.users.router import router as users_router


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    auth_service: AuthService | None = None
    category_service: CategoryService | None = None
    tag_service: TagService | None = None
    post_service: PostService | None = None
    comment_service: CommentService | None = None


app_state = AppState()


def _require(service: Any, name: str) -> Any:
    if service is None:
        msg = f"{name} not initialized"
        raise RuntimeError(msg)
    return service


def get_auth_service() -> AuthService:
    """Get AuthService instance from app state."""
    return _require(app_state.auth_service, "AuthService")


def get_category_service() -> CategoryService:
    """Get CategoryService instance from app state."""
    return _require(app_state.category_service, "CategoryService")


def get_tag_service() -> TagService:
    """Get TagService instance from app state."""
    return _require(app_state.tag_service, "TagService")


def get_post_service() -> PostService:
    """Get PostService instance from app state."""
    return _require(app_state.post_service, "PostService")


def get_comment_service() -> CommentService:
    """Get CommentService instance from app state."""
    return _require(app_state.comment_service, "CommentService")


def init_services(session: Any, keyspace: str) -> None:
    """Build every service on top of one Cassandra session."""
    app_state.cassandra_session = session
    app_state.auth_service = AuthService(session=session, keyspace=keyspace)
    app_state.category_service = CategoryService(session=session, keyspace=keyspace)
    app_state.tag_service = TagService(session=session, keyspace=keyspace)
    app_state.post_service = PostService(
        session=session,
        keyspace=keyspace,
        auth_service=app_state.auth_service,
        category_service=app_state.category_service,
        tag_service=app_state.tag_service,
    )
    app_state.comment_service = CommentService(
        session=session,
        keyspace=keyspace,
        auth_service=app_state.auth_service,
        post_service=app_state.post_service,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    try:
        session = await init_async_cassandra()
        logger.info("cassandra_initialized")
        init_services(session, settings.cassandra_keyspace)
        logger.info("services_initialized")
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    logger.info("shutting_down_application")
    await shutdown_async_cassandra()


def _error_body(message: str, errors: list[dict[str, Any]] | None = None) -> dict:
    body: dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def _field_name(loc: tuple | list) -> str:
    """Drop the leading "body"/"query" segment of a validation location."""
    parts = [str(part) for part in loc]
    return ".".join(parts[1:] if len(parts) > 1 else parts)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Always debug=False so Starlette never renders stack traces
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Blogging platform REST API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Render HTTP errors as ``{success: false, message, errors?}``."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
            request_id=_get_request_id_safe(request),
        )

        errors = None
        if isinstance(exc.detail, dict):
            message = exc.detail.get("message", "Request failed")
            errors = exc.detail.get("errors")
        elif exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            message = f"Route {request.url.path} not found"
        elif exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            message = "Internal server error"
        else:
            message = str(exc.detail)

        return ORJSONResponse(
            status_code=exc.status_code,
            content=_error_body(message, errors),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors as 400 with per-field messages."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(
                "Validation errors",
                [
                    {
                        "field": _field_name(err.get("loc", ())),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            ),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler; details are logged, never returned."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
            request_id=_get_request_id_safe(request),
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("An unexpected error occurred. Please try again later."),
        )

    # Include routers
    app.include_router(health_router)
    for api_router in (
        auth_router,
        users_router,
        posts_router,
        post_comments_router,
        comments_router,
        router_categories,
        router_tags,
    ):
        app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        """Root endpoint."""
        prefix = settings.api_prefix
        return {
            "success": True,
            "message": "Welcome to Blog API",
            "version": settings.app_version,
            "health": "/health",
            "endpoints": {
                name: f"{prefix}/{name}"
                for name in ("auth", "users", "posts", "comments", "categories", "tags")
            },
        }

    return app


set_auth_service_getter(get_auth_service)
set_category_service_getter(get_category_service)
set_tag_service_getter(get_tag_service)
set_post_service_getter(get_post_service)
set_comment_service_getter(get_comment_service)


app = create_app()
