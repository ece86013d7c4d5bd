"""Health check endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import ORJSONResponse

from blogapi.config import get_settings
from blogapi.core.database import AsyncCassandraConnection


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness() -> ORJSONResponse:
    """Readiness probe - ready once the database session is open."""
    settings = get_settings()
    database = AsyncCassandraConnection.is_connected()
    return ORJSONResponse(
        status_code=status.HTTP_200_OK if database else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if database else "not_ready",
            "database": database,
            "environment": settings.environment,
        },
    )


@router.get("")
async def health() -> dict[str, str | bool]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "success": True,
        "message": "Blog API is running!",
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
