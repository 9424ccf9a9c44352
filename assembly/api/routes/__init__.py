"""Top level API router registration."""
from fastapi import APIRouter, FastAPI

from assembly.api.routes import attendance, health, proxies, reports, votes


def register_routes(application: FastAPI) -> None:
    """Register all API routers with the FastAPI application."""
    api_router = APIRouter(prefix="/api")

    api_router.include_router(health.router, tags=["health"])
    api_router.include_router(proxies.router, tags=["proxies"])
    api_router.include_router(attendance.router, tags=["attendance"])
    api_router.include_router(votes.router, tags=["votes"])
    api_router.include_router(reports.router, tags=["reports"])

    application.include_router(api_router)


__all__ = ["register_routes"]
