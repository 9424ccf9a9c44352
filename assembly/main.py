"""ASGI entrypoint for the assembly proxy and quorum service."""
from __future__ import annotations

import logging

from fastapi import FastAPI

from assembly.api.routes import register_routes
from assembly.core.config import Settings, get_settings
from assembly.core.logging import configure_logging
from assembly.obs import (
    AuditMiddleware,
    PrometheusMiddleware,
    initialise_tracing,
    instrument_fastapi_app,
    metrics_router,
)

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "proxies", "description": "Delegation of unit voting rights and code verification."},
    {"name": "attendance", "description": "Unit check-in and coefficient-weighted quorum."},
    {"name": "votes", "description": "Vote administration, ballots and weighted results."},
    {"name": "reports", "description": "Attendance, absence, vote and proxy reports."},
    {"name": "health", "description": "Liveness and readiness probes."},
]


def _install_observability(application: FastAPI, settings: Settings) -> None:
    application.add_middleware(AuditMiddleware, settings=settings)
    if settings.enable_metrics:
        application.add_middleware(PrometheusMiddleware)
        application.include_router(metrics_router)
    if settings.enable_tracing:
        instrument_fastapi_app(application)


def create_application(settings: Settings | None = None) -> FastAPI:
    """Build the service; tests pass their own ``settings``."""
    configure_logging()
    settings = settings or get_settings()

    if settings.enable_tracing:
        initialise_tracing(service_name=settings.app_name, endpoint=settings.otel_exporter_endpoint)

    application = FastAPI(
        title=settings.app_name,
        version=settings.version,
        description="Proxy rights lifecycle, quorum and vote tabulation for coefficient-weighted assemblies.",
        openapi_tags=OPENAPI_TAGS,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
    )
    register_routes(application)
    _install_observability(application, settings)

    logger.info(
        "assembly service configured",
        extra={"quorum_threshold": str(settings.quorum_threshold), "change_events": settings.enable_change_events},
    )
    return application


app = create_application()
