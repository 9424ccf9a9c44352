"""Prometheus metrics for the API, the workers and the core services."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from decimal import Decimal

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds.",
    labelnames=("method", "route"),
)
REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "route", "status"),
)
REQUEST_ERROR_COUNTER = Counter(
    "http_request_errors_total",
    "Total number of HTTP requests that resulted in server errors.",
    labelnames=("method", "route", "status"),
)
PROXY_TRANSITIONS = Counter(
    "proxy_transitions_total",
    "Proxy lifecycle transitions by delegation type and resulting status.",
    labelnames=("type", "status"),
)
BALLOTS_CAST = Counter(
    "ballots_cast_total",
    "Ballots accepted by the vote tabulator.",
)
RECONCILIATION_UNITS = Counter(
    "reconciliation_units_total",
    "Units processed by the proxy reconciliation sweep.",
    labelnames=("outcome",),
)
RECONCILIATION_PROXIES_DELETED = Counter(
    "reconciliation_proxies_deleted_total",
    "Dangling proxies removed by the reconciliation sweep.",
)
QUORUM_FRACTION = Gauge(
    "assembly_quorum_fraction",
    "Coefficient-weighted fraction of units with recorded attendance.",
    labelnames=("assembly_id",),
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics for Prometheus scraping."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        method = request.method
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
            if response.status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(method=method, route=_route_of(request), status=status).inc()
            return response
        except Exception:
            REQUEST_ERROR_COUNTER.labels(method=method, route=_route_of(request), status="500").inc()
            raise
        finally:
            route = _route_of(request)
            REQUEST_LATENCY_SECONDS.labels(method=method, route=route).observe(
                time.perf_counter() - start_time
            )
            REQUEST_COUNTER.labels(method=method, route=route, status=status).inc()


def _route_of(request: Request) -> str:
    # Path templates keep label cardinality bounded; ids live in the raw path.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Expose Prometheus metrics for scraping."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def report_quorum(assembly_id: str, fraction: Decimal | float) -> None:
    QUORUM_FRACTION.labels(assembly_id=assembly_id).set(float(fraction))


__all__ = [
    "BALLOTS_CAST",
    "PROXY_TRANSITIONS",
    "PrometheusMiddleware",
    "QUORUM_FRACTION",
    "RECONCILIATION_PROXIES_DELETED",
    "RECONCILIATION_UNITS",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "metrics_endpoint",
    "metrics_router",
    "report_quorum",
]
