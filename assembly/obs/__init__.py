"""Observability utilities."""

from .audit import AuditMiddleware, AuditRecord, mask_payload
from .metrics import (
    BALLOTS_CAST,
    PROXY_TRANSITIONS,
    QUORUM_FRACTION,
    RECONCILIATION_PROXIES_DELETED,
    RECONCILIATION_UNITS,
    PrometheusMiddleware,
    metrics_router,
    report_quorum,
)
from .tracing import (
    current_traceparent,
    initialise_tracing,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    span_from_traceparent,
)

__all__ = [
    "AuditMiddleware",
    "AuditRecord",
    "BALLOTS_CAST",
    "PROXY_TRANSITIONS",
    "PrometheusMiddleware",
    "QUORUM_FRACTION",
    "RECONCILIATION_PROXIES_DELETED",
    "RECONCILIATION_UNITS",
    "current_traceparent",
    "initialise_tracing",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "mask_payload",
    "metrics_router",
    "report_quorum",
    "span_from_traceparent",
]
