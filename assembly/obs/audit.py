"""Request audit trail persisted to S3 as masked JSON documents."""
from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from assembly.core.config import Settings

_MASKED_KEYS = {
    "code",
    "document_number",
    "external_document",
    "phone_number",
}


def mask_payload(value: Any) -> Any:
    """Mask identity documents, phone numbers and verification codes."""

    if isinstance(value, dict):
        masked: dict[str, Any] = {}
        for key, item in value.items():
            if key.lower() in _MASKED_KEYS and isinstance(item, (str, int)):
                text = str(item)
                masked[key] = f"***{text[-2:]}" if len(text) > 4 else "***"
            else:
                masked[key] = mask_payload(item)
        return masked
    if isinstance(value, list):
        return [mask_payload(item) for item in value]
    return value


@dataclass(slots=True)
class AuditRecord:
    timestamp: str
    request_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    actor: str | None
    ip_address: str | None
    body: Any

    def to_json(self) -> str:
        payload = asdict(self)
        payload["duration_ms"] = round(self.duration_ms, 2)
        return json.dumps(payload, default=str)


class AuditMiddleware(BaseHTTPMiddleware):
    """Log every mutating request and persist it to the audit bucket."""

    _AUDITED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

    def __init__(
        self,
        app: ASGIApp,
        *,
        settings: Settings,
        logger: logging.Logger | None = None,
        s3_client_factory: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__(app)
        self._settings = settings
        self._logger = logger or logging.getLogger("audit")
        self._s3_client_factory = s3_client_factory or self._default_client_factory
        self._s3_client: Any | None = None

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        request.state.request_id = request_id
        if request.method not in self._AUDITED_METHODS:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        start = time.perf_counter()
        body = await request.body()
        response = await call_next(request)

        record = AuditRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=(time.perf_counter() - start) * 1000,
            actor=request.headers.get("X-Actor-ID"),
            ip_address=request.client.host if request.client else None,
            body=self._decode_body(body),
        )
        self._logger.info(record.to_json())
        self._persist(record)

        response.headers["X-Request-ID"] = request_id
        return response

    @staticmethod
    def _decode_body(body: bytes) -> Any:
        if not body:
            return None
        try:
            return mask_payload(json.loads(body))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return "<binary>"

    def _default_client_factory(self) -> Any:
        return boto3.client(
            "s3",
            region_name=self._settings.aws_region,
            endpoint_url=self._settings.s3_endpoint_url,
        )

    def _persist(self, record: AuditRecord) -> None:
        rate = self._settings.audit_log_sample_rate
        if rate <= 0 or (rate < 1 and random.random() > rate):
            return
        if self._s3_client is None:
            self._s3_client = self._s3_client_factory()
        now = datetime.now(timezone.utc)
        key = f"{self._settings.audit_log_prefix.rstrip('/')}/{now:%Y/%m/%d}/{record.request_id}.json"
        try:
            self._s3_client.put_object(
                Bucket=self._settings.audit_log_bucket,
                Key=key,
                Body=record.to_json().encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - S3 connectivity issues
            self._logger.error("failed to persist audit record", extra={"error": str(exc), "key": key})


__all__ = ["AuditMiddleware", "AuditRecord", "mask_payload"]
