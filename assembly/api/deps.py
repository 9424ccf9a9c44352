"""Common dependencies for API routes."""
from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy.orm import Session

from assembly.core.config import get_settings
from assembly.db.session import SessionLocal
from assembly.services.change_events import ChangeEventPublisher
from assembly.services.verification import CodeDelivery, HTTPCodeDelivery

_publisher: ChangeEventPublisher | None = None
_delivery: CodeDelivery | None = None


def get_db_session() -> Iterator[Session]:
    """Yield a database session for FastAPI dependencies."""

    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_publisher() -> ChangeEventPublisher:
    """Process-wide publisher; its Kafka producer is created once."""

    global _publisher
    if _publisher is None:
        _publisher = ChangeEventPublisher(settings=get_settings())
    return _publisher


def get_code_delivery() -> CodeDelivery:
    global _delivery
    if _delivery is None:
        settings = get_settings()
        _delivery = HTTPCodeDelivery(
            endpoint=settings.otp_delivery_url,
            timeout_seconds=settings.otp_delivery_timeout_seconds,
        )
    return _delivery


__all__ = ["get_code_delivery", "get_db_session", "get_publisher"]
