"""Configuration management for the assembly service."""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = Field(default="Assembly Proxy Service")
    version: str = Field(default="0.1.0")
    docs_url: str | None = Field(default="/docs")
    redoc_url: str | None = Field(default="/redoc")
    openapi_url: str = Field(default="/openapi.json")

    database_url: str = Field(default="postgresql+psycopg://assembly:assembly@db:5432/assembly")

    quorum_threshold: Decimal = Field(default=Decimal("0.5"), ge=0, le=1)

    otp_length: int = Field(default=6, ge=4, le=10)
    otp_ttl_seconds: int = Field(default=300)
    otp_resend_cooldown_seconds: int = Field(default=60)
    otp_delivery_url: str = Field(default="http://localhost:9020/sms/send")
    otp_delivery_timeout_seconds: float = Field(default=5.0)

    reconciliation_grace_seconds: int = Field(default=120)
    reconciliation_interval_seconds: int = Field(default=300)

    aws_region: str = Field(default="us-east-1")
    s3_endpoint_url: str | None = Field(default=None)
    audit_log_bucket: str = Field(default="assembly-audit-logs")
    audit_log_prefix: str = Field(default="audit/requests")
    audit_log_sample_rate: float = Field(default=1.0)

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=True)
    otel_exporter_endpoint: str | None = Field(default=None)

    enable_change_events: bool = Field(default=True)
    kafka_bootstrap_servers: str = Field(default="kafka:9092")
    change_events_topic: str = Field(default="assembly-changes")
    quorum_monitor_group: str = Field(default="assembly-quorum-monitor")


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
