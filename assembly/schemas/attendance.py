"""Schemas for check-in and quorum endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class CheckInRequest(BaseModel):
    unit_id: str = Field(..., max_length=36)
    checked_in_by: str | None = Field(default=None, max_length=128)


class AttendanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    unit_id: str
    checked_in_by: str | None
    created_at: datetime


class QuorumRead(BaseModel):
    assembly_id: str
    present_coefficient: Decimal
    total_coefficient: Decimal
    fraction: Decimal
    percentage: Decimal
    present_units: int
    total_units: int
    threshold: Decimal
    reached: bool
    status: str


__all__ = ["AttendanceRead", "CheckInRequest", "QuorumRead"]
