"""Report payloads."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from assembly.models import ProxyStatus, ProxyType


class AttendanceRowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    unit: str
    coefficient: Decimal
    representative_name: str
    check_in_time: datetime


class AttendanceReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rows: list[AttendanceRowRead]
    total_coefficient: Decimal


class AbsenceRowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    unit: str
    coefficient: Decimal
    representative_name: str


class AbsenceReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rows: list[AbsenceRowRead]
    total_coefficient: Decimal


class ProxyRowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proxy_id: str
    type: ProxyType
    status: ProxyStatus
    principal_name: str
    principal_doc: str
    unit: str
    coefficient: Decimal
    representative_name: str
    representative_doc: str | None
    date: datetime


__all__ = [
    "AbsenceReportRead",
    "AbsenceRowRead",
    "AttendanceReportRead",
    "AttendanceRowRead",
    "ProxyRowRead",
]
