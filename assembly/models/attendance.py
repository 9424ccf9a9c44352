"""Attendance ORM model."""
from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assembly.models.base import Base, TimestampMixin


class AttendanceRecord(TimestampMixin, Base):
    """Check-in of a unit; attendance belongs to the unit, not the person."""

    __tablename__ = "attendance_records"
    __table_args__ = (UniqueConstraint("unit_id", name="uq_attendance_records_unit"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    unit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("units.id", ondelete="CASCADE"), nullable=False
    )
    checked_in_by: Mapped[str | None] = mapped_column(String(255))

    unit = relationship("Unit", back_populates="attendance")


__all__ = ["AttendanceRecord"]
