"""Assembly ORM model."""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assembly.models.base import Base, TimestampMixin


class Assembly(TimestampMixin, Base):
    """A quorum-based meeting that scopes units, members and votes."""

    __tablename__ = "assemblies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quorum_threshold: Mapped[Decimal | None] = mapped_column(Numeric(5, 4))

    members = relationship("Member", back_populates="assembly", cascade="all, delete-orphan")
    units = relationship("Unit", back_populates="assembly", cascade="all, delete-orphan")
    votes = relationship("Vote", back_populates="assembly", cascade="all, delete-orphan")


__all__ = ["Assembly"]
