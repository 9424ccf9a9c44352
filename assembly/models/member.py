"""Member ORM model."""
from __future__ import annotations

import enum
import uuid

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assembly.models.base import Base, TimestampMixin


class MemberRole(str, enum.Enum):
    OWNER = "OWNER"
    OPERATOR = "OPERATOR"
    ADMIN = "ADMIN"


class Member(TimestampMixin, Base):
    """Registered identity: a unit owner or an internal representative."""

    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("assembly_id", "document_number", name="uq_members_assembly_document"),
        Index("ix_members_assembly_id", "assembly_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assembly_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("assemblies.id", ondelete="CASCADE"), nullable=False
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    document_number: Mapped[str] = mapped_column(String(64), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(32))
    role: Mapped[MemberRole] = mapped_column(
        SAEnum(MemberRole, name="member_role"), nullable=False, default=MemberRole.OWNER
    )

    assembly = relationship("Assembly", back_populates="members")
    owned_units = relationship("Unit", back_populates="owner", foreign_keys="Unit.owner_id")


__all__ = ["Member", "MemberRole"]
