"""Voting unit ORM model."""
from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Enum as SAEnum
from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assembly.models.base import Base, TimestampMixin
from assembly.models.holder import HolderKind, RightsHolder, holder_from_columns, holder_to_columns


class Unit(TimestampMixin, Base):
    """A weighted voting unit whose rights are held by exactly one party."""

    __tablename__ = "units"
    __table_args__ = (
        UniqueConstraint("assembly_id", "number", name="uq_units_assembly_number"),
        CheckConstraint("coefficient > 0", name="ck_units_coefficient_positive"),
        CheckConstraint(
            "(holder_kind = 'INTERNAL' AND holder_member_id IS NOT NULL"
            " AND holder_external_name IS NULL AND holder_external_document IS NULL)"
            " OR (holder_kind = 'EXTERNAL' AND holder_member_id IS NULL"
            " AND holder_external_name IS NOT NULL AND holder_external_document IS NOT NULL)",
            name="ck_units_single_rights_holder",
        ),
        Index("ix_units_assembly_id", "assembly_id"),
        Index("ix_units_holder_member_id", "holder_member_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assembly_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("assemblies.id", ondelete="CASCADE"), nullable=False
    )
    number: Mapped[str] = mapped_column(String(32), nullable=False)
    coefficient: Mapped[Decimal] = mapped_column(Numeric(12, 8), nullable=False)
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("members.id", ondelete="RESTRICT"), nullable=False
    )
    holder_kind: Mapped[HolderKind] = mapped_column(
        SAEnum(HolderKind, name="holder_kind"), nullable=False, default=HolderKind.INTERNAL
    )
    holder_member_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("members.id", ondelete="RESTRICT")
    )
    holder_external_name: Mapped[str | None] = mapped_column(String(255))
    holder_external_document: Mapped[str | None] = mapped_column(String(64))
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    assembly = relationship("Assembly", back_populates="units")
    owner = relationship("Member", back_populates="owned_units", foreign_keys=[owner_id])
    holder_member = relationship("Member", foreign_keys=[holder_member_id])
    attendance = relationship("AttendanceRecord", back_populates="unit")

    __mapper_args__ = {"version_id_col": lock_version}

    @property
    def rights_holder(self) -> RightsHolder:
        return holder_from_columns(
            self.holder_kind,
            self.holder_member_id,
            self.holder_external_name,
            self.holder_external_document,
        )

    @rights_holder.setter
    def rights_holder(self, holder: RightsHolder) -> None:
        (
            self.holder_kind,
            self.holder_member_id,
            self.holder_external_name,
            self.holder_external_document,
        ) = holder_to_columns(holder)


__all__ = ["Unit"]
