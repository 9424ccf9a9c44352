"""Proxy (delegation) ORM models."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Enum as SAEnum
from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assembly.models.base import Base, TimestampMixin
from assembly.models.holder import HolderKind, RightsHolder, holder_from_columns, holder_to_columns


class ProxyType(str, enum.Enum):
    DIGITAL = "DIGITAL"
    PHYSICAL_BLANK = "PHYSICAL_BLANK"
    PHYSICAL_SPECIFIC = "PHYSICAL_SPECIFIC"
    PDF = "PDF"

    @property
    def requires_document(self) -> bool:
        return self is not ProxyType.DIGITAL


class ProxyStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVOKED = "REVOKED"


class VerificationMethod(str, enum.Enum):
    OTP = "OTP"
    DOCUMENT = "DOCUMENT"
    OPERATOR = "OPERATOR"


class Proxy(TimestampMixin, Base):
    """Delegation of a principal's unit rights to a representative."""

    __tablename__ = "proxies"
    __table_args__ = (
        Index(
            "uq_proxies_principal_approved",
            "principal_id",
            unique=True,
            postgresql_where=text("status = 'APPROVED'"),
            sqlite_where=text("status = 'APPROVED'"),
        ),
        Index("ix_proxies_assembly_id", "assembly_id"),
        Index("ix_proxies_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assembly_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("assemblies.id", ondelete="CASCADE"), nullable=False
    )
    principal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    representative_kind: Mapped[HolderKind] = mapped_column(
        SAEnum(HolderKind, name="holder_kind"), nullable=False
    )
    representative_member_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("members.id", ondelete="SET NULL")
    )
    external_name: Mapped[str | None] = mapped_column(String(255))
    external_document: Mapped[str | None] = mapped_column(String(64))
    type: Mapped[ProxyType] = mapped_column(SAEnum(ProxyType, name="proxy_type"), nullable=False)
    status: Mapped[ProxyStatus] = mapped_column(
        SAEnum(ProxyStatus, name="proxy_status"), nullable=False, default=ProxyStatus.PENDING
    )
    verification_method: Mapped[VerificationMethod | None] = mapped_column(
        SAEnum(VerificationMethod, name="verification_method")
    )
    evidence_ref: Mapped[str | None] = mapped_column(String(512))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    principal = relationship("Member", foreign_keys=[principal_id])
    representative_member = relationship("Member", foreign_keys=[representative_member_id])
    unit_links = relationship("ProxyUnit", back_populates="proxy", cascade="all, delete-orphan")

    @property
    def representative(self) -> RightsHolder:
        return holder_from_columns(
            self.representative_kind,
            self.representative_member_id,
            self.external_name,
            self.external_document,
        )

    @representative.setter
    def representative(self, holder: RightsHolder) -> None:
        (
            self.representative_kind,
            self.representative_member_id,
            self.external_name,
            self.external_document,
        ) = holder_to_columns(holder)


class ProxyUnit(Base):
    """Unit whose rights a proxy transferred."""

    __tablename__ = "proxy_units"

    proxy_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("proxies.id", ondelete="CASCADE"), primary_key=True
    )
    unit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("units.id", ondelete="CASCADE"), primary_key=True
    )

    proxy = relationship("Proxy", back_populates="unit_links")
    unit = relationship("Unit")


__all__ = ["Proxy", "ProxyStatus", "ProxyType", "ProxyUnit", "VerificationMethod"]
