"""Vote, option and ballot ORM models."""
from __future__ import annotations

import enum
import uuid
from decimal import Decimal

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assembly.models.base import Base, TimestampMixin


class VoteStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Vote(TimestampMixin, Base):
    """A question put to the assembly."""

    __tablename__ = "votes"
    __table_args__ = (Index("ix_votes_assembly_id", "assembly_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assembly_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("assemblies.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[VoteStatus] = mapped_column(
        SAEnum(VoteStatus, name="vote_status"), nullable=False, default=VoteStatus.OPEN
    )

    assembly = relationship("Assembly", back_populates="votes")
    options = relationship(
        "VoteOption",
        back_populates="vote",
        order_by="VoteOption.position",
        cascade="all, delete-orphan",
    )


class VoteOption(Base):
    __tablename__ = "vote_options"
    __table_args__ = (UniqueConstraint("vote_id", "position", name="uq_vote_options_vote_position"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    vote_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("votes.id", ondelete="CASCADE"), nullable=False
    )
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    vote = relationship("Vote", back_populates="options")


class Ballot(TimestampMixin, Base):
    """One unit's weighted choice on one vote."""

    __tablename__ = "ballots"
    __table_args__ = (
        UniqueConstraint("vote_id", "unit_id", name="uq_ballots_vote_unit"),
        Index("ix_ballots_vote_id", "vote_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    vote_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("votes.id", ondelete="CASCADE"), nullable=False
    )
    option_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("vote_options.id", ondelete="CASCADE"), nullable=False
    )
    unit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("units.id", ondelete="CASCADE"), nullable=False
    )
    weight: Mapped[Decimal] = mapped_column(Numeric(12, 8), nullable=False)
    cast_by: Mapped[str | None] = mapped_column(String(255))


__all__ = ["Ballot", "Vote", "VoteOption", "VoteStatus"]
