"""Initial schema for assemblies, units, proxies, attendance and votes."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20260301_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None

_ENUMS = (
    "member_role",
    "holder_kind",
    "proxy_type",
    "proxy_status",
    "verification_method",
    "vote_status",
)


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:  # noqa: D401
    """Create tables, constraints and indexes."""

    member_role = sa.Enum("OWNER", "OPERATOR", "ADMIN", name="member_role")
    holder_kind = sa.Enum("INTERNAL", "EXTERNAL", name="holder_kind")
    proxy_type = sa.Enum("DIGITAL", "PHYSICAL_BLANK", "PHYSICAL_SPECIFIC", "PDF", name="proxy_type")
    proxy_status = sa.Enum("PENDING", "APPROVED", "REJECTED", "REVOKED", name="proxy_status")
    verification_method = sa.Enum("OTP", "DOCUMENT", "OPERATOR", name="verification_method")
    vote_status = sa.Enum("OPEN", "CLOSED", name="vote_status")

    bind = op.get_bind()
    for enum_type in (member_role, holder_kind, proxy_type, proxy_status, verification_method, vote_status):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "assemblies",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quorum_threshold", sa.Numeric(5, 4), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "members",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "assembly_id",
            sa.String(length=64),
            sa.ForeignKey("assemblies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("document_number", sa.String(length=64), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("role", member_role, nullable=False, server_default="OWNER"),
        *_timestamps(),
        sa.UniqueConstraint("assembly_id", "document_number", name="uq_members_assembly_document"),
    )
    op.create_index("ix_members_assembly_id", "members", ["assembly_id"])

    op.create_table(
        "units",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "assembly_id",
            sa.String(length=64),
            sa.ForeignKey("assemblies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("number", sa.String(length=32), nullable=False),
        sa.Column("coefficient", sa.Numeric(12, 8), nullable=False),
        sa.Column(
            "owner_id",
            sa.String(length=36),
            sa.ForeignKey("members.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("holder_kind", holder_kind, nullable=False, server_default="INTERNAL"),
        sa.Column(
            "holder_member_id",
            sa.String(length=36),
            sa.ForeignKey("members.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("holder_external_name", sa.String(length=255), nullable=True),
        sa.Column("holder_external_document", sa.String(length=64), nullable=True),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("assembly_id", "number", name="uq_units_assembly_number"),
        sa.CheckConstraint("coefficient > 0", name="ck_units_coefficient_positive"),
        sa.CheckConstraint(
            "(holder_kind = 'INTERNAL' AND holder_member_id IS NOT NULL"
            " AND holder_external_name IS NULL AND holder_external_document IS NULL)"
            " OR (holder_kind = 'EXTERNAL' AND holder_member_id IS NULL"
            " AND holder_external_name IS NOT NULL AND holder_external_document IS NOT NULL)",
            name="ck_units_single_rights_holder",
        ),
    )
    op.create_index("ix_units_assembly_id", "units", ["assembly_id"])
    op.create_index("ix_units_holder_member_id", "units", ["holder_member_id"])

    op.create_table(
        "proxies",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "assembly_id",
            sa.String(length=64),
            sa.ForeignKey("assemblies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "principal_id",
            sa.String(length=36),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("representative_kind", holder_kind, nullable=False),
        sa.Column(
            "representative_member_id",
            sa.String(length=36),
            sa.ForeignKey("members.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("external_name", sa.String(length=255), nullable=True),
        sa.Column("external_document", sa.String(length=64), nullable=True),
        sa.Column("type", proxy_type, nullable=False),
        sa.Column("status", proxy_status, nullable=False, server_default="PENDING"),
        sa.Column("verification_method", verification_method, nullable=True),
        sa.Column("evidence_ref", sa.String(length=512), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_proxies_assembly_id", "proxies", ["assembly_id"])
    op.create_index("ix_proxies_status", "proxies", ["status"])
    op.create_index(
        "uq_proxies_principal_approved",
        "proxies",
        ["principal_id"],
        unique=True,
        postgresql_where=sa.text("status = 'APPROVED'"),
        sqlite_where=sa.text("status = 'APPROVED'"),
    )

    op.create_table(
        "proxy_units",
        sa.Column(
            "proxy_id",
            sa.String(length=36),
            sa.ForeignKey("proxies.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "unit_id",
            sa.String(length=36),
            sa.ForeignKey("units.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "verification_challenges",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "principal_id",
            sa.String(length=36),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("code_hash", sa.String(length=128), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invalidated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_attempts", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index(
        "ix_verification_challenges_principal_id", "verification_challenges", ["principal_id"]
    )

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "unit_id",
            sa.String(length=36),
            sa.ForeignKey("units.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("checked_in_by", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("unit_id", name="uq_attendance_records_unit"),
    )

    op.create_table(
        "votes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "assembly_id",
            sa.String(length=64),
            sa.ForeignKey("assemblies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("status", vote_status, nullable=False, server_default="OPEN"),
        *_timestamps(),
    )
    op.create_index("ix_votes_assembly_id", "votes", ["assembly_id"])

    op.create_table(
        "vote_options",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "vote_id",
            sa.String(length=36),
            sa.ForeignKey("votes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.UniqueConstraint("vote_id", "position", name="uq_vote_options_vote_position"),
    )

    op.create_table(
        "ballots",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "vote_id",
            sa.String(length=36),
            sa.ForeignKey("votes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "option_id",
            sa.String(length=36),
            sa.ForeignKey("vote_options.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "unit_id",
            sa.String(length=36),
            sa.ForeignKey("units.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("weight", sa.Numeric(12, 8), nullable=False),
        sa.Column("cast_by", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("vote_id", "unit_id", name="uq_ballots_vote_unit"),
    )
    op.create_index("ix_ballots_vote_id", "ballots", ["vote_id"])


def downgrade() -> None:  # noqa: D401
    """Drop all tables and enum types."""

    op.drop_index("ix_ballots_vote_id", table_name="ballots")
    op.drop_table("ballots")
    op.drop_table("vote_options")
    op.drop_index("ix_votes_assembly_id", table_name="votes")
    op.drop_table("votes")
    op.drop_table("attendance_records")
    op.drop_index("ix_verification_challenges_principal_id", table_name="verification_challenges")
    op.drop_table("verification_challenges")
    op.drop_table("proxy_units")
    op.drop_index("uq_proxies_principal_approved", table_name="proxies")
    op.drop_index("ix_proxies_status", table_name="proxies")
    op.drop_index("ix_proxies_assembly_id", table_name="proxies")
    op.drop_table("proxies")
    op.drop_index("ix_units_holder_member_id", table_name="units")
    op.drop_index("ix_units_assembly_id", table_name="units")
    op.drop_table("units")
    op.drop_index("ix_members_assembly_id", table_name="members")
    op.drop_table("members")
    op.drop_table("assemblies")

    for name in _ENUMS:
        _drop_enum(name)
