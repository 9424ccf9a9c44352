"""Entity store gateway used by the lifecycle, quorum and voting services.

Every write goes through a conditional update or a database constraint so that
a lost race surfaces as ``ConflictError`` instead of silently overwriting.
"""
from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, delete, select, text, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from assembly.core.errors import (
    ConflictError,
    DuplicateActiveProxyError,
    NotFoundError,
    StoreUnavailable,
)
from assembly.models import (
    AttendanceRecord,
    Ballot,
    ExternalHolder,
    HolderKind,
    InternalHolder,
    Member,
    Proxy,
    ProxyStatus,
    ProxyUnit,
    RightsHolder,
    Unit,
    Vote,
    utcnow,
)

_SERIALIZATION_FAILURE = "40001"
_SINGLE_ACTIVE_PROXY_MARKERS = ("uq_proxies_principal_approved", "proxies.principal_id")


def is_serialization_failure(exc: BaseException) -> bool:
    return isinstance(exc, OperationalError) and getattr(exc.orig, "sqlstate", None) == _SERIALIZATION_FAILURE


def _violates_single_active_proxy(exc: IntegrityError) -> bool:
    # Postgres names the index, SQLite names the indexed column.
    message = str(exc.orig)
    return any(marker in message for marker in _SINGLE_ACTIVE_PROXY_MARKERS)


@contextmanager
def serializable_transaction(session: Session) -> Iterator[None]:
    """Run the enclosed block as one SERIALIZABLE unit of work.

    Commits on success and rolls back on any error. A lost serialization race
    surfaces as ``ConflictError``; other driver-level failures as
    ``StoreUnavailable``.
    """

    bind = session.get_bind()
    if bind is None:
        raise RuntimeError("Session is not bound to an engine")

    try:
        if bind.dialect.name == "sqlite":
            session.execute(text("BEGIN IMMEDIATE"))
        else:
            session.execute(text("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"))
        yield
        session.commit()
    except OperationalError as exc:
        session.rollback()
        if is_serialization_failure(exc):
            raise ConflictError("Concurrent update detected, retry the operation") from exc
        raise StoreUnavailable("Entity store is unavailable") from exc
    except Exception:
        session.rollback()
        raise


@contextmanager
def store_errors() -> Iterator[None]:
    """Translate driver failures on read paths into ``StoreUnavailable``."""

    try:
        yield
    except IntegrityError:
        raise
    except DBAPIError as exc:
        raise StoreUnavailable("Entity store is unavailable") from exc


def _holder_clause(holder: RightsHolder):
    if isinstance(holder, InternalHolder):
        return and_(
            Unit.holder_kind == HolderKind.INTERNAL,
            Unit.holder_member_id == holder.member_id,
        )
    return and_(
        Unit.holder_kind == HolderKind.EXTERNAL,
        Unit.holder_external_name == holder.name,
        Unit.holder_external_document == holder.document_number,
    )


class EntityStore:
    """Thin gateway over the ORM session exposing the store operations."""

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # Lookups

    def get_member(self, member_id: str) -> Member | None:
        return self._session.get(Member, member_id)

    def get_unit(self, unit_id: str) -> Unit | None:
        return self._session.get(Unit, unit_id)

    def get_proxy(self, proxy_id: str) -> Proxy | None:
        return self._session.get(Proxy, proxy_id)

    def get_vote(self, vote_id: str) -> Vote | None:
        return self._session.get(Vote, vote_id)

    def find_member_by_document(self, assembly_id: str, document_number: str) -> Member | None:
        statement = select(Member).where(
            Member.assembly_id == assembly_id, Member.document_number == document_number
        )
        return self._session.scalars(statement).one_or_none()

    # Units

    def list_units(self, assembly_id: str) -> Sequence[Unit]:
        statement = select(Unit).where(Unit.assembly_id == assembly_id).order_by(Unit.number)
        return self._session.scalars(statement).all()

    def units_owned_by(self, assembly_id: str, owner_id: str) -> Sequence[Unit]:
        statement = (
            select(Unit)
            .where(Unit.assembly_id == assembly_id, Unit.owner_id == owner_id)
            .order_by(Unit.number)
        )
        return self._session.scalars(statement).all()

    def units_held_by(self, assembly_id: str, holder: RightsHolder) -> Sequence[Unit]:
        statement = (
            select(Unit)
            .where(Unit.assembly_id == assembly_id, _holder_clause(holder))
            .order_by(Unit.number)
        )
        return self._session.scalars(statement).all()

    def update_unit_rights_holder(
        self, unit_id: str, holder: RightsHolder, *, expected: RightsHolder
    ) -> Unit:
        """Move a unit's rights to ``holder`` if it is still held by ``expected``."""

        unit = self._session.get(Unit, unit_id)
        if unit is None or unit.rights_holder != expected:
            raise ConflictError(f"Unit '{unit_id}' is no longer held by the expected party")
        unit.rights_holder = holder
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise ConflictError(f"Unit '{unit_id}' was modified concurrently") from exc
        return unit

    # Attendance

    def list_attendance(self, assembly_id: str) -> Sequence[AttendanceRecord]:
        statement = (
            select(AttendanceRecord)
            .join(Unit, AttendanceRecord.unit_id == Unit.id)
            .where(Unit.assembly_id == assembly_id)
            .order_by(AttendanceRecord.created_at.desc())
        )
        return self._session.scalars(statement).all()

    def append_attendance(self, unit_id: str, *, checked_in_by: str | None = None) -> AttendanceRecord:
        """Record a check-in; a unit that already checked in keeps its first record."""

        existing = self._session.scalars(
            select(AttendanceRecord).where(AttendanceRecord.unit_id == unit_id)
        ).first()
        if existing is not None:
            return existing

        record = AttendanceRecord(unit_id=unit_id, checked_in_by=checked_in_by)
        try:
            with self._session.begin_nested():
                self._session.add(record)
        except IntegrityError:
            return self._session.scalars(
                select(AttendanceRecord).where(AttendanceRecord.unit_id == unit_id)
            ).one()
        return record

    # Proxies

    def active_proxy_for(self, principal_id: str) -> Proxy | None:
        statement = select(Proxy).where(
            Proxy.principal_id == principal_id, Proxy.status == ProxyStatus.APPROVED
        )
        return self._session.scalars(statement).first()

    def create_proxy(self, **fields: object) -> Proxy:
        proxy = Proxy(**fields)
        self._session.add(proxy)
        try:
            self._session.flush()
        except IntegrityError as exc:
            if _violates_single_active_proxy(exc):
                raise DuplicateActiveProxyError("Principal already has an approved proxy") from exc
            raise
        return proxy

    def link_proxy_units(self, proxy: Proxy, units: Sequence[Unit]) -> None:
        for unit in units:
            self._session.add(ProxyUnit(proxy_id=proxy.id, unit_id=unit.id))
        self._session.flush()

    def linked_unit_ids(self, proxy_id: str) -> list[str]:
        statement = select(ProxyUnit.unit_id).where(ProxyUnit.proxy_id == proxy_id)
        return list(self._session.scalars(statement).all())

    def update_proxy_status(
        self,
        proxy_id: str,
        status: ProxyStatus,
        *,
        expected_status: ProxyStatus,
        **fields: object,
    ) -> Proxy:
        """Transition a proxy only if it is still in ``expected_status``."""

        proxy = self._session.get(Proxy, proxy_id)
        if proxy is None:
            raise NotFoundError(f"Proxy '{proxy_id}' was not found")

        values = {"status": status, "updated_at": utcnow(), **fields}
        statement = (
            update(Proxy)
            .where(Proxy.id == proxy_id, Proxy.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self._session.execute(statement)
        except IntegrityError as exc:
            if _violates_single_active_proxy(exc):
                raise DuplicateActiveProxyError("Principal already has an approved proxy") from exc
            raise
        if result.rowcount != 1:
            raise ConflictError(
                f"Proxy '{proxy_id}' is no longer {expected_status.value.lower()}"
            )
        self._session.refresh(proxy)
        return proxy

    def delete_proxy(self, proxy_id: str) -> None:
        self._session.execute(delete(ProxyUnit).where(ProxyUnit.proxy_id == proxy_id))
        self._session.execute(delete(Proxy).where(Proxy.id == proxy_id))

    def dangling_proxies(self, *, created_before: datetime) -> Sequence[Proxy]:
        """Approved proxies that never received their evidence reference."""

        statement = (
            select(Proxy)
            .where(
                Proxy.status == ProxyStatus.APPROVED,
                Proxy.evidence_ref.is_(None),
                Proxy.created_at < created_before,
            )
            .order_by(Proxy.created_at)
        )
        return self._session.scalars(statement).all()

    # Votes

    def list_votes(self, assembly_id: str) -> Sequence[Vote]:
        statement = (
            select(Vote).where(Vote.assembly_id == assembly_id).order_by(Vote.created_at.desc())
        )
        return self._session.scalars(statement).all()

    def list_ballots(self, vote_id: str) -> Sequence[Ballot]:
        statement = select(Ballot).where(Ballot.vote_id == vote_id).order_by(Ballot.created_at)
        return self._session.scalars(statement).all()

    def create_ballot(
        self,
        *,
        vote_id: str,
        option_id: str,
        unit_id: str,
        weight: Decimal,
        cast_by: str | None,
    ) -> Ballot:
        ballot = Ballot(
            vote_id=vote_id,
            option_id=option_id,
            unit_id=unit_id,
            weight=weight,
            cast_by=cast_by,
        )
        self._session.add(ballot)
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise ConflictError("A ballot was already cast for this unit") from exc
        return ballot


def describe_holder(holder: RightsHolder, session: Session) -> tuple[str, str | None]:
    """Return ``(name, document)`` for a rights holder, switching on its kind."""

    if isinstance(holder, ExternalHolder):
        return holder.name, holder.document_number
    member = session.get(Member, holder.member_id)
    if member is None:
        return "Unassigned", None
    return member.full_name, member.document_number


__all__ = [
    "EntityStore",
    "describe_holder",
    "is_serialization_failure",
    "serializable_transaction",
    "store_errors",
]
