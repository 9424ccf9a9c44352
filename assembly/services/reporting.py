"""Attendance, absence, vote and proxy reports for an assembly."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from assembly.db.store import EntityStore, describe_holder, store_errors
from assembly.models import Member, Proxy, ProxyStatus, ProxyType, Unit, VoteStatus, as_utc
from assembly.services.voting import OptionTally, VoteTabulator


@dataclass(slots=True, frozen=True)
class AttendanceRow:
    unit: str
    coefficient: Decimal
    representative_name: str
    check_in_time: datetime


@dataclass(slots=True, frozen=True)
class AbsenceRow:
    unit: str
    coefficient: Decimal
    representative_name: str


@dataclass(slots=True)
class AttendanceReport:
    rows: list[AttendanceRow] = field(default_factory=list)
    total_coefficient: Decimal = Decimal("0")


@dataclass(slots=True)
class AbsenceReport:
    rows: list[AbsenceRow] = field(default_factory=list)
    total_coefficient: Decimal = Decimal("0")


@dataclass(slots=True, frozen=True)
class VoteReport:
    vote_id: str
    title: str
    status: VoteStatus
    total_weight: Decimal
    results: list[OptionTally]


@dataclass(slots=True, frozen=True)
class ProxyRow:
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


class ReportService:
    """Read-only projections; each call re-reads the store."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._store = EntityStore(session)

    def attendance(self, assembly_id: str) -> AttendanceReport:
        report = AttendanceReport()
        with store_errors():
            units = {unit.id: unit for unit in self._store.list_units(assembly_id)}
            for record in self._store.list_attendance(assembly_id):
                unit = units[record.unit_id]
                name, _ = describe_holder(unit.rights_holder, self._session)
                coefficient = Decimal(unit.coefficient)
                report.rows.append(
                    AttendanceRow(
                        unit=unit.number,
                        coefficient=coefficient,
                        representative_name=name,
                        check_in_time=as_utc(record.created_at),
                    )
                )
                report.total_coefficient += coefficient
        return report

    def absence(self, assembly_id: str) -> AbsenceReport:
        report = AbsenceReport()
        with store_errors():
            present = {record.unit_id for record in self._store.list_attendance(assembly_id)}
            for unit in self._store.list_units(assembly_id):
                if unit.id in present:
                    continue
                name, _ = describe_holder(unit.rights_holder, self._session)
                coefficient = Decimal(unit.coefficient)
                report.rows.append(
                    AbsenceRow(unit=unit.number, coefficient=coefficient, representative_name=name)
                )
                report.total_coefficient += coefficient
        return report

    def votes(self, assembly_id: str) -> list[VoteReport]:
        tabulator = VoteTabulator(self._session)
        reports = []
        for vote in tabulator.list_votes(assembly_id):
            tally = tabulator.tabulate(vote.id)
            reports.append(
                VoteReport(
                    vote_id=tally.vote_id,
                    title=tally.title,
                    status=tally.status,
                    total_weight=tally.total_weight,
                    results=tally.options,
                )
            )
        return reports

    def proxies(self, assembly_id: str) -> list[ProxyRow]:
        """One row per unit covered by each approved proxy."""

        statement = (
            select(Proxy)
            .where(Proxy.assembly_id == assembly_id, Proxy.status == ProxyStatus.APPROVED)
            .order_by(Proxy.created_at.desc())
        )
        rows: list[ProxyRow] = []
        with store_errors():
            for proxy in self._session.scalars(statement).all():
                principal = self._session.get(Member, proxy.principal_id)
                representative_name, representative_doc = describe_holder(
                    proxy.representative, self._session
                )
                unit_ids = self._store.linked_unit_ids(proxy.id)
                units = (
                    self._session.scalars(
                        select(Unit).where(Unit.id.in_(unit_ids)).order_by(Unit.number)
                    ).all()
                    if unit_ids
                    else []
                )
                for unit in units:
                    rows.append(
                        ProxyRow(
                            proxy_id=proxy.id,
                            type=proxy.type,
                            status=proxy.status,
                            principal_name=principal.full_name if principal else "Unknown",
                            principal_doc=principal.document_number if principal else "",
                            unit=unit.number,
                            coefficient=Decimal(unit.coefficient),
                            representative_name=representative_name,
                            representative_doc=representative_doc,
                            date=as_utc(proxy.created_at),
                        )
                    )
        return rows


__all__ = [
    "AbsenceReport",
    "AbsenceRow",
    "AttendanceReport",
    "AttendanceRow",
    "ProxyRow",
    "ReportService",
    "VoteReport",
]
