"""Attendance check-in and coefficient-weighted quorum."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from assembly.core.config import Settings, get_settings
from assembly.core.errors import NotFoundError
from assembly.db.store import EntityStore, serializable_transaction, store_errors
from assembly.models import Assembly, AttendanceRecord
from assembly.services.change_events import ChangeEventPublisher, ChangeTopic

_ZERO = Decimal("0")


@dataclass(slots=True, frozen=True)
class QuorumSnapshot:
    assembly_id: str
    present_coefficient: Decimal
    total_coefficient: Decimal
    fraction: Decimal
    present_units: int
    total_units: int
    threshold: Decimal

    @property
    def reached(self) -> bool:
        return self.fraction > self.threshold

    @property
    def percentage(self) -> Decimal:
        return self.fraction * 100

    @property
    def status_label(self) -> str:
        return "quorum reached" if self.reached else "waiting for quorum"


class QuorumCalculator:
    """Recomputes quorum from the store on every call; nothing is cached."""

    def __init__(self, session: Session, *, settings: Settings | None = None) -> None:
        self._session = session
        self._store = EntityStore(session)
        self._settings = settings or get_settings()

    def compute(self, assembly_id: str) -> QuorumSnapshot:
        with store_errors():
            assembly = self._session.get(Assembly, assembly_id)
            if assembly is None:
                raise NotFoundError(f"Assembly '{assembly_id}' was not found")
            units = self._store.list_units(assembly_id)
            present_ids = {record.unit_id for record in self._store.list_attendance(assembly_id)}

        total = sum((Decimal(unit.coefficient) for unit in units), _ZERO)
        present_units = [unit for unit in units if unit.id in present_ids]
        present = sum((Decimal(unit.coefficient) for unit in present_units), _ZERO)
        fraction = present / total if total > 0 else _ZERO

        threshold = assembly.quorum_threshold
        if threshold is None:
            threshold = self._settings.quorum_threshold
        return QuorumSnapshot(
            assembly_id=assembly_id,
            present_coefficient=present,
            total_coefficient=total,
            fraction=fraction,
            present_units=len(present_units),
            total_units=len(units),
            threshold=Decimal(threshold),
        )


def check_in(
    session: Session,
    *,
    unit_id: str,
    checked_in_by: str | None = None,
    publisher: ChangeEventPublisher | None = None,
) -> AttendanceRecord:
    """Record that a unit is present. Repeated check-ins return the first record."""

    store = EntityStore(session)
    with serializable_transaction(session):
        unit = store.get_unit(unit_id)
        if unit is None:
            raise NotFoundError(f"Unit '{unit_id}' was not found")
        assembly_id = unit.assembly_id
        record = store.append_attendance(unit_id, checked_in_by=checked_in_by)

    (publisher or ChangeEventPublisher()).publish(
        assembly_id=assembly_id, topic=ChangeTopic.ATTENDANCE, kind="checked_in"
    )
    return record


__all__ = ["QuorumCalculator", "QuorumSnapshot", "check_in"]
