"""Check-in and quorum endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from assembly.api.deps import get_db_session, get_publisher
from assembly.api.errors import service_errors
from assembly.obs import report_quorum
from assembly.schemas import AttendanceRead, CheckInRequest, QuorumRead
from assembly.services.change_events import ChangeEventPublisher
from assembly.services.quorum import QuorumCalculator, check_in

router = APIRouter()


@router.post("/attendance", response_model=AttendanceRead, status_code=status.HTTP_201_CREATED)
def check_in_unit(
    payload: CheckInRequest,
    session: Session = Depends(get_db_session),
    publisher: ChangeEventPublisher = Depends(get_publisher),
) -> AttendanceRead:
    """Mark a unit present. Checking in twice returns the original record."""

    with service_errors():
        record = check_in(
            session,
            unit_id=payload.unit_id,
            checked_in_by=payload.checked_in_by,
            publisher=publisher,
        )
    return AttendanceRead.model_validate(record)


@router.get("/assemblies/{assembly_id}/quorum", response_model=QuorumRead)
def assembly_quorum(assembly_id: str, session: Session = Depends(get_db_session)) -> QuorumRead:
    with service_errors():
        snapshot = QuorumCalculator(session).compute(assembly_id)
    report_quorum(assembly_id, snapshot.fraction)
    return QuorumRead(
        assembly_id=snapshot.assembly_id,
        present_coefficient=snapshot.present_coefficient,
        total_coefficient=snapshot.total_coefficient,
        fraction=snapshot.fraction,
        percentage=snapshot.percentage,
        present_units=snapshot.present_units,
        total_units=snapshot.total_units,
        threshold=snapshot.threshold,
        reached=snapshot.reached,
        status=snapshot.status_label,
    )


__all__ = ["assembly_quorum", "check_in_unit", "router"]
