"""Assembly report endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assembly.api.deps import get_db_session
from assembly.api.errors import service_errors
from assembly.api.routes.votes import option_result
from assembly.schemas import AbsenceReportRead, AttendanceReportRead, ProxyRowRead, VoteResults
from assembly.services.reporting import ReportService

router = APIRouter(prefix="/assemblies/{assembly_id}/reports")


@router.get("/attendance", response_model=AttendanceReportRead)
def attendance_report(assembly_id: str, session: Session = Depends(get_db_session)) -> AttendanceReportRead:
    with service_errors():
        report = ReportService(session).attendance(assembly_id)
    return AttendanceReportRead.model_validate(report)


@router.get("/absence", response_model=AbsenceReportRead)
def absence_report(assembly_id: str, session: Session = Depends(get_db_session)) -> AbsenceReportRead:
    with service_errors():
        report = ReportService(session).absence(assembly_id)
    return AbsenceReportRead.model_validate(report)


@router.get("/votes", response_model=list[VoteResults])
def votes_report(assembly_id: str, session: Session = Depends(get_db_session)) -> list[VoteResults]:
    with service_errors():
        reports = ReportService(session).votes(assembly_id)
    return [
        VoteResults(
            vote_id=report.vote_id,
            title=report.title,
            status=report.status,
            total_weight=report.total_weight,
            results=[option_result(entry) for entry in report.results],
        )
        for report in reports
    ]


@router.get("/proxies", response_model=list[ProxyRowRead])
def proxies_report(assembly_id: str, session: Session = Depends(get_db_session)) -> list[ProxyRowRead]:
    with service_errors():
        rows = ReportService(session).proxies(assembly_id)
    return [ProxyRowRead.model_validate(row) for row in rows]


__all__ = ["absence_report", "attendance_report", "proxies_report", "router", "votes_report"]
