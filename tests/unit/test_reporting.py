from __future__ import annotations

from decimal import Decimal

from assembly.models import ExternalHolder, InternalHolder, ProxyStatus, ProxyType
from assembly.services.lifecycle import ProxyEvidence, ProxyLifecycleService
from assembly.services.quorum import check_in
from assembly.services.reporting import ReportService
from assembly.services.voting import VoteTabulator


def test_attendance_and_absence_reports(db_session, assembly_data, settings, publisher) -> None:
    ProxyLifecycleService(db_session, settings=settings, publisher=publisher).register(
        principal_id=assembly_data.bob,
        representative=ExternalHolder(name="Dora Salazar", document_number="EXT-77"),
        proxy_type=ProxyType.PHYSICAL_SPECIFIC,
        evidence=ProxyEvidence(document_ref="scan://0003"),
    )
    check_in(db_session, unit_id=assembly_data.unit_102, publisher=publisher)
    check_in(db_session, unit_id=assembly_data.unit_101, publisher=publisher)

    reports = ReportService(db_session)
    attendance = reports.attendance("asm-1")
    absence = reports.absence("asm-1")

    assert {(row.unit, row.representative_name) for row in attendance.rows} == {
        ("101", "Alice Ortiz"),
        ("102", "Dora Salazar"),
    }
    assert attendance.total_coefficient == Decimal("0.75")
    assert all(row.check_in_time.tzinfo is not None for row in attendance.rows)

    assert [(row.unit, row.representative_name) for row in absence.rows] == [("103", "Dora Salazar")]
    assert absence.total_coefficient == Decimal("0.25")


def test_reports_on_empty_assembly(db_session, assembly_data) -> None:
    reports = ReportService(db_session)

    assert reports.attendance("asm-1").rows == []
    assert reports.attendance("asm-1").total_coefficient == Decimal("0")
    assert reports.votes("asm-1") == []
    assert reports.proxies("asm-1") == []
    assert len(reports.absence("asm-1").rows) == 3


def test_proxies_report_lists_each_transferred_unit(db_session, assembly_data, settings, publisher) -> None:
    service = ProxyLifecycleService(db_session, settings=settings, publisher=publisher)
    bob_proxy = service.register(
        principal_id=assembly_data.bob,
        representative=InternalHolder(member_id=assembly_data.carol),
        proxy_type=ProxyType.PDF,
        evidence=ProxyEvidence(document_ref="s3://proxies/bob.pdf"),
    )
    alice_proxy = service.register(
        principal_id=assembly_data.alice,
        representative=InternalHolder(member_id=assembly_data.carol),
        proxy_type=ProxyType.PDF,
        evidence=ProxyEvidence(document_ref="s3://proxies/alice.pdf"),
    )
    service.revoke(alice_proxy.id)

    rows = ReportService(db_session).proxies("asm-1")

    assert [row.unit for row in rows] == ["102", "103"]
    assert {row.proxy_id for row in rows} == {bob_proxy.id}
    first = rows[0]
    assert first.status is ProxyStatus.APPROVED
    assert first.principal_name == "Bob Rivas"
    assert first.principal_doc == "CC-200"
    assert first.representative_name == "Carol Mejía"
    assert first.representative_doc == "CC-300"
    assert first.coefficient == Decimal("0.45")


def test_votes_report(db_session, assembly_data, publisher) -> None:
    tabulator = VoteTabulator(db_session, publisher=publisher)
    vote = tabulator.create_vote(assembly_id="asm-1", title="Approve budget", options=["Yes", "No"])
    yes = vote.options[0].id
    tabulator.cast(vote_id=vote.id, unit_id=assembly_data.unit_102, option_id=yes)

    [report] = ReportService(db_session).votes("asm-1")

    assert report.title == "Approve budget"
    assert report.total_weight == Decimal("0.45")
    assert [(entry.label, entry.percentage) for entry in report.results] == [
        ("Yes", Decimal("100")),
        ("No", Decimal("0")),
    ]
