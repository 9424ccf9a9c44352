from __future__ import annotations

from datetime import datetime, timedelta, timezone
from io import StringIO

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from assembly.core.errors import ConflictError
from assembly.db.store import EntityStore
from assembly.models import InternalHolder, Proxy, ProxyStatus, ProxyType, ProxyUnit, Unit
from assembly.services.lifecycle import ProxyEvidence, ProxyLifecycleService
from assembly.services.reconciliation import ProxyReconciler

from conftest import TestingSessionLocal

NOW = datetime(2026, 3, 1, 15, 0, tzinfo=timezone.utc)


def _dangling_proxy(
    session: Session,
    *,
    principal_id: str,
    representative_id: str,
    unit_ids: list[str],
    created_at: datetime,
    evidence_ref: str | None = None,
) -> str:
    """Leave the store as an interrupted registration would."""

    proxy = Proxy(
        assembly_id="asm-1",
        principal_id=principal_id,
        representative=InternalHolder(member_id=representative_id),
        type=ProxyType.DIGITAL,
        status=ProxyStatus.APPROVED,
        evidence_ref=evidence_ref,
        created_at=created_at,
    )
    session.add(proxy)
    session.flush()
    proxy_id = proxy.id
    for unit_id in unit_ids:
        session.get(Unit, unit_id).rights_holder = InternalHolder(member_id=representative_id)
        session.add(ProxyUnit(proxy_id=proxy_id, unit_id=unit_id))
    session.commit()
    return proxy_id


def _holder(session: Session, unit_id: str):
    session.expire_all()
    return session.get(Unit, unit_id).rights_holder


def test_sweep_restores_units_and_deletes_proxy(db_session, assembly_data, settings, publisher) -> None:
    proxy_id = _dangling_proxy(
        db_session,
        principal_id=assembly_data.bob,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_102, assembly_data.unit_103],
        created_at=NOW - timedelta(minutes=10),
    )

    report = ProxyReconciler(db_session, settings=settings, publisher=publisher).sweep(now=NOW)

    assert report.proxies_found == 1
    assert report.proxies_deleted == [proxy_id]
    assert report.clean
    assert {repair.unit_number for repair in report.repaired} == {"102", "103"}
    assert _holder(db_session, assembly_data.unit_102) == InternalHolder(member_id=assembly_data.bob)
    assert _holder(db_session, assembly_data.unit_103) == InternalHolder(member_id=assembly_data.bob)
    assert db_session.get(Proxy, proxy_id) is None
    assert db_session.scalars(select(ProxyUnit)).all() == []


def test_sweep_is_idempotent(db_session, assembly_data, settings, publisher) -> None:
    _dangling_proxy(
        db_session,
        principal_id=assembly_data.alice,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_101],
        created_at=NOW - timedelta(minutes=10),
    )
    reconciler = ProxyReconciler(db_session, settings=settings, publisher=publisher)

    reconciler.sweep(now=NOW)
    second = reconciler.sweep(now=NOW)

    assert second.proxies_found == 0
    assert second.repairs == []
    assert _holder(db_session, assembly_data.unit_101) == InternalHolder(member_id=assembly_data.alice)


def test_sweep_leaves_recent_and_evidenced_proxies(db_session, assembly_data, settings, publisher) -> None:
    fresh = _dangling_proxy(
        db_session,
        principal_id=assembly_data.alice,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_101],
        created_at=NOW - timedelta(seconds=30),
    )
    complete = _dangling_proxy(
        db_session,
        principal_id=assembly_data.bob,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_102, assembly_data.unit_103],
        created_at=NOW - timedelta(hours=2),
        evidence_ref="verification:abc",
    )

    report = ProxyReconciler(db_session, settings=settings, publisher=publisher).sweep(now=NOW)

    assert report.proxies_found == 0
    assert db_session.get(Proxy, fresh) is not None
    assert db_session.get(Proxy, complete) is not None
    assert _holder(db_session, assembly_data.unit_101) == InternalHolder(member_id=assembly_data.carol)


def test_partial_failure_keeps_proxy_for_next_sweep(
    db_session, assembly_data, settings, publisher, monkeypatch: pytest.MonkeyPatch
) -> None:
    proxy_id = _dangling_proxy(
        db_session,
        principal_id=assembly_data.bob,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_102, assembly_data.unit_103],
        created_at=NOW - timedelta(minutes=10),
    )
    original = EntityStore.update_unit_rights_holder

    def flaky(self, unit_id, holder, *, expected):
        if unit_id == assembly_data.unit_103:
            raise ConflictError("unit 103 is locked")
        return original(self, unit_id, holder, expected=expected)

    monkeypatch.setattr(EntityStore, "update_unit_rights_holder", flaky)
    reconciler = ProxyReconciler(db_session, settings=settings, publisher=publisher)

    report = reconciler.sweep(now=NOW)

    assert not report.clean
    assert [failure.unit_number for failure in report.failures] == ["103"]
    assert report.failures[0].error == "unit 103 is locked"
    assert [repair.unit_number for repair in report.repaired] == ["102"]
    assert report.proxies_kept == [proxy_id]
    assert _holder(db_session, assembly_data.unit_102) == InternalHolder(member_id=assembly_data.bob)
    assert _holder(db_session, assembly_data.unit_103) == InternalHolder(member_id=assembly_data.carol)

    monkeypatch.setattr(EntityStore, "update_unit_rights_holder", original)
    retry = reconciler.sweep(now=NOW)

    assert retry.clean
    assert retry.proxies_deleted == [proxy_id]
    assert [repair.unit_number for repair in retry.repaired] == ["103"]
    assert _holder(db_session, assembly_data.unit_103) == InternalHolder(member_id=assembly_data.bob)


def test_sweep_publishes_proxy_event(db_session, assembly_data, settings, publisher, kafka_producer) -> None:
    _dangling_proxy(
        db_session,
        principal_id=assembly_data.alice,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_101],
        created_at=NOW - timedelta(minutes=10),
    )

    ProxyReconciler(db_session, settings=settings, publisher=publisher).sweep(now=NOW)

    assert [(event["topic"], event["kind"]) for event in kafka_producer.values()] == [("proxy", "reconciled")]


def test_cli_exit_codes(db_session, assembly_data, monkeypatch: pytest.MonkeyPatch) -> None:
    from workers.reconciliation import main as cli

    _dangling_proxy(
        db_session,
        principal_id=assembly_data.bob,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_102, assembly_data.unit_103],
        created_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    original = EntityStore.update_unit_rights_holder

    def flaky(self, unit_id, holder, *, expected):
        if unit_id == assembly_data.unit_103:
            raise ConflictError("unit 103 is locked")
        return original(self, unit_id, holder, expected=expected)

    monkeypatch.setattr(EntityStore, "update_unit_rights_holder", flaky)
    out = StringIO()
    assert cli.main([], session_factory=TestingSessionLocal, out=out) == cli.EXIT_PARTIAL_FAILURE
    lines = out.getvalue().splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("repaired unit 102")
    assert lines[1].startswith("FAILED unit 103")

    monkeypatch.setattr(EntityStore, "update_unit_rights_holder", original)
    out = StringIO()
    assert cli.main([], session_factory=TestingSessionLocal, out=out) == cli.EXIT_CLEAN
    assert out.getvalue().startswith("repaired unit 103")

    out = StringIO()
    assert cli.main([], session_factory=TestingSessionLocal, out=out) == cli.EXIT_CLEAN
    assert out.getvalue() == ""


class _SerializationFailure(Exception):
    sqlstate = "40001"


def _contested(monkeypatch: pytest.MonkeyPatch, method: str, proxy_or_unit_id: str, error: Exception) -> None:
    original = getattr(EntityStore, method)

    def losing_race(self, target_id, *args, **kwargs):
        if target_id == proxy_or_unit_id:
            raise error
        return original(self, target_id, *args, **kwargs)

    monkeypatch.setattr(EntityStore, method, losing_race)


def test_sweep_skips_proxy_taken_by_concurrent_sweep(
    db_session, assembly_data, settings, publisher, monkeypatch: pytest.MonkeyPatch
) -> None:
    contested = _dangling_proxy(
        db_session,
        principal_id=assembly_data.alice,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_101],
        created_at=NOW - timedelta(minutes=20),
    )
    other = _dangling_proxy(
        db_session,
        principal_id=assembly_data.bob,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_102, assembly_data.unit_103],
        created_at=NOW - timedelta(minutes=10),
    )
    _contested(monkeypatch, "delete_proxy", contested, ConflictError("Concurrent update detected"))

    report = ProxyReconciler(db_session, settings=settings, publisher=publisher).sweep(now=NOW)

    assert report.clean
    assert report.proxies_found == 2
    assert report.proxies_deleted == [other]
    assert report.proxies_kept == []
    assert {repair.unit_number for repair in report.repairs} == {"102", "103"}
    assert _holder(db_session, assembly_data.unit_101) == InternalHolder(member_id=assembly_data.carol)
    assert _holder(db_session, assembly_data.unit_102) == InternalHolder(member_id=assembly_data.bob)
    assert db_session.get(Proxy, contested) is not None


def test_serialization_failure_is_not_reported_as_unit_failure(
    db_session, assembly_data, settings, publisher, monkeypatch: pytest.MonkeyPatch
) -> None:
    contested = _dangling_proxy(
        db_session,
        principal_id=assembly_data.alice,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_101],
        created_at=NOW - timedelta(minutes=20),
    )
    other = _dangling_proxy(
        db_session,
        principal_id=assembly_data.bob,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_102],
        created_at=NOW - timedelta(minutes=10),
    )
    _contested(
        monkeypatch,
        "update_unit_rights_holder",
        assembly_data.unit_101,
        OperationalError("UPDATE units", {}, _SerializationFailure("could not serialize access")),
    )

    report = ProxyReconciler(db_session, settings=settings, publisher=publisher).sweep(now=NOW)

    assert report.failures == []
    assert report.proxies_deleted == [other]
    assert [repair.unit_number for repair in report.repairs] == ["102"]
    assert db_session.get(Proxy, contested) is not None


def test_cli_exits_clean_when_a_concurrent_sweep_wins(
    db_session, assembly_data, monkeypatch: pytest.MonkeyPatch
) -> None:
    from workers.reconciliation import main as cli

    contested = _dangling_proxy(
        db_session,
        principal_id=assembly_data.alice,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_101],
        created_at=datetime.now(timezone.utc) - timedelta(hours=2),
    )
    _dangling_proxy(
        db_session,
        principal_id=assembly_data.bob,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_102, assembly_data.unit_103],
        created_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    _contested(monkeypatch, "delete_proxy", contested, ConflictError("Concurrent update detected"))

    out = StringIO()
    assert cli.main([], session_factory=TestingSessionLocal, out=out) == cli.EXIT_CLEAN
    assert [line.split(" -> ")[0] for line in out.getvalue().splitlines()] == [
        "repaired unit 102",
        "repaired unit 103",
    ]


def test_sweep_ignores_units_delegated_by_another_principal(
    db_session, assembly_data, settings, publisher
) -> None:
    completed = ProxyLifecycleService(db_session, settings=settings, publisher=publisher).register(
        principal_id=assembly_data.alice,
        representative=InternalHolder(member_id=assembly_data.carol),
        proxy_type=ProxyType.PDF,
        evidence=ProxyEvidence(document_ref="s3://proxies/alice.pdf"),
    )
    completed_id = completed.id
    dangling = _dangling_proxy(
        db_session,
        principal_id=assembly_data.bob,
        representative_id=assembly_data.carol,
        unit_ids=[assembly_data.unit_102],
        created_at=NOW - timedelta(minutes=10),
    )

    report = ProxyReconciler(db_session, settings=settings, publisher=publisher).sweep(now=NOW)

    assert [repair.unit_number for repair in report.repaired] == ["102"]
    assert report.proxies_deleted == [dangling]
    assert _holder(db_session, assembly_data.unit_101) == InternalHolder(member_id=assembly_data.carol)
    assert _holder(db_session, assembly_data.unit_102) == InternalHolder(member_id=assembly_data.bob)
    assert db_session.get(Proxy, completed_id).status is ProxyStatus.APPROVED
